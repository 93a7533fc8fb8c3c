"""Database URI and engine options for the outreach queue."""
import os

SQLITE_DEFAULT_URI = "sqlite:///outreach.sqlite"

# Environment -> variables holding its database URL, first set wins
DATABASE_URL_VARIABLES = {
    "local": ("LOCAL_DATABASE_URL",),
    "sandbox": ("SANDBOX_DATABASE_URL",),
    "production": ("PRODUCTION_DATABASE_URL", "DATABASE_URL"),
}

# Ticks hold one connection at a time; the API shares the rest
POSTGRES_ENGINE_OPTIONS = {
    "pool_pre_ping": True,
    "pool_size": 5,
    "max_overflow": 5,
}


def database_uri_for(environment: str) -> str:
    """Resolve the database URI for ``environment``.

    Local runs fall back to a sqlite file. Sandbox and production must
    name their database explicitly.

    Raises:
        ValueError: If a non-local environment has no database URL set
    """
    names = DATABASE_URL_VARIABLES.get(environment, DATABASE_URL_VARIABLES["local"])
    for name in names:
        if os.environ.get(name):
            return os.environ[name]
    if environment in ("sandbox", "production"):
        raise ValueError(f"{' or '.join(names)} must be set for the {environment} environment")
    return SQLITE_DEFAULT_URI


def configure_database(app, overrides=None):
    """Bind SQLALCHEMY_DATABASE_URI and engine options for the app's ENV.

    An explicit SQLALCHEMY_DATABASE_URI in ``overrides`` wins over the
    environment, so tests can run against in-memory sqlite.
    """
    overrides = overrides or {}
    if "SQLALCHEMY_DATABASE_URI" in overrides:
        database_uri = overrides["SQLALCHEMY_DATABASE_URI"]
    else:
        database_uri = database_uri_for(app.config.get("ENV", "local"))

    app.config["SQLALCHEMY_DATABASE_URI"] = database_uri
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    if database_uri.startswith("postgresql"):
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = dict(POSTGRES_ENGINE_OPTIONS)
