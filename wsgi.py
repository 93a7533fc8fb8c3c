from outreach import create_app

app = create_app()

# Serve with: gunicorn -w 2 wsgi:app
# Run the queue ticker on exactly one instance by setting IS_SCHEDULER=1 there
