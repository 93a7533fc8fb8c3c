"""Exception taxonomy for the outreach queue and campaign services."""


class OutreachError(Exception):
    """Base class for errors raised by the outreach subsystem."""


class CollaboratorError(OutreachError):
    """An external collaborator failed. Transient: the task is retried."""


class ContentGenerationError(CollaboratorError):
    pass


class DeliveryError(CollaboratorError):
    pass


class EnrichmentError(CollaboratorError):
    pass


class HandlerTimeout(OutreachError):
    """A handler exceeded its time budget. Treated as a failure for retry."""


class UnknownTaskType(OutreachError):
    pass


class VendorNotFound(OutreachError):
    pass


class StaleVendorError(OutreachError):
    """The vendor record changed underneath a conditional update."""


class InvalidTransition(OutreachError):
    pass
