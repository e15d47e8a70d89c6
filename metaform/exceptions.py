import logging

logger = logging.getLogger(__name__)


class FormError(Exception):
    """Base exception for form engine usage errors."""
    pass


class SchemaError(FormError, ValueError):
    """Raised when a field declaration cannot be normalized."""
    pass


class FieldNotFoundError(FormError, LookupError):
    """Raised when a field name does not resolve to a node in the tree."""
    def __init__(self, name):
        super().__init__(f"Field '{name}' not found.")
        self.name = name


def global_error_handler(error: Exception, description: str = None):
    logger.exception("%s: %s", description or error.__class__.__name__, error)
    raise error
