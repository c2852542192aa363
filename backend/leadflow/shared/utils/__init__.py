"""
Shared Utility Functions
"""
from leadflow.shared.utils.exceptions import (
    LeadflowError,
    PersistenceError,
    ConfigurationError,
    EntityNotFoundError,
    LeadflowValidationError,
    UnknownValueError,
    InvalidTransitionError,
)
from leadflow.shared.utils.retry import with_retry

__all__ = [
    "LeadflowError",
    "PersistenceError",
    "ConfigurationError",
    "EntityNotFoundError",
    "LeadflowValidationError",
    "UnknownValueError",
    "InvalidTransitionError",
    "with_retry",
]
