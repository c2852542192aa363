"""
Custom Exceptions for the Leadflow pipeline.

Two families matter to callers:
- PersistenceError is transient and may be retried.
- LeadflowValidationError, ConfigurationError and EntityNotFoundError are not;
  retrying them cannot change the outcome.

An empty claimed batch is not an exception: it means another worker got there
first, or there is nothing to do right now.
"""


class LeadflowError(Exception):
    """Base class for all pipeline errors."""


class PersistenceError(LeadflowError):
    """
    Raised when a database call fails.

    The message names the failed operation, e.g.
    "Failed to update lead: <driver message>". The original driver
    exception is chained as __cause__.
    """
    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        self.detail = detail
        self.message = f"Failed to {operation}: {detail}" if detail else f"Failed to {operation}"
        super().__init__(self.message)


class ConfigurationError(LeadflowError):
    """Raised when a required credential or setting is missing. Fatal at startup."""


class EntityNotFoundError(LeadflowError):
    """
    Raised when a requested entity does not exist in the database.
    """
    def __init__(self, entity_type: str, entity_id):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.message = f"{entity_type} with ID {entity_id} not found."
        super().__init__(self.message)


class LeadflowValidationError(LeadflowError, ValueError):
    """Base class for malformed input to a lifecycle operation."""


class UnknownValueError(LeadflowValidationError):
    """
    Raised for a status, phase, stage or column name that is not part of the model.
    """
    def __init__(self, kind: str, value, allowed=None):
        self.kind = kind
        self.value = value
        self.allowed = list(allowed) if allowed is not None else None
        self.message = f"Unknown {kind}: {value!r}"
        if self.allowed:
            self.message += f" (expected one of: {', '.join(map(str, self.allowed))})"
        super().__init__(self.message)


class InvalidTransitionError(LeadflowValidationError):
    """
    Raised when a write would violate the state machine.

    Example:
        Lead #42 is 'pending' and a worker tries to mark it 'uploaded'.
        Job #7 is already 'completed' and something calls fail() on it.

    The write is not applied.
    """
    def __init__(self, entity_type: str, entity_id, current: str, target: str, message: str = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current = current
        self.target = target
        self.message = message or (
            f"{entity_type} with ID {entity_id} cannot move from '{current}' to '{target}'."
        )
        super().__init__(self.message)


# Errors that with_retry propagates immediately
NON_RETRYABLE_ERRORS = (LeadflowValidationError, ConfigurationError, EntityNotFoundError)
