class ConditionValidationError(ValueError):
    """Raised when a condition is constructed with an invalid shape."""

    def __init__(self, message: str = "Condition validation failed"):
        super().__init__(message)


class ConditionTypeError(ConditionValidationError, TypeError):
    """Raised when a condition value has a type its operator cannot accept."""


class ValidationError(TypeError):
    """Base class for schema resolution errors."""


class InvalidPathError(ValidationError, AttributeError):
    """Error raised when a field path does not exist or is invalid for the model."""


class DateParseError(ValueError):
    """Raised by a date parser when a date string cannot be parsed."""

    def __init__(self, message: str = "Could not parse date", text: str = ""):
        super().__init__(message)
        self.text = text


class ObjectNotFoundException(Exception):
    """Exception raised when no stored entity matches a query."""

    def __init__(self, message: str = "The requested object was not found."):
        super().__init__(message)


class KeyAlreadyExistsException(Exception):
    """Exception raised when storing an entity whose id is already taken."""

    def __init__(self, message: str = "An object with the same key already exists."):
        super().__init__(message)
