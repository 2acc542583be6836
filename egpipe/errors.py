"""Exception hierarchy: every fatal condition of a run is a PipeError."""


class PipeError(Exception):
    """Base class for errors that abort the pipe."""


class ConfigError(PipeError):
    """Raised for an invalid setting: bad query expression, endpoint or header."""


class ParseError(PipeError):
    """Raised when a line must be read as JSON but is not valid JSON."""


class EvaluationError(PipeError):
    """Raised when a query expression fails against a document."""


class InvalidTimestamp(PipeError):
    """Raised when a timestamp is neither ``now`` nor epoch milliseconds."""


class DeliveryError(PipeError):
    """Raised when the endpoint rejects a batch or cannot be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class InputError(PipeError):
    """Raised when standard input cannot be read line by line."""
