"""Error kinds raised by the quiz core.

The request layer maps them to messages by ``status_code``; nothing here is
fatal to the process.
"""


class QuizlyError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(QuizlyError, LookupError):
    status_code = 404


class ForbiddenError(QuizlyError):
    status_code = 403


class BadRequestError(QuizlyError, ValueError):
    status_code = 400


class ValidationError(BadRequestError):
    """Malformed input. ``errors`` maps a field name to its messages."""

    def __init__(self, errors: dict[str, list[str]], message: str = "Validation Error"):
        super().__init__(message)
        self.errors = errors

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls({field: [message]})

    def __str__(self):
        details = "; ".join(f"{k}: {', '.join(v)}" for k, v in self.errors.items())
        return f"{self.message} ({details})" if details else self.message


class ConflictError(BadRequestError):
    """The row changed under a concurrent request; the caller may retry."""
    status_code = 409
