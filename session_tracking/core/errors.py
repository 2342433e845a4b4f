# Domain errors

from typing import Optional

import pydantic

REQUEST_PARTS = ("body", "query", "path", "header")


class SessionTrackingError(Exception):
    """Base class for errors surfaced by the session tracking core"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def error_type(self) -> str:
        return type(self).__name__


class ValidationError(SessionTrackingError):
    """Malformed or missing input, bad enum value, batch-size violation"""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    @classmethod
    def from_pydantic(cls, exc: pydantic.ValidationError) -> "ValidationError":
        """
        Build from the first error of a pydantic validation failure

        Also accepts FastAPI's RequestValidationError, whose locations start
        with the request part ("body", "query", "path").
        """
        first = exc.errors()[0]
        loc = list(first.get("loc", ()))
        if loc and loc[0] in REQUEST_PARTS:
            loc = loc[1:]
        field = ".".join(str(part) for part in loc) or None
        return cls(first.get("msg", "Invalid input"), field=field)


class NotFoundError(SessionTrackingError):
    """Referenced session or event is absent"""

    status_code = 404

    def __init__(self, message: str, resource_type: Optional[str] = None):
        super().__init__(message)
        self.resource_type = resource_type


class ConflictError(SessionTrackingError):
    """Reserved: no core path enforces uniqueness yet"""

    status_code = 409


class InternalError(SessionTrackingError):
    """A store operation failed"""

    status_code = 500

    def __init__(self, message: str, original_error: Optional[BaseException] = None):
        super().__init__(message)
        self.original_error = original_error


class CodecError(InternalError):
    """An item could not be decoded into the expected entity"""


class PartialDeleteError(InternalError):
    """A cascading delete stopped after removing only part of a session"""

    def __init__(
            self,
            session_id: str,
            deleted: int,
            remaining: int,
            original_error: Optional[BaseException] = None
    ):
        super().__init__(
            f"Session {session_id} partially deleted: "
            f"{deleted} item(s) removed, {remaining} remaining",
            original_error
        )
        self.session_id = session_id
        self.deleted = deleted
        self.remaining = remaining
