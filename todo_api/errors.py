"""
Error taxonomy shared by the services and the HTTP layer.

Services raise these; ``main.create_app`` turns them into JSON responses of the
form ``{"detail": ..., "errors": ...}``. Anything that is not a ``TodoApiError``
is treated as an internal failure and never leaks its message to the caller.
"""
from typing import Dict, List, Optional

from fastapi import status
from pydantic.alias_generators import to_camel


class TodoApiError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    detail: str = "Request failed"
    headers: Optional[Dict[str, str]] = None

    def __init__(self, detail: Optional[str] = None):
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class ValidationError(TodoApiError):
    """Caller-fixable input problem, with per-field messages."""

    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Validation failed"

    def __init__(self, errors: Dict[str, List[str]], detail: Optional[str] = None):
        super().__init__(detail)
        self.errors = errors


class ConflictError(TodoApiError):
    status_code = status.HTTP_409_CONFLICT
    detail = "An account with this email already exists"


class InvalidCredentialsError(TodoApiError):
    # Deliberately vague: unknown email and wrong password look the same.
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Invalid email or password"
    headers = {"WWW-Authenticate": "Bearer"}


class UnauthorizedError(TodoApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Not authenticated"
    headers = {"WWW-Authenticate": "Bearer"}


class TokenError(UnauthorizedError):
    detail = "Could not validate credentials"


class TokenMalformedError(TokenError):
    pass


class TokenInvalidError(TokenError):
    pass


class TokenExpiredError(TokenError):
    pass


class NotFoundError(TodoApiError):
    # Used for both missing and foreign tasks.
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Task not found"


def _wire_name(part: str) -> str:
    # Aliased locations are already camelCase; only snake_case names need converting.
    return to_camel(part) if "_" in part else part


def errors_from_pydantic(exc) -> Dict[str, List[str]]:
    """
    Flattens a pydantic (or FastAPI request) validation error into
    ``{field: [messages]}``. Location prefixes like ``body``/``query`` are dropped
    and field names are reported in their camelCase wire form.
    """
    errors: Dict[str, List[str]] = {}
    for error in exc.errors():
        loc = [_wire_name(str(part)) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(loc) or "request"
        message = error.get("msg", "Invalid value")
        # pydantic prefixes custom ValueError messages with "Value error, "
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.setdefault(field, []).append(message)
    return errors
