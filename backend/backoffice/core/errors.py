"""
Action errors.

Business code raises ActionError with a kind and a message code; the API layer
renders the code through the message table for the caller's locale.
"""

from enum import Enum
from typing import Any, Dict

from backoffice.core.messages import render_message


class ErrorKind(str, Enum):
    AUTH = "auth"
    VALIDATION = "validation"
    DUPLICATE = "duplicate"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    BACKEND = "backend"


HTTP_STATUS: Dict[ErrorKind, int] = {
    ErrorKind.AUTH: 401,
    ErrorKind.VALIDATION: 422,
    ErrorKind.DUPLICATE: 409,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.BACKEND: 500,
}


class ActionError(Exception):
    """Failure of a back-office action, carrying a message code and its params."""

    def __init__(self, kind: ErrorKind, code: str, **params: Any):
        self.kind = kind
        self.code = code
        self.params = params
        super().__init__(f"{kind.value}:{code} {params}" if params else f"{kind.value}:{code}")

    @property
    def status_code(self) -> int:
        return HTTP_STATUS[self.kind]

    def message(self, locale: str = "th") -> str:
        return render_message(self.code, locale, **self.params)


def validation_error(code: str, **params: Any) -> ActionError:
    return ActionError(ErrorKind.VALIDATION, code, **params)


def not_found(code: str = "common.not_found", **params: Any) -> ActionError:
    return ActionError(ErrorKind.NOT_FOUND, code, **params)


def duplicate(code: str, **params: Any) -> ActionError:
    return ActionError(ErrorKind.DUPLICATE, code, **params)
