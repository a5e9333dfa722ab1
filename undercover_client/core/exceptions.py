"""
Client error taxonomy
客户端错误分类
"""

from typing import Any, Optional


class UndercoverError(Exception):
    """Base class for every error raised by the client"""

    kind = "error"

    def __init__(self, message: str, status_code: Optional[int] = None, detail: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.detail = detail

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.message} (HTTP {self.status_code})"
        return self.message


class ValidationError(UndercoverError):
    """Client-side constraint violation, never sent to the server"""

    kind = "validation"


class BusyError(ValidationError):
    """The same action is already waiting for a response"""

    kind = "busy"


class UnauthorizedError(UndercoverError):
    """401 or missing credential; the stored credential has been cleared"""

    kind = "unauthorized"


class NotFoundError(UndercoverError):
    """Referenced group/room/game/word does not exist"""

    kind = "not_found"


class ConflictError(UndercoverError):
    """A state precondition failed on the server (e.g. game already started)"""

    kind = "conflict"


class NetworkError(UndercoverError):
    """Transport failure, no response received"""

    kind = "network"


class UnknownServerError(UndercoverError):
    """Any other non-2xx response or an unreadable body"""

    kind = "server"


# status code -> error class, anything else is UnknownServerError
STATUS_ERRORS = {
    400: ConflictError,
    401: UnauthorizedError,
    404: NotFoundError,
    409: ConflictError,
    412: ConflictError,
    422: ConflictError,
}


def error_for_status(status_code: int, message: str, detail: Any = None) -> UndercoverError:
    """Build the categorized error for a non-2xx status"""
    error_class = STATUS_ERRORS.get(status_code, UnknownServerError)
    return error_class(message, status_code=status_code, detail=detail)
