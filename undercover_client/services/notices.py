"""
User-facing error notices for workflows
工作流错误提示
"""

import logging
from dataclasses import dataclass
from typing import Optional

from undercover_client.core.exceptions import UndercoverError, UnauthorizedError

logger = logging.getLogger(__name__)

_KIND_HINTS = {
    "unauthorized": "Please log in again.",
    "network": "Check your connection and retry.",
    "not_found": "It may have been deleted.",
}


@dataclass(frozen=True)
class ErrorNotice:
    """What a failed transition tells the operator"""
    kind: str
    message: str
    action: str
    status_code: Optional[int] = None

    @property
    def text(self) -> str:
        hint = _KIND_HINTS.get(self.kind)
        base = f"Failed to {self.action}: {self.message}"
        return f"{base} {hint}" if hint else base


def notice_for(error: UndercoverError, action: str, source: logging.Logger = logger) -> ErrorNotice:
    """Log a workflow failure and turn it into a notice"""
    if isinstance(error, UnauthorizedError):
        source.warning(f"{action} rejected: not authorized")
    elif error.kind in ("validation", "busy"):
        source.info(f"{action} refused: {error.message}")
    else:
        source.error(f"{action} failed ({error.kind}): {error}")
    return ErrorNotice(kind=error.kind, message=error.message, action=action, status_code=error.status_code)
