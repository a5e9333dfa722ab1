"""
Session management utilities
会话凭据存储
"""

import logging
import os
from typing import Callable, List, Optional

from undercover_client.core.config import settings
from undercover_client.schemas.user import User

logger = logging.getLogger(__name__)


class SessionStore:
    """
    Holds the bearer credential for the API.

    The credential is a single string persisted to ``token_file`` so it
    survives restarts; with ``token_file=None`` it lives in memory only.
    Expiry is not tracked here: the server rejecting a request is the only
    signal, and the transport calls ``clear()`` when that happens.
    """

    def __init__(self, token_file: Optional[str] = None, token: Optional[str] = None):
        self.token_file = token_file
        self.profile: Optional[User] = None
        self._listeners: List[Callable[[], None]] = []
        self._token = token if token is not None else self._load()

    def _load(self) -> Optional[str]:
        if not self.token_file or not os.path.exists(self.token_file):
            return None
        try:
            with open(self.token_file, "r", encoding="utf-8") as fh:
                token = fh.read().strip()
        except OSError as e:
            logger.error(f"Failed to read credential file {self.token_file}: {e}")
            return None
        return token or None

    def _persist(self) -> None:
        if not self.token_file:
            return
        directory = os.path.dirname(self.token_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        if self._token is None:
            if os.path.exists(self.token_file):
                os.remove(self.token_file)
            return
        fd = os.open(self.token_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(self._token)

    def set_credential(self, token: str) -> None:
        """保存凭据"""
        if not token:
            raise ValueError("credential must not be empty")
        self._token = token
        self._persist()
        logger.info("Credential stored")

    def get_credential(self) -> Optional[str]:
        return self._token

    def is_present(self) -> bool:
        return bool(self._token)

    def clear(self) -> None:
        """
        Forget the credential and the cached profile.
        清除凭据，通知监听者重新登录
        """
        had_token = self._token is not None
        self._token = None
        self.profile = None
        self._persist()
        if had_token:
            logger.info("Credential cleared")
        for listener in list(self._listeners):
            listener()

    def add_listener(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback run on ``clear()``; returns a remover"""
        self._listeners.append(callback)

        def remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove


def get_session_store() -> SessionStore:
    """Build the file-backed store configured in settings"""
    return SessionStore(token_file=settings.token_path)
