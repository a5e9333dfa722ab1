"""
HTTP transport for the Undercover API
API 传输层：认证头、错误分类、401 处理
"""

import logging
from typing import Any, Dict, Optional

import httpx

from undercover_client.core.config import settings
from undercover_client.core.exceptions import (
    NetworkError, UnauthorizedError, UnknownServerError, error_for_status
)
from undercover_client.utils.session import SessionStore

logger = logging.getLogger(__name__)


class ApiTransport:
    """
    Thin wrapper over ``httpx.AsyncClient``.

    Adds the bearer credential, refuses protected requests while logged out,
    clears the session on any 401 and turns every failure into one of the
    categorized client errors.
    """

    def __init__(
        self,
        session: SessionStore,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.session = session
        self.base_url = (base_url or settings.api_url).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout or settings.REQUEST_TIMEOUT),
            headers={"Accept": "application/json"},
            transport=transport,
            follow_redirects=True,
        )

    async def __aenter__(self) -> "ApiTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> Dict[str, str]:
        token = self.session.get_credential()
        if token:
            return {"Authorization": f"Bearer {token}"}
        return {}

    async def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        auth: bool = True,
    ) -> Any:
        """
        Send one request and return the decoded JSON body (None when empty).

        ``auth=False`` marks the endpoints usable without a credential
        (register, login).
        """
        if auth and not self.session.is_present():
            logger.warning(f"[API_REQUEST] {method} {path} skipped: not logged in")
            raise UnauthorizedError("Not logged in")

        logger.debug(f"[API_REQUEST] {method} {path}")
        try:
            response = await self._client.request(
                method, path, json=json, params=params, headers=self._headers()
            )
        except httpx.TransportError as e:
            logger.error(f"[API_ERROR] {method} {path} transport failure: {e!r}")
            raise NetworkError(f"Could not reach the server: {e}") from e

        if response.status_code >= 400:
            raise self._error_from_response(method, path, response)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise UnknownServerError(
                "Server returned a body that is not JSON",
                status_code=response.status_code,
            ) from e

    def _error_from_response(self, method: str, path: str, response: httpx.Response):
        detail: Any = None
        message = response.reason_phrase or "Request failed"
        try:
            detail = response.json()
        except ValueError:
            if response.text:
                message = response.text[:200]
        if isinstance(detail, dict):
            server_message = detail.get("message") or detail.get("detail")
            if isinstance(server_message, str):
                message = server_message
            elif isinstance(server_message, list) and server_message:
                # FastAPI validation errors
                message = "; ".join(str(item.get("msg", item)) if isinstance(item, dict) else str(item)
                                    for item in server_message)

        error = error_for_status(response.status_code, message, detail)
        if response.status_code == 401:
            logger.warning(f"[API_ERROR] {method} {path} unauthorized, clearing credential")
            self.session.clear()
        else:
            logger.warning(f"[API_ERROR] {method} {path} -> {response.status_code} {error.kind}: {message}")
        return error

    async def get(self, path: str, **kwargs) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs) -> Any:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs) -> Any:
        return await self.request("PUT", path, **kwargs)

    async def delete(self, path: str, **kwargs) -> Any:
        return await self.request("DELETE", path, **kwargs)
