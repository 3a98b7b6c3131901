import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from .config import settings

_logger = logging.getLogger(__name__)

# Keys the collaborator API has been seen to wrap the order list under.
_LIST_KEYS = ("orders", "items", "data")


class ApiError(Exception):
    """Non-2xx response or transport failure talking to the collaborator API."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


def _unwrap_list(payload: Any) -> List[Dict[str, Any]]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in _LIST_KEYS:
            inner = payload.get(key)
            if isinstance(inner, list):
                return inner
            # {"data": {"items": [...]}}
            if isinstance(inner, dict):
                try:
                    return _unwrap_list(inner)
                except ApiError:
                    continue
    raise ApiError("Unexpected order list payload")


class PharmacyApiClient:
    """Thin async client over the pharmacy order endpoints.

    The aiohttp session is created lazily on first use so the client can be
    constructed outside a running event loop.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.token = token if token is not None else settings.API_TOKEN
        self.timeout = timeout if timeout is not None else settings.API_TIMEOUT
        self._session: Optional[aiohttp.ClientSession] = None
        self._lock = asyncio.Lock()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            async with self._lock:
                if self._session is None or self._session.closed:
                    self._session = aiohttp.ClientSession(
                        headers=self._headers(),
                        timeout=aiohttp.ClientTimeout(total=self.timeout),
                    )
        return self._session

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        session = await self._get_session()
        try:
            async with session.request(method, url, **kwargs) as response:
                if response.status >= 400:
                    reason = response.reason or ""
                    _logger.warning("API request failed | %s %s status=%s", method, url, response.status)
                    raise ApiError(f"{method} {path} failed: {response.status} {reason}".strip(), status=response.status)
                return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            _logger.warning("API request error | %s %s err=%s", method, url, e)
            raise ApiError(f"{method} {path} failed: {e}") from e

    async def list_orders(
        self,
        status: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        params = {}
        if status:
            params["status"] = status
        if date_from:
            params["dateFrom"] = date_from
        if date_to:
            params["dateTo"] = date_to
        payload = await self._request("GET", "/pharmacy/orders", params=params)
        return _unwrap_list(payload)

    async def accept_order(self, order_id: str) -> Any:
        return await self._request("POST", f"/pharmacy/orders/{order_id}/accept")

    async def update_order_status(self, order_id: str, status: str) -> Any:
        return await self._request("PATCH", f"/pharmacy/orders/{order_id}/status", json={"status": status})

    async def close(self) -> None:
        if self._session is not None:
            try:
                await self._session.close()
            finally:
                self._session = None
