"""
Bounded Remote Caller

Wraps the single outbound `{action, payload}` request the data layer makes to
the backend. Every call is time-boxed; when the time is up the in-flight
request is cancelled and the call resolves to "no data".

`call` never raises: transport errors, timeouts, non-success statuses and
non-JSON bodies (HTML error pages) all come back as None. `call_strict` is the
one variant that reports failures, as a `RemoteCallError`, for paths that
cannot be silently degraded.
"""

import asyncio
import json
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import aiohttp

from core.config import DEFAULT_TIMEOUT_SECONDS
from core.exceptions import DataLayerError, RemoteCallError, error_status_code
from core.logging_config import correlation_id

logger = logging.getLogger(__name__)


class RemoteCaller(ABC):
    """Abstract base class for remote action transports"""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.timeout = timeout

    @abstractmethod
    async def _send(self, action: str, payload: Dict[str, Any]) -> Any:
        """Perform one request. Raises RemoteCallError on an unusable response."""
        pass

    async def call(
        self, action: str, payload: Optional[Dict[str, Any]] = None
    ) -> Optional[Any]:
        """Run an action; None means no data, whatever the reason"""
        token = correlation_id.set(f"{action}:{uuid.uuid4().hex[:8]}")
        try:
            return await asyncio.wait_for(
                self._send(action, payload or {}), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.info(f"Remote action '{action}' timed out after {self.timeout}s")
            return None
        except RemoteCallError as e:
            logger.debug(f"Remote action '{action}' returned no data: {e.reason}")
            return None
        except Exception as e:
            logger.debug(f"Remote action '{action}' skipped/failed: {e}")
            return None
        finally:
            correlation_id.reset(token)

    async def call_strict(
        self,
        action: str,
        payload: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Run an action and raise RemoteCallError if it does not succeed"""
        if timeout is None:
            timeout = self.timeout
        token = correlation_id.set(f"{action}:{uuid.uuid4().hex[:8]}")
        try:
            return await asyncio.wait_for(
                self._send(action, payload or {}), timeout=timeout
            )
        except RemoteCallError:
            raise
        except asyncio.TimeoutError as e:
            raise RemoteCallError(action, f"timed out after {timeout}s") from e
        except Exception as e:
            raise RemoteCallError(action, str(e) or type(e).__name__) from e
        finally:
            correlation_id.reset(token)


class HttpRemoteCaller(RemoteCaller):
    """POSTs actions to the backend's generic endpoint with aiohttp"""

    def __init__(
        self,
        endpoint: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        super().__init__(timeout)
        self.endpoint = endpoint
        self.session = session

    async def _send(self, action: str, payload: Dict[str, Any]) -> Any:
        body = {"action": action, "payload": payload}

        if self.session is not None:
            return await self._post(self.session, action, body)

        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            return await self._post(session, action, body)

    async def _post(
        self, session: aiohttp.ClientSession, action: str, body: Dict[str, Any]
    ) -> Any:
        async with session.post(
            self.endpoint, json=body, headers={"Accept": "application/json"}
        ) as response:
            return await self._parse_response(action, response)

    async def _parse_response(self, action: str, response) -> Any:
        """Accept only successful JSON responses"""
        content_type = response.headers.get("content-type", "") or ""
        is_json = "application/json" in content_type.lower()

        if not 200 <= response.status < 300:
            server_message = None
            if is_json:
                try:
                    data = await response.json()
                except (aiohttp.ContentTypeError, ValueError):
                    data = None
                if isinstance(data, dict) and isinstance(data.get("error"), str):
                    server_message = data["error"]
            raise RemoteCallError(
                action,
                f"HTTP {response.status}",
                status=response.status,
                server_message=server_message,
            )

        # Error pages from proxies and the hosting platform come back as HTML
        if not is_json:
            raise RemoteCallError(
                action,
                f"unexpected content type '{content_type}'",
                status=response.status,
            )

        try:
            return await response.json()
        except (aiohttp.ContentTypeError, ValueError) as e:
            raise RemoteCallError(
                action, f"invalid JSON body: {e}", status=response.status
            ) from e


class InProcessRemoteCaller(RemoteCaller):
    """Runs actions against an in-process dispatcher (native clients, tests)"""

    def __init__(self, dispatcher, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        super().__init__(timeout)
        self.dispatcher = dispatcher

    async def _send(self, action: str, payload: Dict[str, Any]) -> Any:
        # Serialize both ways so callers never share objects with the store
        payload = json.loads(json.dumps(payload))
        try:
            result = await self.dispatcher.dispatch(action, payload)
        except DataLayerError as e:
            raise RemoteCallError(
                action,
                e.error_code,
                status=error_status_code(e),
                server_message=e.message,
            ) from e
        return json.loads(json.dumps(result))
