from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

import httpx

from bridge.core.security import preview_text
from bridge.gateway.base import BackendError, HTTPBackendClient
from bridge.schemas.reply import ReplyRecord
from bridge.services.session_cache import SessionCache
from bridge.services.state_store import StateStore
from bridge.streaming.decoder import ReplyEventDecoder
from bridge.streaming.frames import StreamFrameExtractor

logger = logging.getLogger(__name__)


@dataclass
class ConnectionCheck:
    """Outcome of the startup connectivity check."""

    ok: bool
    error: Optional[str] = None


class IntentKitGateway(HTTPBackendClient):
    """HTTP gateway to the IntentKit agent API."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        *,
        timeout_sec: float = 30,
        stream_timeout_sec: float = 30,
        http_client: Optional[httpx.AsyncClient] = None,
        session_cache: Optional[SessionCache] = None,
        session_store: Optional[StateStore] = None,
        decoder: Optional[ReplyEventDecoder] = None,
    ) -> None:
        super().__init__(timeout_sec=timeout_sec, http_client=http_client)
        if not base_url:
            raise BackendError("BACKEND_URL_MISSING", "Base URL is required for IntentKit.")
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._stream_timeout = stream_timeout_sec
        self._decoder = decoder or ReplyEventDecoder()
        self.sessions = session_cache or SessionCache(self.create_session, store=session_store)

    @property
    def base_url(self) -> str:
        return self._base_url

    async def probe_connectivity(self) -> ConnectionCheck:
        """Check that the API answers on its OpenAPI document."""

        url = self._url("/v1/openapi.json")
        logger.info("Testing connection to %s", self._base_url)
        try:
            await self._request("GET", url, headers=self._headers())
        except BackendError as exc:
            logger.error("Connection test failed: %s", exc.message)
            return ConnectionCheck(ok=False, error=exc.message)
        logger.info("API connection successful")
        return ConnectionCheck(ok=True)

    async def resolve_agent_identity(self) -> str:
        """Return the EVM wallet address of the authenticated agent."""

        data = await self._request_json("GET", self._url("/v1/agent"), headers=self._headers())
        address = data.get("evm_wallet_address")
        if not isinstance(address, str) or not address.strip():
            raise BackendError(
                "BACKEND_PARSE_ERROR", "Agent response did not include evm_wallet_address."
            )
        logger.info("Agent wallet address: %s", address)
        return address.strip()

    async def create_session(self, user_key: str) -> str:
        """Create a backend chat for the user and return its id."""

        logger.info("Creating chat for user %s", user_key)
        data = await self._request_json(
            "POST",
            self._url("/v1/chats"),
            headers=self._headers(),
            params={"user_id": user_key},
        )
        chat_id = data.get("id")
        if not chat_id:
            raise BackendError(
                "BACKEND_SESSION_MISSING", "Chat creation failed: unable to get chat ID."
            )
        logger.info("Created chat %s for user %s", chat_id, user_key)
        return str(chat_id)

    async def stream_reply(
        self, user_key: str, text: str, session_handle: Optional[str] = None
    ) -> AsyncIterator[ReplyRecord]:
        """Send a message and yield the reply records as they stream in.

        Failures are reported as a single system-authored record so callers
        always have something to relay.
        """

        yielded = 0
        try:
            chat_id = session_handle or await self.sessions.resolve(user_key)
            url = self._url(f"/v1/chats/{chat_id}/messages")
            payload: dict[str, Any] = {"message": text, "user_id": user_key, "stream": True}
            headers = self._headers(
                {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
            )
            logger.info("Sending message for user %s to chat %s", user_key, chat_id)
            async with self._stream("POST", url, headers=headers, json=payload) as response:
                async for record in self._read_records(response):
                    yielded += 1
                    yield record
        except BackendError as exc:
            logger.error("Error sending message to IntentKit: %s", exc.message)
            yield ReplyRecord.system_notice(f"Failed to process your request: {exc.message}")
        finally:
            logger.info("Stream finished for user %s, %d record(s) yielded", user_key, yielded)

    async def _read_records(self, response: httpx.Response) -> AsyncIterator[ReplyRecord]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._stream_timeout
        extractor = StreamFrameExtractor()
        chunks = response.aiter_bytes().__aiter__()
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.warning("Stream reading timeout after %ss", self._stream_timeout)
                return
            try:
                chunk = await asyncio.wait_for(chunks.__anext__(), timeout=remaining)
            except StopAsyncIteration:
                frames = extractor.flush()
                ended = True
            except asyncio.TimeoutError:
                logger.warning("Stream reading timeout after %ss", self._stream_timeout)
                return
            else:
                frames = extractor.feed(chunk)
                ended = False

            for frame in frames:
                for event in self._decoder.decode_events(frame):
                    if event.error is not None:
                        logger.error("Stream error: %s", event.error)
                        continue
                    if event.terminal:
                        logger.info("Stream marked as done")
                        return
                    if event.data is not None and event.data.is_meaningful():
                        logger.info(
                            "Yielding response from %s: %s",
                            event.data.author_type,
                            preview_text(event.data.text),
                        )
                        yield event.data
            if ended:
                return

    def _url(self, path: str) -> str:
        base = self._base_url
        if base.endswith("/v1") and path.startswith("/v1/"):
            return base + path[3:]
        return base + path

    def _headers(self, extra: Optional[dict[str, str]] = None) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        if extra:
            headers.update(extra)
        return headers
