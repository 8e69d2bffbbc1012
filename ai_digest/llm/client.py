"""OpenAI-compatible chat-completion client with backend failover.

Backends are tried in round-robin order starting at a shared cursor. A failed
attempt moves the cursor to the next backend, and the cursor is kept between
invocations, so a backend that just failed is not the first one tried by the
next unrelated call.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import aiohttp
from tenacity import AsyncRetrying, RetryError, retry_if_exception_type, stop_after_attempt

from ai_digest.config import ApiConfig, LLMConfig
from ai_digest.errors import AllBackendsFailedError, LLMBackendError, ResponseDecodeError

logger = logging.getLogger(__name__)

TEMPERATURE = 0.3
TOP_P = 0.8
SSE_PREFIX = "data:"
SSE_DONE = "[DONE]"


class BackendCursor:
    """Rotation cursor over ``size`` backends.

    Not synchronized: concurrent invocations on one event loop only interleave
    at await points, so an advance made by one call is simply visible to the
    others.
    """

    def __init__(self, size: int, start: int = 0) -> None:
        if size < 1:
            raise ValueError("BackendCursor needs at least one backend")
        self.size = size
        self.index = start % size

    def advance(self) -> int:
        self.index = (self.index + 1) % self.size
        return self.index


# ---------------------------------------------------------------------------
# Response decoding
# ---------------------------------------------------------------------------


def _first_choice(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict):
        return {}
    choices = data.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        return choices[0]
    return {}


def _decode_sse(body: str) -> str:
    """Concatenate ``choices[0].delta.content`` of every ``data:`` chunk in order."""
    parts: List[str] = []
    for line in body.splitlines():
        line = line.strip()
        if not line.startswith(SSE_PREFIX):
            continue
        data = line[len(SSE_PREFIX):].strip()
        if data == SSE_DONE:
            continue
        try:
            chunk = json.loads(data)
        except ValueError as e:
            logger.debug("Skipping unparseable SSE chunk: %s", e)
            continue
        delta = _first_choice(chunk).get("delta")
        content = delta.get("content") if isinstance(delta, dict) else None
        if isinstance(content, str):
            parts.append(content)
    return "".join(parts)


def decode_response(body: str) -> str:
    """Extract the assistant text from a chat-completion response body.

    Accepts a plain JSON response (``choices[0].message.content``) or an SSE
    stream of ``data:`` chunks (``choices[0].delta.content``). A JSON body with
    no content yields ``""``; a body that is neither raises ResponseDecodeError.
    """
    if body.strip().startswith(SSE_PREFIX):
        text = _decode_sse(body)
        if text:
            logger.debug("SSE stream decoded: %d chars", len(text))
            return text
        logger.debug("SSE stream carried no content, trying plain JSON")

    try:
        data = json.loads(body)
    except ValueError as e:
        raise ResponseDecodeError(f"Failed to parse JSON: {e}. Response: {body[:200]}") from e

    message = _first_choice(data).get("message")
    content = message.get("content") if isinstance(message, dict) else None
    if not isinstance(content, str) or not content:
        logger.warning("API returned empty content: %s", body[:500])
        return ""
    return content


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class LLMClient:
    """Send single-message prompts to the configured backends.

    Usage:
        client = LLMClient(config.llm)
        text = await client.invoke("Summarize ...")
    """

    def __init__(
        self,
        config: LLMConfig,
        cursor: Optional[BackendCursor] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        if not config.apis:
            raise ValueError("LLMClient needs at least one configured API backend")
        self.config = config
        self.cursor = cursor or BackendCursor(len(config.apis))
        self._session = session

    @property
    def backend_count(self) -> int:
        return len(self.config.apis)

    async def invoke(self, prompt: str) -> str:
        """Return the model's text for ``prompt``, failing over across backends.

        Raises AllBackendsFailedError when every backend failed once.
        """
        attempts = self.backend_count
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(attempts),
                retry=retry_if_exception_type(LLMBackendError),
            ):
                with attempt:
                    return await self._attempt(prompt, attempt.retry_state.attempt_number)
        except RetryError as e:
            raise AllBackendsFailedError(attempts) from e.last_attempt.exception()
        raise AllBackendsFailedError(attempts)

    async def _attempt(self, prompt: str, attempt_number: int) -> str:
        index = self.cursor.index
        api = self.config.apis[index]
        label = f"API {index + 1}/{self.backend_count}"
        logger.debug("Trying %s: %s", label, api.endpoint)
        t0 = time.monotonic()
        try:
            text = await self.call_backend(api, prompt)
        except LLMBackendError as e:
            elapsed = (time.monotonic() - t0) * 1000
            logger.error("%s failed (%.0fms): %s", label, elapsed, e)
            self.cursor.advance()
            if attempt_number < self.backend_count:
                logger.warning("Switching to next API backend...")
            raise
        logger.info("%s succeeded (%.0fms, %d chars)", label, (time.monotonic() - t0) * 1000, len(text))
        return text

    @asynccontextmanager
    async def _session_scope(self) -> AsyncIterator[aiohttp.ClientSession]:
        if self._session is not None:
            yield self._session
            return
        async with aiohttp.ClientSession() as session:
            yield session

    def build_payload(self, api: ApiConfig, prompt: str) -> Dict[str, Any]:
        return {
            "model": api.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": TEMPERATURE,
            "top_p": TOP_P,
            "stream": False,
            **self.config.extra_body,
        }

    def build_headers(self, api: ApiConfig) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api.api_key}",
            **self.config.extra_headers,
        }

    async def call_backend(self, api: ApiConfig, prompt: str) -> str:
        """One POST to ``api``; every failure surfaces as LLMBackendError."""
        timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
        try:
            async with self._session_scope() as session:
                async with session.post(
                    api.endpoint,
                    json=self.build_payload(api, prompt),
                    headers=self.build_headers(api),
                    timeout=timeout,
                ) as resp:
                    body = await resp.text(errors="replace")
                    if resp.status < 200 or resp.status >= 300:
                        raise LLMBackendError(
                            f"API error ({resp.status}): {body[:200]}",
                            base_url=api.base_url,
                            status=resp.status,
                        )
        except asyncio.TimeoutError as e:
            raise LLMBackendError(
                f"timed out after {self.config.timeout_seconds:g}s", base_url=api.base_url
            ) from e
        except aiohttp.ClientError as e:
            raise LLMBackendError(str(e) or e.__class__.__name__, base_url=api.base_url) from e

        logger.debug("Raw API response (first 500 chars): %s", body[:500])
        return decode_response(body)
