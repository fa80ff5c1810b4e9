# Copyright 2025 Vijaykumar Singh <singhvjd@gmail.com>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Streaming client for the completion endpoint.

Requests are issued as asyncio tasks on the running event loop. Every
request produces zero or more ``on_chunk`` calls followed by exactly one
terminal call (``on_done`` or ``on_error``), unless it is cancelled first:
after ``cancel()`` no callback fires at all.

Example:
    client = StreamingClient(ClientConfig())
    handle = client.complete(
        CompletionRequest(prompt=ctx.prompt, code_to_rewrite=ctx.code_to_rewrite),
        on_chunk=lambda text: None,
        on_done=lambda full_text: print(full_text),
        on_error=lambda err: print("failed:", err),
    )
    ...
    handle.cancel()
"""

import asyncio
import json
import logging
import os
from typing import Any, Callable, Dict, List, Optional

import httpx

from amptab.config import ClientConfig
from amptab.protocol import CompletionRequest
from amptab.tokens import EDITABLE_REGION_END

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[str], None]
DoneCallback = Callable[[str], None]
ErrorCallback = Callable[[str], None]

SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"


def _sse_data(line: str) -> Optional[str]:
    line = line.strip()
    if not line.startswith(SSE_DATA_PREFIX):
        return None
    return line[len(SSE_DATA_PREFIX) :].strip()


def is_done_line(line: str) -> bool:
    """Whether an event-stream line terminates the stream."""
    return _sse_data(line) == SSE_DONE


def parse_sse_line(line: str) -> Optional[str]:
    """Extract generated text from one event-stream line.

    Accepts both completion (``choices[0].text``) and chat
    (``choices[0].delta.content``) shaped payloads.

    Returns:
        The text fragment, or None for blank, non-data, [DONE] or malformed lines
    """
    data = _sse_data(line)
    if not data or data == SSE_DONE:
        return None

    try:
        parsed = json.loads(data)
    except ValueError:
        logger.debug(f"Skipping malformed stream line: {data[:80]}")
        return None

    if not isinstance(parsed, dict):
        return None
    choices = parsed.get("choices")
    if not choices or not isinstance(choices[0], dict):
        return None

    choice = choices[0]
    text = choice.get("text")
    if isinstance(text, str):
        return text
    delta = choice.get("delta")
    if isinstance(delta, dict) and isinstance(delta.get("content"), str):
        return delta["content"]
    return None


class CompletionHandle:
    """Handle to one in-flight request."""

    def __init__(self) -> None:
        self._cancelled = False
        self._finished = False
        self._task: Optional[asyncio.Task] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def finished(self) -> bool:
        """True once a terminal callback has been delivered."""
        return self._finished

    @property
    def active(self) -> bool:
        return not (self._cancelled or self._finished)

    def cancel(self) -> None:
        """Suppress all further callbacks and stop the transport."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def _deliver(
        self, callback: Callable[[str], None], value: str, terminal: bool = False
    ) -> None:
        if not self.active:
            return
        if terminal:
            self._finished = True
        try:
            callback(value)
        except Exception:
            logger.exception("Completion callback failed")


class StreamingClient:
    """Issues streaming completion requests over HTTP."""

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        api_key: Optional[str] = None,
    ):
        """Initialize the client.

        Args:
            config: Endpoint and model settings
            http_client: Shared httpx client (created lazily when omitted)
            api_key: Explicit credential, read from the environment when omitted
        """
        self._config = config or ClientConfig()
        self._http_client = http_client
        self._owns_http_client = http_client is None
        self._api_key = api_key

    def build_body(self, request: CompletionRequest) -> Dict[str, Any]:
        """JSON body for a completion request."""
        return {
            "stream": True,
            "model": self._config.model,
            "temperature": self._config.temperature,
            "max_tokens": request.max_tokens or self._config.max_tokens,
            "response_format": {"type": "text"},
            "prediction": {"type": "content", "content": request.code_to_rewrite},
            "stop": [EDITABLE_REGION_END],
            "prompt": request.prompt,
            "user": os.environ.get("USER") or "editor-user",
        }

    def complete(
        self,
        request: CompletionRequest,
        on_chunk: ChunkCallback,
        on_done: DoneCallback,
        on_error: ErrorCallback,
    ) -> CompletionHandle:
        """Start a streaming request on the running event loop.

        Fails immediately through ``on_error`` when no credential is configured.

        Returns:
            Handle whose ``cancel()`` stops the request
        """
        handle = CompletionHandle()

        api_key = self._api_key or self._config.resolve_api_key()
        if not api_key:
            message = f"credential not set ({self._config.api_key_env})"
            handle._deliver(on_error, message, terminal=True)
            return handle

        body = self.build_body(request)
        logger.debug(f"Completion prompt:\n{request.prompt}")
        handle._task = asyncio.ensure_future(
            self._stream(handle, body, api_key, on_chunk, on_done, on_error)
        )
        return handle

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._http_client is not None and self._owns_http_client:
            await self._http_client.aclose()
            self._http_client = None

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._config.timeout_seconds)
        return self._http_client

    async def _stream(
        self,
        handle: CompletionHandle,
        body: Dict[str, Any],
        api_key: str,
        on_chunk: ChunkCallback,
        on_done: DoneCallback,
        on_error: ErrorCallback,
    ) -> None:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }
        fragments: List[str] = []

        try:
            async with self._get_http_client().stream(
                "POST", self._config.url, json=body, headers=headers
            ) as response:
                if response.status_code >= 400:
                    detail = (await response.aread()).decode("utf-8", "replace").strip()
                    handle._deliver(
                        on_error,
                        f"Request failed: HTTP {response.status_code} {detail[:200]}".rstrip(),
                        terminal=True,
                    )
                    return

                async for line in response.aiter_lines():
                    if handle.cancelled:
                        return
                    if is_done_line(line):
                        break
                    content = parse_sse_line(line)
                    if content:
                        fragments.append(content)
                        handle._deliver(on_chunk, content)
        except (httpx.HTTPError, httpx.StreamError, httpx.InvalidURL) as e:
            logger.warning(f"Completion request failed: {e}")
            handle._deliver(on_error, f"Request failed: {e}", terminal=True)
            return

        handle._deliver(on_done, "".join(fragments), terminal=True)
