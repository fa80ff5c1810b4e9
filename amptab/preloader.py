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

"""Background completions at diagnostic locations.

After diagnostics settle (debounced), the most severe errors and warnings
of the current buffer get a completion requested in the background, so a
fix is already cached when the user navigates there. Nothing is rendered.
"""

import logging
from typing import Dict, List, Optional

from amptab.cache import CompletionCache
from amptab.client import CompletionHandle, StreamingClient
from amptab.config import AmpTabConfig
from amptab.context import ContextBuilder
from amptab.debounce import Debouncer
from amptab.editor import DiagnosticsProvider, EditorBuffer, EditorHost
from amptab.extractor import completion_from_response
from amptab.protocol import CompletionRequest, CompletionSource, Diagnostic, Position

logger = logging.getLogger(__name__)


def sort_by_severity(diagnostics: List[Diagnostic]) -> List[Diagnostic]:
    """Most severe first, then by line."""
    return sorted(diagnostics, key=lambda d: (int(d.severity), d.line))


class Preloader:
    """Debounced prefetching of completions for buffer diagnostics."""

    def __init__(
        self,
        host: EditorHost,
        builder: ContextBuilder,
        client: StreamingClient,
        cache: CompletionCache,
        config: Optional[AmpTabConfig] = None,
        diagnostics: Optional[DiagnosticsProvider] = None,
        fallback_diagnostics: Optional[DiagnosticsProvider] = None,
    ):
        """Initialize the preloader.

        Args:
            host: Editor session providing the current buffer
            builder: Context builder shared with foreground triggers
            client: Streaming client shared with foreground triggers
            cache: Where preloaded completions are stored
            config: Engine configuration
            diagnostics: Editor-native diagnostics
            fallback_diagnostics: External provider used when the editor reports none
        """
        self._host = host
        self._builder = builder
        self._client = client
        self._cache = cache
        self._config = config or AmpTabConfig()
        self._diagnostics = diagnostics
        self._fallback_diagnostics = fallback_diagnostics
        self.enabled = False
        self.in_flight: Dict[str, CompletionHandle] = {}
        self._debouncer = Debouncer(self._config.preload_debounce_ms, self.preload_diagnostics)

    def enable(self) -> None:
        self.enabled = True

    def disable(self) -> None:
        """Stop scheduling and cancel outstanding preloads."""
        self.enabled = False
        self._debouncer.cancel()
        for handle in self.in_flight.values():
            handle.cancel()
        self.in_flight.clear()

    def toggle(self) -> bool:
        """Flip the enabled state and return the new one."""
        if self.enabled:
            self.disable()
        else:
            self.enable()
        return self.enabled

    def schedule_preload(self) -> None:
        """Restart the debounce timer."""
        if not self.enabled:
            return
        self._debouncer.schedule()

    def buffer_diagnostics(self, buffer: EditorBuffer) -> List[Diagnostic]:
        """Diagnostics sorted by severity then line, from the first provider reporting any."""
        for provider in (self._diagnostics, self._fallback_diagnostics):
            if provider is None:
                continue
            diagnostics = provider.diagnostics_for(buffer)
            if diagnostics:
                return sort_by_severity(diagnostics)
        return []

    def preload_diagnostics(self) -> int:
        """Request completions for the top diagnostics of the current buffer.

        Returns:
            Number of diagnostics with a preload issued or already in flight
        """
        if not self.enabled:
            return 0

        buffer = self._host.current_buffer()
        if not buffer.is_valid():
            return 0

        count = 0
        for diagnostic in self.buffer_diagnostics(buffer):
            if count >= self._config.preload_max_per_buffer:
                break
            if not diagnostic.is_actionable:
                continue
            if self.preload_at(buffer, diagnostic.line, diagnostic.col):
                count += 1
        return count

    def is_covered(self, buffer: EditorBuffer, row: int) -> bool:
        """Whether a cached completion already sits near the row."""
        nearby = self._config.preload_nearby_lines
        return any(
            abs(item.cursor.line - row) <= nearby for item in self._cache.for_buffer(buffer.id)
        )

    def preload_at(self, buffer: EditorBuffer, row: int, col: int) -> bool:
        """Request a background completion with ``(row, col)`` as the cursor.

        The real cursor is never moved; the location is passed to the
        context builder as a synthetic cursor.

        Returns:
            False if the location is already covered by the cache
        """
        key = f"{buffer.id}:{row}:{col}"
        if key in self.in_flight:
            return True
        if self.is_covered(buffer, row):
            return False

        ctx = self._builder.build(
            buffer, Position(line=row, character=col), self._config.token_limits
        )

        def on_done(final_text: str) -> None:
            self.in_flight.pop(key, None)
            if not buffer.is_valid():
                return
            completion = completion_from_response(ctx, final_text, buffer.id)
            if completion is None:
                return
            self._cache.add(completion, CompletionSource.PRELOAD)
            logger.debug(f"Preloaded completion at line {row + 1} in buffer {buffer.id}")

        def on_error(err: str) -> None:
            self.in_flight.pop(key, None)
            logger.debug(f"Preload at line {row + 1} failed: {err}")

        handle = self._client.complete(
            CompletionRequest(
                prompt=ctx.prompt,
                code_to_rewrite=ctx.code_to_rewrite,
                max_tokens=self._config.client.max_tokens,
            ),
            on_chunk=lambda _: None,
            on_done=on_done,
            on_error=on_error,
        )
        if handle.active:
            self.in_flight[key] = handle
        return True
