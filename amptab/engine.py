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

"""Completion engine: owns all session state and wires the pipeline.

One AmpTabEngine exists per editor session. It owns the completion cache,
the enrichment histories and the preloader state, and exposes the
commands and editor event hooks an integration binds to keys and
autocommands.

Example:
    engine = AmpTabEngine(host, overlay, diagnostics=diagnostics, notifier=notifier)
    engine.on_cursor_hold_insert()   # requests a completion and shows ghost text
    engine.accept()                  # applies it, then re-triggers
    await engine.aclose()
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from amptab.cache import CacheStatus, CompletionCache
from amptab.client import CompletionHandle, StreamingClient
from amptab.config import AmpTabConfig
from amptab.context import ContextBuilder
from amptab.debounce import Debouncer
from amptab.editor import (
    Clipboard,
    DiagnosticsProvider,
    EditorBuffer,
    EditorHost,
    Notifier,
    OverlayRenderer,
    SyntaxTreeProvider,
)
from amptab.enrichment import EnrichmentTracker
from amptab.extractor import completion_from_response
from amptab.ghost import GhostTextRenderer
from amptab.navigator import Navigator, VisitedSet
from amptab.preloader import Preloader
from amptab.protocol import CompletionRequest, CompletionSource
from amptab.region import RegionSelector
from amptab.treesitter import TreeSitterSyntaxProvider

logger = logging.getLogger(__name__)

TriggerCallback = Callable[[bool], None]


@dataclass
class EngineMetrics:
    """Foreground request counters."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    empty_responses: int = 0
    total_latency_ms: float = 0.0

    @property
    def avg_latency_ms(self) -> float:
        completed = self.successful_requests + self.failed_requests + self.empty_responses
        return self.total_latency_ms / completed if completed else 0.0


class AmpTabEngine:
    """Inline completion engine for one editor session."""

    def __init__(
        self,
        host: EditorHost,
        overlay: OverlayRenderer,
        config: Optional[AmpTabConfig] = None,
        syntax_provider: Optional[SyntaxTreeProvider] = None,
        diagnostics: Optional[DiagnosticsProvider] = None,
        fallback_diagnostics: Optional[DiagnosticsProvider] = None,
        clipboard: Optional[Clipboard] = None,
        notifier: Optional[Notifier] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        api_key: Optional[str] = None,
    ):
        """Initialize the engine.

        Args:
            host: Editor session providing the current buffer
            overlay: Virtual text renderer
            config: Engine configuration (defaults when omitted)
            syntax_provider: Syntax trees for region selection (tree-sitter when omitted)
            diagnostics: Editor-native diagnostics
            fallback_diagnostics: External diagnostics used when the editor reports none
            clipboard: Register access for copied-text enrichment
            notifier: Receives user-visible messages
            http_client: Shared httpx client for the completion endpoint
            api_key: Explicit credential, read from the environment when omitted
        """
        self.config = config or AmpTabConfig()
        if self.config.debug:
            logging.getLogger("amptab").setLevel(logging.DEBUG)

        self._host = host
        self._notifier = notifier

        self.metrics = EngineMetrics()
        self.cache = CompletionCache(
            max_items=self.config.cache_max_items, dedup_lines=self.config.cache_dedup_lines
        )
        self.enrichment = EnrichmentTracker(diagnostics=diagnostics, clipboard=clipboard)
        self.selector = RegionSelector(syntax_provider or TreeSitterSyntaxProvider())
        self.builder = ContextBuilder(
            selector=self.selector, enrichment=self.enrichment, diagnostics=diagnostics
        )
        self.client = StreamingClient(self.config.client, http_client=http_client, api_key=api_key)
        self.ghost = GhostTextRenderer(overlay, cache=self.cache, notifier=notifier)

        self.preloader = Preloader(
            host,
            self.builder,
            self.client,
            self.cache,
            config=self.config,
            diagnostics=diagnostics,
            fallback_diagnostics=fallback_diagnostics,
        )
        if self.config.preload:
            self.preloader.enable()

        self._retrigger = Debouncer(self.config.hot_streak_delay_ms, self.trigger)
        self._diagnostic_trigger = Debouncer(
            0, lambda: self.trigger(source=CompletionSource.DIAGNOSTIC)
        )
        self.navigator = Navigator(
            host,
            self.ghost,
            self.cache,
            diagnostics=diagnostics or fallback_diagnostics,
            notifier=notifier,
            schedule_trigger=self._diagnostic_trigger.schedule,
            visited=VisitedSet(ttl_ms=self.config.visited_ttl_ms),
        )

        self._pending_view: Optional[EditorBuffer] = None
        self._view_tracker = Debouncer(self.config.view_track_delay_ms, self._record_pending_view)
        self._request: Optional[CompletionHandle] = None

    # Commands

    def trigger(
        self,
        callback: Optional[TriggerCallback] = None,
        source: CompletionSource = CompletionSource.CURSOR,
    ) -> Optional[CompletionHandle]:
        """Request a completion at the cursor and show it as ghost text.

        Any previous foreground request is cancelled first.

        Args:
            callback: Called with True once a suggestion is shown, False otherwise
            source: Tag stored with the cached completion

        Returns:
            Handle of the started request, or None if nothing was requested
        """
        if not self.config.enabled:
            return None

        self.cancel()
        buffer = self._host.current_buffer()
        if not buffer.is_valid():
            return None

        ctx = self.builder.build(buffer, buffer.get_cursor(), self.config.token_limits)
        logger.debug(
            f"Triggering at {ctx.cursor.line}:{ctx.cursor.character}, "
            f"region {ctx.range.start.line}-{ctx.range.end.line} ({ctx.range.strategy.value})"
        )
        started = time.monotonic()
        self.metrics.total_requests += 1

        def finish(shown: bool) -> None:
            self.metrics.total_latency_ms += (time.monotonic() - started) * 1000
            if callback is not None:
                callback(shown)

        def on_done(final_text: str) -> None:
            self._request = None
            if not buffer.is_valid():
                logger.debug("Buffer closed before the completion arrived")
                self.metrics.failed_requests += 1
                finish(False)
                return

            completion = completion_from_response(ctx, final_text, buffer.id)
            if completion is None:
                logger.debug("Model returned no usable suggestion")
                self.metrics.empty_responses += 1
                finish(False)
                return

            self.metrics.successful_requests += 1
            self.cache.add(completion, source)
            finish(self.ghost.show(completion, buffer))

        def on_error(err: str) -> None:
            self._request = None
            self.metrics.failed_requests += 1
            self._notify(err, logging.WARNING)
            finish(False)

        handle = self.client.complete(
            CompletionRequest(
                prompt=ctx.prompt,
                code_to_rewrite=ctx.code_to_rewrite,
                max_tokens=self.config.client.max_tokens,
            ),
            on_chunk=lambda _: None,
            on_done=on_done,
            on_error=on_error,
        )
        if handle.active:
            self._request = handle
        return handle

    def cancel(self) -> None:
        """Cancel the in-flight foreground request, if any."""
        if self._request is not None:
            self._request.cancel()
            self._request = None

    def accept(self) -> bool:
        """Apply the visible suggestion and re-trigger shortly after."""
        if not self.ghost.accept_full():
            return False
        self._retrigger.schedule()
        return True

    def accept_line(self) -> bool:
        return self.ghost.accept_line()

    def accept_word(self) -> bool:
        return self.ghost.accept_word()

    def dismiss(self) -> None:
        self.cancel()
        self.ghost.dismiss()

    def is_visible(self) -> bool:
        return self.ghost.is_visible()

    def clear_cache(self) -> None:
        """Forget all cached completions and hide ghost text."""
        self.cache.clear()
        self.ghost.dismiss()
        self._notify("Cache cleared", logging.INFO)

    def toggle_preloader(self) -> bool:
        enabled = self.preloader.toggle()
        self._notify(f"Preloader {'enabled' if enabled else 'disabled'}", logging.INFO)
        return enabled

    def status(self) -> CacheStatus:
        """Cache totals for the session and the current buffer."""
        status = self.cache.status(self._host.current_buffer().id)
        self._notify(
            f"Cache: {status.total} total, {status.current_buffer} in current buffer",
            logging.INFO,
        )
        return status

    def next_diagnostic(self) -> bool:
        return self.navigator.next()

    def prev_diagnostic(self) -> bool:
        return self.navigator.prev()

    # Editor events

    def on_cursor_hold_insert(self) -> None:
        """Idle in insert mode: auto-trigger unless ghost text is already shown."""
        if not (self.config.enabled and self.config.auto_trigger):
            return
        if self.ghost.is_visible():
            return
        if self._host.current_buffer().filetype in self.config.excluded_filetypes:
            return
        self.trigger()

    def on_cursor_moved_insert(self) -> None:
        if not self.ghost.is_visible():
            return
        cursor = self._host.current_buffer().get_cursor()
        # Partial accepts move the cursor onto the new anchor
        if cursor != self.ghost.display_position:
            self.dismiss()

    def on_insert_leave(self) -> None:
        self.dismiss()

    def on_buf_leave(self) -> None:
        self.dismiss()

    def on_buf_enter(self, buffer: EditorBuffer) -> None:
        self._pending_view = buffer
        self._view_tracker.schedule()
        self.preloader.schedule_preload()

    def on_lines(
        self, buffer: EditorBuffer, first_line: int, last_line: int, new_last_line: int
    ) -> None:
        self.enrichment.on_lines(buffer, first_line, last_line, new_last_line)

    def on_diagnostics_changed(self) -> None:
        self.preloader.schedule_preload()

    def on_cursor_hold(self) -> None:
        self.preloader.schedule_preload()

    async def aclose(self) -> None:
        """Cancel pending work and release the HTTP client."""
        self.dismiss()
        self.preloader.disable()
        self._retrigger.cancel()
        self._diagnostic_trigger.cancel()
        self._view_tracker.cancel()
        await self.client.aclose()

    def _record_pending_view(self) -> None:
        buffer, self._pending_view = self._pending_view, None
        if buffer is not None and buffer.is_valid():
            self.enrichment.record_view(buffer)

    def _notify(self, message: str, level: int) -> None:
        if self._notifier is not None:
            self._notifier.notify(f"[AmpTab] {message}", level)
