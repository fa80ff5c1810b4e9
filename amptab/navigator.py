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

"""Diagnostic navigation with preview of cached completions.

``next()``/``prev()`` jump between error and warning diagnostics of the
current buffer, skipping locations visited within the TTL, and schedule a
fresh completion at the new cursor. Cached completions can be previewed
as ghost text and accepted or rejected from here.
"""

import logging
import time
from typing import Callable, Dict, List, Optional, Tuple

from amptab.cache import CompletionCache
from amptab.editor import DiagnosticsProvider, EditorBuffer, EditorHost, Notifier
from amptab.ghost import GhostTextRenderer
from amptab.protocol import CachedCompletion, Diagnostic, Position

logger = logging.getLogger(__name__)

MESSAGE_MAX_CHARS = 80


class VisitedSet:
    """(buffer, line) locations with a lazily expiring timestamp."""

    def __init__(self, ttl_ms: int = 30000, clock: Callable[[], float] = time.monotonic):
        self.ttl_ms = ttl_ms
        self._clock = clock
        self._visited: Dict[Tuple[int, int], float] = {}

    def __len__(self) -> int:
        return len(self._visited)

    def mark(self, buffer_id: int, line: int) -> None:
        self._visited[(buffer_id, line)] = self._clock()

    def is_visited(self, buffer_id: int, line: int) -> bool:
        key = (buffer_id, line)
        visited_at = self._visited.get(key)
        if visited_at is None:
            return False
        if (self._clock() - visited_at) * 1000 > self.ttl_ms:
            del self._visited[key]
            return False
        return True

    def clear(self) -> None:
        self._visited.clear()


def truncate_message(message: str, max_chars: int = MESSAGE_MAX_CHARS) -> str:
    message = " ".join(message.split())
    if len(message) <= max_chars:
        return message
    return message[: max_chars - 3] + "..."


class Navigator:
    """Moves between diagnostics and drives cached completion previews."""

    def __init__(
        self,
        host: EditorHost,
        ghost: GhostTextRenderer,
        cache: CompletionCache,
        diagnostics: Optional[DiagnosticsProvider] = None,
        notifier: Optional[Notifier] = None,
        schedule_trigger: Optional[Callable[[], None]] = None,
        visited: Optional[VisitedSet] = None,
    ):
        """Initialize the navigator.

        Args:
            host: Editor session providing the current buffer
            ghost: Renderer used for previews
            cache: Completion cache to preview from
            diagnostics: Source of diagnostics to navigate
            notifier: Receives short status messages
            schedule_trigger: Called after each move to request a fresh completion
            visited: Visited-location tracker
        """
        self._host = host
        self._ghost = ghost
        self._cache = cache
        self._diagnostics = diagnostics
        self._notifier = notifier
        self._schedule_trigger = schedule_trigger
        self.visited = visited if visited is not None else VisitedSet()

    def next(self) -> bool:
        """Jump to the next unvisited diagnostic below the cursor."""
        return self._jump(forward=True)

    def prev(self) -> bool:
        """Jump to the previous unvisited diagnostic above the cursor."""
        return self._jump(forward=False)

    def show_preview(self, item: CachedCompletion) -> bool:
        """Render a cached completion as ghost text on the current buffer."""
        return self._ghost.show(item, self._host.current_buffer())

    def clear_preview(self) -> None:
        self._ghost.dismiss()

    def accept(self) -> bool:
        """Accept the previewed completion, then preview the next one below."""
        if not self._ghost.accept_full():
            return False

        buffer = self._host.current_buffer()
        following = self._cache.next(buffer.id, buffer.get_cursor().line)
        if following is not None:
            self.show_preview(following)
        return True

    def reject(self) -> None:
        """Discard the previewed completion."""
        completion = self._ghost.current
        self._ghost.dismiss()
        if completion is not None:
            self._cache.remove(completion.id)

    def actionable_diagnostics(self, buffer: EditorBuffer) -> List[Diagnostic]:
        if self._diagnostics is None:
            return []
        return sorted(
            (d for d in self._diagnostics.diagnostics_for(buffer) if d.is_actionable),
            key=lambda d: (d.line, d.col),
        )

    def _jump(self, forward: bool) -> bool:
        buffer = self._host.current_buffer()
        diagnostics = self.actionable_diagnostics(buffer)
        if not diagnostics:
            self._notify("No diagnostics found")
            return False

        row = buffer.get_cursor().line
        ordered = diagnostics if forward else list(reversed(diagnostics))
        unvisited = [d for d in ordered if not self.visited.is_visited(buffer.id, d.line)]

        if not unvisited:
            self.visited.clear()
            self._notify("All diagnostics visited, starting over")
            target = ordered[0]
        else:
            past = [d for d in unvisited if (d.line > row if forward else d.line < row)]
            if past:
                target = past[0]
            else:
                target = unvisited[0]
                self._notify("Wrapped around")

        self._move_to(buffer, target)
        return True

    def _move_to(self, buffer: EditorBuffer, diagnostic: Diagnostic) -> None:
        self.visited.mark(buffer.id, diagnostic.line)
        self._ghost.dismiss()
        buffer.set_cursor(Position(line=diagnostic.line, character=diagnostic.col))
        self._notify(
            f"Line {diagnostic.line + 1} [{diagnostic.severity.label}]: "
            f"{truncate_message(diagnostic.message)}"
        )
        logger.debug(f"Moved to diagnostic at {diagnostic.line}:{diagnostic.col}")
        if self._schedule_trigger is not None:
            self._schedule_trigger()

    def _notify(self, message: str) -> None:
        if self._notifier is not None:
            self._notifier.notify(f"[AmpTab] {message}", logging.INFO)
