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

"""Ghost text: completions shown as virtual text until accepted.

State machine::

    Hidden --show()--> Visible(completion)
    Visible --dismiss() / accept_full()--> Hidden
    Visible --accept_line() / accept_word()--> Visible(remainder) or Hidden

Showing a completion always dismisses the previous one first. A renderer
holds at most one completion and never draws a completion on a buffer
other than the one it was computed for.
"""

import logging
import re
from enum import Enum
from typing import List, Optional, Tuple

from amptab.cache import CompletionCache
from amptab.editor import EditorBuffer, Notifier, OverlayRenderer
from amptab.errors import ApplyEditError
from amptab.protocol import CachedCompletion, Position, Range

logger = logging.getLogger(__name__)

HL_GROUP = "Comment"
HL_GROUP_INDICATOR = "DiagnosticInfo"
INDICATOR = "⚡ "

_WORD = re.compile(r"\S+\s*")


class GhostState(str, Enum):
    HIDDEN = "hidden"
    VISIBLE = "visible"


def clamp_position(buffer: EditorBuffer, position: Position) -> Position:
    """Clamp a position to the buffer's current bounds.

    A position past the last line moves to the end of the buffer.
    """
    last_row = max(buffer.line_count() - 1, 0)
    row = min(max(position.line, 0), last_row)
    line = buffer.get_lines(row, row + 1)
    length = len(line[0]) if line else 0
    if position.line > last_row:
        return Position(line=row, character=length)
    return Position(line=row, character=min(max(position.character, 0), length))


def end_of_insert(start: Position, lines: List[str]) -> Position:
    """Position just after text inserted at ``start``."""
    if len(lines) == 1:
        return Position(line=start.line, character=start.character + len(lines[0]))
    return Position(line=start.line + len(lines) - 1, character=len(lines[-1]))


class GhostTextRenderer:
    """Owns the overlay for at most one visible completion."""

    def __init__(
        self,
        overlay: OverlayRenderer,
        cache: Optional[CompletionCache] = None,
        notifier: Optional[Notifier] = None,
    ):
        self._overlay = overlay
        self._cache = cache
        self._notifier = notifier
        self.current: Optional[CachedCompletion] = None
        self._buffer: Optional[EditorBuffer] = None
        self._mark_id: Optional[int] = None
        self.display_position: Optional[Position] = None

    @property
    def state(self) -> GhostState:
        return GhostState.VISIBLE if self.is_visible() else GhostState.HIDDEN

    def is_visible(self) -> bool:
        return self.current is not None and self._mark_id is not None

    def dismiss(self) -> None:
        """Clear the overlay. Safe to call when nothing is shown."""
        buffer = self._buffer
        if buffer is not None and buffer.is_valid():
            self._overlay.clear(buffer)
        self.current = None
        self._buffer = None
        self._mark_id = None
        self.display_position = None

    def show(self, completion: CachedCompletion, buffer: EditorBuffer) -> bool:
        """Render a completion as ghost text.

        Returns:
            True if the completion is now visible
        """
        self.dismiss()

        if completion.buffer_id != buffer.id:
            logger.debug(
                f"Dropping completion for buffer {completion.buffer_id} on buffer {buffer.id}"
            )
            return False
        if not buffer.is_valid() or not completion.text:
            return False

        # The buffer may have changed since the context was built
        position = clamp_position(buffer, completion.cursor)
        current_line = buffer.get_lines(position.line, position.line + 1)
        text_after_cursor = current_line[0][position.character :] if current_line else ""

        lines = completion.text.split("\n")
        virt_text: List[Tuple[str, str]] = [
            (INDICATOR, HL_GROUP_INDICATOR),
            (lines[0], HL_GROUP),
        ]
        virt_lines = [[(line, HL_GROUP)] for line in lines[1:]]

        try:
            mark_id = self._overlay.show(
                buffer,
                position.line,
                position.character,
                virt_text,
                virt_lines,
                "eol" if text_after_cursor else "inline",
            )
        except Exception as e:
            logger.warning(f"Failed to render ghost text: {e}")
            return False

        self.current = completion
        self._buffer = buffer
        self._mark_id = mark_id
        self.display_position = position
        return True

    def accept_full(self) -> bool:
        """Replace the completion's range with its full rewrite.

        On failure the state is left unchanged, unless the buffer was
        partially modified, in which case the stale completion is dropped.

        Returns:
            True if the edit was applied
        """
        completion, buffer = self.current, self._buffer
        if completion is None or buffer is None:
            return False
        if not buffer.is_valid():
            self._drop(completion)
            return False

        start = clamp_position(buffer, completion.range.start)
        end = clamp_position(buffer, completion.range.end)
        if end < start:
            end = start
        new_lines = completion.full_text.split("\n")

        try:
            self._apply(buffer, start, end, new_lines)
        except ApplyEditError as e:
            self._report_failure(completion, e)
            return False

        line_count = buffer.line_count()
        cursor = end_of_insert(start, new_lines)
        buffer.set_cursor(
            Position(line=min(cursor.line, line_count - 1), character=cursor.character)
        )
        self._drop(completion)
        logger.debug(f"Accepted completion {completion.id} at [{start.line}, {end.line}]")
        return True

    def accept_line(self) -> bool:
        """Insert the first line of the suggestion at the cursor.

        When more lines follow, the line break is inserted too and the rest
        stays visible at the new cursor.
        """
        if self.current is None:
            return False
        first, _, remainder = self.current.text.partition("\n")
        return self._accept_partial(first + "\n" if remainder else first, remainder)

    def accept_word(self) -> bool:
        """Insert the next word (plus its trailing whitespace) at the cursor."""
        if self.current is None:
            return False
        text = self.current.text
        match = _WORD.match(text)
        word = match.group(0) if match else text[:1]
        return self._accept_partial(word, text[len(word) :])

    def _accept_partial(self, insert: str, remainder: str) -> bool:
        completion, buffer = self.current, self._buffer
        if completion is None or buffer is None:
            return False
        if not buffer.is_valid() or not insert:
            self._drop(completion)
            return False

        cursor = clamp_position(buffer, buffer.get_cursor())
        lines = insert.split("\n")
        try:
            self._apply(buffer, cursor, cursor, lines)
        except ApplyEditError as e:
            self._report_failure(completion, e)
            return False

        new_cursor = end_of_insert(cursor, lines)
        buffer.set_cursor(new_cursor)

        # The cached full rewrite no longer matches the buffer
        if self._cache is not None:
            self._cache.remove(completion.id)

        if not remainder:
            self.dismiss()
            return True

        rest = CachedCompletion(
            text=remainder,
            full_text=remainder,
            range=Range(start=new_cursor, end=new_cursor),
            cursor=new_cursor,
            buffer_id=buffer.id,
            source=completion.source,
        )
        self.show(rest, buffer)
        return True

    def _apply(
        self, buffer: EditorBuffer, start: Position, end: Position, lines: List[str]
    ) -> None:
        before = buffer.get_lines(0, -1)
        try:
            buffer.set_text(start.line, start.character, end.line, end.character, lines)
        except Exception as e:
            partial = buffer.is_valid() and buffer.get_lines(0, -1) != before
            raise ApplyEditError(str(e), partial=partial) from e

    def _report_failure(self, completion: CachedCompletion, error: ApplyEditError) -> None:
        logger.error(f"Failed to apply completion {completion.id}: {error}")
        if self._notifier is not None:
            self._notifier.notify(f"[AmpTab] Failed to apply: {error}", logging.ERROR)
        if error.partial:
            self._drop(completion)

    def _drop(self, completion: CachedCompletion) -> None:
        self.dismiss()
        if self._cache is not None:
            self._cache.remove(completion.id)
