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

"""Context enrichment from the editing session.

Tracks what the user has recently done so the prompt can carry more than
the current file:
- recent multi-line edits (diff history)
- recently viewed files
- clipboard contents
- diagnostics inside the editable region

Histories are bounded and evict oldest-first.
"""

import logging
import os
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional, Tuple

from amptab.editor import Clipboard, DiagnosticsProvider, EditorBuffer
from amptab.protocol import DiagnosticSeverity, EnrichmentBundle

logger = logging.getLogger(__name__)

# Filetypes and buffer kinds that are never tracked as viewed files
IGNORED_VIEW_FILETYPES = frozenset({"", "TelescopePrompt", "nofile"})
IGNORED_VIEW_BUFTYPES = frozenset({"nofile", "prompt", "terminal", "help", "quickfix"})


@dataclass
class RecordedEdit:
    """A multi-line change made to a named buffer."""

    file: str
    line: int  # 1-indexed
    old: str
    new: str
    time: float = field(default_factory=time.time)


@dataclass
class ViewedFile:
    """Snippet of a buffer the user looked at."""

    path: str
    name: str
    snippet: str
    time: float = field(default_factory=time.time)


class EnrichmentTracker:
    """Bounded histories of edits and viewed files, plus snapshot formatting."""

    def __init__(
        self,
        diagnostics: Optional[DiagnosticsProvider] = None,
        clipboard: Optional[Clipboard] = None,
        max_edits: int = 10,
        max_files: int = 5,
        snippet_lines: int = 30,
    ):
        """Initialize the tracker.

        Args:
            diagnostics: Source of lint errors for snapshots
            clipboard: Source of recently copied text
            max_edits: Capacity of the edit history
            max_files: Capacity of the viewed-files history
            snippet_lines: Lines captured from the top of each viewed buffer
        """
        self._diagnostics = diagnostics
        self._clipboard = clipboard
        self._snippet_lines = snippet_lines
        self.recent_edits: Deque[RecordedEdit] = deque(maxlen=max_edits)
        self.recent_files: Deque[ViewedFile] = deque(maxlen=max_files)

    def on_lines(
        self, buffer: EditorBuffer, first_line: int, last_line: int, new_last_line: int
    ) -> bool:
        """Buffer change callback; records only significant edits.

        Single-line in-place edits (typing) are ignored. Anything that adds or
        removes lines, or rewrites more than one line, is recorded.

        Returns:
            True if the change was recorded
        """
        if new_last_line == last_line and last_line - first_line <= 1:
            return False
        new_lines = buffer.get_lines(first_line, new_last_line)
        return self.record_edit(buffer, [], new_lines, first_line, new_last_line)

    def record_edit(
        self,
        buffer: EditorBuffer,
        old_lines: List[str],
        new_lines: List[str],
        start_line: int,
        end_line: int,
    ) -> bool:
        """Append an edit to the history.

        Returns:
            False if the buffer has no file name
        """
        if not buffer.name:
            return False

        self.recent_edits.append(
            RecordedEdit(
                file=os.path.basename(buffer.name),
                line=start_line + 1,
                old="\n".join(old_lines),
                new="\n".join(new_lines),
            )
        )
        logger.debug(f"Recorded edit in {buffer.name} lines {start_line}-{end_line}")
        return True

    def record_view(self, buffer: EditorBuffer) -> bool:
        """Remember a buffer the user focused.

        Returns:
            False if the buffer is unnamed or not a regular file buffer
        """
        if not buffer.name:
            return False
        if buffer.filetype in IGNORED_VIEW_FILETYPES or buffer.buftype in IGNORED_VIEW_BUFTYPES:
            return False

        for existing in list(self.recent_files):
            if existing.path == buffer.name:
                self.recent_files.remove(existing)
                break

        snippet = "\n".join(buffer.get_lines(0, self._snippet_lines))
        self.recent_files.append(
            ViewedFile(path=buffer.name, name=os.path.basename(buffer.name), snippet=snippet)
        )
        return True

    def diff_history(self, max_edits: int = 5) -> Optional[str]:
        """Most recent edits, oldest first, as a <diff_history> block."""
        if not self.recent_edits:
            return None

        lines = ["<diff_history>"]
        for edit in list(self.recent_edits)[-max_edits:]:
            lines.append(f'<edit file="{edit.file}" line={edit.line}>')
            if edit.old:
                lines.append("-" + edit.old.replace("\n", "\n-"))
            if edit.new:
                lines.append("+" + edit.new.replace("\n", "\n+"))
            lines.append("</edit>")
        lines.append("</diff_history>")
        return "\n".join(lines)

    def recently_viewed(
        self, current_file: Optional[str] = None, max_snippets: int = 3, max_chars: int = 1000
    ) -> Optional[str]:
        """Snippets of recently viewed files, newest first, excluding the current file."""
        files = [f for f in reversed(self.recent_files) if f.path != current_file]
        files = files[:max_snippets]
        if not files:
            return None

        lines = ["<recently_viewed_snippets>"]
        for viewed in files:
            snippet = viewed.snippet
            if len(snippet) > max_chars:
                snippet = snippet[:max_chars] + "\n..."
            lines.append(f'<snippet file="{viewed.name}">')
            lines.append(snippet)
            lines.append("</snippet>")
        lines.append("</recently_viewed_snippets>")
        return "\n".join(lines)

    def recent_copy(self, max_chars: int = 500, min_chars: int = 5) -> Optional[str]:
        """Clipboard text (system register, then unnamed register)."""
        if self._clipboard is None:
            return None

        text = self._clipboard.get_register("+") or self._clipboard.get_register('"')
        if not text or len(text) < min_chars:
            return None
        if len(text) > max_chars:
            text = text[:max_chars] + "..."
        return f"<recent_copy>\n{text}\n</recent_copy>"

    def lint_errors(
        self,
        buffer: EditorBuffer,
        line_range: Optional[Tuple[int, int]] = None,
        max_items: int = 5,
    ) -> Optional[str]:
        """Diagnostics inside the line range, most severe first."""
        if self._diagnostics is None:
            return None

        diagnostics = self._diagnostics.diagnostics_for(buffer, line_range)
        if line_range is not None:
            low, high = line_range
            diagnostics = [d for d in diagnostics if low <= d.line <= high]
        if not diagnostics:
            return None

        diagnostics = sorted(diagnostics, key=lambda d: (int(d.severity), d.line))

        lines = ["<lint_errors>"]
        seen = set()
        for diagnostic in diagnostics:
            if len(seen) >= max_items:
                break
            key = (diagnostic.line, diagnostic.message)
            if key in seen:
                continue
            seen.add(key)
            severity = DiagnosticSeverity(diagnostic.severity).label
            lines.append(f"Line {diagnostic.line + 1} [{severity}]: {diagnostic.message}")
        lines.append("</lint_errors>")
        return "\n".join(lines)

    def snapshot(
        self, buffer: EditorBuffer, line_range: Optional[Tuple[int, int]] = None
    ) -> EnrichmentBundle:
        """Format every enrichment source for a prompt."""
        return EnrichmentBundle(
            diff_history=self.diff_history(5),
            recently_viewed=self.recently_viewed(buffer.name or None, 3),
            recent_copy=self.recent_copy(500),
            lint_errors=self.lint_errors(buffer, line_range),
        )
