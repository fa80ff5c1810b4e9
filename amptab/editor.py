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

"""Interfaces between the completion engine and its host editor.

The engine never talks to a concrete editor. Buffers, syntax trees,
diagnostics, the clipboard and the overlay renderer are consumed through
the protocols below, so the engine can be driven by any editor (or by
plain Python objects in tests).
"""

from typing import List, Optional, Protocol, Sequence, Tuple, runtime_checkable

from amptab.protocol import Diagnostic, Position, Range


@runtime_checkable
class EditorBuffer(Protocol):
    """A text buffer open in the editor."""

    @property
    def id(self) -> int:
        """Stable identifier for the lifetime of the buffer."""
        ...

    @property
    def name(self) -> str:
        """Full file path, empty for unnamed buffers."""
        ...

    @property
    def filetype(self) -> str:
        """Language identifier (e.g. 'python'), empty when unknown."""
        ...

    @property
    def buftype(self) -> str:
        """Buffer kind, empty for normal file buffers (e.g. 'nofile' for scratch)."""
        ...

    def is_valid(self) -> bool:
        """False once the buffer has been closed."""
        ...

    def line_count(self) -> int:
        ...

    def get_lines(self, start: int, end: int) -> List[str]:
        """Lines in [start, end); ``end=-1`` means through the last line."""
        ...

    def set_text(
        self, start_row: int, start_col: int, end_row: int, end_col: int, lines: List[str]
    ) -> None:
        """Replace the text between two positions with the given lines."""
        ...

    def get_cursor(self) -> Position:
        ...

    def set_cursor(self, position: Position) -> None:
        ...


class SyntaxNode(Protocol):
    """Read-only view of a syntax tree node."""

    @property
    def kind(self) -> str:
        ...

    @property
    def range(self) -> Range:
        ...

    @property
    def parent(self) -> Optional["SyntaxNode"]:
        ...

    @property
    def children(self) -> Sequence["SyntaxNode"]:
        ...

    def field(self, name: str) -> Optional["SyntaxNode"]:
        """Child stored under a grammar field name (e.g. 'name', 'body')."""
        ...


class SyntaxTree(Protocol):
    """A parsed syntax tree."""

    def node_at(self, row: int, col: int) -> Optional[SyntaxNode]:
        """Smallest named node covering the position."""
        ...


@runtime_checkable
class SyntaxTreeProvider(Protocol):
    """Source of syntax trees for buffers."""

    def get_tree(self, buffer: EditorBuffer) -> Optional[SyntaxTree]:
        """Parse the buffer, None when no parser is available."""
        ...


@runtime_checkable
class DiagnosticsProvider(Protocol):
    """Source of diagnostics for buffers."""

    def diagnostics_for(
        self, buffer: EditorBuffer, line_range: Optional[Tuple[int, int]] = None
    ) -> List[Diagnostic]:
        """Diagnostics for the buffer, optionally limited to an inclusive line range."""
        ...


@runtime_checkable
class Clipboard(Protocol):
    """Access to editor registers."""

    def get_register(self, name: str) -> str:
        ...


@runtime_checkable
class OverlayRenderer(Protocol):
    """Renders ghost text as virtual annotations."""

    def show(
        self,
        buffer: EditorBuffer,
        row: int,
        col: int,
        virt_text: List[Tuple[str, str]],
        virt_lines: List[List[Tuple[str, str]]],
        position: str,
    ) -> int:
        """Place an annotation and return its mark id.

        Args:
            buffer: Target buffer
            row: Anchor row
            col: Anchor column
            virt_text: (text, highlight group) chunks for the anchor line
            virt_lines: Extra virtual lines below the anchor, as chunk lists
            position: 'inline' or 'eol'
        """
        ...

    def clear(self, buffer: EditorBuffer) -> None:
        """Remove every annotation owned by the engine from the buffer."""
        ...


@runtime_checkable
class Notifier(Protocol):
    """Surfaces messages to the user. Levels are ``logging`` constants."""

    def notify(self, message: str, level: int) -> None:
        ...


@runtime_checkable
class EditorHost(Protocol):
    """The editor session the engine is attached to."""

    def current_buffer(self) -> EditorBuffer:
        ...
