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

"""In-memory editor doubles shared by the test suite."""

import asyncio
import itertools
import json
import logging
from typing import Dict, List, Optional, Sequence, Tuple

import httpx

from amptab.protocol import Diagnostic, DiagnosticSeverity, Position, Range


class FakeBuffer:
    """A list-of-lines buffer with editor-style text replacement."""

    _ids = itertools.count(1)

    def __init__(
        self,
        text: str = "",
        name: str = "/project/src/main.py",
        filetype: str = "python",
        buftype: str = "",
        buffer_id: Optional[int] = None,
    ):
        self.lines = text.split("\n")
        self._name = name
        self._filetype = filetype
        self._buftype = buftype
        self._id = buffer_id if buffer_id is not None else next(self._ids)
        self.valid = True
        self.cursor = Position(0, 0)
        self.edit_error: Optional[Exception] = None
        self.partial_edit = False

    @property
    def id(self) -> int:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    @property
    def filetype(self) -> str:
        return self._filetype

    @property
    def buftype(self) -> str:
        return self._buftype

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    def is_valid(self) -> bool:
        return self.valid

    def line_count(self) -> int:
        return len(self.lines)

    def get_lines(self, start: int, end: int) -> List[str]:
        if end == -1 or end > len(self.lines):
            end = len(self.lines)
        return list(self.lines[start:end])

    def set_text(
        self, start_row: int, start_col: int, end_row: int, end_col: int, lines: List[str]
    ) -> None:
        if self.edit_error is not None:
            if self.partial_edit:
                self.lines[start_row] = ""
            raise self.edit_error
        before = self.lines[start_row][:start_col]
        after = self.lines[end_row][end_col:]
        replacement = list(lines)
        replacement[0] = before + replacement[0]
        replacement[-1] = replacement[-1] + after
        self.lines[start_row : end_row + 1] = replacement

    def get_cursor(self) -> Position:
        return self.cursor

    def set_cursor(self, position: Position) -> None:
        self.cursor = position


class FakeNode:
    """Syntax node spanning whole lines unless columns are given."""

    def __init__(
        self,
        kind: str,
        start_line: int,
        end_line: int,
        children: Sequence["FakeNode"] = (),
        fields: Optional[Dict[str, "FakeNode"]] = None,
        start_col: int = 0,
        end_col: int = 0,
    ):
        self.kind = kind
        self.range = Range(Position(start_line, start_col), Position(end_line, end_col))
        self.parent: Optional[FakeNode] = None
        self.children = list(children)
        self._fields = fields or {}
        for child in itertools.chain(self.children, self._fields.values()):
            child.parent = self

    def field(self, name: str) -> Optional["FakeNode"]:
        return self._fields.get(name)

    def __repr__(self) -> str:
        return f"FakeNode({self.kind!r}, {self.range.start.line}, {self.range.end.line})"


class FakeTree:
    def __init__(self, root: FakeNode):
        self.root = root

    def node_at(self, row: int, col: int) -> Optional[FakeNode]:
        node = self.root
        if not node.range.start.line <= row <= node.range.end.line:
            return None
        while True:
            inner = next(
                (
                    child
                    for child in node.children
                    if child.range.start.line <= row <= child.range.end.line
                ),
                None,
            )
            if inner is None:
                return node
            node = inner


class FakeSyntaxProvider:
    def __init__(self, tree: Optional[FakeTree] = None):
        self.tree = tree

    def get_tree(self, buffer) -> Optional[FakeTree]:
        return self.tree


class FakeDiagnostics:
    def __init__(self, diagnostics: Optional[List[Diagnostic]] = None):
        self.diagnostics = list(diagnostics or [])

    def diagnostics_for(
        self, buffer, line_range: Optional[Tuple[int, int]] = None
    ) -> List[Diagnostic]:
        if line_range is None:
            return list(self.diagnostics)
        low, high = line_range
        return [d for d in self.diagnostics if low <= d.line <= high]


class FakeClipboard:
    def __init__(self, registers: Optional[Dict[str, str]] = None):
        self.registers = registers or {}

    def get_register(self, name: str) -> str:
        return self.registers.get(name, "")


class FakeOverlay:
    """Records every annotation placed and cleared."""

    def __init__(self):
        self._ids = itertools.count(1)
        self.shown: List[dict] = []
        self.cleared = 0
        self.fail = False

    @property
    def last(self) -> dict:
        return self.shown[-1]

    def show(self, buffer, row, col, virt_text, virt_lines, position) -> int:
        if self.fail:
            raise RuntimeError("extmark failed")
        self.shown.append(
            {
                "buffer": buffer.id,
                "row": row,
                "col": col,
                "virt_text": virt_text,
                "virt_lines": virt_lines,
                "position": position,
            }
        )
        return next(self._ids)

    def clear(self, buffer) -> None:
        self.cleared += 1


class FakeNotifier:
    def __init__(self):
        self.messages: List[Tuple[str, int]] = []

    def notify(self, message: str, level: int = logging.INFO) -> None:
        self.messages.append((message, level))

    @property
    def texts(self) -> List[str]:
        return [message for message, _ in self.messages]


class FakeHost:
    def __init__(self, buffer: FakeBuffer):
        self.buffer = buffer

    def current_buffer(self) -> FakeBuffer:
        return self.buffer


def diagnostic(
    line: int,
    message: str = "undefined name",
    severity: DiagnosticSeverity = DiagnosticSeverity.ERROR,
    col: int = 0,
) -> Diagnostic:
    return Diagnostic(line=line, col=col, severity=severity, message=message)


def completion_transport(full_text: str, seen: Optional[list] = None) -> httpx.MockTransport:
    """Endpoint double streaming ``full_text`` as a single chunk."""

    def handler(request):
        if seen is not None:
            seen.append(request)
        chunk = json.dumps({"choices": [{"text": full_text}]})
        return httpx.Response(200, content=f"data: {chunk}\n\ndata: [DONE]\n".encode())

    return httpx.MockTransport(handler)


async def eventually(predicate, timeout: float = 1.0) -> None:
    """Wait until ``predicate()`` holds, yielding to the event loop."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)
