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

"""Syntax-aware selection of the editable region.

Picks the span of code the model is asked to rewrite by walking the
ancestors of the node under the cursor:

1. the smallest enclosing function, when it fits the line budget
2. the smallest enclosing block, when it fits
3. a window around the cursor, clamped to the enclosing class
4. a window around the cursor, clamped to the buffer

When the cursor sits inside a class, the class header and its constructor
are extracted as extra prompt context.
"""

import logging
from typing import Dict, List, Optional, Sequence

from amptab.editor import EditorBuffer, SyntaxNode, SyntaxTree, SyntaxTreeProvider
from amptab.protocol import EditableRegion, Position, RegionStrategy

logger = logging.getLogger(__name__)


# Node kinds that delimit meaningful code blocks, per filetype
BLOCK_NODE_TYPES: Dict[str, List[str]] = {
    "default": [
        "function_definition",
        "function_declaration",
        "method_definition",
        "method_declaration",
        "class_definition",
        "class_declaration",
        "if_statement",
        "for_statement",
        "while_statement",
        "try_statement",
        "with_statement",
        "match_statement",
        "block",
    ],
    "lua": [
        "function_declaration",
        "function_definition",
        "local_function",
        "if_statement",
        "for_statement",
        "while_statement",
        "repeat_statement",
        "do_statement",
        "return_statement",
        "chunk",
    ],
    "python": [
        "function_definition",
        "class_definition",
        "if_statement",
        "for_statement",
        "while_statement",
        "try_statement",
        "with_statement",
        "match_statement",
        "decorated_definition",
        "async_function_definition",
    ],
    "rust": [
        "function_item",
        "impl_item",
        "struct_item",
        "enum_item",
        "trait_item",
        "if_expression",
        "for_expression",
        "while_expression",
        "loop_expression",
        "match_expression",
        "block",
    ],
    "typescript": [
        "function_declaration",
        "function_expression",
        "arrow_function",
        "method_definition",
        "class_declaration",
        "if_statement",
        "for_statement",
        "while_statement",
        "try_statement",
        "switch_statement",
    ],
    "javascript": [
        "function_declaration",
        "function_expression",
        "arrow_function",
        "method_definition",
        "class_declaration",
        "if_statement",
        "for_statement",
        "while_statement",
        "try_statement",
        "switch_statement",
    ],
    "go": [
        "function_declaration",
        "method_declaration",
        "type_declaration",
        "if_statement",
        "for_statement",
        "switch_statement",
        "select_statement",
        "block",
    ],
}

FUNCTION_NODE_TYPES = frozenset(
    {
        "function_definition",
        "function_declaration",
        "method_definition",
        "method_declaration",
        "local_function",
        "function_item",
        "arrow_function",
        "function_expression",
        "async_function_definition",
    }
)

CLASS_NODE_TYPES = frozenset(
    {
        "class_definition",
        "class_declaration",
        "struct_item",
        "impl_item",
        "trait_item",
        "enum_item",
        "type_declaration",
    }
)

# Methods that initialise instance state, per filetype
CONSTRUCTOR_NAMES: Dict[str, List[str]] = {
    "python": ["__init__"],
    "lua": ["new", "init", "_init"],
    "rust": ["new", "default"],
    "typescript": ["constructor"],
    "javascript": ["constructor"],
}
DEFAULT_CONSTRUCTOR_NAMES = ["new", "init", "constructor"]

METHOD_NODE_TYPES = frozenset({"function_definition", "method_definition", "function_item"})

CLASS_CONTEXT_MAX_LINES = 30


def block_types_for(filetype: str) -> List[str]:
    return BLOCK_NODE_TYPES.get(filetype, BLOCK_NODE_TYPES["default"])


def find_ancestor(node: Optional[SyntaxNode], kinds) -> Optional[SyntaxNode]:
    """Innermost node (starting at ``node`` itself) whose kind is in ``kinds``."""
    while node is not None:
        if node.kind in kinds:
            return node
        node = node.parent
    return None


def node_text(buffer: EditorBuffer, node: SyntaxNode) -> str:
    """Text covered by a node."""
    start, end = node.range.start, node.range.end
    lines = buffer.get_lines(start.line, end.line + 1)
    if not lines:
        return ""
    if len(lines) == 1:
        return lines[0][start.character : end.character]
    lines[0] = lines[0][start.character :]
    lines[-1] = lines[-1][: end.character]
    return "\n".join(lines)


def centered_window(row: int, low: int, high: int, max_lines: int) -> tuple:
    """Rows (start, end) of a window of at most ``max_lines`` around ``row``.

    The window stays within [low, high] and always contains ``row`` when
    ``low <= row <= high``.
    """
    start = max(low, row - (max_lines - 1) // 2)
    end = min(high, start + max_lines - 1)
    start = max(low, end - max_lines + 1)
    return start, end


class RegionSelector:
    """Chooses the editable region for a cursor position."""

    def __init__(self, syntax_provider: Optional[SyntaxTreeProvider] = None):
        self._syntax_provider = syntax_provider

    def parse(self, buffer: EditorBuffer) -> Optional[SyntaxTree]:
        """Syntax tree for the buffer, None when no parser is available."""
        if self._syntax_provider is None:
            return None
        try:
            return self._syntax_provider.get_tree(buffer)
        except Exception as e:
            logger.debug(f"Syntax tree unavailable for buffer {buffer.id}: {e}")
            return None

    def select_region(
        self,
        buffer: EditorBuffer,
        cursor: Position,
        max_lines: int = 100,
        prefer_function: bool = True,
        tree: Optional[SyntaxTree] = None,
    ) -> EditableRegion:
        """Select the editable region around the cursor.

        Args:
            buffer: Buffer being edited
            cursor: Cursor position (0-indexed)
            max_lines: Maximum line span for node-based regions
            prefer_function: Try the enclosing function before smaller blocks
            tree: Already parsed tree for the buffer, parsed on demand when omitted

        Returns:
            The chosen region
        """
        max_lines = max(1, max_lines)
        total_lines = max(1, buffer.line_count())
        row = min(max(cursor.line, 0), total_lines - 1)

        if tree is None:
            tree = self.parse(buffer)
        leaf = tree.node_at(row, cursor.character) if tree is not None else None
        if leaf is None:
            start, end = centered_window(row, 0, total_lines - 1, max_lines)
            return self._line_region(buffer, start, end, RegionStrategy.FALLBACK)

        class_node = find_ancestor(leaf, CLASS_NODE_TYPES)
        class_context = (
            self.class_context(buffer, class_node) if class_node is not None else None
        )

        if prefer_function:
            func_node = find_ancestor(leaf, FUNCTION_NODE_TYPES)
            if func_node is not None:
                if func_node.range.line_span <= max_lines:
                    return self._node_region(
                        func_node, RegionStrategy.FUNCTION, class_context
                    )
                block_node = find_ancestor(leaf, block_types_for(buffer.filetype))
                if (
                    block_node is not None
                    and block_node != func_node
                    and block_node.range.line_span <= max_lines
                ):
                    return self._node_region(block_node, RegionStrategy.BLOCK, class_context)

        block_node = find_ancestor(leaf, block_types_for(buffer.filetype))
        if block_node is not None and block_node.range.line_span <= max_lines:
            return self._node_region(block_node, RegionStrategy.BLOCK, class_context)

        if class_node is not None:
            class_range = class_node.range
            start, end = centered_window(
                row, class_range.start.line, class_range.end.line, max_lines
            )
            return self._line_region(
                buffer, start, end, RegionStrategy.CLASS, class_node.kind, class_context
            )

        start, end = centered_window(row, 0, total_lines - 1, max_lines)
        return self._line_region(
            buffer, start, end, RegionStrategy.FALLBACK, class_context=class_context
        )

    def class_context(
        self,
        buffer: EditorBuffer,
        class_node: SyntaxNode,
        max_lines: int = CLASS_CONTEXT_MAX_LINES,
    ) -> Optional[str]:
        """Class header line plus its constructor, None without a constructor."""
        class_start = class_node.range.start.line
        lines = buffer.get_lines(class_start, class_start + 1)[:1]

        init_node = self._find_constructor(buffer, class_node)
        if init_node is not None:
            init_range = init_node.range
            init_lines = buffer.get_lines(init_range.start.line, init_range.end.line + 1)
            lines.extend(init_lines[: max(max_lines - 1, 0)])

        if len(lines) > 1:
            return "\n".join(lines)
        return None

    def _find_constructor(
        self, buffer: EditorBuffer, class_node: SyntaxNode
    ) -> Optional[SyntaxNode]:
        names = CONSTRUCTOR_NAMES.get(buffer.filetype, DEFAULT_CONSTRUCTOR_NAMES)
        for child in self._class_members(class_node):
            if child.kind not in METHOD_NODE_TYPES:
                continue
            name_node = child.field("name")
            if name_node is not None and node_text(buffer, name_node) in names:
                return child
        return None

    def _class_members(self, class_node: SyntaxNode) -> Sequence[SyntaxNode]:
        # Members live either directly under the class or under its body node
        members: List[SyntaxNode] = []
        containers = [class_node]
        body = class_node.field("body")
        if body is not None:
            containers.append(body)
        for container in containers:
            for child in container.children:
                if child.kind == "decorated_definition":
                    child = child.field("definition") or child
                members.append(child)
        return members

    def _node_region(
        self,
        node: SyntaxNode,
        strategy: RegionStrategy,
        class_context: Optional[str],
    ) -> EditableRegion:
        node_range = node.range
        logger.debug(
            f"Selected {strategy.value} region {node.kind} "
            f"[{node_range.start.line}, {node_range.end.line}]"
        )
        return EditableRegion(
            start=node_range.start,
            end=node_range.end,
            strategy=strategy,
            node_kind=node.kind,
            class_context=class_context,
        )

    def _line_region(
        self,
        buffer: EditorBuffer,
        start_row: int,
        end_row: int,
        strategy: RegionStrategy,
        node_kind: Optional[str] = None,
        class_context: Optional[str] = None,
    ) -> EditableRegion:
        end_line = buffer.get_lines(end_row, end_row + 1)
        end_col = len(end_line[0]) if end_line else 0
        logger.debug(f"Selected {strategy.value} window [{start_row}, {end_row}]")
        return EditableRegion(
            start=Position(line=start_row, character=0),
            end=Position(line=end_row, character=end_col),
            strategy=strategy,
            node_kind=node_kind,
            class_context=class_context,
        )
