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

"""tree-sitter backed syntax trees for region selection.

Uses pre-compiled grammar packages (tree-sitter 0.25+ API), installed
separately per language:

    pip install tree-sitter-python tree-sitter-javascript

tree-sitter reports columns in UTF-8 bytes; the adapters here convert them
to character columns so that every range handed to the engine matches the
buffer's own line strings.
"""

import logging
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence

from tree_sitter import Language, Parser

from amptab.protocol import Position, Range

if TYPE_CHECKING:
    from tree_sitter import Node, Tree

    from amptab.editor import EditorBuffer

logger = logging.getLogger(__name__)


# Format: "language_name": ("module_name", "function_name")
# function_name returns the Language object (usually "language")
LANGUAGE_MODULES: Dict[str, tuple] = {
    "python": ("tree_sitter_python", "language"),
    "javascript": ("tree_sitter_javascript", "language"),
    "typescript": ("tree_sitter_typescript", "language_typescript"),
    "tsx": ("tree_sitter_typescript", "language_tsx"),
    "java": ("tree_sitter_java", "language"),
    "go": ("tree_sitter_go", "language"),
    "rust": ("tree_sitter_rust", "language"),
    "c": ("tree_sitter_c", "language"),
    "cpp": ("tree_sitter_cpp", "language"),
    "c_sharp": ("tree_sitter_c_sharp", "language"),
    "ruby": ("tree_sitter_ruby", "language"),
    "php": ("tree_sitter_php", "language_php"),
    "bash": ("tree_sitter_bash", "language"),
    "lua": ("tree_sitter_lua", "language"),
}

# Editor filetypes whose grammar has a different name
FILETYPE_ALIASES: Dict[str, str] = {
    "typescriptreact": "tsx",
    "javascriptreact": "javascript",
    "cs": "c_sharp",
    "sh": "bash",
    "zsh": "bash",
}

_language_cache: Dict[str, Language] = {}
_parser_cache: Dict[str, Parser] = {}


def get_language(language: str) -> Language:
    """Load a tree-sitter Language from its pre-compiled package.

    Raises:
        ValueError: If no grammar is known for the language
        ImportError: If the grammar package is not installed
    """
    if language in _language_cache:
        return _language_cache[language]

    module_info = LANGUAGE_MODULES.get(language)
    if not module_info:
        raise ValueError(f"Unsupported language for tree-sitter: {language}")

    module_name, func_name = module_info

    try:
        language_module = __import__(module_name)
        lang_obj = getattr(language_module, func_name)()
    except ImportError:
        raise ImportError(
            f"Language package '{module_name}' not installed. "
            f"Install it with: pip install {module_name.replace('_', '-')}"
        )
    except AttributeError:
        raise AttributeError(
            f"Language module '{module_name}' does not have function '{func_name}'. "
            f"Check the tree-sitter package version and update LANGUAGE_MODULES."
        )

    # Some older grammars expose a PyCapsule; wrap via Language
    lang = Language(lang_obj) if not isinstance(lang_obj, Language) else lang_obj
    _language_cache[language] = lang
    return lang


def get_parser(language: str) -> Parser:
    """Return a cached Parser for the language."""
    if language in _parser_cache:
        return _parser_cache[language]

    parser = Parser(get_language(language))
    _parser_cache[language] = parser
    return parser


class TreeSitterNode:
    """Adapts a tree-sitter node to the engine's read-only node view."""

    def __init__(self, node: "Node", tree: "TreeSitterTree"):
        self._node = node
        self._tree = tree

    @property
    def kind(self) -> str:
        return self._node.type

    @property
    def range(self) -> Range:
        return Range(
            start=self._tree.to_position(self._node.start_point),
            end=self._tree.to_position(self._node.end_point),
        )

    @property
    def parent(self) -> Optional["TreeSitterNode"]:
        parent = self._node.parent
        return TreeSitterNode(parent, self._tree) if parent is not None else None

    @property
    def children(self) -> Sequence["TreeSitterNode"]:
        return [TreeSitterNode(child, self._tree) for child in self._node.named_children]

    def field(self, name: str) -> Optional["TreeSitterNode"]:
        child = self._node.child_by_field_name(name)
        return TreeSitterNode(child, self._tree) if child is not None else None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TreeSitterNode):
            return NotImplemented
        return (
            self._node.type == other._node.type
            and self._node.start_byte == other._node.start_byte
            and self._node.end_byte == other._node.end_byte
        )

    def __hash__(self) -> int:
        return hash((self._node.type, self._node.start_byte, self._node.end_byte))

    def __repr__(self) -> str:
        return f"TreeSitterNode(kind={self.kind!r}, range={self.range})"


class TreeSitterTree:
    """A parsed buffer snapshot."""

    def __init__(self, tree: "Tree", lines: List[str]):
        self._tree = tree
        self._lines = lines

    def to_position(self, point) -> Position:
        """Convert a (row, byte column) point to a character Position."""
        row, byte_col = point[0], point[1]
        if row >= len(self._lines):
            return Position(line=row, character=0)
        encoded = self._lines[row].encode("utf-8")
        return Position(line=row, character=len(encoded[:byte_col].decode("utf-8", "ignore")))

    def node_at(self, row: int, col: int) -> Optional[TreeSitterNode]:
        line = self._lines[row] if 0 <= row < len(self._lines) else ""
        byte_col = len(line[:col].encode("utf-8"))
        point = (row, byte_col)
        node = self._tree.root_node.named_descendant_for_point_range(point, point)
        return TreeSitterNode(node, self) if node is not None else None


class TreeSitterSyntaxProvider:
    """Parses buffers with the grammar matching their filetype."""

    def language_for(self, filetype: str) -> Optional[str]:
        language = FILETYPE_ALIASES.get(filetype, filetype)
        return language if language in LANGUAGE_MODULES else None

    def get_tree(self, buffer: "EditorBuffer") -> Optional[TreeSitterTree]:
        language = self.language_for(buffer.filetype)
        if language is None:
            return None

        try:
            parser = get_parser(language)
        except (ValueError, ImportError, AttributeError) as e:
            logger.debug(f"No tree-sitter parser for {language}: {e}")
            return None

        lines = buffer.get_lines(0, -1)
        tree = parser.parse("\n".join(lines).encode("utf-8"))
        return TreeSitterTree(tree, lines)
