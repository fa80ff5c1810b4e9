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

"""Core data types for the inline completion pipeline.

All positions are 0-indexed. Columns are measured in characters of the
line they refer to.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional


@dataclass(frozen=True, order=True)
class Position:
    """A location in a buffer, ordered in document order."""

    line: int
    character: int = 0


@dataclass(frozen=True)
class Range:
    """A span between two positions."""

    start: Position
    end: Position

    @property
    def line_span(self) -> int:
        """Number of lines covered by the range (inclusive)."""
        return self.end.line - self.start.line + 1


class RegionStrategy(str, Enum):
    """How an editable region was chosen."""

    FUNCTION = "function"
    BLOCK = "block"
    CLASS = "class"
    FALLBACK = "fallback"


class DiagnosticSeverity(IntEnum):
    """Diagnostic severity, lower is more severe."""

    ERROR = 1
    WARNING = 2
    INFO = 3
    HINT = 4

    @property
    def label(self) -> str:
        return _SEVERITY_LABELS[self]


_SEVERITY_LABELS = {
    DiagnosticSeverity.ERROR: "ERROR",
    DiagnosticSeverity.WARNING: "WARN",
    DiagnosticSeverity.INFO: "INFO",
    DiagnosticSeverity.HINT: "HINT",
}


class CompletionSource(str, Enum):
    """Where a cached completion came from."""

    CURSOR = "cursor"
    DIAGNOSTIC = "diagnostic"
    PRELOAD = "preload"


@dataclass(frozen=True)
class Diagnostic:
    """A diagnostic reported against a buffer line."""

    line: int
    col: int
    severity: DiagnosticSeverity
    message: str = ""

    @property
    def is_actionable(self) -> bool:
        """Errors and warnings are worth navigating to and preloading."""
        return self.severity in (DiagnosticSeverity.ERROR, DiagnosticSeverity.WARNING)


@dataclass(frozen=True)
class EditableRegion:
    """The span of text the model is asked to rewrite."""

    start: Position
    end: Position
    strategy: RegionStrategy
    node_kind: Optional[str] = None
    class_context: Optional[str] = None

    @property
    def line_span(self) -> int:
        return self.end.line - self.start.line + 1

    @property
    def range(self) -> Range:
        return Range(start=self.start, end=self.end)


@dataclass(frozen=True)
class AmpTabContext:
    """Everything needed to request and interpret one completion.

    Built fresh for every trigger and never mutated afterwards.
    """

    prompt: str
    code_to_rewrite: str
    prefix_in_region: str
    suffix_in_region: str
    range: EditableRegion
    cursor: Position
    diagnostic_hint: Optional[str] = None
    syntax_aware: bool = False


@dataclass(frozen=True)
class EnrichmentBundle:
    """Formatted enrichment sections, each None when there is nothing to say."""

    diff_history: Optional[str] = None
    recently_viewed: Optional[str] = None
    recent_copy: Optional[str] = None
    lint_errors: Optional[str] = None


@dataclass(frozen=True)
class CompletionRequest:
    """Payload for a single streaming completion request."""

    prompt: str
    code_to_rewrite: str
    max_tokens: Optional[int] = None


@dataclass
class CachedCompletion:
    """A completion ready to be rendered or accepted.

    ``text`` is the newly generated span shown as ghost text, ``full_text``
    the model's rewrite of the whole ``range``.
    """

    text: str
    full_text: str
    range: Range
    cursor: Position
    buffer_id: int
    id: Optional[str] = None
    timestamp: float = 0.0
    source: CompletionSource = CompletionSource.CURSOR
