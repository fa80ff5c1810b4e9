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

"""Fill-in-the-middle prompt construction.

Prompt layout, in order (optional sections are omitted with their label):

    recently viewed snippets
    recent edit history
    lint errors (or a single diagnostic hint)
    recently copied text
    The file currently open:
    <file>
    {file prefix}
    {class context}
    <|editable_region_start|>
    {rewrite prefix}<|user_cursor_is_here|>{rewrite suffix}
    <|editable_region_end|>
    {file suffix}
    </file>
"""

import logging
import math
from dataclasses import replace
from typing import List, Optional

from amptab.config import TokenLimits
from amptab.editor import DiagnosticsProvider, EditorBuffer
from amptab.enrichment import EnrichmentTracker
from amptab.protocol import (
    AmpTabContext,
    EditableRegion,
    EnrichmentBundle,
    Position,
    RegionStrategy,
)
from amptab.region import RegionSelector
from amptab.tokens import (
    EDITABLE_REGION_END,
    EDITABLE_REGION_START,
    USER_CURSOR,
    estimate_tokens,
    keep_head,
    keep_tail,
)

logger = logging.getLogger(__name__)

RECENTLY_VIEWED_LABEL = (
    "Code snippets I have recently viewed, roughly from oldest to newest. "
    "Some may be irrelevant to the change:"
)
DIFF_HISTORY_LABEL = "My recent edits, from oldest to newest:"
LINT_ERRORS_LABEL = "Linter errors from the code that you will rewrite:"
RECENT_COPY_LABEL = "Recently copied text. It may be irrelevant to the change:"
OPEN_FILE_LABEL = "The file currently open:"
CLASS_CONTEXT_START = "# CLASS CONTEXT (available self.* attributes):"
CLASS_CONTEXT_END = "# END CLASS CONTEXT"


class ContextBuilder:
    """Builds an AmpTabContext for a cursor position."""

    def __init__(
        self,
        selector: Optional[RegionSelector] = None,
        enrichment: Optional[EnrichmentTracker] = None,
        diagnostics: Optional[DiagnosticsProvider] = None,
    ):
        self._selector = selector or RegionSelector()
        self._enrichment = enrichment
        self._diagnostics = diagnostics

    def build(
        self,
        buffer: EditorBuffer,
        cursor: Position,
        limits: Optional[TokenLimits] = None,
        diagnostic_hint: Optional[str] = None,
    ) -> AmpTabContext:
        """Build the prompt context.

        Args:
            buffer: Buffer to complete in
            cursor: Cursor position (may be synthetic, e.g. a diagnostic location)
            limits: Token budgets and strategy switches
            diagnostic_hint: Message to surface when no enrichment is available;
                defaults to the most severe diagnostic on the cursor line

        Returns:
            Immutable context for one request
        """
        limits = limits or TokenLimits()
        lines = buffer.get_lines(0, -1) or [""]
        total_lines = len(lines)

        cursor_row = min(max(cursor.line, 0), total_lines - 1)
        cursor_col = min(max(cursor.character, 0), len(lines[cursor_row]))
        cursor = Position(line=cursor_row, character=cursor_col)

        region = self._select_region(buffer, cursor, limits, total_lines)
        start_row, end_row = region.start.line, region.end.line

        prefix_before = keep_tail("\n".join(lines[:start_row]), limits.prefix_tokens)
        suffix_after = keep_head("\n".join(lines[end_row + 1 :]), limits.suffix_tokens)

        # Split the region at the cursor
        rewrite_prefix_parts: List[str] = []
        rewrite_suffix_parts: List[str] = []
        for row in range(start_row, end_row + 1):
            line = lines[row]
            if row < cursor_row:
                rewrite_prefix_parts.append(line)
            elif row == cursor_row:
                rewrite_prefix_parts.append(line[:cursor_col])
                rewrite_suffix_parts.append(line[cursor_col:])
            else:
                rewrite_suffix_parts.append(line)

        prefix_in_region = "\n".join(rewrite_prefix_parts)
        suffix_in_region = "\n".join(rewrite_suffix_parts)

        if diagnostic_hint is None:
            diagnostic_hint = self._diagnostic_at(buffer, cursor_row)

        enriched = None
        if limits.use_enrichment and self._enrichment is not None:
            enriched = self._enrichment.snapshot(buffer, (start_row, end_row))

        prompt = self._assemble(
            enriched,
            diagnostic_hint,
            prefix_before,
            region.class_context,
            prefix_in_region,
            suffix_in_region,
            suffix_after,
        )
        logger.debug(
            f"Built context: strategy={region.strategy.value}, node={region.node_kind}, "
            f"range=[{start_row}, {end_row}], ~{estimate_tokens(prompt)} prompt tokens"
        )

        return AmpTabContext(
            prompt=prompt,
            code_to_rewrite=prefix_in_region + suffix_in_region,
            prefix_in_region=prefix_in_region,
            suffix_in_region=suffix_in_region,
            range=region,
            cursor=cursor,
            diagnostic_hint=diagnostic_hint,
            syntax_aware=region.node_kind is not None,
        )

    def _select_region(
        self, buffer: EditorBuffer, cursor: Position, limits: TokenLimits, total_lines: int
    ) -> EditableRegion:
        tree = self._selector.parse(buffer) if limits.use_treesitter else None
        if tree is not None:
            region = self._selector.select_region(
                buffer,
                cursor,
                max_lines=limits.treesitter_max_lines,
                prefer_function=limits.prefer_function,
                tree=tree,
            )
            start_row, end_row = region.start.line, region.end.line
        else:
            # Size the region from the rewrite budgets
            above = math.ceil(limits.code_to_rewrite_prefix_tokens / limits.fallback_chars_per_line)
            below = math.ceil(limits.code_to_rewrite_suffix_tokens / limits.fallback_chars_per_line)
            start_row = max(0, cursor.line - above)
            end_row = min(total_lines - 1, cursor.line + below)
            region = EditableRegion(
                start=Position(line=start_row, character=0),
                end=Position(line=end_row, character=0),
                strategy=RegionStrategy.FALLBACK,
            )

        # The rewrite always covers whole lines
        start_row = min(max(start_row, 0), cursor.line)
        end_row = min(max(end_row, cursor.line), total_lines - 1)
        end_line = buffer.get_lines(end_row, end_row + 1)
        return replace(
            region,
            start=Position(line=start_row, character=0),
            end=Position(line=end_row, character=len(end_line[0]) if end_line else 0),
        )

    def _diagnostic_at(self, buffer: EditorBuffer, row: int) -> Optional[str]:
        if self._diagnostics is None:
            return None
        diagnostics = [
            d for d in self._diagnostics.diagnostics_for(buffer, (row, row)) if d.line == row
        ]
        if not diagnostics:
            return None
        return min(diagnostics, key=lambda d: int(d.severity)).message

    def _assemble(
        self,
        enriched: Optional[EnrichmentBundle],
        diagnostic_hint: Optional[str],
        prefix_before: str,
        class_context: Optional[str],
        prefix_in_region: str,
        suffix_in_region: str,
        suffix_after: str,
    ) -> str:
        parts: List[str] = []
        enriched = enriched or EnrichmentBundle()

        if enriched.recently_viewed:
            parts.extend([RECENTLY_VIEWED_LABEL, enriched.recently_viewed, ""])

        if enriched.diff_history:
            parts.extend([DIFF_HISTORY_LABEL, enriched.diff_history, ""])

        if enriched.lint_errors:
            parts.extend([LINT_ERRORS_LABEL, enriched.lint_errors, ""])
        elif diagnostic_hint:
            parts.extend(
                [LINT_ERRORS_LABEL, f"<lint_errors>\n{diagnostic_hint}\n</lint_errors>", ""]
            )

        if enriched.recent_copy:
            parts.extend([RECENT_COPY_LABEL, enriched.recent_copy, ""])

        parts.append(OPEN_FILE_LABEL)
        parts.append("<file>")
        parts.append(prefix_before)

        if class_context:
            parts.extend([CLASS_CONTEXT_START, class_context, CLASS_CONTEXT_END])

        parts.append(EDITABLE_REGION_START)
        parts.append(prefix_in_region + USER_CURSOR + suffix_in_region)
        parts.append(EDITABLE_REGION_END)
        parts.append(suffix_after)
        parts.append("</file>")

        return "\n".join(parts)
