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

"""Tests for FIM prompt construction."""

import pytest

from amptab.config import TokenLimits
from amptab.context import (
    CLASS_CONTEXT_END,
    CLASS_CONTEXT_START,
    DIFF_HISTORY_LABEL,
    LINT_ERRORS_LABEL,
    OPEN_FILE_LABEL,
    RECENT_COPY_LABEL,
    RECENTLY_VIEWED_LABEL,
    ContextBuilder,
)
from amptab.enrichment import EnrichmentTracker
from amptab.protocol import DiagnosticSeverity, Position, RegionStrategy
from amptab.region import RegionSelector
from amptab.tokens import EDITABLE_REGION_END, EDITABLE_REGION_START, USER_CURSOR

from tests.fakes import (
    FakeBuffer,
    FakeClipboard,
    FakeDiagnostics,
    FakeSyntaxProvider,
    diagnostic,
)
from tests.test_region import SOURCE, build_tree


@pytest.fixture
def numbered_buffer():
    return FakeBuffer("\n".join(f"line {i:02d}" for i in range(30)))


class TestContextBuilder:
    """Tests for ContextBuilder.build."""

    def test_minimal_prompt_layout(self):
        """Without enrichment the prompt is just the annotated file."""
        buffer = FakeBuffer("def f():\n    pass\n")
        builder = ContextBuilder(RegionSelector())

        ctx = builder.build(buffer, Position(1, 8))

        assert ctx.prefix_in_region == "def f():\n    pass"
        assert ctx.suffix_in_region == "\n"
        assert ctx.code_to_rewrite == "def f():\n    pass\n"
        assert ctx.prompt == "\n".join(
            [
                OPEN_FILE_LABEL,
                "<file>",
                "",
                EDITABLE_REGION_START,
                "def f():\n    pass" + USER_CURSOR + "\n",
                EDITABLE_REGION_END,
                "",
                "</file>",
            ]
        )
        assert ctx.range.strategy == RegionStrategy.FALLBACK
        assert not ctx.syntax_aware

    def test_fallback_region_sized_from_budgets(self, numbered_buffer):
        limits = TokenLimits(
            use_treesitter=False,
            code_to_rewrite_prefix_tokens=20,
            code_to_rewrite_suffix_tokens=30,
        )

        ctx = ContextBuilder().build(numbered_buffer, Position(15, 3), limits)

        assert (ctx.range.start.line, ctx.range.end.line) == (13, 18)
        assert ctx.range.start.character == 0
        assert ctx.range.end.character == len("line 18")

    def test_outer_text_truncated_to_budgets(self, numbered_buffer):
        """The file prefix keeps its tail and the suffix keeps its head."""
        limits = TokenLimits(
            use_treesitter=False,
            prefix_tokens=2,
            suffix_tokens=2,
            code_to_rewrite_prefix_tokens=10,
            code_to_rewrite_suffix_tokens=10,
        )

        ctx = ContextBuilder().build(numbered_buffer, Position(15, 0), limits)

        before_region, after_region = ctx.prompt.split(EDITABLE_REGION_START)
        assert "line 12" not in before_region
        assert before_region.endswith("line 13\n")
        assert after_region.split(EDITABLE_REGION_END)[1].startswith("\nline 17\n")

    def test_cursor_split_in_region(self, numbered_buffer):
        limits = TokenLimits(
            use_treesitter=False,
            code_to_rewrite_prefix_tokens=10,
            code_to_rewrite_suffix_tokens=10,
        )

        ctx = ContextBuilder().build(numbered_buffer, Position(15, 4), limits)

        assert ctx.prefix_in_region == "line 14\nline"
        assert ctx.suffix_in_region == " 15\nline 16"
        assert "line 14\nline" + USER_CURSOR + " 15\nline 16" in ctx.prompt

    def test_cursor_clamped_to_buffer(self):
        buffer = FakeBuffer("a\nbc")

        ctx = ContextBuilder().build(buffer, Position(10, 10))

        assert ctx.cursor == Position(1, 2)
        assert ctx.prefix_in_region == "a\nbc"
        assert ctx.suffix_in_region == ""

    def test_class_context_wraps_constructor(self):
        buffer = FakeBuffer(SOURCE)
        builder = ContextBuilder(RegionSelector(FakeSyntaxProvider(build_tree())))

        ctx = builder.build(buffer, Position(8, 12))

        assert ctx.syntax_aware
        assert ctx.range.strategy == RegionStrategy.FUNCTION
        assert (
            f"{CLASS_CONTEXT_START}\nclass Greeter:\n    def __init__(self, name):\n"
            f"        self.name = name\n{CLASS_CONTEXT_END}\n{EDITABLE_REGION_START}"
        ) in ctx.prompt
        assert ctx.prefix_in_region.startswith("    def greet(self):")

    def test_treesitter_disabled_ignores_tree(self):
        buffer = FakeBuffer(SOURCE)
        builder = ContextBuilder(RegionSelector(FakeSyntaxProvider(build_tree())))

        ctx = builder.build(buffer, Position(8, 12), TokenLimits(use_treesitter=False))

        assert ctx.range.strategy == RegionStrategy.FALLBACK
        assert CLASS_CONTEXT_START not in ctx.prompt


class TestPromptSections:
    """Tests for enrichment sections and their ordering."""

    def test_diagnostic_hint_from_cursor_line(self):
        """Without enrichment the most severe diagnostic on the cursor line is used."""
        buffer = FakeBuffer("x = 1\ny = z\n")
        diagnostics = FakeDiagnostics(
            [
                diagnostic(1, "unused variable", DiagnosticSeverity.WARNING),
                diagnostic(1, "undefined name 'z'", DiagnosticSeverity.ERROR),
                diagnostic(0, "elsewhere", DiagnosticSeverity.ERROR),
            ]
        )
        builder = ContextBuilder(diagnostics=diagnostics)

        ctx = builder.build(buffer, Position(1, 5))

        assert ctx.diagnostic_hint == "undefined name 'z'"
        assert f"{LINT_ERRORS_LABEL}\n<lint_errors>\nundefined name 'z'\n</lint_errors>\n" in (
            ctx.prompt
        )

    def test_explicit_hint_wins(self):
        buffer = FakeBuffer("x = 1\n")
        builder = ContextBuilder(diagnostics=FakeDiagnostics([diagnostic(0, "from editor")]))

        ctx = builder.build(buffer, Position(0, 0), diagnostic_hint="from caller")

        assert ctx.diagnostic_hint == "from caller"
        assert "from editor" not in ctx.prompt

    def test_lint_errors_replace_hint(self):
        buffer = FakeBuffer("x = 1\ny = z\n")
        diagnostics = FakeDiagnostics([diagnostic(1, "undefined name 'z'")])
        builder = ContextBuilder(
            enrichment=EnrichmentTracker(diagnostics=diagnostics), diagnostics=diagnostics
        )

        ctx = builder.build(buffer, Position(1, 5))

        assert "Line 2 [ERROR]: undefined name 'z'" in ctx.prompt
        assert "<lint_errors>\nundefined name 'z'\n</lint_errors>" not in ctx.prompt

    def test_sections_in_fixed_order(self):
        current = FakeBuffer("a = 1\nb = 2\n", name="/project/current.py")
        other = FakeBuffer("import sys\n", name="/project/other.py")
        diagnostics = FakeDiagnostics([diagnostic(1, "bad b")])
        enrichment = EnrichmentTracker(
            diagnostics=diagnostics,
            clipboard=FakeClipboard({"+": "copied text"}),
        )
        enrichment.record_view(other)
        enrichment.record_edit(current, ["old"], ["new", "lines"], 0, 2)
        builder = ContextBuilder(enrichment=enrichment, diagnostics=diagnostics)

        prompt = builder.build(current, Position(1, 0)).prompt

        positions = [
            prompt.index(label)
            for label in (
                RECENTLY_VIEWED_LABEL,
                DIFF_HISTORY_LABEL,
                LINT_ERRORS_LABEL,
                RECENT_COPY_LABEL,
                OPEN_FILE_LABEL,
                EDITABLE_REGION_START,
                EDITABLE_REGION_END,
            )
        ]
        assert positions == sorted(positions)
        assert '<snippet file="other.py">\nimport sys\n\n</snippet>' in prompt

    def test_enrichment_disabled(self):
        current = FakeBuffer("a = 1\n", name="/project/current.py")
        enrichment = EnrichmentTracker(clipboard=FakeClipboard({"+": "copied text"}))
        builder = ContextBuilder(enrichment=enrichment)

        prompt = builder.build(current, Position(0, 0), TokenLimits(use_enrichment=False)).prompt

        assert RECENT_COPY_LABEL not in prompt
        assert prompt.startswith(OPEN_FILE_LABEL)
