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

"""Tests for display text extraction."""

import pytest

from amptab.config import TokenLimits
from amptab.context import ContextBuilder
from amptab.extractor import (
    clean_completion,
    common_prefix_length,
    common_suffix_length,
    completion_from_response,
    extract_display_text,
)
from amptab.ghost import GhostTextRenderer
from amptab.protocol import AmpTabContext, EditableRegion, Position, RegionStrategy
from amptab.region import RegionSelector
from amptab.tokens import EDITABLE_REGION_END, USER_CURSOR

from tests.fakes import FakeBuffer, FakeOverlay


def make_context(prefix: str, suffix: str) -> AmpTabContext:
    region = EditableRegion(
        start=Position(0, 0), end=Position(2, 0), strategy=RegionStrategy.FALLBACK
    )
    return AmpTabContext(
        prompt="",
        code_to_rewrite=prefix + suffix,
        prefix_in_region=prefix,
        suffix_in_region=suffix,
        range=region,
        cursor=Position(1, 8),
    )


class TestExtractDisplayText:
    """Tests for extract_display_text."""

    def test_replaced_statement(self):
        """Only the newly generated span is displayed."""
        assert (
            extract_display_text("def f():\n    return 1\n", "def f():\n    ", "\n") == "return 1"
        )

    def test_appended_lines(self):
        full = "def f():\n    pass\n    return 1\n"

        assert extract_display_text(full, "def f():\n    pass", "\n") == "\n    return 1"

    def test_noop_rewrite_is_empty(self):
        prefix, suffix = "x = [1, 2", ", 3]\nprint(x)"

        assert extract_display_text(prefix + suffix, prefix, suffix) == ""

    def test_prefix_and_suffix_never_overlap(self):
        assert extract_display_text("aa", "aa", "a") == ""
        assert extract_display_text("aXa", "a", "a") == "X"

    def test_trailing_whitespace_trimmed(self):
        assert extract_display_text("foo(bar)   \n\n)", "foo(", ")") == "bar)"

    def test_whitespace_only_is_empty(self):
        assert extract_display_text("a   \nb", "a", "b") == ""

    @pytest.mark.parametrize(
        "a,b,expected",
        [("abc", "xbc", 2), ("", "abc", 0), ("same", "same", 4), ("a", "b", 0)],
    )
    def test_common_suffix_length(self, a, b, expected):
        assert common_suffix_length(a, b) == expected

    def test_common_prefix_length_bounded(self):
        assert common_prefix_length("abcdef", "abcxyz", 10) == 3
        assert common_prefix_length("abcdef", "abcdef", 2) == 2


class TestCleanCompletion:
    """Tests for clean_completion."""

    def test_strips_tokens_and_whitespace(self):
        raw = f"\n\n    x = 1{USER_CURSOR}\n{EDITABLE_REGION_END}\n  "

        assert clean_completion(raw) == "    x = 1"

    def test_whitespace_only(self):
        assert clean_completion(" \n\t\n") == ""


class TestCompletionFromResponse:
    """Tests for completion_from_response."""

    def test_builds_completion(self):
        ctx = make_context("def f():\n    ", "\n")

        completion = completion_from_response(ctx, "def f():\n    return 1\n", buffer_id=7)

        assert completion.text == "return 1"
        assert completion.full_text == "def f():\n    return 1\n"
        assert completion.buffer_id == 7
        assert completion.cursor == Position(1, 8)
        assert completion.range == ctx.range.range

    def test_empty_response(self):
        assert completion_from_response(make_context("a", "b"), "  \n", buffer_id=1) is None

    def test_noop_response(self):
        ctx = make_context("def f():\n    pass", "")

        assert completion_from_response(ctx, "def f():\n    pass\n", buffer_id=1) is None

    def test_suffix_with_trailing_newline(self):
        """Existing code after the cursor never leaks into the display text."""
        ctx = make_context("def f():\n    ", "retur\n\nx = 1\n")

        completion = completion_from_response(ctx, "def f():\n    return 1\n\nx = 1\n", 1)

        assert completion.text == "return 1"
        assert completion.full_text == "def f():\n    return 1\n\nx = 1\n"

    def test_leading_blank_line_kept(self):
        ctx = make_context("\ny = 2", "\nz = 3")

        completion = completion_from_response(ctx, "\ny = 2  # two\nz = 3", buffer_id=1)

        assert completion.text == "  # two"
        assert completion.full_text == "\ny = 2  # two\nz = 3"

    def test_whitespace_only_suffix_not_duplicated(self):
        """Indentation before the cursor is not appended again."""
        ctx = make_context("def f():\n    ", "\n\n")

        completion = completion_from_response(ctx, "def f():\n    return 1\n", buffer_id=1)

        assert completion.full_text == "def f():\n    return 1\n\n"


class TestAcceptRoundTrip:
    """Built context, extracted completion and full accept together."""

    def test_noop_rewrite_of_region_starting_blank(self):
        buffer = FakeBuffer("x = 1\n\ny = 2\nz = 3")
        limits = TokenLimits(code_to_rewrite_prefix_tokens=10)
        ctx = ContextBuilder(RegionSelector()).build(buffer, Position(2, 5), limits)

        assert ctx.code_to_rewrite == "\ny = 2\nz = 3"
        assert completion_from_response(ctx, ctx.code_to_rewrite, buffer.id) is None

    @pytest.mark.parametrize(
        "source,cursor,insert,expected",
        [
            ("\ny = 2\nz = 3", Position(1, 5), "  # two", "\ny = 2  # two\nz = 3"),
            ("def f():\n    \n", Position(1, 4), "return 1", "def f():\n    return 1\n"),
        ],
    )
    def test_accept_changes_only_the_insertion(self, source, cursor, insert, expected):
        buffer = FakeBuffer(source)
        buffer.cursor = cursor
        ctx = ContextBuilder(RegionSelector()).build(buffer, cursor)
        completion = completion_from_response(
            ctx, ctx.prefix_in_region + insert + ctx.suffix_in_region, buffer.id
        )
        ghost = GhostTextRenderer(FakeOverlay())

        assert completion.text == insert
        assert ghost.show(completion, buffer)
        assert ghost.accept_full()
        assert buffer.text == expected
