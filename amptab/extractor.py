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

"""Isolate newly generated text from a full-region rewrite.

The model answers with the whole editable region rewritten. What is new is
whatever sits between the longest common prefix with the text before the
cursor and the longest common suffix with the text after it.
"""

import logging
import re
from typing import Optional

from amptab.protocol import AmpTabContext, CachedCompletion
from amptab.tokens import strip_tokens

logger = logging.getLogger(__name__)

_LEADING_NEWLINES = re.compile(r"^\n+")


def clean_completion(raw_text: str) -> str:
    """Normalize raw model output before extraction.

    Strips marker tokens and trailing whitespace, and drops leading newlines
    while keeping leading indentation.
    """
    return _LEADING_NEWLINES.sub("", strip_tokens(raw_text).rstrip())


def common_suffix_length(a: str, b: str) -> int:
    limit = min(len(a), len(b))
    length = 0
    while length < limit and a[len(a) - length - 1] == b[len(b) - length - 1]:
        length += 1
    return length


def common_prefix_length(a: str, b: str, limit: int) -> int:
    limit = min(len(a), len(b), limit)
    length = 0
    while length < limit and a[length] == b[length]:
        length += 1
    return length


def extract_display_text(full_rewrite: str, prefix_in_region: str, suffix_in_region: str) -> str:
    """Return only the span the model inserted.

    The suffix match is computed first; the prefix match is then bounded so
    the two never overlap.

    Args:
        full_rewrite: The model's rewrite of the editable region
        prefix_in_region: Region text before the cursor
        suffix_in_region: Region text after the cursor

    Returns:
        The inserted text with trailing whitespace trimmed; empty when the
        rewrite adds nothing
    """
    suffix_len = common_suffix_length(suffix_in_region, full_rewrite)
    prefix_len = common_prefix_length(
        prefix_in_region, full_rewrite, len(full_rewrite) - suffix_len
    )
    display_text = full_rewrite[prefix_len : len(full_rewrite) - suffix_len].rstrip()
    logger.debug(
        f"Extract: prefix_match={prefix_len}, suffix_match={suffix_len}, "
        f"display_len={len(display_text)}"
    )
    return display_text


def completion_from_response(
    ctx: AmpTabContext, raw_text: str, buffer_id: int
) -> Optional[CachedCompletion]:
    """Turn a finished model response into a completion for ``ctx``.

    Cleaning drops the blank lines around the rewrite. The ones the region
    itself opens with are restored from the prefix, and the ones closing it
    from the suffix, so a full accept leaves them in place.

    Returns:
        None when the response carries no usable suggestion
    """
    cleaned = clean_completion(raw_text)
    if not cleaned:
        return None

    prefix = ctx.prefix_in_region
    suffix = ctx.suffix_in_region
    cleaned = prefix[: len(prefix) - len(prefix.lstrip("\n"))] + cleaned

    # Both sides lose their trailing whitespace before matching
    display_text = extract_display_text(cleaned, prefix, suffix.rstrip())
    if not display_text:
        return None

    return CachedCompletion(
        text=display_text,
        full_text=cleaned + suffix[len(suffix.rstrip()) :],
        range=ctx.range.range,
        cursor=ctx.cursor,
        buffer_id=buffer_id,
    )
