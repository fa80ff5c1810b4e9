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

"""Marker tokens and token accounting shared by prompt building and extraction.

The marker strings are part of the contract with the completion model and
must be reproduced byte for byte.
"""

import math

EDITABLE_REGION_START = "<|editable_region_start|>"
EDITABLE_REGION_END = "<|editable_region_end|>"
USER_CURSOR = "<|user_cursor_is_here|>"

SPECIAL_TOKENS = (EDITABLE_REGION_START, EDITABLE_REGION_END, USER_CURSOR)

# Approximate token size used for every budget
CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Approximate the token count of text (4 characters per token)."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def keep_tail(text: str, max_tokens: int) -> str:
    """Truncate text to a token budget, keeping its end."""
    max_chars = max_tokens * CHARS_PER_TOKEN
    if len(text) <= max_chars:
        return text
    if max_chars <= 0:
        return ""
    return text[-max_chars:]


def keep_head(text: str, max_tokens: int) -> str:
    """Truncate text to a token budget, keeping its start."""
    max_chars = max_tokens * CHARS_PER_TOKEN
    if len(text) <= max_chars:
        return text
    return text[: max(max_chars, 0)]


def strip_tokens(text: str) -> str:
    """Remove every marker token from model output."""
    for token in SPECIAL_TOKENS:
        text = text.replace(token, "")
    return text
