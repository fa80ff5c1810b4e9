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

"""Recent completions with proximity lookup.

Entries are kept in insertion order. Adding a completion first evicts
entries of the same buffer within the dedup distance (the newer entry
wins), then trims the oldest entries beyond capacity.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from typing import List, Optional

from amptab.protocol import CachedCompletion, CompletionSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheStatus:
    """Counts reported by CompletionCache.status()."""

    total: int
    current_buffer: int
    current_id: Optional[str]


class CompletionCache:
    """Completions for all buffers of the session."""

    def __init__(self, max_items: int = 20, dedup_lines: int = 5):
        """Initialize the cache.

        Args:
            max_items: Capacity, oldest entries are evicted first
            dedup_lines: Same-buffer entries at most this many lines apart replace each other
        """
        self.max_items = max_items
        self.dedup_lines = dedup_lines
        self._items: List[CachedCompletion] = []
        self.current_id: Optional[str] = None

    def __len__(self) -> int:
        return len(self._items)

    @property
    def items(self) -> List[CachedCompletion]:
        return list(self._items)

    def add(
        self, completion: CachedCompletion, source: CompletionSource = CompletionSource.CURSOR
    ) -> str:
        """Store a completion and return its id."""
        completion.id = uuid.uuid4().hex[:12]
        completion.timestamp = time.monotonic()
        completion.source = source

        self._items = [
            existing
            for existing in self._items
            if existing.buffer_id != completion.buffer_id
            or abs(existing.cursor.line - completion.cursor.line) > self.dedup_lines
        ]
        self._items.append(completion)

        while len(self._items) > self.max_items:
            evicted = self._items.pop(0)
            logger.debug(f"Evicted cached completion {evicted.id}")

        self.current_id = completion.id
        return completion.id

    def get(self, completion_id: str) -> Optional[CachedCompletion]:
        for item in self._items:
            if item.id == completion_id:
                return item
        return None

    def for_buffer(self, buffer_id: int) -> List[CachedCompletion]:
        return [item for item in self._items if item.buffer_id == buffer_id]

    def nearest(self, buffer_id: int, cursor_line: int) -> List[CachedCompletion]:
        """Completions of a buffer, closest to the cursor line first."""
        return sorted(
            self.for_buffer(buffer_id), key=lambda item: abs(item.cursor.line - cursor_line)
        )

    def next(self, buffer_id: int, cursor_line: int) -> Optional[CachedCompletion]:
        """Closest completion strictly below the cursor line."""
        below = [item for item in self.for_buffer(buffer_id) if item.cursor.line > cursor_line]
        return min(below, key=lambda item: item.cursor.line, default=None)

    def prev(self, buffer_id: int, cursor_line: int) -> Optional[CachedCompletion]:
        """Closest completion strictly above the cursor line."""
        above = [item for item in self.for_buffer(buffer_id) if item.cursor.line < cursor_line]
        return max(above, key=lambda item: item.cursor.line, default=None)

    def remove(self, completion_id: Optional[str]) -> bool:
        if completion_id is None:
            return False
        before = len(self._items)
        self._items = [item for item in self._items if item.id != completion_id]
        if self.current_id == completion_id:
            self.current_id = None
        return len(self._items) != before

    def clear_buffer(self, buffer_id: int) -> None:
        self._items = [item for item in self._items if item.buffer_id != buffer_id]
        self.current_id = None

    def clear(self) -> None:
        self._items = []
        self.current_id = None

    def status(self, buffer_id: Optional[int] = None) -> CacheStatus:
        current = len(self.for_buffer(buffer_id)) if buffer_id is not None else 0
        return CacheStatus(
            total=len(self._items), current_buffer=current, current_id=self.current_id
        )
