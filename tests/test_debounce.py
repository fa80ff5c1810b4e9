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

"""Tests for the restartable debounce timer."""

import asyncio

from amptab.debounce import Debouncer


class TestDebouncer:
    """Tests for Debouncer."""

    async def test_rapid_calls_collapse(self):
        """Many calls within the window run the action once."""
        calls = []
        debouncer = Debouncer(20, lambda: calls.append(1))

        for _ in range(10):
            debouncer.schedule()
            await asyncio.sleep(0.001)
        await asyncio.sleep(0.08)

        assert calls == [1]
        assert not debouncer.pending

    async def test_cancel(self):
        calls = []
        debouncer = Debouncer(10, lambda: calls.append(1))

        debouncer.schedule()
        assert debouncer.pending
        debouncer.cancel()
        await asyncio.sleep(0.04)

        assert calls == []

    async def test_separate_windows_fire_separately(self):
        calls = []
        debouncer = Debouncer(5, lambda: calls.append(1))

        debouncer.schedule()
        await asyncio.sleep(0.04)
        debouncer.schedule()
        await asyncio.sleep(0.04)

        assert calls == [1, 1]

    async def test_failing_action_logged(self, caplog):
        def boom():
            raise RuntimeError("boom")

        debouncer = Debouncer(0, boom)
        debouncer.schedule()
        await asyncio.sleep(0.02)

        assert "Debounced action failed" in caplog.text
