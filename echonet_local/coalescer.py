#
# Copyright 2025 The EchonetLocal contributors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
"""Debounced write scheduling: bursts of set calls become one write cycle."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

logger = logging.getLogger('echonet-local')

DEFAULT_DEBOUNCE = 0.1


class WriteCoalescer:
    """Collapse rapid write requests into a single write cycle.

    Every request_write() restarts the quiet-period timer. When the timer runs
    out without another request, write_cycle() is awaited once. The write cycle
    always serializes the state as it is at that moment, so requests absorbed by
    a restart lose nothing.
    """

    def __init__(self, write_cycle: Callable[[], Awaitable[None]],
                 on_busy: Optional[Callable[[bool], None]] = None,
                 delay: float = DEFAULT_DEBOUNCE, name: str = ""):
        self.write_cycle = write_cycle
        self.on_busy = on_busy
        self.delay = delay
        self.name = name
        self.busy = False
        self.cycles = 0
        self._timer: Optional[asyncio.Task] = None
        self._running = 0
        self._lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()

    def request_write(self):
        """Schedule a write cycle after the quiet period, restarting any pending one."""
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().create_task(self._fire())
        self._tasks.add(self._timer)
        self._timer.add_done_callback(self._tasks.discard)
        self._update_busy()

    async def _fire(self):
        await asyncio.sleep(self.delay)

        # Past this point a newer request must not cancel us; it gets its own timer
        if self._timer is asyncio.current_task():
            self._timer = None
        self._running += 1
        try:
            async with self._lock:
                self.cycles += 1
                await self.write_cycle()
        except Exception as e:
            logger.error(f"{self.name} - Write cycle failed: {e}")
        finally:
            self._running -= 1
            self._update_busy()

    def _update_busy(self):
        busy = self._timer is not None or self._running > 0
        if busy == self.busy:
            return
        self.busy = busy
        if self.on_busy:
            self.on_busy(busy)

    async def close(self):
        """Drop the pending timer and wait for a write that is already running."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        pending = [task for task in self._tasks if not task.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._update_busy()
