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
"""Fixed-interval state polling that stays out of the way of writes."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger('echonet-local')


class PeriodicRefresher:
    """Call refresh() every `interval` seconds unless a write is in flight."""

    def __init__(self, refresh: Callable[[], Awaitable[None]], interval: float,
                 is_busy: Callable[[], bool], name: str = ""):
        if interval <= 0:
            raise ValueError(f"Refresh interval must be positive, got {interval}")
        self.refresh = refresh
        self.interval = interval
        self.is_busy = is_busy
        self.name = name
        self.task: Optional[asyncio.Task] = None
        self.skipped = 0

    def start(self):
        if self.task is None or self.task.done():
            self.task = asyncio.get_running_loop().create_task(self._loop())
            logger.debug(f"{self.name} - Polling every {self.interval:g}s")

    async def stop(self):
        if self.task is None:
            return
        self.task.cancel()
        try:
            await self.task
        except asyncio.CancelledError:
            pass
        self.task = None

    async def tick(self) -> bool:
        """Run one poll; returns False when it was skipped because of a pending write."""
        if self.is_busy():
            self.skipped += 1
            logger.debug(f"{self.name} - Write in progress, skipping refresh")
            return False
        try:
            await self.refresh()
        except Exception as e:
            logger.error(f"{self.name} - Refresh failed: {e}")
        return True

    async def _loop(self):
        while True:
            await asyncio.sleep(self.interval)
            await self.tick()
