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
"""Bounded retry with linearly growing delays for gateway calls."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger('echonet-local')

T = TypeVar('T')

# Reads are cheap to repeat, writes are kept short so the user sees the outcome sooner
READ_MAX_ATTEMPTS = 10
WRITE_MAX_ATTEMPTS = 5


class RetryExhaustedError(Exception):
    """Every attempt of an operation failed."""

    def __init__(self, description: str, attempts: int, last_error: Optional[BaseException]):
        super().__init__(f"{description} failed after {attempts} attempt(s): {last_error}")
        self.description = description
        self.attempts = attempts
        self.last_error = last_error


def backoff_delay(max_attempts: int, remaining: int) -> int:
    """Delay units to wait after a failure with `remaining` attempts left (1, 2, 3, ...)."""
    return max_attempts - remaining + 1


class RetryExecutor:
    """Run an operation until it succeeds or its attempt budget is spent.

    Each call to execute() starts with a fresh budget; there is no state shared
    between calls.
    """

    def __init__(self, delay_unit: float = 1.0):
        self.delay_unit = delay_unit

    async def execute(self, operation: Callable[[], Awaitable[T]], max_attempts: int, description: str = "operation") -> T:
        """Await operation() up to max_attempts times.

        Args:
            operation: Zero-argument callable returning a fresh awaitable per attempt
            max_attempts: Total number of attempts, at least 1
            description: Used in log lines and in the final error

        Returns:
            The result of the first successful attempt

        Raises:
            RetryExhaustedError when every attempt failed
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

        remaining = max_attempts
        last_error: Optional[BaseException] = None
        while remaining > 0:
            try:
                return await operation()
            except Exception as e:
                last_error = e
                if remaining == 1:
                    break
                delay = backoff_delay(max_attempts, remaining) * self.delay_unit
                logger.debug(f"{description} failed ({e!r}), {remaining - 1} attempt(s) left, retrying in {delay:g}s...")
                await asyncio.sleep(delay)
                remaining -= 1

        raise RetryExhaustedError(description, max_attempts, last_error)
