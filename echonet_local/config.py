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
"""Bridge configuration and its validation."""

from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

DEFAULT_REFRESH_INTERVAL = 1      # minutes
DEFAULT_REQUEST_TIMEOUT = 60.0    # seconds
DEFAULT_DISCOVERY_TIMEOUT = 60.0  # seconds


@dataclass
class BridgeConfig:
    refresh_interval: Any = DEFAULT_REFRESH_INTERVAL
    # Kept as given so that a non-numeric value can be reported instead of crashing
    request_timeout: Any = None
    devices: List[str] = field(default_factory=list)
    discovery_timeout: float = DEFAULT_DISCOVERY_TIMEOUT

    @property
    def refresh_interval_seconds(self) -> float:
        return float(self.refresh_interval) * 60

    @property
    def request_timeout_seconds(self) -> float:
        if self.request_timeout is None:
            return DEFAULT_REQUEST_TIMEOUT
        return float(self.request_timeout)


def _parse_number(value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def verify_config(config: BridgeConfig) -> Tuple[bool, List[str]]:
    """Check a configuration; returns (ok, list of problems)."""
    errors = []

    interval = _parse_number(config.refresh_interval)
    if interval is None:
        errors.append(f"refresh_interval must be a number, got {config.refresh_interval!r}")
    elif interval < 1:
        errors.append(f"refresh_interval must be at least 1 minute, got {config.refresh_interval!r}")

    if config.request_timeout is not None:
        timeout = _parse_number(config.request_timeout)
        if timeout is None:
            errors.append(f"request_timeout must be a number, got {config.request_timeout!r}")
        elif timeout <= 0:
            errors.append(f"request_timeout must be positive, got {config.request_timeout!r}")

    if _parse_number(config.discovery_timeout) is None or float(config.discovery_timeout) <= 0:
        errors.append(f"discovery_timeout must be a positive number, got {config.discovery_timeout!r}")

    return not errors, errors
