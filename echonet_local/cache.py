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
"""SQLite-backed cache of known accessories."""

import logging
import sqlite3
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .database import ensure_schema_and_migrate

logger = logging.getLogger(__name__)


@dataclass
class AccessoryRecord:
    """What we remember about an accessory between runs."""
    uuid: str
    address: str
    eoj: Tuple[int, int, int]
    name: str
    model: Optional[str] = None
    maker_code: Optional[str] = None
    serial: Optional[str] = None
    swing_supported: bool = False


def _eoj_to_text(eoj) -> str:
    return ','.join(str(b) for b in eoj)


def _eoj_from_text(text: str) -> Tuple[int, int, int]:
    return tuple(int(part) for part in text.split(','))


class AccessoryCacheSQLite:
    """SQLite-backed accessory cache with an in-memory copy.

    Reads are served from RAM; the database is only touched on writes and at
    start-up.
    """

    def __init__(self, db_path: str):
        """Initialize the cache.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self.records: Dict[str, AccessoryRecord] = {}
        ensure_schema_and_migrate(self.db_path)
        self._load_from_db()

    def _load_from_db(self):
        conn = sqlite3.connect(self.db_path)
        cursor = conn.execute("""
            SELECT uuid, address, eoj, name, model, maker_code, serial, swing_supported
            FROM accessories
            ORDER BY first_seen, uuid
        """)
        for uuid, address, eoj, name, model, maker_code, serial, swing_supported in cursor.fetchall():
            try:
                self.records[uuid] = AccessoryRecord(
                    uuid=uuid,
                    address=address,
                    eoj=_eoj_from_text(eoj),
                    name=name,
                    model=model,
                    maker_code=maker_code,
                    serial=serial,
                    swing_supported=bool(swing_supported),
                )
            except ValueError as e:
                logger.warning(f"Skipping cached accessory {uuid} with invalid object id '{eoj}': {e}")
        conn.close()
        logger.info(f"Loaded {len(self.records)} accessories from cache")

    def load_all(self) -> List[AccessoryRecord]:
        return list(self.records.values())

    def get(self, uuid: str) -> Optional[AccessoryRecord]:
        return self.records.get(uuid)

    def save(self, record: AccessoryRecord):
        """Insert or update an accessory, keeping its first_seen time."""
        conn = sqlite3.connect(self.db_path)
        conn.execute("""
            INSERT INTO accessories (uuid, address, eoj, name, model, maker_code, serial, swing_supported)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(uuid) DO UPDATE SET
                address = excluded.address,
                eoj = excluded.eoj,
                name = excluded.name,
                model = excluded.model,
                maker_code = excluded.maker_code,
                serial = excluded.serial,
                swing_supported = excluded.swing_supported,
                last_seen = CURRENT_TIMESTAMP
        """, (record.uuid, record.address, _eoj_to_text(record.eoj), record.name, record.model,
              record.maker_code, record.serial, int(record.swing_supported)))
        conn.commit()
        conn.close()
        self.records[record.uuid] = record

    def touch(self, uuid: str):
        """Mark an accessory as seen now."""
        conn = sqlite3.connect(self.db_path)
        conn.execute("UPDATE accessories SET last_seen = CURRENT_TIMESTAMP WHERE uuid = ?", (uuid,))
        conn.commit()
        conn.close()

    def remove(self, uuid: str) -> bool:
        conn = sqlite3.connect(self.db_path)
        removed = conn.execute("DELETE FROM accessories WHERE uuid = ?", (uuid,)).rowcount
        conn.commit()
        conn.close()
        self.records.pop(uuid, None)
        return removed > 0
