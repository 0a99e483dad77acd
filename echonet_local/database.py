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

"""Database schema for Echonet Local."""

import sqlite3

DB_SCHEMA = """
CREATE TABLE IF NOT EXISTS accessories (
    uuid TEXT PRIMARY KEY,
    address TEXT NOT NULL,
    eoj TEXT NOT NULL,
    name TEXT NOT NULL,
    model TEXT,
    maker_code TEXT,
    serial TEXT,
    swing_supported BOOLEAN DEFAULT 0,
    first_seen TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    last_seen TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_accessories_address ON accessories(address);
"""

# Supported schema version for this codebase
SUPPORTED_SCHEMA_VERSION = 1


def ensure_schema_and_migrate(db_path: str):
    """Ensure the schema exists and bring PRAGMA user_version up to date.

    A database that reports a newer user_version than we support is refused
    rather than silently reinterpreted.
    """
    conn = sqlite3.connect(db_path)
    try:
        row = conn.execute("PRAGMA user_version").fetchone()
        current_version = row[0] if row else 0
        if current_version > SUPPORTED_SCHEMA_VERSION:
            raise RuntimeError(f"Database schema version ({current_version}) is newer than supported ({SUPPORTED_SCHEMA_VERSION})")

        conn.executescript(DB_SCHEMA)

        if current_version < 1:
            conn.execute(f"PRAGMA user_version = {SUPPORTED_SCHEMA_VERSION}")
        conn.commit()
    finally:
        conn.close()
