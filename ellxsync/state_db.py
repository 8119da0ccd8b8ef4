from __future__ import annotations

import json
from pathlib import Path

import aiosqlite

from ellxsync.models import FileRecord, SyncOutcome


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS fingerprint_cache (
    path TEXT PRIMARY KEY,
    hash TEXT NOT NULL,
    size INTEGER NOT NULL,
    mtime_ns INTEGER NOT NULL
);
"""

META_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS sync_meta (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""

LAST_RUN_KEY = "last_run"


async def ensure_db(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    async with aiosqlite.connect(db_path) as db:
        await db.execute(SCHEMA_SQL)
        await db.execute(META_SCHEMA_SQL)
        await db.commit()


async def load_fingerprints(db_path: Path) -> dict[str, FileRecord]:
    await ensure_db(db_path)
    async with aiosqlite.connect(db_path) as db:
        db.row_factory = aiosqlite.Row
        cursor = await db.execute(
            "SELECT path, hash, size, mtime_ns FROM fingerprint_cache ORDER BY path"
        )
        rows = await cursor.fetchall()
        await cursor.close()

    return {
        str(row["path"]): FileRecord(
            path=str(row["path"]),
            hash=str(row["hash"]),
            size=int(row["size"]),
            mtime_ns=int(row["mtime_ns"]),
        )
        for row in rows
    }


async def replace_fingerprints(db_path: Path, records: list[FileRecord]) -> None:
    await ensure_db(db_path)
    async with aiosqlite.connect(db_path) as db:
        await db.execute("DELETE FROM fingerprint_cache")
        if records:
            await db.executemany(
                """
                INSERT INTO fingerprint_cache (path, hash, size, mtime_ns)
                VALUES (?, ?, ?, ?)
                """,
                [(r.path, r.hash, r.size, r.mtime_ns) for r in records],
            )
        await db.commit()


async def get_meta(db_path: Path, key: str) -> str | None:
    await ensure_db(db_path)
    async with aiosqlite.connect(db_path) as db:
        cursor = await db.execute("SELECT value FROM sync_meta WHERE key = ?", (key,))
        row = await cursor.fetchone()
        await cursor.close()
    if row is None:
        return None
    return str(row[0])


async def set_meta(db_path: Path, key: str, value: str) -> None:
    await ensure_db(db_path)
    async with aiosqlite.connect(db_path) as db:
        await db.execute(
            "INSERT OR REPLACE INTO sync_meta (key, value) VALUES (?, ?)",
            (key, value),
        )
        await db.commit()


async def record_last_run(db_path: Path, outcome: SyncOutcome) -> None:
    payload = {
        "repo": outcome.repo,
        "tag_name": outcome.tag_name,
        "target_sha": outcome.target_sha,
        "file_count": outcome.file_count,
        "uploaded_count": len(outcome.uploaded_paths),
    }
    await set_meta(db_path, LAST_RUN_KEY, json.dumps(payload, sort_keys=True))


async def load_last_run(db_path: Path) -> dict | None:
    raw = await get_meta(db_path, LAST_RUN_KEY)
    return None if raw is None else json.loads(raw)
