from __future__ import annotations

import json
import logging
import shutil
import sqlite3
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterator

if TYPE_CHECKING:
    from stackcheck.sampler import Sample

logger = logging.getLogger(__name__)

SPOOL_FILENAME = "samples.sqlite3"


class SampleSpool:
    """Run-scoped SQLite store for raw probe samples."""

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path).expanduser()
        self._lock = threading.Lock()

        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        with self._lock:
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=OFF")
            self._init_schema()

    @property
    def path(self) -> Path:
        return self._db_path

    def _init_schema(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS samples (
                row_id INTEGER PRIMARY KEY AUTOINCREMENT,
                target TEXT NOT NULL,
                mode TEXT NOT NULL,
                ordinal INTEGER NOT NULL,
                latency_ms INTEGER NOT NULL,
                status_code INTEGER,
                ok INTEGER NOT NULL,
                error TEXT
            )
            """
        )
        self._conn.commit()

    def insert_sample(self, target: str, mode: str, sample: "Sample") -> None:
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO samples (
                    target, mode, ordinal, latency_ms, status_code, ok, error
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    target,
                    mode,
                    sample.ordinal,
                    sample.latency_ms,
                    sample.status_code,
                    1 if sample.ok else 0,
                    sample.error,
                ),
            )
            self._conn.commit()

    def load_samples(self, target: str | None = None, mode: str | None = None) -> list[dict[str, Any]]:
        query = (
            "SELECT target, mode, ordinal, latency_ms, status_code, ok, error "
            "FROM samples WHERE 1=1"
        )
        params: list[Any] = []
        if target is not None:
            query += " AND target = ?"
            params.append(target)
        if mode is not None:
            query += " AND mode = ?"
            params.append(mode)
        query += " ORDER BY row_id"

        with self._lock:
            rows = self._conn.execute(query, params).fetchall()

        return [
            {
                "target": r["target"],
                "mode": r["mode"],
                "ordinal": r["ordinal"],
                "latency_ms": r["latency_ms"],
                "status_code": r["status_code"],
                "ok": bool(r["ok"]),
                "error": r["error"],
            }
            for r in rows
        ]

    def count(self) -> int:
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) AS n FROM samples").fetchone()
        return int(row["n"])

    def export_jsonl(self, out_path: str) -> int:
        rows = self.load_samples()
        out = Path(out_path)
        out.parent.mkdir(parents=True, exist_ok=True)
        with out.open("w", encoding="utf-8") as f:
            for row in rows:
                f.write(json.dumps(row) + "\n")
        return len(rows)

    def close(self) -> None:
        with self._lock:
            self._conn.close()


@dataclass
class RunWorkspace:
    root: Path
    spool: SampleSpool


@contextmanager
def run_workspace(prefix: str = "stackcheck-") -> Iterator[RunWorkspace]:
    """Temporary directory plus sample spool, removed on every exit path."""
    root = Path(tempfile.mkdtemp(prefix=prefix))
    spool = None
    try:
        spool = SampleSpool(str(root / SPOOL_FILENAME))
        yield RunWorkspace(root=root, spool=spool)
    finally:
        if spool is not None:
            spool.close()
        shutil.rmtree(root, ignore_errors=True)
        logger.debug("removed run workspace %s", root)
