# src/rewardstreams/runtime/sqlite_db.py
from __future__ import annotations

import json
import os
import random
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    # Do not coerce unknown types (e.g. default=str); a non-JSON value leaking
    # into persisted state must fail here.
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    try:
        raw = str(os.environ.get(name, "")).strip()
        return int(raw) if raw else int(default)
    except Exception:
        return int(default)


class SqliteDB:
    """One SQLite file holding the ledger snapshot row and the receipts table.

    Connections are opened per use and never shared between threads. Writers
    serialise on BEGIN IMMEDIATE; see write_tx() for the lock retry policy.
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    @staticmethod
    def _sqlite_synchronous_pragma() -> str:
        """FULL in prod, NORMAL otherwise; REWARDSTREAMS_SQLITE_SYNCHRONOUS overrides."""
        mode = (os.environ.get("REWARDSTREAMS_MODE") or "prod").strip().lower()
        default = "FULL" if mode == "prod" else "NORMAL"
        raw = (os.environ.get("REWARDSTREAMS_SQLITE_SYNCHRONOUS") or default).strip().upper()

        if raw not in {"OFF", "NORMAL", "FULL", "EXTRA"}:
            raw = default
        return raw

    def ensure_parent_dir(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        self.ensure_parent_dir()

        connect_timeout_s = float(_env_int("REWARDSTREAMS_SQLITE_CONNECT_TIMEOUT_MS", 30_000)) / 1000.0

        con = sqlite3.connect(
            self.path,
            timeout=connect_timeout_s,
            isolation_level=None,  # we manage BEGIN/COMMIT ourselves
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        # Fail closed if WAL cannot be enabled, unless explicitly allowed.
        allow_non_wal = (os.environ.get("REWARDSTREAMS_SQLITE_ALLOW_NON_WAL") or "").strip().lower() in {"1", "true"}
        row = con.execute("PRAGMA journal_mode=WAL;").fetchone()
        mode = str(row[0]).strip().lower() if row is not None else ""
        if mode and mode != "wal" and not allow_non_wal:
            con.close()
            raise RuntimeError(f"sqlite journal_mode is '{mode}', expected 'wal'")

        con.execute(f"PRAGMA synchronous={self._sqlite_synchronous_pragma()};")
        con.execute("PRAGMA foreign_keys=ON;")
        con.execute("PRAGMA temp_store=MEMORY;")

        wal_ckpt = max(1, _env_int("REWARDSTREAMS_SQLITE_WAL_AUTOCHECKPOINT", 1000))
        con.execute(f"PRAGMA wal_autocheckpoint={wal_ckpt};")

        busy_ms = max(0, _env_int("REWARDSTREAMS_SQLITE_BUSY_TIMEOUT_MS", int(connect_timeout_s * 1000)))
        con.execute(f"PRAGMA busy_timeout={busy_ms};")

        return con

    def init_schema(self) -> None:
        with self.write_tx() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS meta (
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL
                );
                """
            )

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS ledger_state (
                  id INTEGER PRIMARY KEY CHECK (id = 1),
                  tx_count INTEGER NOT NULL,
                  last_tx_id TEXT NOT NULL,
                  state_json TEXT NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS receipts (
                  tx_id TEXT PRIMARY KEY,
                  seq INTEGER NOT NULL,
                  tx_type TEXT NOT NULL,
                  signer TEXT NOT NULL,
                  receipt_json TEXT NOT NULL,
                  created_ts_ms INTEGER NOT NULL
                );
                """
            )
            con.execute("CREATE INDEX IF NOT EXISTS idx_receipts_signer ON receipts(signer);")

            row = con.execute("SELECT value FROM meta WHERE key='schema_version' LIMIT 1;").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
            else:
                v = int(str(row["value"])) if str(row["value"]).isdigit() else 0
                if v != self.SCHEMA_VERSION:
                    raise RuntimeError(
                        f"sqlite schema_version mismatch: have={v} want={self.SCHEMA_VERSION}. "
                        "Refuse to start to avoid corrupting data."
                    )

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            yield con
        finally:
            con.close()

    @staticmethod
    def _is_locked_error(e: Exception) -> bool:
        msg = str(e).lower()
        return "database is locked" in msg or "database is busy" in msg

    def _exec_with_retry(self, con: sqlite3.Connection, sql: str, deadline_ts: int) -> None:
        """Run `sql`, retrying writer-lock contention with jittered backoff until deadline_ts."""
        base = max(0.001, _env_int("REWARDSTREAMS_SQLITE_WRITE_BACKOFF_BASE_MS", 5) / 1000.0)
        cap = max(base, _env_int("REWARDSTREAMS_SQLITE_WRITE_BACKOFF_MAX_MS", 250) / 1000.0)
        attempt = 0
        while True:
            try:
                con.execute(sql)
                return
            except sqlite3.OperationalError as e:
                if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                    raise
            time.sleep(min(cap, base * (2.0 ** min(attempt, 8))) * (0.5 + random.random()))
            attempt += 1

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """BEGIN IMMEDIATE ... COMMIT, rolled back on any error.

        Lock contention on BEGIN or COMMIT is retried until
        REWARDSTREAMS_SQLITE_WRITE_DEADLINE_MS, then raised.
        """
        deadline_ts = _now_ms() + max(250, _env_int("REWARDSTREAMS_SQLITE_WRITE_DEADLINE_MS", 30_000))
        with self.connection() as con:
            self._exec_with_retry(con, "BEGIN IMMEDIATE;", deadline_ts)
            try:
                yield con
                self._exec_with_retry(con, "COMMIT;", deadline_ts)
            except BaseException:
                con.execute("ROLLBACK;")
                raise


class SqliteLedgerStore:
    """Reward ledger snapshot + receipts persisted in SQLite.

    The authoritative snapshot is a single row; `commit()` writes it together
    with the receipt of the call that produced it.
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    def exists(self) -> bool:
        with self._db.connection() as con:
            return con.execute("SELECT 1 FROM ledger_state WHERE id=1;").fetchone() is not None

    def read(self) -> Json:
        with self._db.connection() as con:
            row = con.execute("SELECT state_json FROM ledger_state WHERE id=1;").fetchone()
            if row is None:
                raise FileNotFoundError("sqlite ledger_state is missing")
            st = json.loads(str(row["state_json"]))
            if not isinstance(st, dict):
                raise ValueError("ledger_state is not a JSON object")
            return st

    @staticmethod
    def _upsert_state(con: sqlite3.Connection, st: Json) -> None:
        con.execute(
            """
            INSERT INTO ledger_state(id, tx_count, last_tx_id, state_json, updated_ts_ms)
            VALUES(1, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
              tx_count=excluded.tx_count,
              last_tx_id=excluded.last_tx_id,
              state_json=excluded.state_json,
              updated_ts_ms=excluded.updated_ts_ms;
            """,
            (int(st.get("tx_count", 0)), str(st.get("last_tx_id") or ""), _canon_json(st), _now_ms()),
        )

    def write(self, st: Json) -> None:
        if not isinstance(st, dict):
            raise ValueError("ledger write expects dict")
        with self._db.write_tx() as con:
            self._upsert_state(con, st)

    def commit(self, st: Json, receipt: Json) -> None:
        """Write the snapshot and its receipt in one transaction."""
        if not isinstance(st, dict) or not isinstance(receipt, dict):
            raise ValueError("commit expects dict state and dict receipt")
        tx_id = str(receipt.get("tx_id") or "").strip()
        if not tx_id:
            raise ValueError("receipt is missing tx_id")
        with self._db.write_tx() as con:
            self._upsert_state(con, st)
            con.execute(
                "INSERT INTO receipts(tx_id, seq, tx_type, signer, receipt_json, created_ts_ms) VALUES(?, ?, ?, ?, ?, ?);",
                (
                    tx_id,
                    int(st.get("tx_count", 0)),
                    str(receipt.get("tx_type") or ""),
                    str(receipt.get("signer") or ""),
                    _canon_json(receipt),
                    _now_ms(),
                ),
            )

    def get_receipt(self, tx_id: str) -> Optional[Json]:
        with self._db.connection() as con:
            row = con.execute("SELECT receipt_json FROM receipts WHERE tx_id=?;", (str(tx_id),)).fetchone()
        if row is None:
            return None
        out = json.loads(str(row["receipt_json"]))
        return out if isinstance(out, dict) else None

    def receipts_for(self, signer: str, *, limit: int = 100) -> List[Json]:
        with self._db.connection() as con:
            rows = con.execute(
                "SELECT receipt_json FROM receipts WHERE signer=? ORDER BY seq DESC LIMIT ?;",
                (str(signer), max(1, int(limit))),
            ).fetchall()
        return [json.loads(str(r["receipt_json"])) for r in rows]
