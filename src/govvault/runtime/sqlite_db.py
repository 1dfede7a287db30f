# src/govvault/runtime/sqlite_db.py
from __future__ import annotations

import os
import json
import sqlite3
import time
import random
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from govvault.ledger.state import AccountRecord, VaultParams

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    """Canonical JSON encoding for persisted payloads."""
    # Do not coerce unknown types (e.g. default=str); non-JSON values must fail fast.
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    try:
        raw = str(os.environ.get(name, "")).strip()
        return int(raw) if raw else int(default)
    except Exception:
        return int(default)


class SqliteDB:
    """SQLite manager for the vault.

    Design goals:
      - single durable DB file for accounts, params and the event log
      - cross-process safe (SQLite locks)
      - cross-thread safe by never sharing connections

    SQLite allows only one writer at a time, which is exactly the serialized
    execution model the vault wants. BEGIN IMMEDIATE can still transiently fail
    with "database is locked" under multi-process load, so write_tx() retries
    within a bounded deadline.
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    @staticmethod
    def _sqlite_synchronous_pragma() -> str:
        """Return a safe PRAGMA synchronous value.

        Defaults:
          - prod        -> FULL
          - dev/testnet -> NORMAL

        Override with GOVVAULT_SQLITE_SYNCHRONOUS in {OFF,NORMAL,FULL,EXTRA}.
        """
        mode = (os.environ.get("GOVVAULT_MODE") or "prod").strip().lower()
        default = "FULL" if mode == "prod" else "NORMAL"
        raw = (os.environ.get("GOVVAULT_SQLITE_SYNCHRONOUS") or default).strip().upper()

        allowed = {"OFF", "NORMAL", "FULL", "EXTRA"}
        if raw not in allowed:
            raw = default
        return raw

    def ensure_parent_dir(self) -> None:
        p = Path(self.path)
        p.parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        self.ensure_parent_dir()

        connect_timeout_s = float(_env_int("GOVVAULT_SQLITE_CONNECT_TIMEOUT_MS", 30_000)) / 1000.0

        con = sqlite3.connect(
            self.path,
            timeout=connect_timeout_s,
            isolation_level=None,  # we manage BEGIN/COMMIT ourselves
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        # WAL is required unless explicitly waived; rollback-journal mode is far
        # more prone to writer contention.
        allow_non_wal = (os.environ.get("GOVVAULT_SQLITE_ALLOW_NON_WAL") or "").strip() in {"1", "true", "TRUE"}
        try:
            row = con.execute("PRAGMA journal_mode=WAL;").fetchone()
            mode = ""
            if row is not None:
                mode = str(row[0]).strip().lower()
            if mode and mode != "wal" and not allow_non_wal:
                raise RuntimeError(f"sqlite journal_mode is '{mode}', expected 'wal'")
        except Exception:
            if not allow_non_wal:
                raise

        con.execute(f"PRAGMA synchronous={self._sqlite_synchronous_pragma()};")
        con.execute("PRAGMA foreign_keys=ON;")
        con.execute("PRAGMA temp_store=MEMORY;")

        wal_ckpt = max(1, _env_int("GOVVAULT_SQLITE_WAL_AUTOCHECKPOINT", 1000))
        con.execute(f"PRAGMA wal_autocheckpoint={wal_ckpt};")

        busy_ms = max(0, _env_int("GOVVAULT_SQLITE_BUSY_TIMEOUT_MS", int(connect_timeout_s * 1000)))
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
                CREATE TABLE IF NOT EXISTS vault_params (
                  id INTEGER PRIMARY KEY CHECK (id = 1),
                  params_json TEXT NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS vault_accounts (
                  account TEXT PRIMARY KEY,
                  balance_a INTEGER NOT NULL CHECK (balance_a >= 0),
                  balance_b INTEGER NOT NULL CHECK (balance_b >= 0),
                  last_deposit_time INTEGER NOT NULL,
                  locked INTEGER NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS vault_events (
                  seq INTEGER PRIMARY KEY AUTOINCREMENT,
                  kind TEXT NOT NULL,
                  account TEXT NOT NULL,
                  payload_json TEXT NOT NULL,
                  created_ts_ms INTEGER NOT NULL
                );
                """
            )
            con.execute("CREATE INDEX IF NOT EXISTS idx_vault_events_account ON vault_events(account);")

            row = con.execute("SELECT value FROM meta WHERE key='schema_version' LIMIT 1;").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
            else:
                try:
                    v = int(str(row["value"]))
                except Exception:
                    v = 0
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
            try:
                con.close()
            except Exception:
                pass

    @staticmethod
    def _is_locked_error(e: Exception) -> bool:
        msg = str(e).lower()
        return ("database is locked" in msg) or ("database is busy" in msg) or ("locked" in msg and "database" in msg)

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """Open a write transaction with bounded retry on writer-lock contention.

        Policy:
          - retry BEGIN IMMEDIATE until a deadline
          - exponential backoff with jitter
          - then raise (fail closed) if we cannot acquire within deadline

        Any exception raised inside the block rolls the transaction back.
        """
        deadline_ms = max(250, _env_int("GOVVAULT_SQLITE_WRITE_DEADLINE_MS", 30_000))
        deadline_ts = _now_ms() + deadline_ms

        base_sleep = max(0.001, float(_env_int("GOVVAULT_SQLITE_WRITE_BACKOFF_BASE_MS", 5)) / 1000.0)
        max_sleep = max(base_sleep, float(_env_int("GOVVAULT_SQLITE_WRITE_BACKOFF_MAX_MS", 250)) / 1000.0)

        with self.connection() as con:
            attempt = 0
            while True:
                try:
                    con.execute("BEGIN IMMEDIATE;")
                    break
                except sqlite3.OperationalError as e:
                    if not self._is_locked_error(e):
                        raise
                    if _now_ms() >= deadline_ts:
                        raise
                    sleep_s = min(max_sleep, base_sleep * (2.0 ** min(attempt, 8)))
                    sleep_s = sleep_s * (0.5 + random.random())
                    time.sleep(sleep_s)
                    attempt += 1

            try:
                yield con

                c_attempt = 0
                while True:
                    try:
                        con.execute("COMMIT;")
                        break
                    except sqlite3.OperationalError as e:
                        if not self._is_locked_error(e):
                            raise
                        if _now_ms() >= deadline_ts:
                            raise
                        sleep_s = min(max_sleep, base_sleep * (2.0 ** min(c_attempt, 8)))
                        sleep_s = sleep_s * (0.5 + random.random())
                        time.sleep(sleep_s)
                        c_attempt += 1
            except Exception:
                try:
                    con.execute("ROLLBACK;")
                except Exception:
                    pass
                raise


class SqliteVaultStore:
    """Keyed account table, params record and event log persisted in SQLite.

    The store is the only writer of vault tables. Mutating helpers take an open
    connection so the caller controls the transaction boundary (see
    SqliteDB.write_tx); read helpers open their own connection.
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    @property
    def db(self) -> SqliteDB:
        return self._db

    # ---- params ----

    def has_params(self) -> bool:
        with self._db.connection() as con:
            return con.execute("SELECT 1 FROM vault_params WHERE id=1;").fetchone() is not None

    def load_params(self, con: sqlite3.Connection) -> VaultParams:
        row = con.execute("SELECT params_json FROM vault_params WHERE id=1;").fetchone()
        if row is None:
            raise FileNotFoundError("sqlite vault_params is missing")
        raw = json.loads(str(row["params_json"]))
        if not isinstance(raw, dict):
            raise ValueError("vault_params is not a JSON object")
        return VaultParams.from_json(raw)

    def save_params(self, con: sqlite3.Connection, params: VaultParams) -> None:
        con.execute(
            """
            INSERT INTO vault_params(id, params_json, updated_ts_ms)
            VALUES(1, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
              params_json=excluded.params_json,
              updated_ts_ms=excluded.updated_ts_ms;
            """,
            (_canon_json(params.to_json()), _now_ms()),
        )

    def read_params(self) -> VaultParams:
        with self._db.connection() as con:
            return self.load_params(con)

    # ---- accounts ----

    def load_account(self, con: sqlite3.Connection, account: str) -> AccountRecord:
        row = con.execute(
            "SELECT account, balance_a, balance_b, last_deposit_time, locked FROM vault_accounts WHERE account=?;",
            (account,),
        ).fetchone()
        if row is None:
            return AccountRecord.empty(account)
        return AccountRecord(
            account=str(row["account"]),
            balance_a=int(row["balance_a"]),
            balance_b=int(row["balance_b"]),
            last_deposit_time=int(row["last_deposit_time"]),
            locked=bool(int(row["locked"])),
        )

    def save_account(self, con: sqlite3.Connection, rec: AccountRecord) -> None:
        if int(rec.balance_a) < 0 or int(rec.balance_b) < 0:
            raise ValueError(f"negative balance for {rec.account!r}")
        con.execute(
            """
            INSERT INTO vault_accounts(account, balance_a, balance_b, last_deposit_time, locked, updated_ts_ms)
            VALUES(?, ?, ?, ?, ?, ?)
            ON CONFLICT(account) DO UPDATE SET
              balance_a=excluded.balance_a,
              balance_b=excluded.balance_b,
              last_deposit_time=excluded.last_deposit_time,
              locked=excluded.locked,
              updated_ts_ms=excluded.updated_ts_ms;
            """,
            (
                rec.account,
                int(rec.balance_a),
                int(rec.balance_b),
                int(rec.last_deposit_time),
                1 if rec.locked else 0,
                _now_ms(),
            ),
        )

    def read_account(self, account: str) -> AccountRecord:
        with self._db.connection() as con:
            return self.load_account(con, account)

    def read_accounts(self) -> List[AccountRecord]:
        with self._db.connection() as con:
            rows = con.execute(
                "SELECT account, balance_a, balance_b, last_deposit_time, locked FROM vault_accounts ORDER BY account;"
            ).fetchall()
        return [
            AccountRecord(
                account=str(r["account"]),
                balance_a=int(r["balance_a"]),
                balance_b=int(r["balance_b"]),
                last_deposit_time=int(r["last_deposit_time"]),
                locked=bool(int(r["locked"])),
            )
            for r in rows
        ]

    # ---- events ----

    def append_event(self, con: sqlite3.Connection, *, kind: str, account: str, payload: Json) -> int:
        cur = con.execute(
            "INSERT INTO vault_events(kind, account, payload_json, created_ts_ms) VALUES(?, ?, ?, ?);",
            (str(kind), str(account), _canon_json(payload), _now_ms()),
        )
        return int(cur.lastrowid or 0)

    def delete_event(self, con: sqlite3.Connection, seq: int) -> None:
        """Drop an event written earlier in an operation that was later undone."""
        con.execute("DELETE FROM vault_events WHERE seq=?;", (int(seq),))

    def read_events(self, *, after_seq: int = 0, limit: int = 100, account: Optional[str] = None) -> List[Json]:
        lim = max(1, min(int(limit), 1000))
        with self._db.connection() as con:
            if account:
                rows = con.execute(
                    "SELECT seq, kind, account, payload_json, created_ts_ms FROM vault_events "
                    "WHERE seq > ? AND account = ? ORDER BY seq ASC LIMIT ?;",
                    (int(after_seq), str(account), lim),
                ).fetchall()
            else:
                rows = con.execute(
                    "SELECT seq, kind, account, payload_json, created_ts_ms FROM vault_events "
                    "WHERE seq > ? ORDER BY seq ASC LIMIT ?;",
                    (int(after_seq), lim),
                ).fetchall()
        return [
            {
                "seq": int(r["seq"]),
                "kind": str(r["kind"]),
                "account": str(r["account"]),
                "payload": json.loads(str(r["payload_json"])),
                "created_ts_ms": int(r["created_ts_ms"]),
            }
            for r in rows
        ]

    def snapshot(self) -> Json:
        """Whole-vault dict snapshot for read-only views."""
        accounts = {r.account: r.to_json() for r in self.read_accounts()}
        params = self.read_params().to_json() if self.has_params() else {}
        return {"accounts": accounts, "params": params}
