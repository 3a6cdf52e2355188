# Overview: Client-side Local Ledger; canonical local copies plus a durable outbox.

"""
Local Ledger.

The device keeps two things in one SQLite file:
- ledger_entities: the canonical local copy of every entity, keyed by
  (entity_type, entity_id). entity_type is the push/pull array name
  ("sales", "stockMovements", ...).
- ledger_outbox: an append-only log of mutations waiting to be pushed.
  Each entry carries its own idempotency key so a resend after a timeout
  is recognised by the server.

A single cursor marks the end of the settled prefix of the outbox. Only the
sync worker moves it; the UI only appends.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    select,
    update,
)

from pharmasync.time_utils import parse_iso_datetime, utcnow


STATUS_PENDING = "PENDING"
STATUS_SYNCED = "SYNCED"
STATUS_REJECTED = "REJECTED"


metadata = MetaData()

ledger_entities = Table(
    "ledger_entities",
    metadata,
    Column("entity_type", String(64), primary_key=True),
    Column("entity_id", String(64), primary_key=True),
    Column("payload", JSON, nullable=False),
    Column("synced", Boolean, nullable=False, default=False),
    Column("updated_at", DateTime, nullable=False),
)

ledger_outbox = Table(
    "ledger_outbox",
    metadata,
    Column("seq", Integer, primary_key=True, autoincrement=True),
    Column("entity_type", String(64), nullable=False, index=True),
    Column("entity_id", String(64), nullable=False, index=True),
    Column("payload", JSON, nullable=False),
    Column("idempotency_key", String(128), nullable=False, unique=True),
    Column("status", String(16), nullable=False, default=STATUS_PENDING, index=True),
    Column("attempts", Integer, nullable=False, default=0),
    Column("last_error", Text, nullable=True),
    Column("created_at", DateTime, nullable=False),
    sqlite_autoincrement=True,
)

ledger_state = Table(
    "ledger_state",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("cursor", Integer, nullable=False, default=0),
    Column("watermark", DateTime, nullable=True),
)


@dataclass(frozen=True)
class OutboxEntry:
    seq: int
    entity_type: str
    entity_id: str
    payload: dict
    idempotency_key: str
    status: str
    attempts: int
    last_error: str | None

    @classmethod
    def from_row(cls, row) -> "OutboxEntry":
        return cls(
            seq=row.seq,
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            payload=row.payload,
            idempotency_key=row.idempotency_key,
            status=row.status,
            attempts=row.attempts,
            last_error=row.last_error,
        )


class LocalLedger:
    """Durable local store for one device."""

    def __init__(self, url: str = "sqlite:///pharmasync-ledger.sqlite3"):
        self.engine = create_engine(url)
        metadata.create_all(self.engine)
        with self.engine.begin() as conn:
            state = conn.execute(select(ledger_state.c.id)).first()
            if state is None:
                conn.execute(ledger_state.insert().values(id=1, cursor=0, watermark=None))

    # --- local writes ------------------------------------------------------

    def record(self, entity_type: str, payload: dict) -> int:
        """
        Store a local mutation and queue it for push.

        The canonical copy and the outbox entry are written in one
        transaction. Returns the outbox sequence number.
        """
        entity_id = payload.get("id")
        if not entity_id:
            raise ValueError(f"{entity_type} payload requires an id")

        key = str(uuid.uuid4())
        outgoing = copy.deepcopy(payload)
        outgoing["idempotencyKey"] = key
        now = utcnow()

        with self.engine.begin() as conn:
            self._upsert_entity(conn, entity_type, entity_id, payload, synced=False, now=now)
            result = conn.execute(
                ledger_outbox.insert().values(
                    entity_type=entity_type,
                    entity_id=entity_id,
                    payload=outgoing,
                    idempotency_key=key,
                    status=STATUS_PENDING,
                    attempts=0,
                    created_at=now,
                )
            )
            return result.inserted_primary_key[0]

    def _upsert_entity(self, conn, entity_type, entity_id, payload, *, synced: bool, now: datetime):
        key = (ledger_entities.c.entity_type == entity_type) & (ledger_entities.c.entity_id == entity_id)
        exists = conn.execute(select(ledger_entities.c.entity_id).where(key)).first()
        if exists:
            conn.execute(
                update(ledger_entities).where(key).values(payload=payload, synced=synced, updated_at=now)
            )
        else:
            conn.execute(
                ledger_entities.insert().values(
                    entity_type=entity_type,
                    entity_id=entity_id,
                    payload=payload,
                    synced=synced,
                    updated_at=now,
                )
            )

    # --- reads -------------------------------------------------------------

    def get(self, entity_type: str, entity_id: str) -> dict | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(ledger_entities.c.payload).where(
                    (ledger_entities.c.entity_type == entity_type)
                    & (ledger_entities.c.entity_id == entity_id)
                )
            ).first()
        return row.payload if row else None

    def is_synced(self, entity_type: str, entity_id: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(ledger_entities.c.synced).where(
                    (ledger_entities.c.entity_type == entity_type)
                    & (ledger_entities.c.entity_id == entity_id)
                )
            ).first()
        return bool(row and row.synced)

    @property
    def cursor(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(ledger_state.c.cursor).where(ledger_state.c.id == 1)).scalar_one()

    @property
    def watermark(self) -> datetime | None:
        with self.engine.connect() as conn:
            return conn.execute(select(ledger_state.c.watermark).where(ledger_state.c.id == 1)).scalar_one()

    def pending(self, limit: int = 500) -> list[OutboxEntry]:
        """PENDING entries past the cursor, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(ledger_outbox)
                .where(ledger_outbox.c.status == STATUS_PENDING)
                .where(ledger_outbox.c.seq > select(ledger_state.c.cursor).where(ledger_state.c.id == 1).scalar_subquery())
                .order_by(ledger_outbox.c.seq)
                .limit(limit)
            ).all()
        return [OutboxEntry.from_row(row) for row in rows]

    def rejected(self) -> list[OutboxEntry]:
        """Entries the server refused for good; these need an operator."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(ledger_outbox)
                .where(ledger_outbox.c.status == STATUS_REJECTED)
                .order_by(ledger_outbox.c.seq)
            ).all()
        return [OutboxEntry.from_row(row) for row in rows]

    # --- settlement (sync worker only) ------------------------------------

    def mark_synced(self, seqs: Iterable[int]) -> None:
        seqs = list(seqs)
        if not seqs:
            return
        now = utcnow()
        with self.engine.begin() as conn:
            conn.execute(
                update(ledger_outbox)
                .where(ledger_outbox.c.seq.in_(seqs))
                .values(status=STATUS_SYNCED, last_error=None)
            )
            entities = conn.execute(
                select(ledger_outbox.c.entity_type, ledger_outbox.c.entity_id)
                .where(ledger_outbox.c.seq.in_(seqs))
                .distinct()
            ).all()
            for entity_type, entity_id in entities:
                if self._has_pending(conn, entity_type, entity_id):
                    continue
                conn.execute(
                    update(ledger_entities)
                    .where(ledger_entities.c.entity_type == entity_type)
                    .where(ledger_entities.c.entity_id == entity_id)
                    .values(synced=True, updated_at=now)
                )

    def mark_failed(self, seq: int, error: str, permanent: bool = False) -> None:
        """Count a failed attempt; permanent failures leave the queue as REJECTED."""
        with self.engine.begin() as conn:
            values: dict[str, Any] = {
                "attempts": ledger_outbox.c.attempts + 1,
                "last_error": error,
            }
            if permanent:
                values["status"] = STATUS_REJECTED
            conn.execute(update(ledger_outbox).where(ledger_outbox.c.seq == seq).values(**values))

    def advance_cursor(self) -> int:
        """Move the cursor over the settled (non-PENDING) prefix of the outbox."""
        with self.engine.begin() as conn:
            cursor = conn.execute(
                select(ledger_state.c.cursor).where(ledger_state.c.id == 1)
            ).scalar_one()
            rows = conn.execute(
                select(ledger_outbox.c.seq, ledger_outbox.c.status)
                .where(ledger_outbox.c.seq > cursor)
                .order_by(ledger_outbox.c.seq)
            ).all()
            for seq, status in rows:
                if status == STATUS_PENDING:
                    break
                cursor = seq
            conn.execute(update(ledger_state).where(ledger_state.c.id == 1).values(cursor=cursor))
        return cursor

    def apply_pull(self, data: dict[str, list[dict]], server_time: str | datetime) -> int:
        """
        Absorb a pull response.

        Rows for entities with unpushed local edits are skipped: the local
        version is pushed first and the server decides. When anything was
        skipped the watermark stays where it is, so the next pull delivers
        those rows again. Returns the number of rows written.
        """
        if isinstance(server_time, str):
            server_time = parse_iso_datetime(server_time)
        with self.engine.begin() as conn:
            applied, skipped = self._absorb(conn, data)
            if not skipped:
                conn.execute(update(ledger_state).where(ledger_state.c.id == 1).values(watermark=server_time))
        return applied

    def apply_server_copies(self, data: dict[str, list[dict]]) -> int:
        """Replace local copies with the server versions a push kept."""
        with self.engine.begin() as conn:
            applied, _ = self._absorb(conn, data)
        return applied

    def _absorb(self, conn, data: dict[str, list[dict]]) -> tuple[int, int]:
        now = utcnow()
        applied = skipped = 0
        for entity_type, rows in data.items():
            for row in rows:
                entity_id = row.get("id")
                if not entity_id:
                    continue
                if self._has_pending(conn, entity_type, entity_id):
                    skipped += 1
                    continue
                self._upsert_entity(conn, entity_type, entity_id, row, synced=True, now=now)
                applied += 1
        return applied, skipped

    @staticmethod
    def _has_pending(conn, entity_type: str, entity_id: str) -> bool:
        return conn.execute(
            select(ledger_outbox.c.seq)
            .where(ledger_outbox.c.entity_type == entity_type)
            .where(ledger_outbox.c.entity_id == entity_id)
            .where(ledger_outbox.c.status == STATUS_PENDING)
            .limit(1)
        ).first() is not None
