"""SQLite storage implementation."""

import json
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

import aiosqlite

from ..config import resolve_db_path
from ..errors import PersistenceError
from ..logging_config import get_logger
from ..models import StoredMessage, TraceEvent

logger = get_logger(__name__)

MAX_CONTENT_LENGTH = 10_000_000  # ~10 MB of text per message


class IConversationStore(Protocol):
    """Durable, append-only, per-job ordered log of events."""

    async def append(self, job_name: str, message: StoredMessage) -> None:
        """Append a message to the job's log, preserving arrival order."""
        ...

    async def count_by_type(
        self, job_name: str, build_number: int, event_type: str
    ) -> int:
        """Count stored messages of one event type for one build."""
        ...

    async def get_messages(self, job_name: str, limit: int = 100) -> list[StoredMessage]:
        """Get the most recent messages of a job, in arrival order."""
        ...


class IStorage(IConversationStore, Protocol):
    """Persistent storage for all pipeline data (SQLite)."""

    async def init(self) -> None:
        """Initialize database and create tables."""
        ...

    async def close(self) -> None:
        """Close database connection."""
        ...

    async def prune_old_messages(self, max_per_conversation: int) -> int:
        """Keep only the newest messages of every conversation."""
        ...

    async def save_trace_event(self, event: TraceEvent) -> None:
        """Save a trace event."""
        ...

    async def get_trace_events(
        self,
        after: datetime | None = None,
        event_types: list[str] | None = None,
        actor: str | None = None,
        limit: int = 100,
    ) -> list[TraceEvent]:
        """Get trace events with optional filters."""
        ...

    async def clear(self) -> None:
        """Clear all data."""
        ...


class Storage:
    """SQLite storage implementation."""

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            self._db_path = resolve_db_path()
        else:
            self._db_path = resolve_db_path(db_path)
        self._conn: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Initialize database and create tables."""
        self._conn = await aiosqlite.connect(self._db_path)

        schema_path = Path(__file__).parent / "schema.sql"
        with open(schema_path, "r", encoding="utf-8") as f:
            schema_sql = f.read()
        await self._conn.executescript(schema_sql)
        await self._conn.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _connection(self) -> aiosqlite.Connection:
        if not self._conn:
            raise PersistenceError("Storage not initialized")
        return self._conn

    # Conversation log
    async def append(self, job_name: str, message: StoredMessage) -> None:
        """Append a message to the job's log, preserving arrival order."""
        conn = self._connection()

        content = message.content
        if len(content) > MAX_CONTENT_LENGTH:
            logger.warning(
                "Truncating content for %s from %s to %s characters",
                job_name,
                len(content),
                MAX_CONTENT_LENGTH,
            )
            content = content[:MAX_CONTENT_LENGTH]

        msg_id = message.id or str(uuid.uuid4())
        metadata = {"build_number": message.build_number, **message.metadata}

        try:
            cursor = await conn.execute(
                """
                INSERT INTO conversation_messages
                (id, conversation_id, build_number, role, event_type, content, metadata, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    msg_id,
                    job_name,
                    message.build_number,
                    message.role,
                    message.event_type,
                    content,
                    json.dumps(metadata, default=str),
                    message.created_at.isoformat(),
                ),
            )
            await conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to append message for {job_name}: {e}") from e

        message.id = msg_id
        message.sequence = cursor.lastrowid

    async def count_by_type(
        self, job_name: str, build_number: int, event_type: str
    ) -> int:
        """Count stored messages of one event type for one build."""
        conn = self._connection()
        try:
            cursor = await conn.execute(
                """
                SELECT COUNT(*)
                FROM conversation_messages
                WHERE conversation_id = ? AND build_number = ? AND event_type = ?
                """,
                (job_name, build_number, event_type),
            )
            row = await cursor.fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(
                f"Failed to count {event_type} messages for {job_name}#{build_number}: {e}"
            ) from e
        return row[0] if row else 0

    async def get_messages(self, job_name: str, limit: int = 100) -> list[StoredMessage]:
        """Get the most recent messages of a job, in arrival order."""
        conn = self._connection()
        try:
            cursor = await conn.execute(
                """
                SELECT sequence, id, conversation_id, build_number, role,
                       event_type, content, metadata, created_at
                FROM conversation_messages
                WHERE conversation_id = ?
                ORDER BY sequence DESC
                LIMIT ?
                """,
                (job_name, limit),
            )
            rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to read messages for {job_name}: {e}") from e

        return [
            StoredMessage(
                sequence=row[0],
                id=row[1],
                conversation_id=row[2],
                build_number=row[3],
                role=row[4],
                event_type=row[5],
                content=row[6],
                metadata=json.loads(row[7]),
                created_at=_parse_stored_datetime(row[8]),
            )
            for row in reversed(rows)
        ]

    async def get_conversation_ids(self) -> list[str]:
        """Get every job name that has stored messages."""
        conn = self._connection()
        cursor = await conn.execute(
            "SELECT DISTINCT conversation_id FROM conversation_messages"
        )
        rows = await cursor.fetchall()
        return [row[0] for row in rows]

    async def prune_old_messages(self, max_per_conversation: int) -> int:
        """Keep only the newest messages of every conversation."""
        if max_per_conversation <= 0:
            raise ValueError("max_per_conversation must be positive")

        conn = self._connection()
        deleted = 0
        for conversation_id in await self.get_conversation_ids():
            cursor = await conn.execute(
                """
                DELETE FROM conversation_messages
                WHERE conversation_id = ? AND sequence NOT IN (
                    SELECT sequence FROM conversation_messages
                    WHERE conversation_id = ?
                    ORDER BY sequence DESC
                    LIMIT ?
                )
                """,
                (conversation_id, conversation_id, max_per_conversation),
            )
            deleted += cursor.rowcount
        await conn.commit()
        return deleted

    # TraceEvents
    async def save_trace_event(self, event: TraceEvent) -> None:
        """Save a trace event."""
        conn = self._connection()

        await conn.execute(
            """
            INSERT INTO trace_events (id, event_type, actor, data, timestamp)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                event.id or str(uuid.uuid4()),
                event.event_type,
                event.actor,
                json.dumps(event.data, default=str),
                event.timestamp.isoformat(),
            ),
        )
        await conn.commit()

    async def get_trace_events(
        self,
        after: datetime | None = None,
        event_types: list[str] | None = None,
        actor: str | None = None,
        limit: int = 100,
    ) -> list[TraceEvent]:
        """Get trace events with optional filters (newest first)."""
        conn = self._connection()

        conditions = []
        params: list = []

        if after:
            conditions.append("timestamp > ?")
            params.append(_as_utc(after).isoformat())
        if event_types:
            placeholders = ",".join("?" * len(event_types))
            conditions.append(f"event_type IN ({placeholders})")
            params.extend(event_types)
        if actor:
            conditions.append("actor = ?")
            params.append(actor)

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        query = f"""
            SELECT id, event_type, actor, data, timestamp
            FROM trace_events
            {where_clause}
            ORDER BY timestamp DESC
            LIMIT ?
        """
        params.append(limit)

        cursor = await conn.execute(query, params)
        rows = await cursor.fetchall()

        return [
            TraceEvent(
                id=row[0],
                event_type=row[1],
                actor=row[2],
                data=json.loads(row[3]),
                timestamp=_parse_stored_datetime(row[4]),
            )
            for row in rows
        ]

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        conn = self._connection()

        for table in ["conversation_messages", "trace_events"]:
            await conn.execute(f"DELETE FROM {table}")

        await conn.commit()


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_stored_datetime(value: str) -> datetime:
    return _as_utc(datetime.fromisoformat(value))
