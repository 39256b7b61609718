"""
Durable outbox - mutations that could not reach the network.
A record exists here if and only if its server write has not been acknowledged.
"""

import asyncio
import json
import uuid
from datetime import datetime
from typing import Any, List, Optional, Union

from pydantic import BaseModel

from .config import OUTBOX_DB_PATH
from .db import COLLECTIONS, StorageUnavailable, get_db, health_check, init_outbox_schema
from .schema import PendingMutation, ResourceKind, utcnow
from ..api.schemas import payload_model_for, payload_to_dict
from ..util.logging import logger

_COLUMNS = "id, client_ref, resource_kind, payload, created_at, attempt_count, last_error, last_attempt_at"


def _table_for(resource_kind: Union[ResourceKind, str]) -> str:
    kind = ResourceKind(resource_kind).value
    return COLLECTIONS[kind]


def _row_to_mutation(row) -> PendingMutation:
    id_, client_ref, kind, payload, created_at, attempts, last_error, last_attempt_at = row
    model = payload_model_for(kind)
    return PendingMutation(
        id=id_,
        resource_kind=ResourceKind(kind),
        payload=model.model_validate(json.loads(payload)),
        created_at=datetime.fromisoformat(created_at),
        attempt_count=attempts,
        client_ref=client_ref,
        last_error=last_error,
        last_attempt_at=datetime.fromisoformat(last_attempt_at) if last_attempt_at else None,
    )


class OutboxStore:
    """SQLite-backed outbox with one collection per resource kind.

    All public methods are coroutines; the blocking SQLite work runs in a
    worker thread so the event loop is never held by storage I/O.
    """

    def __init__(self, db_path: str = None):
        self.db_path = db_path or OUTBOX_DB_PATH
        self.available = False

    async def init(self):
        """Create the schema. Raises StorageUnavailable if the engine cannot be used."""
        await asyncio.to_thread(init_outbox_schema, self.db_path)
        self.available = True
        logger.log_operation("outbox.init", "success", {"db_path": self.db_path})

    async def teardown(self):
        self.available = False

    async def enqueue(self, resource_kind: Union[ResourceKind, str], payload: Union[BaseModel, dict]) -> PendingMutation:
        """Persist a mutation and return it. Does not touch the network.

        Once this returns, the mutation survives a process restart until
        remove() is called for its id.
        """
        kind = ResourceKind(resource_kind)
        model = payload_model_for(kind.value)
        if not isinstance(payload, model):
            payload = model.model_validate(payload)

        mutation = PendingMutation(
            id=0,
            resource_kind=kind,
            payload=payload,
            created_at=utcnow(),
            attempt_count=0,
            client_ref=str(uuid.uuid4()),
        )

        try:
            mutation.id = await asyncio.to_thread(self._insert, mutation)
        except StorageUnavailable as e:
            logger.log_outbox_operation("enqueue", None, kind.value, status="unavailable", details={"error": str(e)})
            raise

        logger.log_outbox_operation("enqueue", mutation.id, kind.value)
        return mutation

    def _insert(self, mutation: PendingMutation) -> int:
        table = _table_for(mutation.resource_kind)
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("INSERT INTO outbox_sequence (collection) VALUES (?)", (table,))
            mutation_id = cursor.lastrowid
            # AUTOINCREMENT keeps the high-water mark in sqlite_sequence
            cursor.execute("DELETE FROM outbox_sequence WHERE id = ?", (mutation_id,))
            cursor.execute(
                f"INSERT INTO {table} ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    mutation_id,
                    mutation.client_ref,
                    mutation.resource_kind.value,
                    json.dumps(payload_to_dict(mutation.payload)),
                    mutation.created_at.isoformat(),
                    0,
                    None,
                    None,
                )
            )
            conn.commit()
        return mutation_id

    async def list_pending(self, resource_kind: Optional[Union[ResourceKind, str]] = None) -> List[PendingMutation]:
        """Return stored mutations in insertion order, optionally for one kind."""
        return await asyncio.to_thread(self._select, resource_kind)

    def _select(self, resource_kind) -> List[PendingMutation]:
        if resource_kind is not None:
            query = f"SELECT {_COLUMNS} FROM {_table_for(resource_kind)} ORDER BY id"
        else:
            query = " UNION ALL ".join(
                f"SELECT {_COLUMNS} FROM {table}" for table in COLLECTIONS.values()
            ) + " ORDER BY id"

        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(query)
            return [_row_to_mutation(row) for row in cursor.fetchall()]

    async def remove(self, mutation_id: int) -> bool:
        """Delete a record by id. Removing an absent id is not an error; returns whether a row went away."""
        removed = await asyncio.to_thread(self._delete, mutation_id)
        logger.log_outbox_operation("remove", mutation_id, status="success" if removed else "absent")
        return removed

    def _delete(self, mutation_id: int) -> bool:
        removed = 0
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            for table in COLLECTIONS.values():
                cursor.execute(f"DELETE FROM {table} WHERE id = ?", (mutation_id,))
                removed += cursor.rowcount
            conn.commit()
        return removed > 0

    async def record_failure(self, mutation: PendingMutation, error: str) -> PendingMutation:
        """Count a failed replay attempt; the record stays in the outbox."""
        attempted_at = utcnow()
        await asyncio.to_thread(self._bump_attempts, mutation, error, attempted_at)
        mutation.attempt_count += 1
        mutation.last_error = error
        mutation.last_attempt_at = attempted_at
        logger.log_outbox_operation("attempt", mutation.id, mutation.resource_kind.value, status="failed",
                                    details={"attempt_count": mutation.attempt_count, "error": error[:120]})
        return mutation

    def _bump_attempts(self, mutation: PendingMutation, error: str, attempted_at: datetime):
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"UPDATE {_table_for(mutation.resource_kind)} "
                "SET attempt_count = attempt_count + 1, last_error = ?, last_attempt_at = ? WHERE id = ?",
                (error[:500], attempted_at.isoformat(), mutation.id)
            )
            conn.commit()

    async def count(self, resource_kind: Optional[Union[ResourceKind, str]] = None) -> int:
        """Count pending mutations, optionally for one kind."""
        return await asyncio.to_thread(self._count, resource_kind)

    def _count(self, resource_kind) -> int:
        tables = [_table_for(resource_kind)] if resource_kind is not None else list(COLLECTIONS.values())
        total = 0
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            for table in tables:
                cursor.execute(f"SELECT COUNT(*) FROM {table}")
                total += cursor.fetchone()[0]
        return total

    async def clear(self, resource_kind: Optional[Union[ResourceKind, str]] = None) -> int:
        """Drop pending mutations (operations tooling only). Returns how many were dropped."""
        dropped = await asyncio.to_thread(self._clear, resource_kind)
        logger.log_outbox_operation("clear", None, ResourceKind(resource_kind).value if resource_kind else None,
                                    details={"dropped": dropped})
        return dropped

    def _clear(self, resource_kind) -> int:
        tables = [_table_for(resource_kind)] if resource_kind is not None else list(COLLECTIONS.values())
        dropped = 0
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            for table in tables:
                cursor.execute(f"DELETE FROM {table}")
                dropped += cursor.rowcount
            conn.commit()
        return dropped

    def health_check(self) -> bool:
        return health_check(self.db_path, ["outbox_sequence"] + list(COLLECTIONS.values()))
