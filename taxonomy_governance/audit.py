"""
Decision Audit Spine
Append-only record of evaluations and lifecycle transitions.

Optional: the gateway only constructs an AuditSpineManager when
AUDIT_ENABLED is set. Lifecycle events carry the id of the review or
draft group they concern, so one entry's history (initiated, evaluated,
resolved) can be read back in order.
"""

from __future__ import annotations

import json
import time
from typing import Any, Optional

import psycopg2
import psycopg2.errors

from taxonomy_governance.config import CONFIG

POLICY_VERSION = "1.0.0"
MAX_WRITE_ATTEMPTS = 3

_COLUMNS = (
    "id", "created_at", "actor_id", "action_type", "entry_id",
    "payload", "policy_version", "event_hash", "previous_event_hash",
)
_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM taxonomy_events"

# Concurrent writers race for the same previous_event_hash in the chain trigger
_RETRYABLE = (psycopg2.errors.UniqueViolation, psycopg2.errors.DeadlockDetected)


def _as_event(row: tuple) -> dict[str, Any]:
    event = dict(zip(_COLUMNS, row))
    event["id"] = str(event["id"])
    return event


class AuditSpineManager:
    """
    Append-only writer for the taxonomy_events table.

    The decision service and the lifecycle manager share one instance so
    that evaluations and the user's resolution of them land in one ledger.
    """

    def __init__(self, db_config: dict | None = None):
        self._db_config = db_config or CONFIG.audit_db

    def _connect(self):
        return psycopg2.connect(**self._db_config)

    def _fetch(self, sql: str, params: tuple) -> list[tuple]:
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(sql, params)
            rows = cur.fetchall()
            cur.close()
            return rows
        finally:
            conn.close()

    # -- reads ---------------------------------------------------------------

    def get_event(self, event_id: str) -> Optional[dict[str, Any]]:
        rows = self._fetch(f"{_SELECT} WHERE id = %s", (event_id,))
        return _as_event(rows[0]) if rows else None

    def list_events(self, action_prefix: str = "", limit: int = 100) -> list[dict[str, Any]]:
        """Most recent events first, optionally filtered by action type prefix."""
        rows = self._fetch(
            f"{_SELECT} WHERE action_type LIKE %s ORDER BY created_at DESC LIMIT %s",
            (action_prefix + "%", limit),
        )
        return [_as_event(row) for row in rows]

    def events_for_entry(self, entry_id: str) -> list[dict[str, Any]]:
        """History of one review or draft group, oldest first."""
        rows = self._fetch(f"{_SELECT} WHERE entry_id = %s ORDER BY created_at ASC", (entry_id,))
        return [_as_event(row) for row in rows]

    # -- writes --------------------------------------------------------------

    def log_event(
        self,
        actor_id: str,
        action_type: str,
        intent_payload: dict[str, Any],
        policy_version: str = POLICY_VERSION,
    ) -> str:
        """
        Append an event and return its id.

        `intent_payload["entry_id"]`, when present, is also stored in its
        own column. Hash chaining happens in a PostgreSQL trigger; a write
        that loses the race for the chain head is retried.
        """
        params = (
            actor_id,
            action_type,
            intent_payload.get("entry_id"),
            json.dumps(intent_payload, default=str),
            policy_version,
        )
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            conn = self._connect()
            try:
                cur = conn.cursor()
                cur.execute(
                    "INSERT INTO taxonomy_events "
                    "(actor_id, action_type, entry_id, payload, policy_version) "
                    "VALUES (%s, %s, %s, %s, %s) RETURNING id",
                    params,
                )
                event_id = str(cur.fetchone()[0])
                conn.commit()
                cur.close()
                return event_id
            except _RETRYABLE:
                conn.rollback()
                if attempt == MAX_WRITE_ATTEMPTS:
                    raise
                time.sleep(0.05 * attempt)
            finally:
                conn.close()
        raise RuntimeError("log_event: exhausted retries")
