"""
Context Store - named shared data with an access list and optional expiry.

Expiry is lazy: an expired context stays in storage and reads fail with
ExpiredError until it is shared again. ``purge_expired`` is an explicit
administrative sweep and never runs on its own.
"""

import json
import logging
from datetime import timedelta
from typing import Any, Callable, Iterable, Optional

from ailink.coordination.models import Context, from_iso, to_iso, utcnow
from ailink.database.persistence import Store
from ailink.errors import ExpiredError, NotFoundError, UnauthorizedError, ValidationError

logger = logging.getLogger("ailink.coordination.context")


class ContextStore:
    """Store-backed shared contexts."""

    def __init__(self, store: Store, clock: Callable = utcnow):
        self.store = store
        self._clock = clock

    def share(
        self,
        context_id: str,
        data: Any,
        authorized_ids: Optional[Iterable[str]] = None,
        ttl_seconds: Optional[float] = None,
    ) -> Context:
        """
        Create or overwrite a context.

        Args:
            context_id: Context name
            data: Any JSON-serialisable value
            authorized_ids: Agents allowed to read; empty means public
            ttl_seconds: Lifetime; None means it never expires
        """
        if not context_id:
            raise ValidationError("Context id is required")
        if ttl_seconds is not None:
            if isinstance(ttl_seconds, bool) or not isinstance(ttl_seconds, (int, float)):
                raise ValidationError("ttlSeconds must be a number", {"contextId": context_id})
            if ttl_seconds < 0:
                raise ValidationError("ttlSeconds cannot be negative", {"contextId": context_id})
        if isinstance(authorized_ids, str):
            authorized_ids = [authorized_ids]
        try:
            encoded = json.dumps(data)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Context data is not JSON-serialisable: {e}", {"contextId": context_id})

        now = self._clock()
        context = Context(
            id=context_id,
            data=data,
            authorized_ids=frozenset(authorized_ids or ()),
            created_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds) if ttl_seconds is not None else None,
        )

        with self.store.guard.transaction() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO contexts (id, data, authorized_ids, created_at, expires_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    context.id,
                    encoded,
                    json.dumps(sorted(context.authorized_ids)),
                    to_iso(context.created_at),
                    to_iso(context.expires_at),
                ),
            )

        scope = "public" if context.is_public else f"{len(context.authorized_ids)} readers"
        logger.info(f"Shared context {context_id} ({scope}, expires {to_iso(context.expires_at)})")
        return context

    def _load(self, context_id: str) -> Context:
        with self.store.guard.read() as conn:
            row = conn.execute("SELECT * FROM contexts WHERE id = ?", (context_id,)).fetchone()
        if row is None:
            raise NotFoundError("Context", context_id)
        return Context.from_row(row)

    def get(self, context_id: str, requester_id: Optional[str]) -> Any:
        """
        Read a context's data.

        Raises:
            NotFoundError: no such context
            UnauthorizedError: access list is non-empty and lacks the requester
            ExpiredError: past its expiry time (record is kept)
        """
        context = self._load(context_id)
        if not context.allows(requester_id):
            logger.warning(f"Agent {requester_id} denied access to context {context_id}")
            raise UnauthorizedError(
                f"Agent '{requester_id}' is not authorized to read context '{context_id}'",
                {"contextId": context_id, "requesterId": requester_id},
            )
        if context.is_expired(self._clock()):
            raise ExpiredError(
                f"Context '{context_id}' expired at {to_iso(context.expires_at)}",
                {"contextId": context_id, "expiresAt": to_iso(context.expires_at)},
            )
        return context.data

    def delete(self, context_id: str) -> bool:
        with self.store.guard.transaction() as conn:
            cursor = conn.execute("DELETE FROM contexts WHERE id = ?", (context_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info(f"Deleted context {context_id}")
        return deleted

    def purge_expired(self) -> int:
        """Delete every context past its expiry. Returns the number removed."""
        now = self._clock()
        with self.store.guard.transaction() as conn:
            rows = conn.execute(
                "SELECT id, expires_at FROM contexts WHERE expires_at IS NOT NULL"
            ).fetchall()
            expired = [
                row["id"] for row in rows
                if now > from_iso(row["expires_at"])
            ]
            conn.executemany("DELETE FROM contexts WHERE id = ?", [(cid,) for cid in expired])
        if expired:
            logger.info(f"Purged {len(expired)} expired contexts")
        return len(expired)
