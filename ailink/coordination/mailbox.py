"""
Mailbox - per-recipient ordered message log.

Messages are appended with a monotonically increasing sequence id and
returned in that order. The only mutation after send is flipping ``read``
from false to true.
"""

import json
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from ailink.coordination.models import Message, MessageKind, to_iso, utcnow
from ailink.database.persistence import Store
from ailink.errors import NotFoundError, ValidationError

logger = logging.getLogger("ailink.coordination.mailbox")


class Mailbox:
    """Store-backed message log."""

    def __init__(self, store: Store, clock: Callable = utcnow):
        self.store = store
        self._clock = clock

    def send(
        self,
        from_id: str,
        to_id: str,
        body: str,
        kind: Union[MessageKind, str] = MessageKind.REQUEST,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Message:
        """
        Append a message for ``to_id``.

        Raises:
            NotFoundError: recipient is not registered; nothing is stored
            ValidationError: missing sender or unknown kind
        """
        if not from_id:
            raise ValidationError("Sender id is required")
        if not to_id:
            raise ValidationError("Recipient id is required")
        if not isinstance(body, str):
            raise ValidationError("Message body must be a string", {"to": to_id})
        if metadata is not None and not isinstance(metadata, dict):
            raise ValidationError("Message metadata must be an object", {"to": to_id})
        kind = MessageKind.parse(kind)
        sent_at = self._clock()
        metadata = metadata or {}

        with self.store.guard.transaction() as conn:
            recipient = conn.execute("SELECT 1 FROM agents WHERE id = ?", (to_id,)).fetchone()
            if recipient is None:
                raise NotFoundError("Agent", to_id)
            cursor = conn.execute(
                """
                INSERT INTO messages (from_id, to_id, body, kind, metadata, sent_at, read)
                VALUES (?, ?, ?, ?, ?, ?, 0)
                """,
                (from_id, to_id, body, kind.value, json.dumps(metadata, default=str), to_iso(sent_at)),
            )
            sequence_id = cursor.lastrowid

        logger.debug(f"Message #{sequence_id} {kind.value} {from_id} -> {to_id}")
        return Message(
            sequence_id=sequence_id,
            from_id=from_id,
            to_id=to_id,
            body=body,
            kind=kind,
            metadata=metadata,
            sent_at=sent_at,
            read=False,
        )

    def read(
        self,
        for_id: str,
        unread_only: bool = False,
        mark_as_read: bool = False,
    ) -> List[Message]:
        """
        Messages addressed to ``for_id`` in send order.

        With ``mark_as_read`` exactly the returned messages are flipped to
        read in the same transaction. The returned list is the snapshot taken
        before the flip.
        """
        if not for_id:
            raise ValidationError("Recipient id is required")

        query = "SELECT * FROM messages WHERE to_id = ?"
        if unread_only:
            query += " AND read = 0"
        query += " ORDER BY sequence_id"

        section = self.store.guard.transaction if mark_as_read else self.store.guard.read
        with section() as conn:
            messages = [Message.from_row(row) for row in conn.execute(query, (for_id,))]
            to_mark = [m.sequence_id for m in messages if not m.read]
            if mark_as_read and to_mark:
                conn.executemany(
                    "UPDATE messages SET read = 1 WHERE sequence_id = ?",
                    [(seq,) for seq in to_mark],
                )

        if mark_as_read and to_mark:
            logger.debug(f"Marked {len(to_mark)} messages read for {for_id}")
        return messages

    def unread_count(self, for_id: str) -> int:
        with self.store.guard.read() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM messages WHERE to_id = ? AND read = 0", (for_id,)
            ).fetchone()
        return row[0]
