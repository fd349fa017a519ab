"""
Message Store

Generic create / read-many / update access to the ``messages`` table, plus
profile lookup used to label conversations. Every write is published on the
change feed so live subscribers see it.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from volunteerhub.models.message import Message
from volunteerhub.models.user import User
from volunteerhub.realtime.feed import ChangeFeed, INSERT, UPDATE
from volunteerhub.realtime.filters import Filter
from volunteerhub.utils.metrics import metrics_collector

logger = logging.getLogger(__name__)

MESSAGES_TABLE = Message.__tablename__

WRITABLE_FIELDS = {"sender_id", "recipient_id", "body", "is_read"}
PATCHABLE_FIELDS = {"is_read"}


class StoreError(Exception):
    """Raised when the store cannot complete an operation."""
    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


def to_record(message: Message) -> Dict[str, Any]:
    """Serialize a message the way the store returns it (zone-less UTC timestamps)."""
    return message.model_dump(mode="json")


class MessageStore:
    """Store facade over a SQLModel engine."""

    def __init__(self, engine, feed: Optional[ChangeFeed] = None):
        self.engine = engine
        self.feed = feed

    def _session(self) -> Session:
        return Session(self.engine, expire_on_commit=False)

    def _publish(self, event: str, message: Message):
        if self.feed is not None:
            self.feed.publish(MESSAGES_TABLE, event, to_record(message))

    @metrics_collector.time_operation("store_create_seconds")
    async def create(self, record: Dict[str, Any]) -> Message:
        """
        Insert one message and return it with its persisted id.

        Raises:
            StoreError: If the record is invalid or the write fails
        """
        unknown = set(record) - WRITABLE_FIELDS
        if unknown:
            raise StoreError(
                code="INVALID_RECORD",
                message="Record contains unknown fields",
                details={"fields": sorted(unknown)}
            )
        if not record.get("sender_id") or not record.get("recipient_id"):
            raise StoreError(code="INVALID_RECORD", message="sender_id and recipient_id are required")

        message = Message(
            sender_id=record["sender_id"],
            recipient_id=record["recipient_id"],
            body=record.get("body", ""),
            is_read=bool(record.get("is_read", False)),
        )
        with self._session() as session:
            try:
                session.add(message)
                session.commit()
                session.refresh(message)
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"Failed to create message: {str(e)}", exc_info=True)
                raise StoreError(code="WRITE_FAILED", message="Could not create message") from e

        self._publish(INSERT, message)
        return message

    @metrics_collector.time_operation("store_read_seconds")
    async def read_many(
        self,
        filter: Optional[Filter] = None,
        order_by: str = "created_at",
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Message]:
        """
        Read all messages matching ``filter``.

        Raises:
            StoreError: If the query fails
        """
        column = getattr(Message, order_by)
        statement = select(Message)
        if filter is not None:
            statement = statement.where(filter.to_clause(Message))
        if descending:
            statement = statement.order_by(column.desc(), Message.id.desc())
        else:
            statement = statement.order_by(column, Message.id)
        if limit:
            statement = statement.limit(limit)

        with self._session() as session:
            try:
                return list(session.exec(statement).all())
            except SQLAlchemyError as e:
                logger.error(f"Failed to read messages: {str(e)}", exc_info=True)
                raise StoreError(code="READ_FAILED", message="Could not load messages") from e

    @metrics_collector.time_operation("store_update_seconds")
    async def update(self, filter: Filter, patch: Dict[str, Any]) -> List[Message]:
        """
        Apply ``patch`` to every message matching ``filter``.

        Returns:
            The messages that changed

        Raises:
            StoreError: If the patch is not allowed or the write fails
        """
        illegal = set(patch) - PATCHABLE_FIELDS
        if illegal:
            raise StoreError(
                code="INVALID_PATCH",
                message="Only read state can be updated",
                details={"fields": sorted(illegal)}
            )
        if patch.get("is_read") is False:
            raise StoreError(code="INVALID_PATCH", message="Read state cannot be reverted")

        changed: List[Message] = []
        with self._session() as session:
            try:
                rows = session.exec(select(Message).where(filter.to_clause(Message))).all()
                for row in rows:
                    if all(getattr(row, key) == value for key, value in patch.items()):
                        continue
                    for key, value in patch.items():
                        setattr(row, key, value)
                    session.add(row)
                    changed.append(row)
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"Failed to update messages: {str(e)}", exc_info=True)
                raise StoreError(code="WRITE_FAILED", message="Could not update messages") from e

        for message in changed:
            self._publish(UPDATE, message)
        return changed

    async def get_profiles(self, user_ids: Iterable[str]) -> Dict[str, User]:
        """Look up profiles by id. Unknown ids are simply absent from the result."""
        ids = list(set(user_ids))
        if not ids:
            return {}
        with self._session() as session:
            try:
                users = session.exec(select(User).where(User.id.in_(ids))).all()
            except SQLAlchemyError as e:
                logger.error(f"Failed to load profiles: {str(e)}", exc_info=True)
                raise StoreError(code="READ_FAILED", message="Could not load profiles") from e
        return {user.id: user for user in users}
