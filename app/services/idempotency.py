"""
Inbound idempotency: claim each (provider, message_id) once.

Providers redeliver webhooks; the claim is an insert-or-ignore on
processed_messages, so only the first delivery of a message is processed.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.constants.providers import PROVIDER_INFOBIP
from app.db.helpers import conflict_insert
from app.db.models import ProcessedMessage

logger = logging.getLogger(__name__)


class InboundDeduplicator:
    def __init__(self, session_factory: sessionmaker, provider: str = PROVIDER_INFOBIP):
        self._session_factory = session_factory
        self.provider = provider

    def claim(self, message_id: str, user_id: int | None = None) -> bool:
        """Return True if this delivery is the first for message_id, False for a duplicate."""
        with self._session_factory() as db:
            try:
                stmt = (
                    conflict_insert(db, ProcessedMessage)
                    .values(provider=self.provider, message_id=message_id, user_id=user_id)
                    .on_conflict_do_nothing(
                        index_elements=[ProcessedMessage.provider, ProcessedMessage.message_id]
                    )
                    .returning(ProcessedMessage.id)
                )
                claimed = db.execute(stmt).scalar_one_or_none() is not None
                db.commit()
            except SQLAlchemyError:
                db.rollback()
                raise
        if not claimed:
            logger.info(f"inbound.duplicate provider={self.provider} message_id={message_id}")
        return claimed
