"""
Contact registry: phone number -> stable user id.

Registration is a single INSERT ... ON CONFLICT (phone) DO NOTHING RETURNING id, so
concurrent deliveries for the same new phone create one row and exactly one of them
reports was_new=True.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.core.errors import ContactNotFound, InvalidPhone
from app.db.helpers import conflict_insert
from app.db.models import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Registration:
    user_id: int
    was_new: bool


@dataclass(frozen=True)
class Contact:
    user_id: int
    phone: str


class ContactRegistry:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def register_if_absent(self, phone: str) -> Registration:
        """
        Register phone if unseen.

        Raises:
            InvalidPhone: phone is empty or not a string
            SQLAlchemyError: database failure (transaction rolled back)
        """
        if not isinstance(phone, str) or not phone.strip():
            raise InvalidPhone(phone)

        with self._session_factory() as db:
            try:
                stmt = (
                    conflict_insert(db, User)
                    .values(phone=phone)
                    .on_conflict_do_nothing(index_elements=[User.phone])
                    .returning(User.id)
                )
                new_id = db.execute(stmt).scalar_one_or_none()
                if new_id is not None:
                    db.commit()
                    logger.info(f"contact.registered user_id={new_id}")
                    return Registration(user_id=new_id, was_new=True)

                existing_id = db.execute(select(User.id).where(User.phone == phone)).scalar_one()
                db.commit()
                return Registration(user_id=existing_id, was_new=False)
            except SQLAlchemyError:
                db.rollback()
                raise

    def lookup_id(self, phone: str) -> int:
        with self._session_factory() as db:
            user_id = db.execute(select(User.id).where(User.phone == phone)).scalar_one_or_none()
        if user_id is None:
            raise ContactNotFound(phone)
        return user_id

    def list_phones(self) -> list[str]:
        """Registered phones in registry order (ascending user id)."""
        return [contact.phone for contact in self.list_contacts()]

    def list_contacts(self) -> list[Contact]:
        with self._session_factory() as db:
            rows = db.execute(select(User.id, User.phone).order_by(User.id)).all()
        return [Contact(user_id=row.id, phone=row.phone) for row in rows]
