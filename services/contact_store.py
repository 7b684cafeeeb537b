"""
Contact Store - persistence operations consumed by the reconciliation core
Every query excludes soft-deleted rows and returns contacts oldest first.
Driver failures are translated into the reconciliation error taxonomy.
"""

import functools
import logging
from typing import List, Optional

from sqlalchemy import select, or_, and_, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models.base import utcnow
from models.contact import Contact, LinkPrecedence
from services.errors import translate_store_error

logger = logging.getLogger(__name__)


def store_operation(method):
    """Translate SQLAlchemy failures raised inside a store method"""
    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        try:
            return await method(self, *args, **kwargs)
        except SQLAlchemyError as e:
            logger.error(f"Contact store operation {method.__name__} failed: {e}")
            raise translate_store_error(e, method.__name__) from e
    return wrapper


class ContactStore:
    """
    Contact persistence bound to one async session.
    The session's transaction boundary is owned by the caller.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    def _active(self):
        # Other sessions may have committed since these rows were last loaded
        return (
            select(Contact)
            .where(Contact.deleted_at.is_(None))
            .execution_options(populate_existing=True)
        )

    @staticmethod
    def _oldest_first(query):
        return query.order_by(Contact.created_at.asc(), Contact.id.asc())

    @store_operation
    async def get_by_id(self, contact_id: int) -> Optional[Contact]:
        result = await self.session.execute(self._active().where(Contact.id == contact_id))
        return result.scalar_one_or_none()

    @store_operation
    async def find_by_email_or_phone(
        self,
        email: Optional[str],
        phone: Optional[str]
    ) -> List[Contact]:
        """
        Find all contacts that match the provided email OR phone number
        """
        conditions = []
        if email:
            conditions.append(Contact.email == email)
        if phone:
            conditions.append(Contact.phone_number == phone)

        if not conditions:
            return []

        query = self._oldest_first(self._active().where(or_(*conditions)))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    @store_operation
    async def get_group_by_primary_id(self, primary_id: int) -> List[Contact]:
        """
        All contacts of the group anchored at primary_id, the primary included
        """
        query = self._oldest_first(
            self._active().where(or_(Contact.id == primary_id, Contact.linked_id == primary_id))
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    @store_operation
    async def insert(
        self,
        email: Optional[str],
        phone: Optional[str],
        linked_id: Optional[int] = None,
        precedence: LinkPrecedence = LinkPrecedence.PRIMARY
    ) -> Contact:
        now = utcnow()
        contact = Contact(
            email=email,
            phone_number=phone,
            linked_id=linked_id,
            link_precedence=LinkPrecedence(precedence).value,
            created_at=now,
            updated_at=now
        )
        self.session.add(contact)
        await self.session.flush()  # assigns the id
        logger.debug(f"Inserted {contact!r}")
        return contact

    @store_operation
    async def demote_to_secondary(self, contact_id: int, new_primary_id: int) -> Contact:
        result = await self.session.execute(
            select(Contact).where(Contact.id == contact_id).execution_options(populate_existing=True)
        )
        contact = result.scalar_one()

        contact.linked_id = new_primary_id
        contact.link_precedence = LinkPrecedence.SECONDARY.value
        contact.updated_at = utcnow()

        await self.session.flush()
        return contact

    @store_operation
    async def relink_children(self, old_primary_id: int, new_primary_id: int) -> List[Contact]:
        """
        Point every contact linked to old_primary_id at new_primary_id
        """
        result = await self.session.execute(
            select(Contact)
            .where(Contact.linked_id == old_primary_id)
            .execution_options(populate_existing=True)
        )
        children = list(result.scalars().all())

        now = utcnow()
        for child in children:
            child.linked_id = new_primary_id
            child.updated_at = now

        await self.session.flush()
        return children

    @store_operation
    async def find_exact(self, email: Optional[str], phone: Optional[str]) -> Optional[Contact]:
        """
        Exact match on the supplied fields; an omitted field must be NULL
        """
        if not email and not phone:
            return None

        email_condition = Contact.email == email if email else Contact.email.is_(None)
        phone_condition = Contact.phone_number == phone if phone else Contact.phone_number.is_(None)

        query = self._oldest_first(self._active().where(and_(email_condition, phone_condition)))
        result = await self.session.execute(query.limit(1))
        return result.scalars().first()

    @store_operation
    async def count(self) -> int:
        result = await self.session.execute(
            select(func.count(Contact.id)).where(Contact.deleted_at.is_(None))
        )
        return result.scalar_one()
