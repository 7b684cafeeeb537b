"""Builders and assertions shared across the test modules."""

from datetime import datetime, timedelta

from sqlalchemy import select

from models import Contact

T0 = datetime(2026, 1, 1, 12, 0, 0)


def make_contact(contact_id, email=None, phone=None, linked_id=None, minutes=0):
    """Detached Contact created `minutes` after T0"""
    return Contact(
        id=contact_id,
        email=email,
        phone_number=phone,
        linked_id=linked_id,
        link_precedence="secondary" if linked_id else "primary",
        created_at=T0 + timedelta(minutes=minutes),
        updated_at=T0 + timedelta(minutes=minutes),
    )


async def all_contacts(db_manager):
    async with db_manager.get_session() as db_session:
        result = await db_session.execute(select(Contact).order_by(Contact.id))
        return list(result.scalars().all())


def assert_identity_graph_consistent(contacts):
    """Depth-1 forest: secondaries point at live primaries, primaries point nowhere"""
    by_id = {c.id: c for c in contacts}
    for contact in contacts:
        if contact.is_primary():
            assert contact.linked_id is None
        else:
            target = by_id[contact.linked_id]
            assert target.is_primary(), f"{contact!r} links to secondary {target!r}"
            assert target.linked_id is None
