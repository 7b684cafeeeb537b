"""
Contact model for Identity Reconciliation API
This module defines the Contact database model for storing customer
contact information and managing identity linking relationships.
Supports primary/secondary contact hierarchy and soft delete functionality.
"""

import enum

from sqlalchemy import Column, String, Integer, ForeignKey, Index, CheckConstraint
from .base import BaseModel


class LinkPrecedence(str, enum.Enum):
    """Role of a contact inside its identity group"""
    PRIMARY = "primary"
    SECONDARY = "secondary"


class Contact(BaseModel):
    """
    Contact model representing customer contact information

    Stores email and phone number data with linking relationships
    to support identity reconciliation. Each contact is either
    'primary' (anchors an identity group) or 'secondary' (linked
    directly to the primary of its group).

    Database Table: contacts
    """
    __tablename__ = "contacts"

    # Contact information fields - at least one must be provided
    phone_number = Column(
        String(20),
        nullable=True,
        index=True,
        comment="Customer phone number as submitted"
    )

    email = Column(
        String(255),
        nullable=True,
        index=True,
        comment="Customer email address"
    )

    # Identity linking fields
    linked_id = Column(
        Integer,
        ForeignKey("contacts.id"),
        nullable=True,
        index=True,
        comment="ID of the primary contact this secondary contact links to"
    )

    link_precedence = Column(
        String(10),
        nullable=False,
        default=LinkPrecedence.PRIMARY.value,
        comment="Either 'primary' (independent contact) or 'secondary' (linked contact)"
    )

    # Database constraints
    __table_args__ = (
        CheckConstraint(
            link_precedence.in_([LinkPrecedence.PRIMARY.value, LinkPrecedence.SECONDARY.value]),
            name="valid_link_precedence"
        ),

        CheckConstraint(
            "(phone_number IS NOT NULL) OR (email IS NOT NULL)",
            name="contact_info_required"
        ),

        CheckConstraint(
            "(link_precedence = 'primary' AND linked_id IS NULL) OR "
            "(link_precedence = 'secondary' AND linked_id IS NOT NULL)",
            name="secondary_must_have_linked_id"
        ),

        Index("ix_contact_email_phone", email, phone_number),
        Index("ix_contact_precedence_linked", link_precedence, linked_id),
    )

    def __repr__(self):
        contact_info = []
        if self.email:
            contact_info.append(f"email={self.email}")
        if self.phone_number:
            contact_info.append(f"phone={self.phone_number}")

        return (
            f"<Contact(id={self.id}, "
            f"{', '.join(contact_info)}, "
            f"precedence={self.link_precedence}, linked_id={self.linked_id})>"
        )

    def is_primary(self):
        return self.link_precedence == LinkPrecedence.PRIMARY.value

    def is_secondary(self):
        return self.link_precedence == LinkPrecedence.SECONDARY.value

    def age_key(self):
        """
        Ordering key for "oldest wins": creation time, ties broken by id
        so the outcome is reproducible
        """
        return (self.created_at, self.id)

    def matches(self, email, phone):
        """True when every supplied field equals this contact's value"""
        if email and self.email != email:
            return False
        if phone and self.phone_number != phone:
            return False
        return bool(email or phone)

