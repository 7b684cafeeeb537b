"""
Response Builder - flattens a committed identity group into the API shape
"""

import logging
from typing import List

from schemas.identify import ContactResponse, IdentifyResponse
from services.contact_store import ContactStore
from services.errors import InvariantViolation

logger = logging.getLogger(__name__)


def _append_unique(values: List[str], value):
    if value and value not in values:
        values.append(value)


class ResponseBuilder:
    """
    Reads the group back from the store rather than trusting in-memory
    state, so the response reflects what was committed
    """

    def __init__(self, store: ContactStore):
        self.store = store

    async def build(self, primary_id: int) -> IdentifyResponse:
        members = await self.store.get_group_by_primary_id(primary_id)

        primaries = [c for c in members if c.is_primary()]
        if len(primaries) != 1 or primaries[0].id != primary_id:
            raise InvariantViolation(
                f"Group {primary_id} has no single primary",
                details={"primary_id": primary_id, "primaries": [c.id for c in primaries]}
            )
        primary = primaries[0]

        # Store order is oldest first
        secondaries = [c for c in members if c.id != primary_id]

        emails: List[str] = []
        phone_numbers: List[str] = []
        for contact in [primary, *secondaries]:
            _append_unique(emails, contact.email)
            _append_unique(phone_numbers, contact.phone_number)

        return IdentifyResponse(
            contact=ContactResponse(
                primaryContactId=primary.id,
                emails=emails,
                phoneNumbers=phone_numbers,
                secondaryContactIds=[c.id for c in secondaries]
            )
        )
