"""
Group Resolver - partitions matched contacts into identity groups
A group is one primary plus the secondaries linked directly to it.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List

from models.contact import Contact
from services.contact_store import ContactStore
from services.errors import ConcurrencyConflict, InvariantViolation

logger = logging.getLogger(__name__)


@dataclass
class IdentityGroup:
    primary: Contact
    secondaries: List[Contact] = field(default_factory=list)

    @property
    def members(self) -> List[Contact]:
        return [self.primary, *self.secondaries]

    def contains_submission(self, email, phone) -> bool:
        return any(contact.matches(email, phone) for contact in self.members)


class GroupResolver:
    """
    Builds identity groups from the contacts matched by a submission,
    fetching primaries the match did not return
    """

    def __init__(self, store: ContactStore):
        self.store = store

    async def resolve(self, candidates: List[Contact]) -> List[IdentityGroup]:
        groups: Dict[int, IdentityGroup] = {}

        for contact in candidates:
            if contact.is_primary():
                groups[contact.id] = IdentityGroup(primary=contact)

        for contact in candidates:
            if not contact.is_secondary():
                continue
            group = groups.get(contact.linked_id)
            if group is None:
                # A secondary can match on a field its primary lacks, so the
                # primary needs a second round-trip.
                primary = await self._fetch_primary(contact)
                group = groups[primary.id] = IdentityGroup(primary=primary)
            group.secondaries.append(contact)

        return list(groups.values())

    async def load_group(self, primary_id: int) -> IdentityGroup:
        """
        Every member of the group anchored at primary_id, from the store.
        A primary that was demoted since it was resolved is a conflict with a
        concurrent merge, not a broken graph.
        """
        members = await self.store.get_group_by_primary_id(primary_id)
        primary = next((c for c in members if c.id == primary_id), None)
        if primary is not None and primary.is_secondary():
            raise ConcurrencyConflict(
                f"Contact {primary_id} was merged into {primary.linked_id} concurrently",
                details={"primary_id": primary_id, "linked_id": primary.linked_id}
            )
        if primary is None or not primary.is_primary():
            raise InvariantViolation(
                f"Contact {primary_id} does not anchor an identity group",
                details={"primary_id": primary_id}
            )
        return IdentityGroup(
            primary=primary,
            secondaries=[c for c in members if c.id != primary_id]
        )

    async def _fetch_primary(self, secondary: Contact) -> Contact:
        logger.debug(f"Primary {secondary.linked_id} of contact {secondary.id} not matched, fetching")
        primary = await self.store.get_by_id(secondary.linked_id)
        if primary is None:
            raise InvariantViolation(
                f"Contact {secondary.id} links to missing contact {secondary.linked_id}",
                details={"contact_id": secondary.id, "linked_id": secondary.linked_id}
            )
        if not primary.is_primary():
            linked_id = primary.id
            current = await self.store.get_by_id(secondary.id)
            if current is not None and current.linked_id != linked_id:
                # Relinked by a merge that committed after the candidate fetch
                raise ConcurrencyConflict(
                    f"Contact {secondary.id} was relinked concurrently",
                    details={"contact_id": secondary.id, "linked_id": current.linked_id}
                )
            raise InvariantViolation(
                f"Contact {secondary.id} links to secondary contact {linked_id}",
                details={"contact_id": secondary.id, "linked_id": linked_id}
            )
        return primary
