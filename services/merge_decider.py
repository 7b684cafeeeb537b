"""
Merge Decider - chooses how a submission changes the identity graph

The decision is a plan: an ordered list of actions the identity service
applies inside one transaction. Demotions always come before the insert
of the new secondary so no secondary ever points at a contact that is
about to stop being a primary.

    groups  outcome
    0       CreatePrimary
    1       NoOp when the submission is already recorded, else AttachSecondary
    2+      MergeGroups(oldest, other) for every other primary, then AttachSecondary
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Union

from models.contact import Contact
from services.group_resolver import IdentityGroup

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreatePrimary:
    email: Optional[str]
    phone: Optional[str]


@dataclass(frozen=True)
class NoOp:
    primary: Contact


@dataclass(frozen=True)
class AttachSecondary:
    primary: Contact
    email: Optional[str]
    phone: Optional[str]


@dataclass(frozen=True)
class MergeGroups:
    """Demote `younger` under `older` and relink everything linked to `younger`"""
    older: Contact
    younger: Contact


Action = Union[CreatePrimary, NoOp, AttachSecondary, MergeGroups]


@dataclass(frozen=True)
class Plan:
    actions: List[Action]
    primary: Optional[Contact] = None

    @property
    def outcome(self) -> str:
        kinds = {type(action) for action in self.actions}
        if MergeGroups in kinds:
            return "merged"
        if CreatePrimary in kinds:
            return "created"
        if AttachSecondary in kinds:
            return "attached"
        return "unchanged"


def oldest_first(contacts: List[Contact]) -> List[Contact]:
    return sorted(contacts, key=lambda c: c.age_key())


class MergeDecider:
    """Pure decision logic; performs no I/O"""

    def decide(
        self,
        email: Optional[str],
        phone: Optional[str],
        groups: List[IdentityGroup]
    ) -> Plan:
        if not groups:
            return Plan(actions=[CreatePrimary(email, phone)])

        if len(groups) == 1:
            return self._decide_single(email, phone, groups[0])

        return self._decide_merge(email, phone, groups)

    def _decide_single(self, email, phone, group: IdentityGroup) -> Plan:
        """
        Unchanged when a member already carries the submission, otherwise a
        new secondary. That includes an email and a phone the group knows
        from different members: the combination is still recorded.
        """
        primary = group.primary

        if group.contains_submission(email, phone):
            return Plan(actions=[NoOp(primary)], primary=primary)

        return Plan(actions=[AttachSecondary(primary, email, phone)], primary=primary)

    def _decide_merge(self, email, phone, groups: List[IdentityGroup]) -> Plan:
        primaries = oldest_first([group.primary for group in groups])
        survivor, absorbed = primaries[0], primaries[1:]

        if len(absorbed) > 1:
            logger.warning(
                f"Submission matched {len(primaries)} primaries "
                f"{[p.id for p in primaries]}; merging all into {survivor.id}"
            )

        actions: List[Action] = [MergeGroups(older=survivor, younger=p) for p in absorbed]
        # The merge itself is new information, so the row is always recorded
        actions.append(AttachSecondary(survivor, email, phone))
        return Plan(actions=actions, primary=survivor)
