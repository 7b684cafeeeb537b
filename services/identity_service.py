"""
Identity Service - orchestrates identity reconciliation

For one submission, under the identifier locks and inside one transaction:
fetch matching contacts, resolve them into identity groups, lock those
groups, decide the plan, apply it, commit. The consolidated response is
then read back from committed state without holding any lock.
"""

import asyncio
import logging
from contextlib import AsyncExitStack
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import DatabaseManager
from models.contact import LinkPrecedence
from schemas.identify import IdentifyRequest, IdentifyResponse
from services.contact_store import ContactStore
from services.errors import (
    ConcurrencyConflict,
    ContactValidationError,
    InvariantViolation,
    StoreUnavailable,
    translate_store_error,
)
from services.group_resolver import GroupResolver, IdentityGroup
from services.locks import (
    IdentifierLocks,
    acquire_advisory_locks,
    group_lock_keys,
    lock_keys,
)
from services.merge_decider import (
    AttachSecondary,
    CreatePrimary,
    MergeDecider,
    MergeGroups,
    NoOp,
    Plan,
)
from services.response_builder import ResponseBuilder

logger = logging.getLogger(__name__)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class IdentityService:
    """
    Core service for identity reconciliation logic
    Handles all business rules for linking customer contacts
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        locks: Optional[IdentifierLocks] = None,
        max_retries: Optional[int] = None,
        retry_backoff: Optional[float] = None
    ):
        self.db_manager = db_manager
        self.locks = locks if locks is not None else IdentifierLocks()
        self.decider = MergeDecider()
        self.max_retries = settings.IDENTIFY_MAX_RETRIES if max_retries is None else max_retries
        self.retry_backoff = (
            settings.IDENTIFY_RETRY_BACKOFF_SECONDS if retry_backoff is None else retry_backoff
        )

    async def identify_contact(self, request: IdentifyRequest) -> IdentifyResponse:
        """
        Main entry point for the /identify endpoint

        Algorithm:
        1. Find existing contacts matching email or phone
        2. Group them by primary, fetching primaries the match missed
        3. Create, attach, merge or leave the graph unchanged
        4. Return consolidated contact information from committed state
        """
        primary_id = await self.identify(request.email, request.phoneNumber)
        return await self.build_response(primary_id)

    async def identify(self, email: Optional[str], phone: Optional[str]) -> int:
        """
        Reconcile one submission and return the id of its primary contact.
        Conflicts with concurrent transactions are retried from the
        candidate fetch; exhausting the retries is a StoreUnavailable.
        """
        email, phone = _clean(email), _clean(phone)
        if not email and not phone:
            raise ContactValidationError("Either email or phoneNumber must be provided")

        keys = lock_keys(email, phone)
        attempt = 0
        while True:
            attempt += 1
            try:
                async with self.locks.hold(keys):
                    return await self._reconcile(email, phone, keys)
            except ConcurrencyConflict as e:
                if attempt > self.max_retries:
                    raise StoreUnavailable(
                        f"Gave up after {attempt} conflicting attempts",
                        details={"attempts": attempt}
                    ) from e
                logger.warning(f"Concurrency conflict on {keys} (attempt {attempt}), retrying")
                await asyncio.sleep(self.retry_backoff * attempt)
            except InvariantViolation as e:
                logger.error(f"Identity graph invariant violated for {keys}: {e.message} {e.details}")
                raise

    async def build_response(self, primary_id: int) -> IdentifyResponse:
        try:
            async with self.db_manager.get_session() as session:
                store = ContactStore(session)
                current = await store.get_by_id(primary_id)
                if current is not None and current.is_secondary():
                    # Merged into an older group after this submission committed
                    primary_id = current.linked_id
                return await ResponseBuilder(store).build(primary_id)
        except SQLAlchemyError as e:
            raise translate_store_error(e, "build_response") from e

    async def _reconcile(self, email: Optional[str], phone: Optional[str], keys: List[str]) -> int:
        try:
            # Group locks are released after the session commits
            async with AsyncExitStack() as group_locks:
                async with self.db_manager.get_session() as session:
                    await acquire_advisory_locks(session, keys)

                    store = ContactStore(session)
                    resolver = GroupResolver(store)

                    groups = await self._lock_groups(session, resolver, group_locks, email, phone)
                    if len(groups) == 1:
                        # Matches may cover only part of the group
                        groups = [await resolver.load_group(groups[0].primary.id)]

                    plan = self.decider.decide(email, phone, groups)
                    primary_id = await self._apply(store, plan)
        except SQLAlchemyError as e:
            raise translate_store_error(e, "reconcile") from e

        logger.info(f"Identify email={email} phone={phone}: {plan.outcome}, primary contact {primary_id}")
        return primary_id

    async def _lock_groups(
        self,
        session: AsyncSession,
        resolver: GroupResolver,
        group_locks: AsyncExitStack,
        email: Optional[str],
        phone: Optional[str]
    ) -> List[IdentityGroup]:
        """
        Resolve the groups a submission touches and lock them for the rest of
        the transaction. Groups are resolved again once the locks are held; a
        different set of primaries means a concurrent merge got there first.
        """
        store = resolver.store
        groups = await resolver.resolve(await store.find_by_email_or_phone(email, phone))
        primary_ids = sorted(group.primary.id for group in groups)
        if not primary_ids:
            return groups

        keys = group_lock_keys(primary_ids)
        await group_locks.enter_async_context(self.locks.hold(keys))
        await acquire_advisory_locks(session, keys)

        groups = await resolver.resolve(await store.find_by_email_or_phone(email, phone))
        current_ids = sorted(group.primary.id for group in groups)
        if current_ids != primary_ids:
            raise ConcurrencyConflict(
                f"Identity groups {primary_ids} changed while waiting for their locks",
                details={"primary_ids": primary_ids, "current_ids": current_ids}
            )
        return groups

    async def _apply(self, store: ContactStore, plan: Plan) -> int:
        primary_id = plan.primary.id if plan.primary is not None else None

        for action in plan.actions:
            if isinstance(action, CreatePrimary):
                contact = await store.insert(action.email, action.phone)
                primary_id = contact.id

            elif isinstance(action, MergeGroups):
                await store.demote_to_secondary(action.younger.id, action.older.id)
                relinked = await store.relink_children(action.younger.id, action.older.id)
                logger.info(
                    f"Merged primary {action.younger.id} into {action.older.id}, "
                    f"relinked {len(relinked)} contacts"
                )

            elif isinstance(action, AttachSecondary):
                await store.insert(
                    action.email,
                    action.phone,
                    linked_id=action.primary.id,
                    precedence=LinkPrecedence.SECONDARY
                )

            elif isinstance(action, NoOp):
                continue

        return primary_id
