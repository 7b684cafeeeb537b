"""Tests for partitioning matched contacts into identity groups."""

from unittest.mock import AsyncMock

import pytest

from services.errors import ConcurrencyConflict, InvariantViolation
from services.group_resolver import GroupResolver
from tests.helpers import make_contact


def make_resolver(**store_methods):
    store = AsyncMock()
    for name, value in store_methods.items():
        setattr(store, name, value)
    return GroupResolver(store), store


@pytest.mark.asyncio
async def test_primaries_seed_groups_and_secondaries_join_them():
    p1 = make_contact(1, "a@x.com", "111")
    p2 = make_contact(2, "b@y.com", "222", minutes=1)
    s3 = make_contact(3, "a@x.com", "333", linked_id=1, minutes=2)
    resolver, store = make_resolver()

    groups = await resolver.resolve([p1, p2, s3])

    by_primary = {g.primary.id: g for g in groups}
    assert set(by_primary) == {1, 2}
    assert [c.id for c in by_primary[1].secondaries] == [3]
    assert by_primary[2].secondaries == []
    store.get_by_id.assert_not_called()


@pytest.mark.asyncio
async def test_missing_primary_is_fetched_once_per_group():
    primary = make_contact(1, "a@x.com", "111")
    s2 = make_contact(2, "b@y.com", "111", linked_id=1, minutes=1)
    s3 = make_contact(3, "b@y.com", "222", linked_id=1, minutes=2)
    resolver, store = make_resolver(get_by_id=AsyncMock(return_value=primary))

    groups = await resolver.resolve([s2, s3])

    assert len(groups) == 1
    assert groups[0].primary is primary
    assert [c.id for c in groups[0].secondaries] == [2, 3]
    store.get_by_id.assert_awaited_once_with(1)


@pytest.mark.asyncio
async def test_secondary_linked_to_missing_contact_is_an_invariant_violation():
    orphan = make_contact(2, "b@y.com", None, linked_id=1)
    resolver, _ = make_resolver(get_by_id=AsyncMock(return_value=None))

    with pytest.raises(InvariantViolation) as exc_info:
        await resolver.resolve([orphan])

    assert exc_info.value.details == {"contact_id": 2, "linked_id": 1}


@pytest.mark.asyncio
async def test_chain_of_secondaries_is_an_invariant_violation():
    middle = make_contact(2, "b@y.com", None, linked_id=1)
    tail = make_contact(3, "c@z.com", None, linked_id=2)
    contacts = {2: middle, 3: tail}
    resolver, _ = make_resolver(get_by_id=AsyncMock(side_effect=contacts.get))

    with pytest.raises(InvariantViolation):
        await resolver.resolve([tail])


@pytest.mark.asyncio
async def test_no_candidates_means_no_groups():
    resolver, _ = make_resolver()

    assert await resolver.resolve([]) == []


@pytest.mark.asyncio
async def test_load_group_reads_every_member_from_the_store():
    primary = make_contact(1, "a@x.com", "111")
    members = [primary, make_contact(2, "b@y.com", "111", linked_id=1, minutes=1)]
    resolver, store = make_resolver(get_group_by_primary_id=AsyncMock(return_value=members))

    group = await resolver.load_group(1)

    assert group.primary is primary
    assert [c.id for c in group.secondaries] == [2]
    assert group.contains_submission("a@x.com", "111")
    assert not group.contains_submission("b@y.com", "222")
    store.get_group_by_primary_id.assert_awaited_once_with(1)


@pytest.mark.asyncio
async def test_load_group_of_concurrently_demoted_primary_is_a_conflict():
    demoted = make_contact(2, "b@y.com", None, linked_id=1)
    resolver, _ = make_resolver(get_group_by_primary_id=AsyncMock(return_value=[demoted]))

    with pytest.raises(ConcurrencyConflict) as exc_info:
        await resolver.load_group(2)

    assert exc_info.value.details == {"primary_id": 2, "linked_id": 1}


@pytest.mark.asyncio
async def test_load_group_of_missing_contact_is_an_invariant_violation():
    resolver, _ = make_resolver(get_group_by_primary_id=AsyncMock(return_value=[]))

    with pytest.raises(InvariantViolation):
        await resolver.load_group(2)


@pytest.mark.asyncio
async def test_secondary_relinked_after_the_fetch_is_a_conflict():
    stale = make_contact(3, "c@z.com", None, linked_id=2)
    demoted = make_contact(2, "b@y.com", None, linked_id=1)
    relinked = make_contact(3, "c@z.com", None, linked_id=1)
    contacts = {2: demoted, 3: relinked}
    resolver, _ = make_resolver(get_by_id=AsyncMock(side_effect=contacts.get))

    with pytest.raises(ConcurrencyConflict) as exc_info:
        await resolver.resolve([stale])

    assert exc_info.value.details == {"contact_id": 3, "linked_id": 1}
