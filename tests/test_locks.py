"""Tests for identifier normalization and keyed locking."""

import asyncio

import pytest

from services.locks import (
    IdentifierLocks,
    acquire_advisory_locks,
    advisory_lock_id,
    group_lock_keys,
    lock_keys,
    normalize_email,
    normalize_phone,
)


def test_lock_keys_are_normalized_and_sorted():
    assert lock_keys(" Alice@Example.COM ", "+1 (555) 010-2000") == [
        "email:alice@example.com",
        "phone:+15550102000",
    ]
    assert lock_keys(None, "555") == ["phone:555"]
    assert lock_keys("", None) == []


def test_group_lock_keys_are_deduplicated_and_sorted():
    assert group_lock_keys([2, 1, 2]) == ["group:1", "group:2"]
    assert group_lock_keys([]) == []


def test_normalizers_treat_blank_values_as_absent():
    assert normalize_email("   ") is None
    assert normalize_phone("--") is None
    assert normalize_phone(None) is None


def test_advisory_lock_id_is_stable_signed_64_bit():
    first = advisory_lock_id("email:a@x.com")

    assert first == advisory_lock_id("email:a@x.com")
    assert first != advisory_lock_id("email:b@x.com")
    assert -(2 ** 63) <= first < 2 ** 63


@pytest.mark.asyncio
async def test_same_key_is_held_by_one_task_at_a_time():
    locks = IdentifierLocks()
    active = 0
    peak = 0

    async def worker():
        nonlocal active, peak
        async with locks.hold(["email:a@x.com"]):
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

    await asyncio.gather(*[worker() for _ in range(4)])

    assert peak == 1
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_disjoint_keys_do_not_block_each_other():
    locks = IdentifierLocks()
    entered = asyncio.Event()

    async def holder():
        async with locks.hold(["email:a@x.com"]):
            entered.set()
            await asyncio.sleep(0.05)

    async def other():
        await entered.wait()
        async with locks.hold(["phone:555"]):
            return len(locks)

    _, held_while_other_ran = await asyncio.gather(holder(), other())

    assert held_while_other_ran == 2


@pytest.mark.asyncio
async def test_locks_are_released_when_the_body_fails():
    locks = IdentifierLocks()

    with pytest.raises(RuntimeError):
        async with locks.hold(["phone:555", "email:a@x.com"]):
            raise RuntimeError("boom")

    assert len(locks) == 0
    async with locks.hold(["phone:555"]):
        pass


@pytest.mark.asyncio
async def test_advisory_locks_are_skipped_outside_postgresql(session):
    await acquire_advisory_locks(session, ["email:a@x.com"])
