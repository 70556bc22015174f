"""Membership id formatting and sequential allocation."""

from __future__ import annotations

import threading

import pytest

from alumni.exceptions import ValidationError
from alumni.services.membership_id_allocator import format_membership_id, parse_membership_id


def test_format_and_parse():
    assert format_membership_id(1) == "M00001"
    assert format_membership_id(43) == "M00043"
    assert parse_membership_id("M00042") == 42


@pytest.mark.parametrize("bad", ["", "M1", "m00001", "X00001", "M000001", "M0000a"])
def test_parse_rejects_malformed_ids(bad):
    with pytest.raises(ValidationError):
        parse_membership_id(bad)


def test_format_rejects_non_positive():
    with pytest.raises(ValidationError):
        format_membership_id(0)


def test_first_id_on_empty_store(allocator):
    assert allocator.next() == "M00001"


def test_ids_are_sequential(allocator):
    assert [allocator.next() for _ in range(3)] == ["M00001", "M00002", "M00003"]


def test_continues_after_highest_assigned_id(allocator, make_user, user_repo):
    user = make_user()
    assert user_repo.assign_membership_id(user.id, "M00042")
    assert allocator.next() == "M00043"


def test_ignores_malformed_stored_ids(allocator, make_user, user_repo):
    user = make_user()
    user_repo.assign_membership_id(user.id, "LEGACY-9")
    assert allocator.next() == "M00001"


def test_concurrent_allocations_are_distinct(allocator):
    results: list[str] = []
    lock = threading.Lock()

    def _allocate() -> None:
        for _ in range(10):
            membership_id = allocator.next()
            with lock:
                results.append(membership_id)

    threads = [threading.Thread(target=_allocate) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(results) == 40
    assert len(set(results)) == 40
    assert sorted(results) == [format_membership_id(n) for n in range(1, 41)]
