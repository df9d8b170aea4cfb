# MIT License
# Copyright (c) 2025 Hashborn

import pytest
from tanglewallet.protocol.types.common import AddressStatus, DatabaseError
from tanglewallet.wallet.storage.db import AddressStore
from conftest import make_address, put


def test_insert_and_get(store):
    put(store, 3, balance=42, status=AddressStatus.USED)

    record = store.get(3)
    assert record.index == 3
    assert record.address == make_address(3)
    assert record.balance == 42
    assert record.status == AddressStatus.USED
    assert record.security_level == 2
    assert store.get(4) is None


def test_duplicate_index_is_a_database_error(store):
    put(store, 0)
    with pytest.raises(DatabaseError):
        put(store, 0)


def test_range_queries_are_sorted(store):
    for i in (5, 1, 3, 0, 4):
        put(store, i)

    assert [r.index for r in store.by_index_range(0)] == [0, 1, 3, 4, 5]
    assert [r.index for r in store.by_index_range(3)] == [3, 4, 5]
    assert [r.index for r in store.by_index_range(1, 4)] == [1, 3]
    assert [r.index for r in store.by_index_range(0, descending=True)] == [5, 4, 3, 1, 0]
    assert store.last().index == 5


def test_nonzero_balance_and_first_with_status(store):
    put(store, 0, balance=0)
    put(store, 1, balance=7, status=AddressStatus.USED)
    put(store, 2, balance=0, status=AddressStatus.NEW)
    put(store, 3, balance=-1, status=AddressStatus.USED)
    put(store, 4, balance=0, status=AddressStatus.NEW)

    assert [r.index for r in store.by_nonzero_balance()] == [1, 3]
    assert [r.index for r in store.by_nonzero_balance(descending=True)] == [3, 1]
    assert store.first_with_status(AddressStatus.NEW).index == 0
    assert store.first_with_status(AddressStatus.NEW, min_index=1).index == 2
    assert store.first_with_status(AddressStatus.EXHAUSTED) is None


def test_updates(store):
    put(store, 0)
    put(store, 1)

    assert store.update_balance_and_status(0, 99, AddressStatus.USED) == 1
    assert store.set_status(1, AddressStatus.PUBLISHED) == 1
    # Balance updates match with or without checksum
    assert store.update_balance(make_address(1) + "ABCDEFGHI", 5) == 1
    assert store.update_balance_and_status(9, 1, AddressStatus.USED) == 0

    assert store.get(0).balance == 99
    assert store.get(0).status == AddressStatus.USED
    assert store.get(1).balance == 5
    assert store.get(1).status == AddressStatus.PUBLISHED


def test_empty_store(store):
    assert store.last() is None
    assert store.by_index_range(0) == []


def test_records_survive_reopen(tmp_path):
    path = str(tmp_path / "reopen.db")
    db = AddressStore(path)
    put(db, 0, balance=1, status=AddressStatus.EXHAUSTED)
    db.close()

    db = AddressStore(path)
    try:
        assert db.get(0).status == AddressStatus.EXHAUSTED
    finally:
        db.close()


def test_first_unused_ignores_funded_records(store):
    put(store, 0, balance=4, status=AddressStatus.NEW)
    put(store, 1, balance=0, status=AddressStatus.USED)
    put(store, 2, balance=0, status=AddressStatus.NEW)

    assert store.first_unused().index == 2
    assert store.first_unused(min_index=3) is None
