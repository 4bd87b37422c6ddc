"""
Tests for transaction queries: filters, populate, aggregation pipelines
and strict versus permissive handling of unsupported shapes.
"""

import asyncio
from datetime import datetime, timezone

import pytest

from vaultdoc.errors import UnsupportedQueryError
from vaultdoc.models import UserSummary
from vaultdoc.repositories import TransactionRepository

BY_DAY = {"$dateToString": {"format": "%Y-%m-%d", "date": "$createdAt"}}


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio needed)."""
    async def _await():
        return await coro

    return asyncio.run(_await())


def _at(day: int, hour: int = 12) -> datetime:
    return datetime(2024, 1, day, hour, tzinfo=timezone.utc)


@pytest.fixture
def transactions(fake_db):
    return TransactionRepository(client=fake_db)


@pytest.fixture
def permissive(fake_db):
    return TransactionRepository(client=fake_db, strict=False)


def _insert(repo, *docs):
    return _run(repo.insert_many(docs))


class TestFind:
    """Filter translation end to end."""

    def test_in_operator(self, transactions):
        _insert(
            transactions,
            *[{"status": "pending"}] * 3,
            *[{"status": "failed"}] * 2,
            {"status": "completed"},
        )
        found = _run(transactions.find({"status": {"$in": ["pending", "failed"]}}))

        assert len(found) == 5
        assert {tx.status for tx in found} == {"pending", "failed"}

    def test_closed_interval(self, transactions):
        _insert(transactions, *[{"amount": n} for n in (1, 2, 3, 4, 5)])
        found = _run(transactions.find({"amount": {"$gte": 2, "$lte": 4}}))
        assert sorted(tx.amount for tx in found) == [2.0, 3.0, 4.0]

    def test_created_at_reads_timestamp(self, transactions):
        _insert(transactions, {"timestamp": _at(1), "txHash": "a"}, {"timestamp": _at(3), "txHash": "b"})

        found = _run(transactions.find({"createdAt": {"$gt": _at(2)}}))
        assert [tx.tx_hash for tx in found] == ["b"]

        newest_first = _run(transactions.find({}).sort({"createdAt": -1}))
        assert [tx.tx_hash for tx in newest_first] == ["b", "a"]

    def test_or_alternatives(self, transactions):
        _insert(
            transactions,
            {"status": "pending", "type": "send"},
            {"status": "completed", "type": "deposit"},
            {"status": "completed", "type": "send"},
        )
        found = _run(transactions.find({"$or": [{"status": "pending"}, {"type": "deposit"}]}))
        assert len(found) == 2

    def test_regex_is_case_insensitive(self, transactions):
        _insert(transactions, {"description": "Payout to Alice"}, {"description": "refund"})
        found = _run(transactions.find({"description": {"$regex": "alice", "$options": "i"}}))
        assert [tx.description for tx in found] == ["Payout to Alice"]

    def test_timestamp_round_trips(self, transactions):
        (tx,) = _insert(transactions, {"timestamp": _at(5, 8)})
        loaded = _run(transactions.find_by_id(tx.id))
        assert loaded.timestamp == _at(5, 8)


class TestPopulate:
    """Reference expansion is batched."""

    def test_one_query_per_reference(self, transactions, fake_db):
        alice, bob = fake_db.seed(
            "users",
            [{"name": "Alice", "email": "a@example.com"}, {"name": "Bob", "email": "b@example.com"}],
        )
        _insert(
            transactions,
            {"userId": alice["id"], "amount": 1},
            {"userId": alice["id"], "amount": 2},
            {"userId": bob["id"], "amount": 3},
        )
        fake_db.calls.clear()

        found = _run(transactions.find({}).sort({"amount": 1}).populate("userId"))

        assert fake_db.count_calls("transactions", "select") == 1
        assert fake_db.count_calls("users", "select") == 1
        assert all(isinstance(tx.user_id, UserSummary) for tx in found)
        assert [tx.user_id.name for tx in found] == ["Alice", "Alice", "Bob"]
        assert found[2].owner_id == bob["id"]

    def test_unpopulated_reference_is_id(self, transactions):
        _insert(transactions, {"userId": "u-1"})
        (tx,) = _run(transactions.find({}))
        assert tx.user_id == "u-1"
        assert tx.owner_id == "u-1"

    def test_dangling_reference_keeps_id(self, transactions):
        _insert(transactions, {"userId": "gone"})
        (tx,) = _run(transactions.find({}).populate("userId"))
        assert tx.user_id == "gone"


class TestAggregate:
    """Supported pipeline shapes."""

    def test_group_by_day(self, transactions):
        _insert(transactions, {"timestamp": _at(2)}, {"timestamp": _at(1, 9)}, {"timestamp": _at(1, 18)})
        result = _run(transactions.aggregate([{"$group": {"_id": BY_DAY, "count": {"$sum": 1}}}]))
        assert result == [{"_id": "2024-01-01", "count": 2}, {"_id": "2024-01-02", "count": 1}]

    def test_completed_volume(self, transactions):
        _insert(
            transactions,
            {"timestamp": _at(1), "status": "completed", "amount": 0.5},
            {"timestamp": _at(1), "status": "completed", "amount": 1.5},
            {"timestamp": _at(1), "status": "pending", "amount": 9},
            {"timestamp": _at(2), "status": "completed", "amount": 1},
            {"timestamp": datetime(2023, 12, 1, tzinfo=timezone.utc), "status": "completed", "amount": 7},
        )
        result = _run(
            transactions.aggregate(
                [
                    {"$match": {"status": "completed", "createdAt": {"$gte": _at(1, 0)}}},
                    {"$group": {"_id": BY_DAY, "count": {"$sum": 1}, "totalAmount": {"$sum": "$amount"}}},
                    {"$sort": {"_id": 1}},
                ]
            )
        )
        assert result == [
            {"_id": "2024-01-01", "count": 2, "totalAmount": 2.0},
            {"_id": "2024-01-02", "count": 1, "totalAmount": 1.0},
        ]

    def test_popular_currencies(self, transactions):
        _insert(
            transactions,
            *[{"cryptocurrency": "BTC", "amount": 1}] * 3,
            *[{"cryptocurrency": "ETH", "amount": 2}] * 2,
            {"cryptocurrency": "USDT", "amount": 100},
        )
        result = _run(
            transactions.aggregate(
                [
                    {"$group": {"_id": "$cryptocurrency", "count": {"$sum": 1}, "totalAmount": {"$sum": "$amount"}}},
                    {"$sort": {"count": -1}},
                    {"$limit": 2},
                ]
            )
        )
        assert result == [
            {"_id": "BTC", "count": 3, "totalAmount": 3.0},
            {"_id": "ETH", "count": 2, "totalAmount": 4.0},
        ]

    def test_count_stage(self, transactions):
        _insert(transactions, *[{"status": "pending"}] * 3, {"status": "failed"})
        result = _run(transactions.aggregate([{"$match": {"status": "pending"}}, {"$count": "total"}]))
        assert result == [{"total": 3}]

    def test_empty_table(self, transactions):
        assert _run(transactions.aggregate([{"$count": "total"}])) == [{"total": 0}]
        assert _run(transactions.aggregate([{"$group": {"_id": "$status", "n": {"$sum": 1}}}])) == []

    def test_count_documents(self, transactions):
        _insert(transactions, *[{"status": "pending"}] * 2, {"status": "failed"})
        assert _run(transactions.count_documents()) == 3
        assert _run(transactions.count_documents({"status": "failed"})) == 1


class TestStrictness:
    """Unsupported shapes raise by default and degrade when permissive."""

    def test_strict_filter_raises(self, transactions):
        _insert(transactions, {"amount": 1})
        with pytest.raises(UnsupportedQueryError, match=r"\$elemMatch"):
            _run(transactions.find({"amount": {"$elemMatch": {"$gt": 0}}}))

    def test_permissive_filter_broadens(self, permissive):
        _insert(permissive, {"status": "pending", "amount": 1}, {"status": "pending", "amount": 5}, {"status": "failed"})
        found = _run(permissive.find({"status": "pending", "amount": {"$elemMatch": {"$gt": 3}}}))
        assert len(found) == 2

    def test_strict_pipeline_raises(self, transactions):
        with pytest.raises(UnsupportedQueryError):
            _run(transactions.aggregate([{"$unwind": "$items"}]))

    def test_permissive_pipeline_empty(self, permissive):
        _insert(permissive, {"status": "pending"})
        assert _run(permissive.aggregate([{"$group": {"_id": "$status", "avg": {"$avg": "$amount"}}}])) == []

    def test_strict_update_operator(self, transactions):
        (tx,) = _insert(transactions, {"confirmations": 1})
        with pytest.raises(UnsupportedQueryError):
            _run(transactions.find_by_id_and_update(tx.id, {"$inc": {"confirmations": 1}}))

    def test_unknown_populate(self, transactions):
        _insert(transactions, {"status": "pending"})
        with pytest.raises(UnsupportedQueryError):
            _run(transactions.find({}).populate("walletId"))
