"""Tests for the lazy query cursor."""

import asyncio

import pytest

from vaultdoc.docstore import QueryCursor
from vaultdoc.repositories import AuditLogRepository, WalletRepository


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio needed)."""
    async def _await():
        return await coro

    return asyncio.run(_await())


@pytest.fixture
def wallets(fake_db):
    repo = WalletRepository(client=fake_db)
    _run(repo.insert_many({"address": f"addr-{i}", "userId": "u1" if i < 6 else "u2"} for i in range(10)))
    fake_db.calls.clear()
    return repo


def _addresses(docs):
    return [doc.address for doc in docs]


class TestLaziness:
    """Storage is only queried when the cursor runs."""

    def test_chaining_does_not_query(self, wallets, fake_db):
        cursor = wallets.find({"userId": "u1"}).sort({"address": -1}).skip(1).limit(2).select("address")
        assert isinstance(cursor, QueryCursor)
        assert fake_db.calls == []

        assert _addresses(_run(cursor.exec())) == ["addr-4", "addr-3"]
        assert fake_db.count_calls("wallets", "select") == 1

    def test_every_run_queries_again(self, wallets, fake_db):
        cursor = wallets.find({"userId": "u2"})
        first = _run(cursor.exec())

        fake_db.seed("wallets", [{"address": "addr-new", "user_id": "u2"}])
        second = _run(cursor.exec())

        assert len(first) == 4
        assert len(second) == 5
        assert fake_db.count_calls("wallets", "select") == 2

    def test_async_iteration(self, wallets):
        async def collect():
            return [doc.address async for doc in wallets.find({"userId": "u2"}).sort("address")]

        assert _run(collect()) == ["addr-6", "addr-7", "addr-8", "addr-9"]


class TestPaging:
    """limit / skip combinations."""

    def test_limit(self, wallets):
        assert _addresses(_run(wallets.find({}).sort("address").limit(3))) == ["addr-0", "addr-1", "addr-2"]

    def test_limit_zero_is_unbounded(self, wallets):
        assert len(_run(wallets.find({}).limit(0))) == 10

    def test_skip_and_limit(self, wallets):
        docs = _run(wallets.find({}).sort("address").skip(4).limit(2))
        assert _addresses(docs) == ["addr-4", "addr-5"]

    def test_skip_only(self, wallets):
        docs = _run(wallets.find({}).sort("-address").skip(7))
        assert _addresses(docs) == ["addr-2", "addr-1", "addr-0"]

    def test_find_one(self, wallets):
        doc = _run(wallets.find_one({"userId": "u2"}))
        assert doc.user_id == "u2"
        assert _run(wallets.find_one({"userId": "nobody"})) is None


class TestSort:
    """Sort specs, including dotted JSON paths sorted after the fetch."""

    def test_string_spec(self, wallets, fake_db):
        fake_db.seed("wallets", [{"address": "addr-0", "user_id": "u0"}])
        docs = _run(wallets.find({"address": "addr-0"}).sort("address -userId"))
        assert [doc.user_id for doc in docs] == ["u1", "u0"]

    def test_nested_sort_ignores_fetch_order(self, fake_db):
        logs = AuditLogRepository(client=fake_db)
        levels = [3, 1, 4, 0, 2]
        _run(logs.insert_many({"action": f"a{n}", "details": {"level": n}} for n in levels))

        in_order = _run(logs.find({}).sort({"details.level": 1}))
        fake_db.reverse_fetch.add("audit_logs")
        reversed_fetch = _run(logs.find({}).sort({"details.level": 1}))

        expected = ["a0", "a1", "a2", "a3", "a4"]
        assert [log.action for log in in_order] == expected
        assert [log.action for log in reversed_fetch] == expected

    def test_nested_sort_descending(self, fake_db):
        logs = AuditLogRepository(client=fake_db)
        _run(logs.insert_many({"action": f"a{n}", "details": {"level": n}} for n in (2, 0, 1)))
        docs = _run(logs.find({}).sort({"details.level": -1}))
        assert [log.action for log in docs] == ["a2", "a1", "a0"]


class TestProjection:
    """select() includes fetch fewer columns; excludes blank the field."""

    def test_include(self, wallets):
        (doc,) = _run(wallets.find({"address": "addr-7"}).select("address"))
        assert doc.address == "addr-7"
        assert doc.id is not None
        assert doc.user_id == ""

    def test_exclude(self, wallets):
        (doc,) = _run(wallets.find({"address": "addr-7"}, {"userId": 0}))
        assert doc.address == "addr-7"
        assert doc.user_id is None

    def test_lean_returns_documents(self, wallets):
        docs = _run(wallets.find({"userId": "u2"}).lean())
        assert len(docs) == 4
