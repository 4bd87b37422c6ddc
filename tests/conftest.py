"""
Pytest configuration and fixtures for vaultdoc tests.

The storage fixture is an in-memory stand-in for the async Supabase
client: it implements the PostgREST builder subset the document store
uses, records every round trip, can return unordered reads reversed, and
can be told to fail a table/operation with a postgrest APIError.
"""

import os
import re
import uuid
from datetime import datetime, timezone

import pytest
from postgrest.exceptions import APIError

# Set test environment before importing vaultdoc modules
os.environ["VAULTDOC_ENV"] = "development"
os.environ["STRICT_QUERIES"] = "true"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ.pop("SUPABASE_URL", None)
os.environ.pop("SUPABASE_SERVICE_ROLE_KEY", None)


# Columns storage fills in when an insert leaves them out
TABLE_DEFAULTS = {
    "users": ("created_at",),
    "user_wallets": ("created_at",),
    "user_notifications": ("created_at",),
    "user_refresh_tokens": ("created_at",),
    "wallets": ("created_at",),
    "transactions": ("timestamp",),
    "balances": ("last_updated",),
    "tokens": ("last_updated",),
    "webhooks": ("created_at",),
    "webhook_events": ("created_at", "next_attempt_at"),
    "audit_logs": ("created_at",),
    "support_tickets": ("created_at", "updated_at"),
}

UNIQUE = {
    "users": ("email",),
    "user_refresh_tokens": ("token_hash",),
}

# Parent table -> [(child table, foreign key)] for ON DELETE CASCADE
CASCADES = {
    "users": [("user_wallets", "user_id"), ("user_notifications", "user_id"), ("user_refresh_tokens", "user_id")],
}


class FakeResponse:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


def _normalize(value):
    """Compare like Postgres would: timestamps as instants, numeric text as numbers."""
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        if re.match(r"^\d{4}-\d{2}-\d{2}", value):
            try:
                parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
                return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
            except ValueError:
                pass
        try:
            return float(value)
        except ValueError:
            return value
    return value


def _resolve(row, column):
    """Column value, following `col->a->>b` JSON paths."""
    if "->" not in column:
        return row.get(column)
    head, *path = re.split(r"->>?", column)
    value = row.get(head)
    for part in path:
        value = value.get(part) if isinstance(value, dict) else None
    if column.split("->")[-1].startswith(">") and value is not None and not isinstance(value, str):
        value = str(value)
    return value


def _compare(op, actual, expected):
    if actual is None:
        return False
    a, b = _normalize(actual), _normalize(expected)
    try:
        if op == "eq":
            return a == b
        if op == "neq":
            return a != b
        if op == "gt":
            return a > b
        if op == "gte":
            return a >= b
        if op == "lt":
            return a < b
        if op == "lte":
            return a <= b
    except TypeError:
        return False
    raise ValueError(op)


def _like(pattern, value):
    if value is None:
        return False
    regex, escaped = "", False
    for ch in pattern:
        if escaped:
            regex += re.escape(ch)
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch in "%*":
            regex += ".*"
        elif ch == "_":
            regex += "."
        else:
            regex += re.escape(ch)
    return re.fullmatch(regex, str(value), re.IGNORECASE | re.DOTALL) is not None


def _split_top_level(text):
    parts, depth, quoted, current, escaped = [], 0, False, "", False
    for ch in text:
        if escaped:
            current += ch
            escaped = False
            continue
        if ch == "\\" and quoted:
            current += ch
            escaped = True
            continue
        if ch == '"':
            quoted = not quoted
        elif not quoted and ch == "(":
            depth += 1
        elif not quoted and ch == ")":
            depth -= 1
        elif not quoted and depth == 0 and ch == ",":
            parts.append(current)
            current = ""
            continue
        current += ch
    if current:
        parts.append(current)
    return parts


def _unquote(text):
    if text.startswith('"') and text.endswith('"'):
        return re.sub(r"\\(.)", r"\1", text[1:-1])
    if text == "null":
        return None
    if text in ("true", "false"):
        return text == "true"
    return text


def _logic_predicate(text):
    """Parse one PostgREST logic-tree condition into a row predicate."""
    for combinator, reducer in (("and(", all), ("or(", any)):
        if text.startswith(combinator) and text.endswith(")"):
            inner = [_logic_predicate(p) for p in _split_top_level(text[len(combinator):-1])]
            return lambda row: reducer(p(row) for p in inner)

    column, op, operand = text.split(".", 2)
    if op == "in":
        values = [_unquote(v) for v in _split_top_level(operand.strip("()"))]
        return lambda row: any(_compare("eq", _resolve(row, column), v) for v in values)
    if op == "is":
        return lambda row: _resolve(row, column) is None
    if op == "ilike":
        pattern = _unquote(operand)
        return lambda row: _like(pattern, _resolve(row, column))
    value = _unquote(operand)
    return lambda row: _compare(op, _resolve(row, column), value)


def _api_error(message, code="XX000"):
    return APIError({"message": message, "code": code, "hint": None, "details": None})


class FakeQuery:
    """One chained PostgREST request against a FakeSupabase table."""

    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.op = None
        self.columns = "*"
        self.count = None
        self.head = False
        self.payload = None
        self.on_conflict = None
        self.filters = []
        self.orders = []
        self._limit = None
        self._range = None
        self._negate = False

    # -- operations --------------------------------------------------------

    def select(self, columns="*", count=None, head=False):
        self.op = self.op or "select"
        self.columns = columns
        self.count = count
        self.head = head
        return self

    def insert(self, payload):
        self.op, self.payload = "insert", payload
        return self

    def upsert(self, payload, on_conflict=None):
        self.op, self.payload, self.on_conflict = "upsert", payload, on_conflict
        return self

    def update(self, payload):
        self.op, self.payload = "update", payload
        return self

    def delete(self):
        self.op = "delete"
        return self

    # -- filters -----------------------------------------------------------

    @property
    def not_(self):
        self._negate = True
        return self

    def _add(self, predicate):
        if self._negate:
            inner = predicate
            predicate = lambda row: not inner(row)  # noqa: E731
            self._negate = False
        self.filters.append(predicate)
        return self

    def eq(self, column, value):
        return self._add(lambda row: _compare("eq", _resolve(row, column), value))

    def neq(self, column, value):
        return self._add(lambda row: _compare("neq", _resolve(row, column), value))

    def gt(self, column, value):
        return self._add(lambda row: _compare("gt", _resolve(row, column), value))

    def gte(self, column, value):
        return self._add(lambda row: _compare("gte", _resolve(row, column), value))

    def lt(self, column, value):
        return self._add(lambda row: _compare("lt", _resolve(row, column), value))

    def lte(self, column, value):
        return self._add(lambda row: _compare("lte", _resolve(row, column), value))

    def in_(self, column, values):
        values = list(values)
        return self._add(lambda row: any(_compare("eq", _resolve(row, column), v) for v in values))

    def ilike(self, column, pattern):
        return self._add(lambda row: _like(pattern, _resolve(row, column)))

    def is_(self, column, value):
        assert value == "null"
        return self._add(lambda row: _resolve(row, column) is None)

    def contains(self, column, values):
        return self._add(lambda row: all(v in (_resolve(row, column) or []) for v in values))

    def or_(self, logic):
        predicates = [_logic_predicate(part) for part in _split_top_level(logic)]
        return self._add(lambda row: any(p(row) for p in predicates))

    # -- shaping -----------------------------------------------------------

    def order(self, column, desc=False):
        self.orders.append((column, desc))
        return self

    def limit(self, count):
        self._limit = count
        return self

    def range(self, start, end):
        self._range = (start, end)
        return self

    # -- execution ---------------------------------------------------------

    async def execute(self):
        self.db.calls.append((self.table, self.op))
        self.db.maybe_fail(self.table, self.op)
        rows = self.db.tables.setdefault(self.table, [])

        if self.op == "insert":
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            return FakeResponse([self.db.insert_row(self.table, dict(r)) for r in payload])

        if self.op == "upsert":
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            return FakeResponse([self.db.upsert_row(self.table, dict(r), self.on_conflict) for r in payload])

        matched = [row for row in rows if all(f(row) for f in self.filters)]

        if self.op == "update":
            for row in matched:
                row.update(self.payload)
            return FakeResponse([dict(r) for r in matched])

        if self.op == "delete":
            for row in matched:
                self.db.remove_row(self.table, row)
            return FakeResponse([dict(r) for r in matched])

        for column, desc in reversed(self.orders):
            matched.sort(key=lambda r: _order_key(_resolve(r, column), desc), reverse=desc)
        if not self.orders and self.table in self.db.reverse_fetch:
            matched.reverse()

        count = len(matched) if self.count else None
        if self.head:
            return FakeResponse([], count)
        if self._range is not None:
            matched = matched[self._range[0]:self._range[1] + 1]
        if self._limit is not None:
            matched = matched[: self._limit]
        return FakeResponse([self._project(r) for r in matched], count)

    def _project(self, row):
        if self.columns.strip() == "*":
            return dict(row)
        return {c.strip(): row.get(c.strip()) for c in self.columns.split(",")}


def _order_key(value, desc):
    # Postgres: NULLS LAST ascending, NULLS FIRST descending
    if value is None:
        return (1, 0)
    return (0, _normalize(value))


class FakeSupabase:
    """In-memory async Supabase client."""

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.calls: list[tuple[str, str]] = []
        self.reverse_fetch: set[str] = set()
        self._failures: list[list] = []

    def table(self, name):
        return FakeQuery(self, name)

    from_ = table

    def fail_on(self, table, op, times=1, message="injected failure"):
        """Make the next `times` executions of op on table raise APIError."""
        self._failures.append([table, op, times, message])

    def maybe_fail(self, table, op):
        for failure in self._failures:
            if failure[0] == table and failure[1] == op and failure[2] > 0:
                failure[2] -= 1
                raise _api_error(failure[3])

    def count_calls(self, table=None, op=None):
        return sum(1 for t, o in self.calls if (table is None or t == table) and (op is None or o == op))

    def seed(self, table, rows):
        """Insert rows directly, bypassing the call log."""
        return [self.insert_row(table, dict(r)) for r in rows]

    def insert_row(self, table, row):
        rows = self.tables.setdefault(table, [])
        for column in UNIQUE.get(table, ()):
            if row.get(column) is not None and any(r.get(column) == row[column] for r in rows):
                raise _api_error(f"duplicate key value violates unique constraint on {table}.{column}", "23505")
        row.setdefault("id", str(uuid.uuid4()))
        now = datetime.now(timezone.utc).isoformat()
        for column in TABLE_DEFAULTS.get(table, ()):
            if row.get(column) is None:
                row[column] = now
        rows.append(row)
        return dict(row)

    def upsert_row(self, table, row, on_conflict):
        keys = [k.strip() for k in (on_conflict or "id").split(",")]
        for existing in self.tables.setdefault(table, []):
            if all(existing.get(k) == row.get(k) for k in keys):
                existing.update({k: v for k, v in row.items() if k != "id"})
                return dict(existing)
        return self.insert_row(table, row)

    def remove_row(self, table, row):
        self.tables[table].remove(row)
        for child, fk in CASCADES.get(table, []):
            self.tables[child] = [r for r in self.tables.get(child, []) if r.get(fk) != row["id"]]

    def rows(self, table):
        return self.tables.get(table, [])


@pytest.fixture
def fake_db():
    """In-memory Supabase client."""
    return FakeSupabase()
