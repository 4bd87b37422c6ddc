"""
Filter Translator.

Converts a MongoDB-style filter object into PostgREST constraints on a
Supabase query builder.

Supported:
- literal equality, null (IS NULL), scalar membership in array columns
- dotted keys into JSON columns (PostgREST JSON paths)
- $gte, $lte, $gt, $lt, $ne, $in, $regex (+ $options)
- top-level $or (alternatives may nest $or)

Anything else is dropped from the query and reported through Unsupported,
with the broader query as the partial result.
"""

import re
from collections.abc import Mapping, Sequence
from typing import Any

from vaultdoc.docstore.columns import ColumnMapper
from vaultdoc.docstore.results import Translated, Translation, Unsupported
from vaultdoc.docstore.values import to_db_value

# Mongo operator -> PostgREST builder method
COMPARISONS = {
    "$gte": "gte",
    "$lte": "lte",
    "$gt": "gt",
    "$lt": "lt",
    "$ne": "neq",
}

# Characters that must be quoted inside an or=(...) logic string
_RESERVED = set(',.:()"\\ ')
_REGEX_ESCAPE = re.compile(r"\\(.)")
_LIKE_SPECIAL = re.compile(r"[\\%_]")


def translate_filter(query: Any, filter_expr: Mapping[str, Any] | None, mapper: ColumnMapper) -> Translation:
    """
    Apply a filter object to a query builder.

    An empty filter matches everything. Operator mappings on one field
    narrow by conjunction.
    """
    if not filter_expr:
        return Translated(query)

    problems: list[str] = []

    for key, value in filter_expr.items():
        if key == "$or":
            clause = or_clause(value, mapper, problems)
            if clause:
                query = query.or_(clause)
            continue

        if key.startswith("$"):
            problems.append(f"top-level operator {key}")
            continue

        if "." in key and not mapper.is_json_path(key):
            problems.append(f"path {key} into a non-JSON column")
            continue

        column = mapper.to_column(key)

        if isinstance(value, Mapping):
            for op, operand in value.items():
                query = _apply_operator(query, key, column, op, operand, value, problems)
        elif value is None:
            query = query.is_(column, "null")
        elif mapper.is_array(key) and not _is_sequence(value):
            query = query.contains(column, [value])
        else:
            query = query.eq(column, to_db_value(value))

    if problems:
        return Unsupported("unsupported filter: " + "; ".join(problems), partial=query)
    return Translated(query)


def _apply_operator(
    query: Any,
    field_name: str,
    column: str,
    op: str,
    operand: Any,
    operators: Mapping[str, Any],
    problems: list[str],
) -> Any:
    match op:
        case "$gte" | "$lte" | "$gt" | "$lt" | "$ne":
            return getattr(query, COMPARISONS[op])(column, to_db_value(operand))
        case "$in":
            values = list(operand) if _is_sequence(operand) else [operand]
            return query.in_(column, [to_db_value(v) for v in values])
        case "$regex":
            return query.ilike(column, regex_to_like(operand))
        case "$options" if "$regex" in operators:
            # ilike is already case-insensitive
            return query
    problems.append(f"operator {op} on {field_name}")
    return query


def or_clause(alternatives: Sequence[Mapping[str, Any]], mapper: ColumnMapper, problems: list[str]) -> str:
    """
    Build a PostgREST logic string for a $or list.

    Each alternative becomes one condition, or and(...) when it has
    several, so `{$or: [{a: 1, b: 2}, {c: 3}]}` means (a AND b) OR c.
    """
    parts = []
    for alternative in alternatives:
        conditions = _logic_conditions(alternative, mapper, problems)
        if not conditions:
            continue
        if len(conditions) == 1:
            parts.append(conditions[0])
        else:
            parts.append(f"and({','.join(conditions)})")
    return ",".join(parts)


def _logic_conditions(expr: Mapping[str, Any], mapper: ColumnMapper, problems: list[str]) -> list[str]:
    conditions = []
    for key, value in expr.items():
        if key == "$or":
            inner = or_clause(value, mapper, problems)
            if inner:
                conditions.append(f"or({inner})")
            continue
        if key.startswith("$"):
            problems.append(f"operator {key} inside $or")
            continue
        if "." in key and not mapper.is_json_path(key):
            problems.append(f"path {key} inside $or into a non-JSON column")
            continue

        column = mapper.to_column(key)
        if isinstance(value, Mapping):
            for op, operand in value.items():
                condition = _logic_operator(column, op, operand, value)
                if condition is None:
                    problems.append(f"operator {op} on {key} inside $or")
                elif condition:
                    conditions.append(condition)
        elif value is None:
            conditions.append(f"{column}.is.null")
        else:
            conditions.append(f"{column}.eq.{format_operand(value)}")
    return conditions


def _logic_operator(column: str, op: str, operand: Any, operators: Mapping[str, Any]) -> str | None:
    if op in COMPARISONS:
        return f"{column}.{COMPARISONS[op]}.{format_operand(operand)}"
    if op == "$in":
        values = list(operand) if _is_sequence(operand) else [operand]
        return f"{column}.in.({','.join(format_operand(v) for v in values)})"
    if op == "$regex":
        return f"{column}.ilike.{format_operand(regex_to_like(operand))}"
    if op == "$options" and "$regex" in operators:
        return ""
    return None


def format_operand(value: Any) -> str:
    """Render a value for a PostgREST logic string, quoting when needed."""
    value = to_db_value(value)
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    text = str(value)
    if any(ch in _RESERVED for ch in text):
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return text


def regex_to_like(pattern: Any) -> str:
    """
    Turn a $regex operand into an ILIKE pattern.

    Substring match, except that ^ and $ anchors pin the pattern to the
    start or end. Backslash escapes are unwrapped to their literal
    character; other metacharacters are matched literally. LIKE wildcards
    (% and _) and backslashes in the operand are escaped.
    """
    if isinstance(pattern, re.Pattern):
        pattern = pattern.pattern
    text = str(pattern)
    prefix, suffix = "%", "%"
    if text.startswith("^"):
        prefix, text = "", text[1:]
    if text.endswith("$") and not text.endswith("\\$"):
        suffix, text = "", text[:-1]
    literal = _REGEX_ESCAPE.sub(r"\1", text)
    literal = _LIKE_SPECIAL.sub(r"\\\g<0>", literal)
    return prefix + literal + suffix


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))
