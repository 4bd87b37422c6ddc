"""
Aggregation Emulator.

Recognizes a closed set of MongoDB pipeline shapes and evaluates them by
fetching the matching rows and grouping in memory:

    [$match?, $count]                           -> one row count
    [$project {x: {$size: "$coll"}}, $group {_id: null, n: {$sum: "$x"}}]
                                                -> row count of the child table
    [$match?, $group, ($sort | $limit)*]        -> in-memory grouping

$group keys may be null (one group), "$field", {field: "$a", other: "$b"}
(composite), or {$dateToString: {format: "%Y-%m-%d", date: "$ts"}}
(calendar day). Accumulators are $sum over a constant or a field.

classify() is pure and returns Unsupported for anything else; it is not
a general pipeline evaluator.
"""

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Literal

from vaultdoc.docstore.columns import ColumnMapper
from vaultdoc.docstore.entity import EmbeddedCollection
from vaultdoc.docstore.paging import fetch_all
from vaultdoc.docstore.results import Translated, Translation, Unsupported
from vaultdoc.docstore.sorting import is_descending, sort_key
from vaultdoc.docstore.values import day_key, to_number

logger = logging.getLogger(__name__)

DAY_FORMAT = "%Y-%m-%d"


@dataclass(frozen=True)
class Accumulator:
    """`name: {$sum: <constant or "$field">}`."""

    name: str
    field: str | None = None
    constant: int | float = 1


@dataclass(frozen=True)
class PipelinePlan:
    """
    A recognized pipeline.

    Attributes:
        kind: "count", "embedded_count" or "group"
        match: Filter from a leading $match stage
        output: Result field for the count kinds
        embedded: Collection field counted by "embedded_count"
        key_kind: "constant", "field", "composite" or "day" (group kind)
        key: Field name, or output name -> field name for composite keys
        accumulators: Per-group running sums
        post: $sort / $limit stages after the group, in pipeline order
    """

    kind: Literal["count", "embedded_count", "group"]
    match: Mapping[str, Any] | None = None
    output: str | None = None
    embedded: str | None = None
    key_kind: Literal["constant", "field", "composite", "day"] | None = None
    key: Any = None
    accumulators: tuple[Accumulator, ...] = ()
    post: tuple[Mapping[str, Any], ...] = ()

    def fields(self) -> list[str]:
        """Document fields the grouping reads."""
        names: list[str] = []
        if self.key_kind in ("field", "day"):
            names.append(self.key)
        elif self.key_kind == "composite":
            names.extend(self.key.values())
        names.extend(acc.field for acc in self.accumulators if acc.field)
        return names


def classify(pipeline: Sequence[Mapping[str, Any]]) -> Translation:
    """Match a pipeline against the supported shapes."""
    stages = list(pipeline or [])
    for stage in stages:
        if not isinstance(stage, Mapping) or len(stage) != 1:
            return Unsupported("each pipeline stage must have exactly one operator")

    match = None
    if stages and "$match" in stages[0]:
        match = stages[0]["$match"]
        stages = stages[1:]

    if not stages:
        return Unsupported("pipeline has no $count or $group stage")

    first = stages[0]

    if "$count" in first:
        if len(stages) > 1:
            return Unsupported("stages after $count")
        return Translated(PipelinePlan(kind="count", match=match, output=first["$count"]))

    if "$project" in first:
        return _classify_embedded_count(stages, match)

    if "$group" in first:
        return _classify_group(first["$group"], stages[1:], match)

    return Unsupported(f"stage {next(iter(first))}")


def _classify_embedded_count(stages: list[Mapping[str, Any]], match: Mapping[str, Any] | None) -> Translation:
    if match:
        return Unsupported("$match before an embedded-array count")
    if len(stages) != 2 or "$group" not in stages[1]:
        return Unsupported("$project is only supported as an embedded-array count")

    project = stages[0]["$project"]
    if len(project) != 1:
        return Unsupported("$project with more than one field")
    alias, expr = next(iter(project.items()))
    if not (isinstance(expr, Mapping) and isinstance(expr.get("$size"), str) and expr["$size"].startswith("$")):
        return Unsupported("$project is only supported with $size")

    group = dict(stages[1]["$group"])
    if group.pop("_id", "missing") is not None or len(group) != 1:
        return Unsupported("embedded count must group by null into one total")
    output, acc = next(iter(group.items()))
    if acc != {"$sum": f"${alias}"}:
        return Unsupported("embedded count must $sum the projected size")

    return Translated(PipelinePlan(kind="embedded_count", output=output, embedded=expr["$size"][1:]))


def _classify_group(group: Mapping[str, Any], post: list[Mapping[str, Any]], match: Mapping[str, Any] | None) -> Translation:
    if "_id" not in group:
        return Unsupported("$group without _id")
    key = group["_id"]

    if key is None:
        key_kind, key_value = "constant", None
    elif _is_field_ref(key):
        key_kind, key_value = "field", key[1:]
    elif isinstance(key, Mapping) and "$dateToString" in key:
        spec = key["$dateToString"]
        if spec.get("format") != DAY_FORMAT or not _is_field_ref(spec.get("date")):
            return Unsupported(f"$dateToString other than format {DAY_FORMAT}")
        key_kind, key_value = "day", spec["date"][1:]
    elif isinstance(key, Mapping) and key and all(_is_field_ref(v) for v in key.values()):
        key_kind, key_value = "composite", {name: ref[1:] for name, ref in key.items()}
    else:
        return Unsupported("unsupported $group key")

    accumulators = []
    for name, expr in group.items():
        if name == "_id":
            continue
        if not (isinstance(expr, Mapping) and list(expr) == ["$sum"]):
            return Unsupported(f"accumulator {name}: only $sum is supported")
        operand = expr["$sum"]
        if _is_field_ref(operand):
            accumulators.append(Accumulator(name=name, field=operand[1:]))
        elif isinstance(operand, (int, float)) and not isinstance(operand, bool):
            accumulators.append(Accumulator(name=name, constant=operand))
        else:
            return Unsupported(f"accumulator {name}: unsupported $sum operand")

    for stage in post:
        if "$limit" in stage:
            if not isinstance(stage["$limit"], int) or stage["$limit"] < 0:
                return Unsupported("$limit must be a non-negative integer")
        elif "$sort" not in stage:
            return Unsupported(f"stage {next(iter(stage))} after $group")

    return Translated(
        PipelinePlan(
            kind="group",
            match=match,
            key_kind=key_kind,
            key=key_value,
            accumulators=tuple(accumulators),
            post=tuple(post),
        )
    )


def _is_field_ref(value: Any) -> bool:
    return isinstance(value, str) and value.startswith("$") and len(value) > 1


def group_rows(plan: PipelinePlan, rows: Sequence[Mapping[str, Any]], mapper: ColumnMapper) -> list[dict[str, Any]]:
    """
    Evaluate a group plan over fetched rows.

    Without a $sort stage, field and day groups come back in ascending key
    order; constant and composite groups in first-seen order.
    """
    groups: dict[Any, dict[str, Any]] = {}

    for row in rows:
        key = _group_key(plan, row, mapper)
        bucket_id = tuple(sorted(key.items())) if isinstance(key, dict) else key
        bucket = groups.get(bucket_id)
        if bucket is None:
            bucket = {"_id": key}
            for acc in plan.accumulators:
                bucket[acc.name] = 0
            groups[bucket_id] = bucket
        for acc in plan.accumulators:
            if acc.field:
                bucket[acc.name] += to_number(_value(row, acc.field, mapper))
            else:
                bucket[acc.name] += acc.constant

    result = list(groups.values())
    if plan.key_kind in ("field", "day") and not any("$sort" in stage for stage in plan.post):
        result.sort(key=lambda doc: "" if doc["_id"] is None else str(doc["_id"]))

    for stage in plan.post:
        if "$sort" in stage:
            for name, direction in reversed(list(stage["$sort"].items())):
                result.sort(key=lambda doc: sort_key(doc.get(name)), reverse=is_descending(direction))
        else:
            result = result[: stage["$limit"]]
    return result


def _group_key(plan: PipelinePlan, row: Mapping[str, Any], mapper: ColumnMapper) -> Any:
    match plan.key_kind:
        case "constant":
            return None
        case "field":
            return _value(row, plan.key, mapper)
        case "day":
            return day_key(_value(row, plan.key, mapper))
        case "composite":
            return {name: _value(row, ref, mapper) for name, ref in plan.key.items()}


def _value(row: Mapping[str, Any], field_name: str, mapper: ColumnMapper) -> Any:
    column, path = mapper.split_path(field_name)
    value = row.get(column)
    for part in path:
        value = value.get(part) if isinstance(value, Mapping) else None
    return value


class AggregationEmulator:
    """
    Runs classified pipelines against one table.

    Args:
        client: Storage client
        table: Table the pipeline runs over
        mapper: Column mapper of the table
        embedded: Field -> embedded collection, for $size counts
        refine: Applies a $match filter to a query builder (the caller
            decides what an untranslatable filter means)
        window: Rows fetched per page while scanning
    """

    def __init__(
        self,
        client: Any,
        table: str,
        mapper: ColumnMapper,
        embedded: Mapping[str, EmbeddedCollection],
        refine: Callable[[Any, Mapping[str, Any] | None], Any],
        window: int,
    ):
        self.client = client
        self.table = table
        self.mapper = mapper
        self.embedded = embedded
        self.refine = refine
        self.window = window

    async def run(self, plan: PipelinePlan) -> Translation:
        if plan.kind == "count":
            query = self.refine(self.client.table(self.table).select("id", count="exact", head=True), plan.match)
            response = await query.execute()
            return Translated([{plan.output: response.count or 0}])

        if plan.kind == "embedded_count":
            collection = self.embedded.get(plan.embedded)
            if collection is None:
                return Unsupported(f"{plan.embedded} is not an embedded collection of {self.table}", partial=[])
            response = await self.client.table(collection.table).select("id", count="exact", head=True).execute()
            return Translated([{plan.output: response.count or 0}])

        rows = await self._scan(plan)
        return Translated(group_rows(plan, rows, self.mapper))

    async def _scan(self, plan: PipelinePlan) -> list[Mapping[str, Any]]:
        columns = sorted({"id", *(self.mapper.split_path(name)[0] for name in plan.fields())})

        def build():
            query = self.client.table(self.table).select(",".join(columns))
            return self.refine(query, plan.match).order("id")

        rows = await fetch_all(build, self.window)
        logger.debug(f"Aggregation scan of {self.table}: {len(rows)} rows")
        return rows
