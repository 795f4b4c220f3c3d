# carelog/service/store.py
"""
Persistence facade over MongoDB.

Records cross this boundary as plain dicts with a string ``id``. Calendar days
travel as ``date`` values and are stored as midnight ``datetime`` (BSON has no
date-only type).
"""
import functools
import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence, Set, Tuple

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, DeleteOne, ReplaceOne, ReturnDocument
from pymongo.errors import PyMongoError

from ..errors import PersistenceError
from ..utils.timeutils import day_to_datetime

logger = logging.getLogger(__name__)

COMPANIES_COLL = "companies"
PLANS_COLL = "plans"
PATIENTS_COLL = "patients"
SERVICES_COLL = "services"
ASSIGNED_PLANS_COLL = "assigned_plans"
COUNTERS_COLL = "counters"

OrderBy = Sequence[Tuple[str, str]]   # [("date", "desc"), ("start_time", "desc")]


class Filter(NamedTuple):
    field: str
    op: str      # one of ==, >=, <=, >, <
    value: Any


_MONGO_OPS = {">=": "$gte", "<=": "$lte", ">": "$gt", "<": "$lt"}


def diff_assigned_plans(existing_ids: Iterable[str], desired: Iterable[dict]) -> Tuple[Set[str], List[dict]]:
    """Returns (plan ids to delete, plans to upsert) for a wholesale replace."""
    desired = list(desired)
    desired_ids = {p["plan_id"] for p in desired}
    return set(existing_ids) - desired_ids, desired


def _to_mongo(value):
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return day_to_datetime(value)
    if isinstance(value, dict):
        return {k: _to_mongo(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_mongo(v) for v in value]
    return value


def _from_mongo(value):
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, dict):
        return {k: _from_mongo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_mongo(v) for v in value]
    return value


def _clean(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return None
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    return _from_mongo(doc)


def _sort_keys(order_by: Optional[OrderBy]):
    return [(field, DESCENDING if direction == "desc" else ASCENDING) for field, direction in (order_by or [])]


def _query_filter(filters: Sequence[Filter]) -> dict:
    query: Dict[str, Any] = {}
    for f in filters:
        value = _to_mongo(f.value)
        if f.op == "==":
            query[f.field] = value
        elif f.op in _MONGO_OPS:
            query.setdefault(f.field, {})[_MONGO_OPS[f.op]] = value
        else:
            raise ValueError(f"unsupported filter operator {f.op!r}")
    return query


def _guarded(fn):
    @functools.wraps(fn)
    async def wrapper(self, *args, **kwargs):
        try:
            return await fn(self, *args, **kwargs)
        except PyMongoError as e:
            target = args[0] if args else ""
            action = f"{fn.__name__}({target})"
            logger.error("[store] %s failed: %s", action, e)
            raise PersistenceError(action, "storage operation failed", e) from e
    return wrapper


class MongoStore:
    def __init__(self, database):
        self.db = database
        self.version = 0

    def _touch(self):
        self.version += 1

    @_guarded
    async def get_by_id(self, kind: str, id: str) -> Optional[dict]:
        if not id:
            return None
        return _clean(await self.db[kind].find_one({"_id": id}))

    @_guarded
    async def list_all(self, kind: str, order_by: Optional[OrderBy] = None) -> List[dict]:
        return await self.query(kind, [], order_by)

    @_guarded
    async def query(self, kind: str, filters: Sequence[Filter], order_by: Optional[OrderBy] = None) -> List[dict]:
        cursor = self.db[kind].find(_query_filter(filters))
        sort = _sort_keys(order_by)
        if sort:
            cursor = cursor.sort(sort)
        return [_clean(doc) async for doc in cursor]

    @_guarded
    async def create(self, kind: str, data: dict) -> dict:
        new_id = str(ObjectId())
        return await self.create_with_id(kind, new_id, data)

    @_guarded
    async def create_with_id(self, kind: str, id: str, data: dict) -> dict:
        doc = {k: v for k, v in data.items() if k != "id"}
        await self.db[kind].replace_one({"_id": id}, _to_mongo(doc), upsert=True)
        self._touch()
        return {**doc, "id": id}

    @_guarded
    async def update(self, kind: str, id: str, partial: dict) -> bool:
        """Sets the given fields, None included. Returns False when no document matched."""
        changes = {k: v for k, v in partial.items() if k != "id"}
        if not changes:
            return await self.db[kind].count_documents({"_id": id}, limit=1) > 0
        result = await self.db[kind].update_one({"_id": id}, {"$set": _to_mongo(changes)})
        if result.matched_count:
            self._touch()
        return result.matched_count > 0

    @_guarded
    async def delete(self, kind: str, id: str) -> None:
        await self.db[kind].delete_one({"_id": id})
        self._touch()

    @_guarded
    async def next_sequential_id(self, counter_name: str, prefix: str) -> str:
        counter = await self.db[COUNTERS_COLL].find_one_and_update(
            {"_id": counter_name},
            {"$inc": {"count": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return f"{prefix}{counter['count']}"

    @_guarded
    async def list_assigned_plans(self, patient_id: str) -> List[dict]:
        cursor = self.db[ASSIGNED_PLANS_COLL].find({"patient_id": patient_id})
        plans = []
        async for doc in cursor:
            doc = _from_mongo(doc)
            doc.pop("_id", None)
            doc.pop("patient_id", None)
            doc.setdefault("scheduled_instances", [])
            plans.append(doc)
        return plans

    @_guarded
    async def replace_assigned_plans(self, patient_id: str, plans: List[dict]) -> None:
        coll = self.db[ASSIGNED_PLANS_COLL]
        existing = [doc["plan_id"] async for doc in coll.find({"patient_id": patient_id}, {"plan_id": 1})]
        to_delete, to_upsert = diff_assigned_plans(existing, plans)

        ops = [DeleteOne({"_id": f"{patient_id}:{plan_id}"}) for plan_id in sorted(to_delete)]
        for plan in to_upsert:
            doc = {**plan, "patient_id": patient_id, "scheduled_instances": plan.get("scheduled_instances") or []}
            ops.append(ReplaceOne({"_id": f"{patient_id}:{plan['plan_id']}"}, _to_mongo(doc), upsert=True))
        if ops:
            await coll.bulk_write(ops, ordered=True)
        self._touch()
        logger.info("[store] replaced assigned plans for patient %s (%d kept, %d removed)",
                    patient_id, len(to_upsert), len(to_delete))

    @_guarded
    async def delete_assigned_plans(self, patient_id: str) -> None:
        await self.db[ASSIGNED_PLANS_COLL].delete_many({"patient_id": patient_id})
        self._touch()
