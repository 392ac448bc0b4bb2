"""Read-only queries over audit_logs for the admin audit viewer."""

from datetime import datetime, timezone
from typing import Optional

import app.database as _db
from app.utils import serialize_doc


def _parse_day(value: Optional[str], end_of_day: bool = False) -> Optional[datetime]:
    if not value:
        return None
    try:
        day = datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    except ValueError:
        return None
    if end_of_day:
        day = day.replace(hour=23, minute=59, second=59)
    return day


def build_query(
    action: Optional[str] = None,
    resource_type: Optional[str] = None,
    user_id: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
) -> dict:
    query: dict = {}
    if action:
        query["action"] = action
    if resource_type:
        query["resource_type"] = resource_type
    if user_id:
        query["user_id"] = user_id

    ts_query: dict = {}
    start = _parse_day(date_from)
    end = _parse_day(date_to, end_of_day=True)
    if start:
        ts_query["$gte"] = start
    if end:
        ts_query["$lte"] = end
    if ts_query:
        query["created_at"] = ts_query
    return query


async def _page(query: dict, limit: int, offset: int) -> dict:
    total = await _db.db.audit_logs.count_documents(query)
    logs = await _db.db.audit_logs.find(query).sort("created_at", -1).skip(offset).limit(limit).to_list(length=limit)
    return {
        "total": total,
        "offset": offset,
        "limit": limit,
        "audit_logs": [serialize_doc(entry) for entry in logs],
    }


async def list_entries(
    action: Optional[str] = None,
    resource_type: Optional[str] = None,
    user_id: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> dict:
    """Audit entries matching the filters, newest first. Invalid dates are ignored."""
    query = build_query(action, resource_type, user_id, date_from, date_to)
    return await _page(query, limit, offset)


async def list_user_entries(user_id: str, limit: int = 50, offset: int = 0) -> dict:
    page = await _page({"user_id": user_id}, limit, offset)
    page["user_id"] = user_id
    return page


async def stats() -> dict:
    """Totals for the audit dashboard."""
    audit_logs = _db.db.audit_logs
    actions = await audit_logs.distinct("action", {"resource_type": {"$ne": "api_request"}})
    per_action = {}
    for action in sorted(actions):
        per_action[action] = await audit_logs.count_documents({"action": action})

    return {
        "total_logs": await audit_logs.count_documents({}),
        "api_requests": await audit_logs.count_documents({"resource_type": "api_request"}),
        "failed_attempts": await audit_logs.count_documents({
            "resource_type": "api_request",
            "response_data.status": {"$gte": 400},
        }),
        "successful_logins": await audit_logs.count_documents({"action": "LOGIN_SUCCESS"}),
        "failed_logins": await audit_logs.count_documents({"action": "LOGIN_FAILED"}),
        "actions": per_action,
    }
