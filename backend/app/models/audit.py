from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class AuditLog(BaseModel):
    """Immutable audit log entry.

    Insert-only. No updates or deletes permitted on this collection.
    """

    user_id: Optional[str] = None  # Principal id; may outlive the user (no cascade)
    action: str  # e.g. "POST /api/teams", "CREATE_SANCTION"
    resource_type: str  # "api_request" for the per-request entry, else the collection
    resource_id: Optional[str] = None
    request_data: dict[str, Any] = Field(default_factory=dict)
    response_data: Optional[dict[str, Any]] = None  # {status, body, latency_ms}
    ip_address: str = "unknown"
    user_agent: str = "unknown"
    created_at: datetime
