"""Immutable audit logging service.

Every HTTP call produces one ``api_request`` entry (see
app.middleware.audit); handlers add domain entries such as
``CREATE_SANCTION`` through the per-request ``AuditContext``.

All audit entries are insert-only. This module intentionally exposes NO
update or delete operations on the audit_logs collection. Writing an entry
never raises: a failed insert is logged and swallowed so the guarded request
is unaffected.
"""

import json
import logging
from typing import Any, Optional

from fastapi import Request

import app.database as _db
from app.config import settings
from app.models.audit import AuditLog
from app.utils import utcnow

logger = logging.getLogger("futmanager.audit")

REDACTED = "[REDACTED]"
_SENSITIVE_HEADERS = frozenset({"authorization", "cookie", "set-cookie"})
_SENSITIVE_FIELDS = frozenset({"password", "refresh_token", "access_token"})


def _truncate_ip(ip: str) -> str:
    """Anonymize an IP address by replacing the last segment (GDPR-compliant).

    IPv4: 192.168.1.42  -> 192.168.1.xxx
    IPv6: 2001:db8::1   -> 2001:db8::xxx
    """
    if not ip:
        return ""

    # IPv4
    if "." in ip:
        parts = ip.split(".")
        if len(parts) == 4:
            parts[-1] = "xxx"
            return ".".join(parts)
        return ip

    # IPv6
    if ":" in ip:
        parts = ip.rsplit(":", 1)
        if len(parts) == 2:
            return f"{parts[0]}:xxx"
        return ip

    return ip


def get_client_ip(request: Optional[Request]) -> str:
    """Client IP, preferring the proxy headers (Cloudflare, nginx) over the socket peer."""
    if request is None:
        return "unknown"

    cf_ip = request.headers.get("cf-connecting-ip")
    if cf_ip:
        return cf_ip.strip()

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        # Take the first IP (original client)
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host

    return "unknown"


def redact_headers(headers) -> dict[str, str]:
    return {
        key: (REDACTED if key.lower() in _SENSITIVE_HEADERS else value)
        for key, value in headers.items()
    }


def _redact_value(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            k: (REDACTED if k in _SENSITIVE_FIELDS else _redact_value(v))
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [_redact_value(v) for v in value]
    return value


def redact_body(raw: Optional[bytes]) -> Optional[str]:
    """Decode a request body for storage, masking credentials in JSON payloads."""
    if raw is None:
        return None
    text = raw.decode("utf-8", errors="replace")
    try:
        parsed = json.loads(text)
    except ValueError:
        return clip(text)
    return clip(json.dumps(_redact_value(parsed)))


def clip(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    limit = settings.AUDIT_MAX_BODY_CHARS
    if limit and len(text) > limit:
        return text[:limit] + "...[truncated]"
    return text


def capture_request(request: Request, body: Optional[bytes] = None) -> dict:
    """Request metadata stored with every entry of this request."""
    return {
        "method": request.method,
        "url": str(request.url),
        "path": request.url.path,
        "query": request.url.query or None,
        "headers": redact_headers(request.headers),
        "body": redact_body(body) if request.method != "GET" else None,
    }


def _principal_id(request: Optional[Request]) -> Optional[str]:
    if request is None:
        return None
    principal = getattr(request.state, "principal", None)
    return principal.id if principal is not None else None


async def write_entry(
    *,
    action: str,
    resource_type: str,
    user_id: Optional[str] = None,
    resource_id: Optional[str] = None,
    request_data: Optional[dict] = None,
    response_data: Optional[dict] = None,
    ip_address: str = "unknown",
    user_agent: str = "unknown",
) -> None:
    """Insert one immutable audit record. Never raises."""
    if not settings.AUDIT_ENABLED:
        return

    if settings.AUDIT_TRUNCATE_IP and ip_address != "unknown":
        ip_address = _truncate_ip(ip_address)

    try:
        entry = AuditLog(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            request_data=request_data or {},
            response_data=response_data,
            ip_address=ip_address or "unknown",
            user_agent=user_agent or "unknown",
            created_at=utcnow(),
        )
        await _db.db.audit_logs.insert_one(entry.model_dump())
    except Exception:
        # Audit logging must never crash the request
        logger.exception("Failed to write audit log: action=%s user=%s", action, user_id)


class AuditContext:
    """Explicit, request-bound audit log function handed to route handlers."""

    def __init__(self, request: Optional[Request] = None) -> None:
        self.request = request

    @property
    def user_id(self) -> Optional[str]:
        return _principal_id(self.request)

    def _request_data(self) -> dict:
        if self.request is None:
            return {}
        captured = getattr(self.request.state, "audit_request", None)
        if captured is None:
            captured = capture_request(self.request)
        return dict(captured)

    async def record(
        self,
        action: str,
        resource_type: str,
        resource_id: Optional[str] = None,
        detail: Optional[dict] = None,
        *,
        user_id: Optional[str] = None,
    ) -> None:
        request_data = self._request_data()
        if detail:
            request_data["detail"] = detail
        await write_entry(
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            user_id=user_id or self.user_id,
            request_data=request_data,
            ip_address=get_client_ip(self.request),
            user_agent=(self.request.headers.get("user-agent") if self.request else None) or "unknown",
        )


async def get_audit(request: Request) -> AuditContext:
    """FastAPI dependency: the audit log function bound to this request."""
    return AuditContext(request)
