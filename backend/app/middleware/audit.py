import asyncio
import time

from starlette.background import BackgroundTask
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.services.audit_service import (
    capture_request,
    clip,
    get_client_ip,
    write_entry,
)


class AuditMiddleware(BaseHTTPMiddleware):
    """Write one ``api_request`` audit entry per HTTP call.

    The entry is written after the response body has been sent, as a
    background task on the response, so a slow or failing audit store never
    changes or delays what the client receives. When the handler raises there
    is no response to attach to; the write is scheduled on the loop instead.
    """

    def __init__(self, app) -> None:
        super().__init__(app)
        self._pending: set[asyncio.Task] = set()

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.perf_counter()
        body = await request.body() if request.method != "GET" else None
        captured = capture_request(request, body)
        request.state.audit_request = captured

        try:
            response: Response = await call_next(request)
        except Exception:
            # Rendered as a 500 by the outer error handler.
            self._schedule(self._record(request, captured, 500, None, _elapsed_ms(start)))
            raise

        chunks = [chunk async for chunk in response.body_iterator]
        raw = b"".join(chunks)

        async def _replay():
            yield raw

        response.body_iterator = _replay()
        response.background = _chain(
            response.background,
            BackgroundTask(
                self._record,
                request,
                captured,
                response.status_code,
                raw.decode("utf-8", errors="replace"),
                _elapsed_ms(start),
            ),
        )
        return response

    def _schedule(self, coro) -> None:
        task = asyncio.create_task(coro, name="audit-unhandled-error")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _record(
        self,
        request: Request,
        captured: dict,
        status_code: int,
        body: str | None,
        latency_ms: float,
    ) -> None:
        principal = getattr(request.state, "principal", None)
        await write_entry(
            action=f"{request.method} {request.url.path}",
            resource_type="api_request",
            user_id=principal.id if principal is not None else None,
            request_data=captured,
            response_data={
                "status": status_code,
                "body": clip(body),
                "latency_ms": latency_ms,
            },
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("user-agent") or "unknown",
        )


def _chain(existing, task: BackgroundTask):
    if existing is None:
        return task

    async def _run_both() -> None:
        await existing()
        await task()

    return BackgroundTask(_run_both)


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)
