import re
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

TRACE_ID_CTX_VAR: ContextVar[str] = ContextVar("trace_id", default="")
TRACE_HEADER = "x-trace-id"

_VALID_TRACE_ID = re.compile(r"^[A-Za-z0-9-]{8,64}$")


class TracingMiddleware(BaseHTTPMiddleware):
    """
    Tag every request with a trace id, reusing the caller's x-trace-id when it
    looks sane. The id lands in a context variable for log lines and error
    envelopes, and is echoed back on the response.
    """
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        incoming = (request.headers.get(TRACE_HEADER) or "").strip()
        trace_id = incoming if _VALID_TRACE_ID.match(incoming) else str(uuid.uuid4())
        TRACE_ID_CTX_VAR.set(trace_id)
        request.state.trace_id = trace_id

        response = await call_next(request)

        response.headers[TRACE_HEADER] = trace_id
        return response
