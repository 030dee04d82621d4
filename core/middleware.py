from fastapi import Request, Response
from typing import Callable, Optional
import time
import uuid
import logging

logger = logging.getLogger(__name__)

def _user_id(request: Request) -> Optional[str]:
    # Set by get_current_user once the bearer token resolves
    user = getattr(request.state, "user", None)
    return getattr(user, "id", None)

async def request_context_middleware(request: Request, call_next: Callable) -> Response:
    """
    Tag each request with an id and log its outcome.

    The id is echoed in `X-Request-ID` (an incoming one is reused) and the
    handling time in `X-Process-Time`. The completion log line carries the
    authenticated user when there is one.
    """
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
    request.state.request_id = request_id
    start_time = time.time()

    try:
        response = await call_next(request)
    except Exception as e:
        process_time = time.time() - start_time
        logger.error(
            f"[{request_id}] {request.method} {request.url.path} failed after {process_time:.2f}s "
            f"(user={_user_id(request) or '-'}): {str(e)}"
        )
        raise

    process_time = time.time() - start_time
    logger.info(
        f"[{request_id}] {request.method} {request.url.path} -> {response.status_code} "
        f"in {process_time:.2f}s (user={_user_id(request) or '-'})"
    )
    response.headers["X-Request-ID"] = request_id
    response.headers["X-Process-Time"] = f"{process_time:.4f}"
    return response
