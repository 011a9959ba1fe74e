import logging
import time
import uuid

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger("namegen.core.middleware")


class RequestLoggingMiddleware:
  """Assign a request id and log one line per HTTP request."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    request_id = uuid.uuid4().hex
    scope.setdefault("state", {})["request_id"] = request_id
    started = time.perf_counter()
    status_code = 500

    async def send_wrapper(message: Message) -> None:
      nonlocal status_code
      if message["type"] == "http.response.start":
        status_code = message["status"]
        headers = MutableHeaders(scope=message)
        headers["x-request-id"] = request_id
      await send(message)

    try:
      await self.app(scope, receive, send_wrapper)
    finally:
      elapsed_ms = (time.perf_counter() - started) * 1000
      logger.info("request_id=%s method=%s path=%s status=%s duration_ms=%.1f", request_id, scope.get("method"), scope.get("path"), status_code, elapsed_ms)
