from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from namegen.api.routes import sessions
from namegen.core.exceptions import generation_request_handler, global_exception_handler, http_exception_handler, invalid_transition_handler, request_validation_exception_handler, session_not_found_handler
from namegen.core.lifespan import lifespan
from namegen.core.middleware import RequestLoggingMiddleware
from namegen.services.generation import GenerationRequestError
from namegen.storage.sessions_repo import InvalidSessionTransitionError, SessionNotFoundError

__version__ = "0.1.0"

app = FastAPI(title="namegen-engine", version=__version__, lifespan=lifespan)

# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
app.add_exception_handler(SessionNotFoundError, session_not_found_handler)
app.add_exception_handler(GenerationRequestError, generation_request_handler)
app.add_exception_handler(InvalidSessionTransitionError, invalid_transition_handler)

app.add_middleware(RequestLoggingMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": __version__}


app.include_router(sessions.router, prefix="/v1/sessions", tags=["sessions"])
app.include_router(sessions.catalog_router, prefix="/v1/models", tags=["models"])
