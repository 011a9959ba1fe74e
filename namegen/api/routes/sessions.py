import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, status

from namegen.api.deps import get_generation_service
from namegen.api.models import CatalogResponse, CreateSessionRequest, SessionCreateResponse, SessionDetailsResponse, SessionStatusResponse, StartSessionRequest
from namegen.services.generation import GenerationService

router = APIRouter()
logger = logging.getLogger("namegen.api.routes.sessions")


@router.post("", response_model=SessionCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_session(  # noqa: B008
  request: CreateSessionRequest,
  service: GenerationService = Depends(get_generation_service),  # noqa: B008
) -> SessionCreateResponse:
  """Create a generation session and dispatch it unless auto_start is off."""
  return await service.create_session(request)


@router.post("/{session_id}/start", response_model=SessionStatusResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_session(  # noqa: B008
  session_id: str,
  payload: StartSessionRequest | None = None,
  service: GenerationService = Depends(get_generation_service),  # noqa: B008
) -> SessionStatusResponse:
  """Dispatch a pending session; repeated calls are no-ops."""
  priority = payload.priority if payload else StartSessionRequest().priority
  await service.start_session(session_id, priority=priority)
  snapshot = await service.get_status(session_id)
  return SessionStatusResponse(**asdict(snapshot))


@router.get("/{session_id}", response_model=SessionStatusResponse)
async def get_session_status(  # noqa: B008
  session_id: str,
  service: GenerationService = Depends(get_generation_service),  # noqa: B008
) -> SessionStatusResponse:
  """Poll the status, progress and results of a session."""
  snapshot = await service.get_status(session_id)
  return SessionStatusResponse(**asdict(snapshot))


@router.get("/{session_id}/models", response_model=SessionDetailsResponse)
async def get_session_details(  # noqa: B008
  session_id: str,
  service: GenerationService = Depends(get_generation_service),  # noqa: B008
) -> SessionDetailsResponse:
  """Return the session with its per-model status map."""
  return await service.get_details(session_id)


@router.post("/{session_id}/cancel", response_model=SessionStatusResponse)
async def cancel_session(  # noqa: B008
  session_id: str,
  service: GenerationService = Depends(get_generation_service),  # noqa: B008
) -> SessionStatusResponse:
  """Request cancellation of a pending or running session."""
  snapshot = await service.cancel_session(session_id)
  return SessionStatusResponse(**asdict(snapshot))


catalog_router = APIRouter()


@catalog_router.get("", response_model=CatalogResponse)
async def list_models(service: GenerationService = Depends(get_generation_service)) -> CatalogResponse:  # noqa: B008
  """List registered models with live availability and the generation strategies."""
  return CatalogResponse(models=service.available_models(), strategies=service.available_strategies())
