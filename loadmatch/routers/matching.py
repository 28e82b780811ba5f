from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from loadmatch.api.deps import get_current_owner
from loadmatch.core.db import get_db
from loadmatch.schemas.matching import (
    MatchingSettingsResponse,
    MatchingSettingsUpdate,
    RefreshSuggestionsResponse,
    SuggestionActionRequest,
    SuggestionResponse,
)
from loadmatch.services.matching.errors import (
    CompanyNotFoundError,
    ContextError,
    ContextErrorKind,
    InvalidActionError,
    InvalidTransitionError,
    MatchingError,
    StoreError,
    SuggestionNotFoundError,
)
from loadmatch.services.matching.service import LoadMatchingService

router = APIRouter()


def _service(db: AsyncSession = Depends(get_db)) -> LoadMatchingService:
    return LoadMatchingService(db)


def _http_error(exc: MatchingError) -> HTTPException:
    if isinstance(exc, ContextError):
        if exc.kind == ContextErrorKind.NO_DESTINATION:
            return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, (SuggestionNotFoundError, CompanyNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, InvalidTransitionError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, InvalidActionError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, StoreError) and exc.transient:
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Data store temporarily unavailable")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Load matching failed")


@router.post("/trips/{trip_id}/refresh", response_model=RefreshSuggestionsResponse)
async def refresh_trip_suggestions(
    trip_id: str,
    owner_id: str = Depends(get_current_owner),
    service: LoadMatchingService = Depends(_service),
) -> RefreshSuggestionsResponse:
    try:
        return await service.refresh_suggestions(owner_id, trip_id)
    except MatchingError as exc:
        raise _http_error(exc) from exc


@router.get("/suggestions", response_model=List[SuggestionResponse])
async def list_suggestions(
    trip_id: Optional[str] = Query(default=None),
    status_filter: str = Query(default="pending", alias="status"),
    limit: int = Query(default=100, ge=1, le=500),
    owner_id: str = Depends(get_current_owner),
    service: LoadMatchingService = Depends(_service),
) -> List[SuggestionResponse]:
    try:
        suggestions = await service.list_suggestions(owner_id, trip_id=trip_id, status=status_filter, limit=limit)
    except MatchingError as exc:
        raise _http_error(exc) from exc
    return [SuggestionResponse.model_validate(suggestion) for suggestion in suggestions]


@router.post("/suggestions/{suggestion_id}/action", response_model=SuggestionResponse)
async def action_suggestion(
    suggestion_id: str,
    payload: SuggestionActionRequest,
    owner_id: str = Depends(get_current_owner),
    service: LoadMatchingService = Depends(_service),
) -> SuggestionResponse:
    try:
        suggestion = await service.action_suggestion(owner_id, suggestion_id, payload.action)
    except MatchingError as exc:
        raise _http_error(exc) from exc
    return SuggestionResponse.model_validate(suggestion)


@router.get("/settings", response_model=MatchingSettingsResponse)
async def get_matching_settings(
    owner_id: str = Depends(get_current_owner),
    service: LoadMatchingService = Depends(_service),
) -> MatchingSettingsResponse:
    return await service.get_preferences(owner_id)


@router.put("/settings", response_model=MatchingSettingsResponse)
async def update_matching_settings(
    payload: MatchingSettingsUpdate,
    owner_id: str = Depends(get_current_owner),
    service: LoadMatchingService = Depends(_service),
) -> MatchingSettingsResponse:
    try:
        return await service.update_preferences(owner_id, payload)
    except MatchingError as exc:
        raise _http_error(exc) from exc
