"""
Wizard endpoints
================

POST   /api/v1/wizard                          -- open a new expense wizard
POST   /api/v1/wizard/resume/{expense_id}      -- reopen a saved expense at DETAILS
GET    /api/v1/wizard/{id}                     -- current step and draft
DELETE /api/v1/wizard/{id}                     -- discard the session
PUT    /api/v1/wizard/{id}/places/{field}      -- pick start / end location
GET    /api/v1/wizard/{id}/suggestions/{field} -- debounced place autocomplete
POST   /api/v1/wizard/{id}/waypoints           -- append an empty waypoint
PUT    /api/v1/wizard/{id}/waypoints/{index}   -- pick a waypoint place
DELETE /api/v1/wizard/{id}/waypoints/{index}   -- remove a waypoint
POST   /api/v1/wizard/{id}/advance             -- next step (gated)
POST   /api/v1/wizard/{id}/back                -- previous step
POST   /api/v1/wizard/{id}/calculate           -- calculate route and cost
PATCH  /api/v1/wizard/{id}/details             -- category, date, notes, rate
POST   /api/v1/wizard/{id}/submit              -- validate and persist
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import (
    get_cost_engine,
    get_db,
    get_place_resolver,
    get_route_calculator,
    get_sessions,
)
from src.api.middleware import limiter
from src.api.schemas import (
    DraftSchema,
    ErrorResponse,
    PlaceField,
    PlaceSchema,
    PlaceSelection,
    SubmitResponse,
    SuggestionsResponse,
    WizardCalculateRequest,
    WizardCreateRequest,
    WizardDetailsUpdate,
    WizardStateResponse,
)
from src.config import settings
from src.domain.ports import PlaceResolver
from src.domain.pricing import CostEngine
from src.infrastructure.repositories import ExpenseRepository
from src.services.autocomplete import AutocompleteSession
from src.services.route_calculator import RouteCalculator
from src.services.wizard import WizardController
from src.services.wizard_sessions import WizardSession, WizardSessionStore

router = APIRouter(prefix="/wizard", tags=["wizard"])

_ERRORS = {
    404: {"model": ErrorResponse, "description": "Unknown wizard session."},
    409: {"model": ErrorResponse, "description": "Illegal step transition."},
    422: {"model": ErrorResponse, "description": "Field validation failed."},
}


def _state(session: WizardSession) -> WizardStateResponse:
    controller = session.controller
    return WizardStateResponse(
        id=session.id,
        step=controller.step.value,
        mode=controller.mode.value,
        expense_id=controller.expense_id,
        draft=DraftSchema.from_domain(controller.draft),
    )


def _lookups(places: PlaceResolver) -> AutocompleteSession:
    return AutocompleteSession(
        places,
        delay_seconds=settings.autocomplete_debounce_seconds,
        min_chars=settings.autocomplete_min_chars,
    )


# ── Session lifecycle ─────────────────────────────────────────────────


@router.post(
    "",
    status_code=201,
    response_model=WizardStateResponse,
    summary="Open a new expense wizard",
)
@limiter.limit(settings.rate_limit)
async def open_wizard(
    request: Request,
    body: Optional[WizardCreateRequest] = None,
    sessions: WizardSessionStore = Depends(get_sessions),
    calculator: RouteCalculator = Depends(get_route_calculator),
    places: PlaceResolver = Depends(get_place_resolver),
    cost_engine: CostEngine = Depends(get_cost_engine),
):
    controller = WizardController(calculator, places, cost_engine)
    if body is not None and body.cost_per_km is not None:
        controller.update_details(cost_per_km=body.cost_per_km)
    session = sessions.open(controller, _lookups(places))
    return _state(session)


@router.post(
    "/resume/{expense_id}",
    status_code=201,
    response_model=WizardStateResponse,
    summary="Reopen a saved expense for editing",
    responses={404: {"model": ErrorResponse, "description": "Expense not found."}},
)
@limiter.limit(settings.rate_limit)
async def resume_wizard(
    request: Request,
    expense_id: int,
    db: AsyncSession = Depends(get_db),
    sessions: WizardSessionStore = Depends(get_sessions),
    calculator: RouteCalculator = Depends(get_route_calculator),
    places: PlaceResolver = Depends(get_place_resolver),
    cost_engine: CostEngine = Depends(get_cost_engine),
):
    draft = await ExpenseRepository(db).load_draft(expense_id)
    if draft is None:
        raise HTTPException(status_code=404, detail="Expense not found")

    controller = WizardController.resume(calculator, places, cost_engine, draft, expense_id)
    session = sessions.open(controller, _lookups(places))
    return _state(session)


@router.get("/{session_id}", response_model=WizardStateResponse, responses=_ERRORS)
@limiter.limit(settings.rate_limit)
async def get_wizard(
    request: Request,
    session_id: str,
    sessions: WizardSessionStore = Depends(get_sessions),
):
    return _state(sessions.get(session_id))


@router.delete("/{session_id}", status_code=204, responses=_ERRORS)
async def discard_wizard(
    session_id: str,
    sessions: WizardSessionStore = Depends(get_sessions),
):
    sessions.get(session_id)
    sessions.close(session_id)
    return Response(status_code=204)


# ── Locations ─────────────────────────────────────────────────────────


@router.put(
    "/{session_id}/places/{field}",
    response_model=WizardStateResponse,
    responses=_ERRORS,
    summary="Select the start or end location",
)
@limiter.limit(settings.rate_limit)
async def select_place(
    request: Request,
    session_id: str,
    field: PlaceField,
    body: PlaceSelection,
    sessions: WizardSessionStore = Depends(get_sessions),
):
    session = sessions.get(session_id)
    await session.controller.select_place(field.value, body.place_id, body.description)
    return _state(session)


@router.get(
    "/{session_id}/suggestions/{field}",
    response_model=SuggestionsResponse,
    responses=_ERRORS,
    summary="Autocomplete suggestions for one input field",
)
@limiter.limit(settings.rate_limit)
async def suggestions(
    request: Request,
    session_id: str,
    field: str,
    q: str = Query("", max_length=200),
    sessions: WizardSessionStore = Depends(get_sessions),
):
    session = sessions.get(session_id)
    places = await session.lookups.search(field, q)
    if places is None:
        return SuggestionsResponse(field=field, query=q, superseded=True)
    return SuggestionsResponse(
        field=field,
        query=q,
        suggestions=[PlaceSchema.from_domain(p) for p in places],
    )


# ── Waypoints ─────────────────────────────────────────────────────────


@router.post(
    "/{session_id}/waypoints",
    status_code=201,
    response_model=WizardStateResponse,
    responses=_ERRORS,
)
@limiter.limit(settings.rate_limit)
async def add_waypoint(
    request: Request,
    session_id: str,
    sessions: WizardSessionStore = Depends(get_sessions),
):
    session = sessions.get(session_id)
    session.controller.add_waypoint()
    return _state(session)


@router.put(
    "/{session_id}/waypoints/{index}",
    response_model=WizardStateResponse,
    responses=_ERRORS,
)
@limiter.limit(settings.rate_limit)
async def set_waypoint(
    request: Request,
    session_id: str,
    index: int,
    body: PlaceSelection,
    sessions: WizardSessionStore = Depends(get_sessions),
):
    session = sessions.get(session_id)
    try:
        await session.controller.set_waypoint(index, body.place_id, body.description)
    except IndexError:
        raise HTTPException(status_code=404, detail="Waypoint not found")
    return _state(session)


@router.delete(
    "/{session_id}/waypoints/{index}",
    response_model=WizardStateResponse,
    responses=_ERRORS,
)
@limiter.limit(settings.rate_limit)
async def remove_waypoint(
    request: Request,
    session_id: str,
    index: int,
    sessions: WizardSessionStore = Depends(get_sessions),
):
    session = sessions.get(session_id)
    try:
        session.controller.remove_waypoint(index)
    except IndexError:
        raise HTTPException(status_code=404, detail="Waypoint not found")
    return _state(session)


# ── Navigation ────────────────────────────────────────────────────────


@router.post("/{session_id}/advance", response_model=WizardStateResponse, responses=_ERRORS)
@limiter.limit(settings.rate_limit)
async def advance(
    request: Request,
    session_id: str,
    sessions: WizardSessionStore = Depends(get_sessions),
):
    session = sessions.get(session_id)
    session.controller.advance()
    return _state(session)


@router.post("/{session_id}/back", response_model=WizardStateResponse, responses=_ERRORS)
@limiter.limit(settings.rate_limit)
async def back(
    request: Request,
    session_id: str,
    sessions: WizardSessionStore = Depends(get_sessions),
):
    session = sessions.get(session_id)
    session.controller.back()
    return _state(session)


@router.post(
    "/{session_id}/calculate",
    response_model=WizardStateResponse,
    responses={
        **_ERRORS,
        502: {"model": ErrorResponse, "description": "Routing backend unavailable."},
    },
    summary="Calculate the route; moves to DETAILS on success",
)
@limiter.limit(settings.rate_limit)
async def calculate(
    request: Request,
    session_id: str,
    body: Optional[WizardCalculateRequest] = None,
    sessions: WizardSessionStore = Depends(get_sessions),
):
    session = sessions.get(session_id)
    if body is not None and body.optimize is not None:
        session.controller.set_optimize(body.optimize)
    await session.controller.calculate()
    return _state(session)


# ── Details & submission ──────────────────────────────────────────────


@router.patch("/{session_id}/details", response_model=WizardStateResponse, responses=_ERRORS)
@limiter.limit(settings.rate_limit)
async def update_details(
    request: Request,
    session_id: str,
    body: WizardDetailsUpdate,
    sessions: WizardSessionStore = Depends(get_sessions),
):
    session = sessions.get(session_id)
    session.controller.update_details(**body.model_dump(exclude_unset=True))
    return _state(session)


@router.post(
    "/{session_id}/submit",
    response_model=SubmitResponse,
    responses=_ERRORS,
    summary="Validate the draft and save the expense",
)
@limiter.limit(settings.rate_limit)
async def submit(
    request: Request,
    session_id: str,
    db: AsyncSession = Depends(get_db),
    sessions: WizardSessionStore = Depends(get_sessions),
):
    session = sessions.get(session_id)
    await session.controller.submit(ExpenseRepository(db))
    expense_id = session.controller.expense_id
    sessions.close(session_id)
    return SubmitResponse(id=expense_id)
