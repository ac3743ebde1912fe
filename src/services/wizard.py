"""
Mileage Expense Wizard
======================

Six linear steps::

    START_LOCATION -> CONFIRM_START -> END_LOCATION -> WAYPOINTS -> CALCULATE -> DETAILS

* Legal moves live in ``WIZARD_TRANSITIONS``; every step change goes
  through ``_move`` so illegal jumps raise ``InvalidStateTransition``.
* Forward gates: a resolved start / end place, and a successful route
  calculation before ``DETAILS``.  A failed gate raises
  ``ValidationFailed`` and leaves step and data untouched.
* Editing a location or waypoint after a calculation clears the cached
  route, distance and total.  Nothing is recalculated automatically.
* ``resume`` opens an existing expense directly at ``DETAILS`` without
  replaying the intermediate gates.

The controller is the only writer of its ``ExpenseDraft``.  Asynchronous
results (place details, route calculation) are applied only if no newer
request for the same slot was issued in the meantime.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Optional

from src.domain.entities import ExpenseDraft, Place, RouteSnapshot, Waypoint
from src.domain.enums import WIZARD_ORDER, WIZARD_TRANSITIONS, WizardEntryMode, WizardStep
from src.domain.errors import (
    InvalidCostInput,
    InvalidStateTransition,
    PlaceResolutionFailed,
    RouteServiceError,
    ValidationFailed,
)
from src.domain.ports import ExpensePersistence, PlaceResolver
from src.domain.pricing import CostEngine, derive_cost
from src.services.route_calculator import RouteCalculator

logger = logging.getLogger(__name__)

PLACE_FIELDS = ("start_location", "end_location")

_REQUIRED_MESSAGES = {
    "start_location": "Starting point is required",
    "end_location": "Destination point is required",
}
_LENGTH_MESSAGES = {
    "start_location": "Starting point must be between 2 and 100 characters",
    "end_location": "Destination point must be between 2 and 100 characters",
}


class WizardController:
    def __init__(
        self,
        calculator: RouteCalculator,
        places: PlaceResolver,
        cost_engine: CostEngine,
        draft: Optional[ExpenseDraft] = None,
        step: WizardStep = WizardStep.START_LOCATION,
        mode: WizardEntryMode = WizardEntryMode.CREATE,
        expense_id: Optional[int] = None,
    ):
        self.calculator = calculator
        self.places = places
        self.cost_engine = cost_engine
        self.draft = draft or ExpenseDraft(cost_per_km=cost_engine.cost_per_km)
        self.step = step
        self.mode = mode
        self.expense_id = expense_id
        self._slots: dict[str, int] = {}
        self._waypoint_epoch = 0
        self._calculation = 0

    @classmethod
    def resume(
        cls,
        calculator: RouteCalculator,
        places: PlaceResolver,
        cost_engine: CostEngine,
        draft: ExpenseDraft,
        expense_id: int,
    ) -> "WizardController":
        """Open a persisted expense at ``DETAILS`` (edit mode, no gates)."""
        return cls(
            calculator,
            places,
            cost_engine,
            draft=draft,
            step=WizardStep.DETAILS,
            mode=WizardEntryMode.EDIT,
            expense_id=expense_id,
        )

    # ── Navigation ────────────────────────────────────────────────────

    def advance(self) -> WizardStep:
        index = WIZARD_ORDER.index(self.step)
        if index + 1 >= len(WIZARD_ORDER):
            raise InvalidStateTransition(f"{self.step} is the last step")

        errors = self._gate_errors()
        if errors:
            self.draft.errors.update(errors)
            raise ValidationFailed(errors)

        self._move(WIZARD_ORDER[index + 1])
        return self.step

    def back(self) -> WizardStep:
        index = WIZARD_ORDER.index(self.step)
        if index == 0:
            raise InvalidStateTransition(f"{self.step} is the first step")
        self._move(WIZARD_ORDER[index - 1])
        return self.step

    def _move(self, new_step: WizardStep) -> None:
        if new_step not in WIZARD_TRANSITIONS.get(self.step, set()):
            raise InvalidStateTransition(
                f"Cannot transition from {self.step} to {new_step}"
            )
        logger.debug("Wizard %s -> %s", self.step.value, new_step.value)
        self.step = new_step

    def _gate_errors(self) -> dict[str, str]:
        if self.step is WizardStep.START_LOCATION:
            return self._place_errors("start_location")
        if self.step is WizardStep.END_LOCATION:
            return self._place_errors("end_location")
        if self.step is WizardStep.CALCULATE and self.draft.route_result is None:
            return {"route": "Valid distance calculation is required"}
        return {}

    def _place_errors(self, field: str) -> dict[str, str]:
        place: Optional[Place] = getattr(self.draft, field)
        if place is None or not place.is_resolved or not place.label:
            return {field: _REQUIRED_MESSAGES[field]}
        return {}

    # ── Locations ─────────────────────────────────────────────────────

    async def select_place(self, field: str, place_id: str, description: str = "") -> Place:
        """Pick a suggestion for *field*, then resolve its details."""
        if field not in PLACE_FIELDS:
            raise ValueError(f"Unknown place field {field!r}")

        provisional = Place(place_id=place_id, description=description)
        setattr(self.draft, field, provisional)
        self.draft.errors.pop(field, None)
        self._invalidate_route()

        token = self._bump(field)
        try:
            details = await self.places.details(place_id)
        except PlaceResolutionFailed as exc:
            if self._current(field, token):
                self.draft.errors[field] = exc.message
            logger.warning("Details for %s (%s) failed: %s", field, place_id, exc)
            return getattr(self.draft, field)

        if not self._current(field, token):
            logger.debug("Discarding stale details for %s", field)
            return getattr(self.draft, field)

        resolved = _merge(provisional, details)
        setattr(self.draft, field, resolved)
        return resolved

    def add_waypoint(self) -> int:
        self.draft.waypoints.append(Waypoint())
        return len(self.draft.waypoints) - 1

    async def set_waypoint(self, index: int, place_id: str, description: str = "") -> Waypoint:
        self._check_waypoint(index)
        current = self.draft.waypoints[index]
        provisional = Waypoint(
            place=Place(place_id=place_id, description=description),
            stopover=current.stopover,
        )
        self.draft.waypoints[index] = provisional
        self._invalidate_route()

        slot = f"waypoint:{index}"
        epoch = self._waypoint_epoch
        token = self._bump(slot)
        try:
            details = await self.places.details(place_id)
        except PlaceResolutionFailed as exc:
            logger.warning("Details for waypoint %d (%s) failed: %s", index, place_id, exc)
            return provisional

        if not self._current(slot, token) or epoch != self._waypoint_epoch:
            logger.debug("Discarding stale details for waypoint %d", index)
            return provisional

        resolved = Waypoint(place=_merge(provisional.place, details), stopover=current.stopover)
        self.draft.waypoints[index] = resolved
        return resolved

    def remove_waypoint(self, index: int) -> None:
        self._check_waypoint(index)
        del self.draft.waypoints[index]
        # indices shifted; in-flight waypoint lookups no longer match
        self._waypoint_epoch += 1
        self._invalidate_route()

    def set_optimize(self, optimize: bool) -> None:
        if optimize != self.draft.optimize_waypoints:
            self.draft.optimize_waypoints = optimize
            self._invalidate_route()

    def _check_waypoint(self, index: int) -> None:
        if not 0 <= index < len(self.draft.waypoints):
            raise IndexError(f"No waypoint at index {index}")

    # ── Calculation ───────────────────────────────────────────────────

    async def calculate(self) -> Optional[RouteSnapshot]:
        """
        Calculate the route and move to ``DETAILS``.

        Returns ``None`` when the inputs were edited while the request was
        in flight (the late result is dropped).  Failures are recorded on
        the draft under ``route`` and re-raised; the step does not change.
        """
        if self.step is not WizardStep.CALCULATE:
            raise InvalidStateTransition(f"Cannot calculate from {self.step}")

        start, end = self.draft.start_location, self.draft.end_location
        if start is None or end is None or not start.is_resolved or not end.is_resolved:
            errors = {"route": "Please select both start and end locations"}
            self.draft.errors.update(errors)
            raise ValidationFailed(errors)

        self._calculation += 1
        token = self._calculation
        self.draft.errors.pop("route", None)

        try:
            result = await self.calculator.calculate(
                start,
                end,
                self.draft.waypoints,
                optimize=self.draft.optimize_waypoints,
            )
            quote = self.cost_engine.quote(result, self.draft.cost_per_km)
        except InvalidCostInput as exc:
            if token == self._calculation:
                self.draft.errors["cost_per_km"] = exc.message
            raise
        except RouteServiceError as exc:
            if token == self._calculation:
                self.draft.errors["route"] = exc.message
            raise

        if token != self._calculation:
            logger.info("Discarding route result for edited inputs")
            return None

        ordered = result.ordered_waypoints()
        snapshot = RouteSnapshot(
            result=result,
            origin=start,
            destination=end,
            waypoints=tuple(ordered),
        )
        self.draft.waypoints = ordered
        self.draft.distance_in_km = quote.distance_in_km
        self.draft.total_cost = quote.total_cost
        self.draft.route_snapshot = snapshot
        logger.info(
            "Route calculated: %.2f km, total %.2f%s",
            quote.distance_in_km,
            quote.total_cost,
            " (degraded)" if result.degraded else "",
        )

        self._move(WizardStep.DETAILS)
        return snapshot

    def _invalidate_route(self) -> None:
        # bumping the token also orphans any calculation still in flight
        self._calculation += 1
        if self.draft.route_snapshot is not None or self.draft.distance_in_km:
            logger.info("Inputs changed; cached route cleared")
            self.draft.clear_route()

    # ── Details & submission ──────────────────────────────────────────

    def update_details(
        self,
        *,
        category_id: Optional[str] = None,
        expense_date: Optional[date] = None,
        notes: Optional[str] = None,
        cost_per_km: Optional[float] = None,
    ) -> None:
        if category_id is not None:
            self.draft.category_id = category_id
            self.draft.errors.pop("category_id", None)
        if expense_date is not None:
            self.draft.expense_date = expense_date
            self.draft.errors.pop("expense_date", None)
        if notes is not None:
            self.draft.notes = notes
        if cost_per_km is not None:
            self.draft.cost_per_km = cost_per_km
            self.draft.errors.pop("cost_per_km", None)
            if self.draft.distance_in_km > 0:
                try:
                    self.draft.total_cost = derive_cost(self.draft.distance_in_km, cost_per_km)
                except InvalidCostInput as exc:
                    self.draft.errors["cost_per_km"] = exc.message

    def validate(self, today: Optional[date] = None) -> dict[str, str]:
        draft = self.draft
        today = today or date.today()
        errors: dict[str, str] = {}

        if not draft.category_id:
            errors["category_id"] = "Category is required"

        if draft.expense_date is None:
            errors["expense_date"] = "Journey date is required"
        elif draft.expense_date > today:
            errors["expense_date"] = "Journey date cannot be in the future"

        for field in PLACE_FIELDS:
            place: Optional[Place] = getattr(draft, field)
            label = place.label if place else ""
            if not label:
                errors[field] = _REQUIRED_MESSAGES[field]
            elif not 2 <= len(label) <= 100:
                errors[field] = _LENGTH_MESSAGES[field]

        if draft.distance_in_km <= 0:
            errors["distance_in_km"] = "Valid distance calculation is required"

        if draft.cost_per_km <= 0:
            errors["cost_per_km"] = "Cost per kilometer must be greater than zero"

        return errors

    async def submit(self, persistence: ExpensePersistence) -> dict[str, Any]:
        if self.step is not WizardStep.DETAILS:
            raise InvalidStateTransition(f"Cannot submit from {self.step}")

        errors = self.validate()
        if errors:
            self.draft.errors.update(errors)
            raise ValidationFailed(errors)

        if self.expense_id is None:
            result = await persistence.create_expense(self.draft)
            self.expense_id = result["id"]
            logger.info("Expense %s created", self.expense_id)
        else:
            result = await persistence.update_expense(self.expense_id, self.draft)
            logger.info("Expense %s updated", self.expense_id)
        return result

    # ── Slots ─────────────────────────────────────────────────────────

    def _bump(self, slot: str) -> int:
        self._slots[slot] = self._slots.get(slot, 0) + 1
        return self._slots[slot]

    def _current(self, slot: str, token: int) -> bool:
        return self._slots.get(slot) == token


def _merge(selected: Place, details: Place) -> Place:
    """Details win for geography; the picked suggestion text wins for labels."""
    return Place(
        place_id=details.place_id or selected.place_id,
        description=selected.description or details.description,
        formatted_address=details.formatted_address,
        location=details.location,
    )
