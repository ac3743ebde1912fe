"""Tests for the expense wizard state machine, gates and invalidation."""

import asyncio
from datetime import date, timedelta
from unittest.mock import AsyncMock

import pytest

from src.domain.entities import ExpenseDraft, RouteSnapshot, WaypointOrder
from src.domain.enums import WizardEntryMode, WizardStep
from src.domain.errors import (
    InvalidStateTransition,
    PlaceResolutionFailed,
    RouteUnavailable,
    ValidationFailed,
)
from src.domain.pricing import CostEngine
from src.services.wizard import WizardController
from tests.conftest import BASEL, BERN, GENEVA, LUCERNE, ZURICH, place, route_result

LOCATIONS = {"zurich": ZURICH, "geneva": GENEVA, "bern": BERN, "basel": BASEL, "lucerne": LUCERNE}


@pytest.fixture
def places():
    resolver = AsyncMock()

    async def details(place_id):
        if place_id not in LOCATIONS:
            raise PlaceResolutionFailed("Failed to get place details")
        return place(place_id, f"{place_id.title()} (resolved)", LOCATIONS[place_id])

    resolver.details.side_effect = details
    return resolver


@pytest.fixture
def calculator():
    calc = AsyncMock()
    calc.calculate.return_value = route_result(390.0)
    return calc


@pytest.fixture
def controller(calculator, places):
    return WizardController(calculator, places, CostEngine(0.7))


async def _walk_to_calculate(controller: WizardController) -> None:
    await controller.select_place("start_location", "zurich", "Zurich HB")
    controller.advance()  # -> CONFIRM_START
    controller.advance()  # -> END_LOCATION
    await controller.select_place("end_location", "geneva", "Geneva")
    controller.advance()  # -> WAYPOINTS
    controller.advance()  # -> CALCULATE


def _fill_details(controller: WizardController) -> None:
    controller.update_details(
        category_id="travel",
        expense_date=date.today() - timedelta(days=1),
        notes="Client visit",
    )


# ── Navigation & gates ────────────────────────────────────────────────


class TestNavigation:
    def test_starts_at_first_step(self, controller):
        assert controller.step is WizardStep.START_LOCATION
        assert controller.mode is WizardEntryMode.CREATE
        assert controller.draft.cost_per_km == 0.7

    def test_start_gate_requires_place(self, controller):
        with pytest.raises(ValidationFailed) as exc_info:
            controller.advance()
        assert exc_info.value.errors == {"start_location": "Starting point is required"}
        assert controller.step is WizardStep.START_LOCATION

    @pytest.mark.asyncio
    async def test_end_gate_requires_place(self, controller):
        await controller.select_place("start_location", "zurich", "Zurich HB")
        controller.advance()
        controller.advance()
        with pytest.raises(ValidationFailed) as exc_info:
            controller.advance()
        assert "end_location" in exc_info.value.errors
        assert controller.step is WizardStep.END_LOCATION

    @pytest.mark.asyncio
    async def test_walk_forward_and_back(self, controller):
        await _walk_to_calculate(controller)
        assert controller.step is WizardStep.CALCULATE
        assert controller.back() is WizardStep.WAYPOINTS
        assert controller.back() is WizardStep.END_LOCATION

    def test_cannot_go_back_from_first_step(self, controller):
        with pytest.raises(InvalidStateTransition):
            controller.back()

    @pytest.mark.asyncio
    async def test_calculate_gate_requires_result(self, controller):
        await _walk_to_calculate(controller)
        with pytest.raises(ValidationFailed) as exc_info:
            controller.advance()
        assert "route" in exc_info.value.errors
        assert controller.step is WizardStep.CALCULATE

    @pytest.mark.asyncio
    async def test_cannot_advance_past_details(self, controller):
        await _walk_to_calculate(controller)
        await controller.calculate()
        with pytest.raises(InvalidStateTransition):
            controller.advance()


# ── Place selection ───────────────────────────────────────────────────


class TestPlaces:
    @pytest.mark.asyncio
    async def test_selection_merges_details(self, controller):
        selected = await controller.select_place("start_location", "zurich", "Zurich HB")

        assert selected.place_id == "zurich"
        assert selected.description == "Zurich HB"
        assert selected.location == ZURICH
        assert controller.draft.start_location == selected

    @pytest.mark.asyncio
    async def test_details_failure_records_field_error(self, controller):
        selected = await controller.select_place("start_location", "atlantis", "Atlantis")

        assert selected.location is None
        assert selected.description == "Atlantis"
        assert controller.draft.errors["start_location"] == "Failed to get place details"

    @pytest.mark.asyncio
    async def test_unknown_field(self, controller):
        with pytest.raises(ValueError):
            await controller.select_place("waypoint", "zurich")

    @pytest.mark.asyncio
    async def test_stale_details_are_discarded(self, controller, places):
        gate = asyncio.Event()

        async def details(place_id):
            if place_id == "basel":
                await gate.wait()
            return place(place_id, place_id, LOCATIONS[place_id])

        places.details.side_effect = details

        slow = asyncio.create_task(controller.select_place("start_location", "basel", "Basel"))
        await asyncio.sleep(0)
        await controller.select_place("start_location", "bern", "Bern")
        gate.set()
        await slow

        assert controller.draft.start_location.place_id == "bern"
        assert controller.draft.start_location.location == BERN


# ── Waypoints ─────────────────────────────────────────────────────────


class TestWaypoints:
    @pytest.mark.asyncio
    async def test_add_set_remove(self, controller):
        index = controller.add_waypoint()
        await controller.set_waypoint(index, "bern", "Bern")

        assert controller.draft.waypoints[0].place_id == "bern"
        assert controller.draft.waypoints[0].location == BERN

        controller.remove_waypoint(0)
        assert controller.draft.waypoints == []

    def test_bad_index(self, controller):
        with pytest.raises(IndexError):
            controller.remove_waypoint(3)

    @pytest.mark.asyncio
    async def test_lookup_for_removed_waypoint_is_discarded(self, controller, places):
        gate = asyncio.Event()

        async def details(place_id):
            await gate.wait()
            return place(place_id, place_id, LOCATIONS[place_id])

        places.details.side_effect = details
        controller.add_waypoint()
        controller.add_waypoint()

        pending = asyncio.create_task(controller.set_waypoint(0, "basel", "Basel"))
        await asyncio.sleep(0)
        controller.remove_waypoint(0)
        gate.set()
        await pending

        # the surviving waypoint (old index 1) is untouched
        assert len(controller.draft.waypoints) == 1
        assert controller.draft.waypoints[0].place_id == ""


# ── Calculation ───────────────────────────────────────────────────────


class TestCalculate:
    @pytest.mark.asyncio
    async def test_success_moves_to_details(self, controller, calculator):
        await _walk_to_calculate(controller)

        snapshot = await controller.calculate()

        assert isinstance(snapshot, RouteSnapshot)
        assert controller.step is WizardStep.DETAILS
        assert controller.draft.distance_in_km == 390.0
        assert controller.draft.total_cost == pytest.approx(273.0)
        assert controller.draft.route_snapshot is snapshot
        assert snapshot.origin.place_id == "zurich"
        calculator.calculate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_optimized_order_reorders_draft(self, controller, calculator):
        await _walk_to_calculate(controller)
        controller.back()
        for pid in ("basel", "bern", "lucerne"):
            await controller.set_waypoint(controller.add_waypoint(), pid)
        controller.set_optimize(True)
        controller.advance()

        wps = tuple(controller.draft.waypoints)
        calculator.calculate.return_value = route_result(
            420.0,
            waypoints=wps,
            optimized_waypoint_order=(WaypointOrder(2), WaypointOrder(0), WaypointOrder(1)),
            waypoints_optimized=True,
        )

        await controller.calculate()

        assert [w.place_id for w in controller.draft.waypoints] == ["lucerne", "basel", "bern"]
        assert calculator.calculate.await_args.kwargs["optimize"] is True

    @pytest.mark.asyncio
    async def test_failure_stays_on_calculate(self, controller, calculator):
        await _walk_to_calculate(controller)
        calculator.calculate.side_effect = RouteUnavailable("Failed to calculate distance. Please try again.")

        with pytest.raises(RouteUnavailable):
            await controller.calculate()

        assert controller.step is WizardStep.CALCULATE
        assert controller.draft.errors["route"].startswith("Failed to calculate")
        assert controller.draft.distance_in_km == 0.0

    @pytest.mark.asyncio
    async def test_retry_after_failure(self, controller, calculator):
        await _walk_to_calculate(controller)
        calculator.calculate.side_effect = [RouteUnavailable("down"), route_result(390.0)]

        with pytest.raises(RouteUnavailable):
            await controller.calculate()
        await controller.calculate()

        assert controller.step is WizardStep.DETAILS
        assert "route" not in controller.draft.errors

    @pytest.mark.asyncio
    async def test_only_from_calculate_step(self, controller):
        with pytest.raises(InvalidStateTransition):
            await controller.calculate()

    @pytest.mark.asyncio
    async def test_result_for_edited_inputs_is_dropped(self, controller, calculator):
        await _walk_to_calculate(controller)

        async def slow_calculate(*args, **kwargs):
            controller.set_optimize(True)  # user edits while in flight
            return route_result(390.0)

        calculator.calculate.side_effect = slow_calculate

        assert await controller.calculate() is None
        assert controller.step is WizardStep.CALCULATE
        assert controller.draft.route_snapshot is None

    @pytest.mark.asyncio
    async def test_editing_location_invalidates_result(self, controller):
        await _walk_to_calculate(controller)
        await controller.calculate()
        controller.back()
        controller.back()
        controller.back()

        await controller.select_place("end_location", "bern", "Bern")

        assert controller.draft.route_snapshot is None
        assert controller.draft.distance_in_km == 0.0
        assert controller.draft.total_cost == 0.0

    @pytest.mark.asyncio
    async def test_editing_waypoints_invalidates_result(self, controller):
        await _walk_to_calculate(controller)
        await controller.calculate()

        controller.add_waypoint()
        await controller.set_waypoint(0, "basel")

        assert controller.draft.route_snapshot is None


# ── Details, validation, submission ───────────────────────────────────


class TestSubmit:
    @pytest.mark.asyncio
    async def test_cost_change_recomputes_total(self, controller):
        await _walk_to_calculate(controller)
        await controller.calculate()

        controller.update_details(cost_per_km=1.0)

        assert controller.draft.total_cost == pytest.approx(390.0)

    @pytest.mark.asyncio
    async def test_invalid_cost_is_recorded(self, controller):
        await _walk_to_calculate(controller)
        await controller.calculate()

        controller.update_details(cost_per_km=-1)

        assert "cost_per_km" in controller.draft.errors

    @pytest.mark.asyncio
    async def test_missing_details_block_submit(self, controller):
        await _walk_to_calculate(controller)
        await controller.calculate()
        persistence = AsyncMock()

        with pytest.raises(ValidationFailed) as exc_info:
            await controller.submit(persistence)

        assert set(exc_info.value.errors) == {"category_id", "expense_date"}
        persistence.create_expense.assert_not_awaited()
        # nothing entered so far is lost
        assert controller.draft.distance_in_km == 390.0

    @pytest.mark.asyncio
    async def test_future_date_rejected(self, controller):
        await _walk_to_calculate(controller)
        await controller.calculate()
        controller.update_details(category_id="travel", expense_date=date.today() + timedelta(days=2))

        errors = controller.validate()

        assert errors == {"expense_date": "Journey date cannot be in the future"}

    def test_location_length_rules(self, controller):
        controller.draft.start_location = place("x", "Z")
        controller.draft.end_location = place("y", "G" * 101)
        errors = controller.validate()
        assert "between 2 and 100" in errors["start_location"]
        assert "between 2 and 100" in errors["end_location"]
        assert errors["distance_in_km"] == "Valid distance calculation is required"

    @pytest.mark.asyncio
    async def test_create_then_update(self, controller):
        await _walk_to_calculate(controller)
        await controller.calculate()
        _fill_details(controller)
        persistence = AsyncMock()
        persistence.create_expense.return_value = {"id": 42}
        persistence.update_expense.return_value = {}

        await controller.submit(persistence)
        assert controller.expense_id == 42
        persistence.create_expense.assert_awaited_once_with(controller.draft)

        await controller.submit(persistence)
        persistence.update_expense.assert_awaited_once_with(42, controller.draft)

    @pytest.mark.asyncio
    async def test_submit_only_from_details(self, controller):
        with pytest.raises(InvalidStateTransition):
            await controller.submit(AsyncMock())


# ── Resume ────────────────────────────────────────────────────────────


class TestResume:
    def test_resume_opens_details_in_edit_mode(self, calculator, places):
        draft = ExpenseDraft(
            start_location=place("zurich", "Zurich HB", ZURICH),
            end_location=place("geneva", "Geneva", GENEVA),
            distance_in_km=390.0,
            total_cost=273.0,
        )

        controller = WizardController.resume(calculator, places, CostEngine(), draft, expense_id=7)

        assert controller.step is WizardStep.DETAILS
        assert controller.mode is WizardEntryMode.EDIT
        assert controller.expense_id == 7
        assert controller.back() is WizardStep.CALCULATE

    @pytest.mark.asyncio
    async def test_resumed_submit_updates(self, calculator, places):
        draft = ExpenseDraft(
            start_location=place("zurich", "Zurich HB", ZURICH),
            end_location=place("geneva", "Geneva", GENEVA),
            distance_in_km=390.0,
            total_cost=273.0,
            category_id="travel",
            expense_date=date.today(),
        )
        controller = WizardController.resume(calculator, places, CostEngine(), draft, expense_id=7)
        persistence = AsyncMock()
        persistence.update_expense.return_value = {}

        await controller.submit(persistence)

        persistence.update_expense.assert_awaited_once_with(7, draft)
        persistence.create_expense.assert_not_awaited()
