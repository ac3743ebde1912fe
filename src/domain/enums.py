"""Domain enumerations and state-transition rules."""

import enum


class WizardStep(str, enum.Enum):
    START_LOCATION = "START_LOCATION"
    CONFIRM_START = "CONFIRM_START"
    END_LOCATION = "END_LOCATION"
    WAYPOINTS = "WAYPOINTS"
    CALCULATE = "CALCULATE"
    DETAILS = "DETAILS"


WIZARD_ORDER: list[WizardStep] = list(WizardStep)

# State machine: maps current step -> set of legal next steps (forward / back)
WIZARD_TRANSITIONS: dict[WizardStep, set[WizardStep]] = {
    WizardStep.START_LOCATION: {WizardStep.CONFIRM_START},
    WizardStep.CONFIRM_START: {WizardStep.START_LOCATION, WizardStep.END_LOCATION},
    WizardStep.END_LOCATION: {WizardStep.CONFIRM_START, WizardStep.WAYPOINTS},
    WizardStep.WAYPOINTS: {WizardStep.END_LOCATION, WizardStep.CALCULATE},
    WizardStep.CALCULATE: {WizardStep.WAYPOINTS, WizardStep.DETAILS},
    WizardStep.DETAILS: {WizardStep.CALCULATE},
}


class WizardEntryMode(str, enum.Enum):
    CREATE = "CREATE"
    EDIT = "EDIT"  # jumps straight to DETAILS, skipping validations


class MapRenderState(str, enum.Enum):
    IDLE = "IDLE"
    RESOLVING = "RESOLVING"
    RENDERED_INTERACTIVE = "RENDERED_INTERACTIVE"
    RENDERED_STATIC_PRIMARY = "RENDERED_STATIC_PRIMARY"
    RENDERED_STATIC_FALLBACK = "RENDERED_STATIC_FALLBACK"
    FAILED = "FAILED"
    EMPTY = "EMPTY"


MAP_RENDER_TRANSITIONS: dict[MapRenderState, set[MapRenderState]] = {
    MapRenderState.IDLE: {MapRenderState.RESOLVING, MapRenderState.EMPTY},
    MapRenderState.RESOLVING: {
        MapRenderState.RENDERED_INTERACTIVE,
        MapRenderState.RENDERED_STATIC_PRIMARY,
        MapRenderState.EMPTY,
    },
    MapRenderState.RENDERED_INTERACTIVE: set(),
    MapRenderState.RENDERED_STATIC_PRIMARY: {MapRenderState.RENDERED_STATIC_FALLBACK},
    MapRenderState.RENDERED_STATIC_FALLBACK: {MapRenderState.FAILED},
    MapRenderState.FAILED: set(),
    MapRenderState.EMPTY: set(),
}


class PathSource(str, enum.Enum):
    POLYLINE = "POLYLINE"  # from the cost-bearing calculation
    DISPLAY_ROUTE = "DISPLAY_ROUTE"  # best-effort display calculation
    STRAIGHT_LINE = "STRAIGHT_LINE"
    NONE = "NONE"


class DistanceUnit(str, enum.Enum):
    METERS = "m"
    KILOMETERS = "km"
