import pytest

from src.tripopt.models.domain import Place
from src.tripopt.services.optimizer.errors import ValidationError
from src.tripopt.services.optimizer.models import DistanceMatrix, WarningKind
from src.tripopt.services.optimizer.transport import (
    MODES,
    TransportModeSelector,
    leg_cost,
    leg_duration_seconds,
    recommend_modes,
    resolve_travel_types,
)


def _places(count: int) -> list[Place]:
    return [Place(id=f"P{index}", name=f"Place {index}", latitude=0.0, longitude=0.0) for index in range(count)]


def _line_matrix(leg_meters: list[float]) -> DistanceMatrix:
    """Matrix for points on a line with the given consecutive leg lengths."""
    positions = [0.0]
    for leg in leg_meters:
        positions.append(positions[-1] + leg)
    distances = [[abs(a - b) for b in positions] for a in positions]
    durations = [[value / (60_000 / 3600) for value in row] for row in distances]
    return DistanceMatrix(distances=distances, durations=durations, profile="driving")


def test_resolve_travel_types_expands_aliases_in_request_order() -> None:
    assert resolve_travel_types(["Public_Transport", "car", "BIKE"]) == [
        "transit",
        "bus",
        "train",
        "high_speed_train",
        "driving",
        "cycling",
    ]


def test_resolve_travel_types_rejects_unknown_values() -> None:
    with pytest.raises(ValidationError) as excinfo:
        resolve_travel_types(["WALKING", "TELEPORT"])

    assert "TELEPORT" in excinfo.value.details[0]


def test_resolve_travel_types_rejects_empty_list() -> None:
    with pytest.raises(ValidationError):
        resolve_travel_types([])


@pytest.mark.parametrize(
    "distance_km,expected",
    [
        (1, ("walking",)),
        (10, ("cycling", "escooter", "transit")),
        (50, ("bus", "train", "driving")),
        (300, ("train", "bus", "driving")),
        (600, ("flight", "high_speed_train")),
    ],
)
def test_recommend_modes_by_distance(distance_km: float, expected: tuple) -> None:
    recommendation = recommend_modes(distance_km)

    assert recommendation.modes == expected
    assert recommendation.reason


def test_multi_modal_forces_long_haul_mode_for_very_long_leg() -> None:
    places = _places(2)
    selection = TransportModeSelector().select(
        places, [0, 1], _line_matrix([600_000]), ["walking"], multi_modal=True
    )

    assert selection.segments[0].mode in {"flight", "high_speed_train"}
    assert selection.warnings[0].kind == WarningKind.CONSTRAINT_CONFLICT


def test_multi_modal_picks_fastest_recommended_mode_per_leg() -> None:
    places = _places(3)
    selection = TransportModeSelector().select(
        places, [0, 1, 2], _line_matrix([1_000, 50_000]), ["walking", "driving"], multi_modal=True
    )

    assert [segment.mode for segment in selection.segments] == ["walking", "driving"]
    assert selection.segments[1].travel_time_seconds == pytest.approx(3000)
    assert not selection.warnings


def test_single_mode_covers_longest_leg() -> None:
    places = _places(3)
    selection = TransportModeSelector().select(
        places, [0, 1, 2], _line_matrix([1_000, 50_000]), ["walking", "driving"], multi_modal=False
    )

    assert [segment.mode for segment in selection.segments] == ["driving", "driving"]


def test_single_mode_falls_back_to_longest_range() -> None:
    places = _places(2)
    selection = TransportModeSelector().select(
        places, [0, 1], _line_matrix([40_000]), ["walking", "cycling"], multi_modal=False
    )

    assert selection.segments[0].mode == "cycling"


def test_leg_duration_uses_matrix_for_matching_profile() -> None:
    assert leg_duration_seconds(MODES["driving"], 10_000, 777, "driving") == 777
    assert leg_duration_seconds(MODES["bus"], 60_000, 777, "driving") == pytest.approx(3600 + 600)


def test_leg_cost_includes_base_fare() -> None:
    assert leg_cost(MODES["driving"], 100_000) == pytest.approx(50.0)
    assert leg_cost(MODES["flight"], 1_000_000) == pytest.approx(170.0)
    assert leg_cost(MODES["flight"], 0) == 0.0


def test_strict_budget_switches_to_cheaper_modes() -> None:
    places = _places(3)
    matrix = _line_matrix([100_000, 100_000])
    selector = TransportModeSelector()
    selection = selector.select(places, [0, 1, 2], matrix, ["driving", "bus"], multi_modal=False)
    assert selection.total_cost == pytest.approx(100.0)

    selector.enforce_budget(selection, matrix, budget=40.0, strict=True)

    assert [segment.mode for segment in selection.segments] == ["bus", "bus"]
    assert selection.total_cost == pytest.approx(20.0)
    assert not selection.warnings


def test_strict_budget_reports_infeasible_budget() -> None:
    places = _places(3)
    matrix = _line_matrix([100_000, 100_000])
    selector = TransportModeSelector()
    selection = selector.select(places, [0, 1, 2], matrix, ["driving", "bus"], multi_modal=False)

    selector.enforce_budget(selection, matrix, budget=5.0, strict=True)

    assert selection.total_cost == pytest.approx(20.0)
    assert selection.warnings[-1].kind == WarningKind.CONSTRAINT_CONFLICT


def test_non_strict_budget_only_warns() -> None:
    places = _places(3)
    matrix = _line_matrix([100_000, 100_000])
    selector = TransportModeSelector()
    selection = selector.select(places, [0, 1, 2], matrix, ["driving", "bus"], multi_modal=False)

    selector.enforce_budget(selection, matrix, budget=40.0, strict=False)

    assert [segment.mode for segment in selection.segments] == ["driving", "driving"]
    assert selection.warnings[-1].kind == WarningKind.CONSTRAINT_CONFLICT
