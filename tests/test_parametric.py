"""Tests for the parametric dimension solver"""

import math

import pytest

from plancore.config import SolverConfig
from plancore.models import DimensionChain, DimensionConstraint, Parameter, Point, Severity
from plancore.parametric import ParametricModel, ParametricSolver, set_wall_length, solve


def lengths(result):
    return {w.id: w.length for w in result.walls}


@pytest.fixture
def row(make_wall):
    """Three horizontal walls of 1000, 2000 and 3000."""
    return [
        make_wall("W1", 0, 0, 1000, 0),
        make_wall("W2", 0, 1000, 2000, 1000),
        make_wall("W3", 0, 2000, 3000, 2000),
    ]


def test_target_length_keeps_start(make_wall):
    wall = make_wall("W1", 100, 200, 1100, 200)

    result = solve([wall], [DimensionConstraint(id="d1", wall_id="W1", target_length=3000)])

    solved = result.walls[0]
    assert solved.start == Point(100, 200)
    assert (solved.end.x, solved.end.y) == pytest.approx((3100, 200))
    assert solved.length == pytest.approx(3000)
    assert result.diagnostics == []
    # Input untouched
    assert wall.end == Point(1100, 200)


def test_set_wall_length_keeps_direction(make_wall):
    wall = make_wall("D", 0, 0, 300, 400)

    resized = set_wall_length(wall, 1000)

    assert (resized.end.x, resized.end.y) == pytest.approx((600, 800))


def test_set_wall_length_zero_length_extends_along_x(make_wall):
    wall = make_wall("Z", 10, 20, 10, 20)

    resized = set_wall_length(wall, 500)

    assert (resized.end.x, resized.end.y) == pytest.approx((510, 20))


def test_set_wall_length_ignores_bad_targets(make_wall):
    wall = make_wall("W", 0, 0, 100, 0)

    assert set_wall_length(wall, 0) is wall
    assert set_wall_length(wall, -5) is wall
    assert set_wall_length(wall, math.nan) is wall


def test_clamped_target(row):
    dimensions = [
        DimensionConstraint(id="d1", wall_id="W1", target_length=50, min_length=500),
        DimensionConstraint(id="d2", wall_id="W2", target_length=9000, max_length=2500),
    ]

    result = solve(row, dimensions)

    assert lengths(result)["W1"] == pytest.approx(500)
    assert lengths(result)["W2"] == pytest.approx(2500)


def test_disabled_dimension_skipped(row):
    result = solve(row, [DimensionConstraint(id="d1", wall_id="W1", target_length=5000, enabled=False)])

    assert lengths(result)["W1"] == pytest.approx(1000)


def test_missing_wall_is_error(row):
    result = solve(row, [DimensionConstraint(id="d1", wall_id="nope", target_length=100)])

    assert [d.source_id for d in result.errors] == ["d1"]
    assert result.errors[0].code == "missing_wall"


def test_expression_over_wall_length(row):
    dimension = DimensionConstraint(id="d2", wall_id="W2", expression="2*(wall.W1.length)+50")

    result = solve(row, [dimension])

    assert lengths(result)["W2"] == pytest.approx(2050)


def test_expression_over_parameters(row):
    parameters = [
        Parameter(id="module", value=600),
        Parameter(id="width", expression="module * 5"),
    ]
    dimension = DimensionConstraint(id="d1", wall_id="W1", expression="width + 500")

    result = solve(row, [dimension], parameters=parameters)

    assert result.parameter_values["width"] == pytest.approx(3000)
    assert lengths(result)["W1"] == pytest.approx(3500)


def test_context_values_seed_parameters(row):
    parameters = [Parameter(id="depth", expression="base * 2")]
    dimension = DimensionConstraint(id="d1", wall_id="W1", expression="depth")

    result = solve(row, [dimension], parameters=parameters, context_values={"base": 1250})

    assert lengths(result)["W1"] == pytest.approx(2500)


def test_bad_expression_scoped_to_dimension(row):
    dimensions = [
        DimensionConstraint(id="bad", wall_id="W1", expression="2 *"),
        DimensionConstraint(id="good", wall_id="W2", target_length=1500),
    ]

    result = solve(row, dimensions)

    assert [d.source_id for d in result.errors] == ["bad"]
    assert lengths(result)["W1"] == pytest.approx(1000)
    assert lengths(result)["W2"] == pytest.approx(1500)


def test_parameter_cycle_reported():
    parameters = [
        Parameter(id="a", expression="b + 1"),
        Parameter(id="b", expression="a + 1"),
        Parameter(id="c", value=4),
    ]

    result = solve([], parameters=parameters)

    assert len(result.errors) == 1
    error = result.errors[0]
    assert error.code == "parameter_cycle"
    assert "a -> b -> a" in error.message
    assert "a" not in result.parameter_values
    assert "b" not in result.parameter_values
    assert result.parameter_values["c"] == 4


def test_self_referencing_parameter_is_a_cycle():
    result = solve([], parameters=[Parameter(id="a", expression="a + 1")])

    assert [d.code for d in result.errors] == ["parameter_cycle"]
    assert "a -> a" in result.errors[0].message
    assert "a" not in result.parameter_values


def test_equality_group_averages_targets(row):
    dimensions = [
        DimensionConstraint(id="d1", wall_id="W1", target_length=1000, equality_group_id="g"),
        DimensionConstraint(id="d2", wall_id="W2", target_length=1200, equality_group_id="g"),
        DimensionConstraint(id="d3", wall_id="W3", target_length=1400, equality_group_id="g"),
    ]

    result = solve(row, dimensions)

    for length in lengths(result).values():
        assert length == pytest.approx(1200)
    assert [d.source_id for d in result.warnings] == ["g"]
    assert result.warnings[0].severity == Severity.WARNING


def test_equality_group_reports_unknown_wall(row):
    dimensions = [
        DimensionConstraint(id="d1", wall_id="W1", target_length=1000, equality_group_id="g"),
        DimensionConstraint(id="d2", wall_id="ghost", target_length=1600, equality_group_id="g"),
    ]

    result = solve(row, dimensions)

    assert [d.source_id for d in result.errors] == ["d2", "g"]
    assert {d.code for d in result.errors} == {"missing_wall"}
    assert lengths(result)["W1"] == pytest.approx(1000)


def test_chain_equal_segments(row):
    chain = DimensionChain(id="c1", wall_ids=["W1", "W2", "W3"], total_length=3000, equal_segments=True)

    result = solve(row, chains=[chain])

    assert list(lengths(result).values()) == pytest.approx([1000, 1000, 1000])


def test_chain_equal_segments_keeps_current_total(row):
    chain = DimensionChain(id="c1", wall_ids=["W1", "W3"], equal_segments=True)

    result = solve(row, chains=[chain])

    assert lengths(result)["W1"] == pytest.approx(2000)
    assert lengths(result)["W3"] == pytest.approx(2000)


def test_chain_scales_to_total(row):
    chain = DimensionChain(id="c1", wall_ids=["W1", "W2"], total_length=6000)

    result = solve(row, chains=[chain])

    assert lengths(result)["W1"] == pytest.approx(2000)
    assert lengths(result)["W2"] == pytest.approx(4000)
    assert lengths(result)["W3"] == pytest.approx(3000)


def test_chain_reports_unknown_wall(row):
    chain = DimensionChain(id="c1", wall_ids=["W1", "ghost", "W2"], total_length=6000)

    result = solve(row, chains=[chain])

    assert [(d.source_id, d.code) for d in result.errors] == [("c1", "missing_wall")]
    assert "ghost" in result.errors[0].message
    assert lengths(result)["W1"] == pytest.approx(2000)
    assert lengths(result)["W2"] == pytest.approx(4000)


def test_chain_without_rule_warns(row):
    chain = DimensionChain(id="c1", wall_ids=["W1", "W2"])

    result = solve(row, chains=[chain])

    assert [d.code for d in result.warnings] == ["inactive_chain"]
    assert lengths(result)["W1"] == pytest.approx(1000)


def test_solver_min_length_config(row):
    solver = ParametricSolver(SolverConfig(min_length=100))

    result = solver.solve(row, [DimensionConstraint(id="d1", wall_id="W1", target_length=50)])

    assert lengths(result)["W1"] == pytest.approx(1000)


def test_wall_order_preserved(row):
    result = solve(list(reversed(row)), [DimensionConstraint(id="d1", wall_id="W2", target_length=10)])

    assert [w.id for w in result.walls] == ["W3", "W2", "W1"]


def test_parametric_model_registry(row):
    model = ParametricModel()
    model.upsert_parameter(Parameter(id="span", value=1500))
    model.upsert_dimension(DimensionConstraint(id="d1", wall_id="W1", expression="span"))

    assert lengths(model.solve(row))["W1"] == pytest.approx(1500)

    model.set_dimension_value("d1", 2200)
    assert model.dimensions["d1"].expression is None
    assert lengths(model.solve(row))["W1"] == pytest.approx(2200)

    model.upsert_chain(DimensionChain(id="c1", wall_ids=["W2", "W3"], total_length=10000))
    assert lengths(model.solve(row))["W3"] == pytest.approx(6000)

    model.remove_chain("c1")
    model.remove_dimension("d1")
    model.remove_parameter("span")
    assert lengths(model.solve(row)) == pytest.approx({"W1": 1000, "W2": 2000, "W3": 3000})
