"""Tests for the route execution graph."""

import pytest

from journalflow.core.errors import NotFoundError, StructureError
from journalflow.core.routing.graph import RouteGraph, StepDefinition, check_step_numbers


def steps(*organizations, numbers=None):
    numbers = numbers or range(1, len(organizations) + 1)
    return [StepDefinition(step_number=n, organization_code=o) for n, o in zip(numbers, organizations)]


class TestStepNumbers:
    """Test step sequence checks."""

    def test_contiguous_sequence_has_no_problems(self):
        assert check_step_numbers([1, 2, 3]) == []
        assert check_step_numbers([3, 1, 2]) == []

    def test_gap_is_reported(self):
        problems = check_step_numbers([1, 2, 4])
        assert problems
        assert any("3" in p for p in problems)

    def test_duplicate_is_reported(self):
        problems = check_step_numbers([1, 1, 2])
        assert any("duplicate" in p for p in problems)

    def test_non_positive_is_reported(self):
        assert check_step_numbers([0, 1])


class TestRouteGraphConstruction:
    """Route construction accepts only contiguous 1..N step numbers."""

    def test_contiguous_steps_succeed(self):
        graph = RouteGraph(steps("A", "B", "C", numbers=[1, 2, 3]), route_code="R")
        assert graph.step_count() == 3

    def test_gap_fails(self):
        with pytest.raises(StructureError) as exc_info:
            RouteGraph(steps("A", "B", "C", numbers=[1, 2, 4]), route_code="R")
        assert exc_info.value.errors

    def test_duplicate_fails(self):
        with pytest.raises(StructureError):
            RouteGraph(steps("A", "B", "C", numbers=[1, 1, 2]), route_code="R")

    def test_steps_are_exposed_in_step_order(self):
        graph = RouteGraph(steps("C", "A", "B", numbers=[3, 1, 2]))
        assert [s.step_number for s in graph] == [1, 2, 3]
        assert graph.organization_codes() == ["A", "B", "C"]

    def test_inactive_organization_rejected_when_lookup_given(self):
        with pytest.raises(StructureError) as exc_info:
            RouteGraph(steps("A", "B"), route_code="R", is_active_organization=lambda code: code != "B")
        assert any("B" in e for e in exc_info.value.errors)

    def test_inactive_organization_ignored_without_lookup(self):
        assert len(RouteGraph(steps("A", "B"))) == 2

    def test_mapping_input_accepts_camel_case(self):
        graph = RouteGraph([{"stepNumber": 1, "organizationCode": "K001", "stepName": "申請", "isRequired": False}])
        step = graph.step_at(1)
        assert step.organization_code == "K001"
        assert step.step_name == "申請"
        assert step.is_required is False


class TestRouteGraphQueries:
    """Test step lookup and terminal detection."""

    def test_step_at(self):
        graph = RouteGraph(steps("K001", "K002"), route_code="K-001")
        assert graph.step_at(2).organization_code == "K002"

    def test_step_at_unknown_step(self):
        graph = RouteGraph(steps("K001", "K002"), route_code="K-001")
        with pytest.raises(NotFoundError):
            graph.step_at(3)

    def test_is_terminal_only_for_last_step(self):
        graph = RouteGraph(steps("A", "B", "C"))
        assert not graph.is_terminal(1)
        assert not graph.is_terminal(2)
        assert graph.is_terminal(3)

    def test_snapshot_roundtrip_keeps_flags(self):
        graph = RouteGraph(
            [
                StepDefinition(1, "K001", "申請"),
                StepDefinition(2, "K002", "承認", is_required=False),
            ],
            route_code="K-001",
            version=4,
        )
        rebuilt = RouteGraph.from_snapshot(graph.to_snapshot(), route_code="K-001", version=4)
        assert list(rebuilt) == list(graph)
        assert rebuilt.version == 4

    def test_empty_steps_fail(self):
        with pytest.raises(StructureError) as exc_info:
            RouteGraph([], route_code="R")
        assert exc_info.value.errors == ["route must have at least one step"]

    def test_unbound_snapshot_has_no_terminal_step(self):
        unbound = RouteGraph.from_snapshot([], route_code="R")
        assert unbound.step_count() == 0
        assert not unbound.is_terminal(0)
