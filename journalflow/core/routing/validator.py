"""Route activation gate.

Checks a candidate route configuration and reports every problem found so the
editor can display them together. Nothing here mutates the route.
"""

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from journalflow.core.errors import StructureError
from journalflow.core.routing.graph import StepDefinition, check_step_numbers
from journalflow.core.routing.layout import FlowLayout


@dataclass(frozen=True)
class ValidationIssue:
    code: str
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass
class ValidationResult:
    errors: List[ValidationIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def messages(self) -> List[str]:
        return [e.message for e in self.errors]

    def raise_for_errors(self, route_code: str) -> None:
        """Raise StructureError carrying every message when validation failed."""
        if self.errors:
            raise StructureError(f"Route {route_code} failed validation", self.messages)


@dataclass
class RouteCandidate:
    """A route configuration as edited, before it is trusted for execution."""

    route_code: str
    steps: Sequence[Union[StepDefinition, Mapping[str, Any]]]
    layout: Optional[Union[FlowLayout, Dict[str, Any]]] = None


class RouteValidator:
    """
    Validates route configurations before activation or journal assignment.

    Checks, in order:
    (a) at least one step exists
    (b) step numbers are contiguous from 1 with no duplicates
    (c) every referenced organization is active, and no organization appears
        twice unless ``allow_duplicate_organizations`` is set
    (d) the editor layout, when present, has unique node ids and draws exactly
        one start-to-end path through one node per step in step order
    """

    def __init__(
        self,
        is_active_organization: Optional[Callable[[str], bool]] = None,
        *,
        allow_duplicate_organizations: bool = False,
    ):
        self.is_active_organization = is_active_organization
        self.allow_duplicate_organizations = allow_duplicate_organizations

    def validate(self, route: RouteCandidate) -> ValidationResult:
        result = ValidationResult()
        steps = [s if isinstance(s, StepDefinition) else StepDefinition.from_mapping(s) for s in route.steps]

        if not steps:
            result.errors.append(ValidationIssue("no_steps", "route must have at least one step"))

        for problem in check_step_numbers([s.step_number for s in steps]):
            result.errors.append(ValidationIssue("step_sequence", problem))

        if self.is_active_organization is not None:
            for step in steps:
                if not self.is_active_organization(step.organization_code):
                    result.errors.append(
                        ValidationIssue(
                            "inactive_organization",
                            f"step {step.step_number}: organization {step.organization_code} is unknown or inactive",
                        )
                    )

        if not self.allow_duplicate_organizations:
            counts = Counter(s.organization_code for s in steps)
            for code in sorted(c for c, n in counts.items() if n > 1):
                result.errors.append(
                    ValidationIssue("duplicate_organization", f"organization {code} is bound to more than one step")
                )

        if route.layout is not None:
            ordered = sorted(steps, key=lambda s: s.step_number)
            result.errors.extend(self._check_layout(route.layout, [s.organization_code for s in ordered]))

        return result

    def _check_layout(
        self,
        raw_layout: Union[FlowLayout, Dict[str, Any]],
        step_organizations: List[str],
    ) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []

        if isinstance(raw_layout, FlowLayout):
            layout = raw_layout
        else:
            try:
                layout = FlowLayout.parse(raw_layout)
            except StructureError as e:
                return [ValidationIssue("layout_malformed", message) for message in e.errors]

        starts, ends = layout.start_nodes, layout.end_nodes
        if len(starts) != 1:
            issues.append(ValidationIssue("layout_start", f"layout must have exactly one start node, found {len(starts)}"))
        if len(ends) != 1:
            issues.append(ValidationIssue("layout_end", f"layout must have exactly one end node, found {len(ends)}"))

        node_counts = Counter(n.data.organization_code for n in layout.organization_nodes)
        step_counts = Counter(step_organizations)
        for code in sorted(node_counts):
            if code not in step_counts:
                issues.append(
                    ValidationIssue("layout_unmapped_node", f"layout node for organization {code} has no matching step")
                )
            elif node_counts[code] != step_counts[code]:
                issues.append(
                    ValidationIssue(
                        "layout_node_count",
                        f"organization {code} has {node_counts[code]} layout nodes but {step_counts[code]} steps",
                    )
                )
        for code in sorted(set(step_counts) - set(node_counts)):
            issues.append(ValidationIssue("layout_missing_node", f"organization {code} has no layout node"))

        id_counts = Counter(n.id for n in layout.nodes)
        duplicated = sorted(node_id for node_id, count in id_counts.items() if count > 1)
        for node_id in duplicated:
            issues.append(
                ValidationIssue("layout_duplicate_node", f"node id {node_id} is used by {id_counts[node_id]} nodes")
            )

        if len(starts) != 1 or len(ends) != 1 or duplicated:
            return issues

        node_ids = {n.id for n in layout.nodes}
        outgoing: Dict[str, List[str]] = defaultdict(list)
        for edge in layout.edges:
            if edge.source not in node_ids or edge.target not in node_ids:
                issues.append(
                    ValidationIssue("layout_dangling_edge", f"edge {edge.id} connects unknown nodes {edge.source} -> {edge.target}")
                )
                continue
            outgoing[edge.source].append(edge.target)

        end_id = ends[0].id
        if outgoing.get(end_id):
            issues.append(ValidationIssue("layout_path", "end node must not have outgoing edges"))

        nodes_by_id = {n.id: n for n in layout.organization_nodes}
        visited = {starts[0].id}
        path: List[str] = []
        current = starts[0].id
        reached_end = False
        while True:
            targets = outgoing.get(current, [])
            if len(targets) != 1:
                issues.append(
                    ValidationIssue(
                        "layout_path",
                        f"node {current} must have exactly one outgoing edge, found {len(targets)}",
                    )
                )
                break
            current = targets[0]
            if current == end_id:
                reached_end = True
                break
            if current in visited:
                issues.append(ValidationIssue("layout_path", f"layout path loops back to node {current}"))
                break
            visited.add(current)
            node = nodes_by_id.get(current)
            if node is None:
                issues.append(ValidationIssue("layout_path", f"layout path passes through non-organization node {current}"))
                break
            path.append(node.data.organization_code)

        if reached_end and path != step_organizations:
            issues.append(
                ValidationIssue(
                    "layout_order",
                    "layout path "
                    + (" -> ".join(path) or "(empty)")
                    + " does not match step order "
                    + (" -> ".join(step_organizations) or "(empty)"),
                )
            )

        return issues
