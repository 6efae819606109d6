"""Immutable execution view of one approval route.

A route is an ordered chain of steps numbered 1..N, each bound to a workflow
organization. The step numbers are authoritative for execution order.
"""

from collections import Counter
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Union

from journalflow.core.errors import NotFoundError, StructureError
from journalflow.core.routing.layout import FlowLayout


@dataclass(frozen=True)
class StepDefinition:
    """One position in an approval chain."""

    step_number: int
    organization_code: str
    step_name: Optional[str] = None
    is_required: bool = True

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "StepDefinition":
        """Build a step from a dict using either snake_case or camelCase keys."""

        def pick(snake: str, camel: str, default=None):
            if snake in data:
                return data[snake]
            return data.get(camel, default)

        return cls(
            step_number=int(pick("step_number", "stepNumber")),
            organization_code=str(pick("organization_code", "organizationCode")),
            step_name=pick("step_name", "stepName"),
            is_required=bool(pick("is_required", "isRequired", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def check_step_numbers(numbers: Sequence[int]) -> List[str]:
    """Return the problems that stop ``numbers`` from being a contiguous 1..N run."""
    problems = []
    counts = Counter(numbers)

    for number in sorted(n for n, c in counts.items() if c > 1):
        problems.append(f"step number {number} is duplicated")

    for number in sorted(n for n in counts if n < 1):
        problems.append(f"step number {number} must be a positive integer")

    present = {n for n in counts if n >= 1}
    if present:
        missing = sorted(set(range(1, max(present) + 1)) - present)
        if missing:
            problems.append(
                "step numbers must be contiguous from 1; missing "
                + ", ".join(str(n) for n in missing)
            )

    return problems


StepInput = Union[StepDefinition, Mapping[str, Any]]


class RouteGraph:
    """
    Validated, ordered sequence of route steps.

    Construction raises StructureError when the step numbers are not a
    contiguous 1..N sequence, or when it is empty unless ``allow_empty`` is
    set. Empty graphs stand for journals not yet bound to a route; they have
    no terminal step. When ``is_active_organization`` is given, every step's
    organization must also be active; otherwise that check is left to
    RouteValidator so draft routes can still be edited.
    """

    def __init__(
        self,
        steps: Iterable[StepInput],
        *,
        route_code: str = "",
        version: int = 1,
        layout: Optional[FlowLayout] = None,
        is_active_organization: Optional[Callable[[str], bool]] = None,
        allow_empty: bool = False,
    ):
        parsed = [s if isinstance(s, StepDefinition) else StepDefinition.from_mapping(s) for s in steps]

        if not parsed and not allow_empty:
            raise StructureError(f"Route {route_code} has no steps", ["route must have at least one step"])

        problems = check_step_numbers([s.step_number for s in parsed])
        if problems:
            raise StructureError(f"Route {route_code} has a malformed step sequence", problems)

        if is_active_organization is not None:
            inactive = [s for s in parsed if not is_active_organization(s.organization_code)]
            if inactive:
                raise StructureError(
                    f"Route {route_code} references unknown or inactive organizations",
                    [
                        f"step {s.step_number}: organization {s.organization_code} is unknown or inactive"
                        for s in inactive
                    ],
                )

        self.route_code = route_code
        self.version = version
        self.layout = layout
        self._steps = tuple(sorted(parsed, key=lambda s: s.step_number))

    @classmethod
    def from_snapshot(
        cls,
        snapshot: Sequence[Mapping[str, Any]],
        *,
        route_code: str = "",
        version: int = 1,
    ) -> "RouteGraph":
        """Rebuild a graph from the step list bound to a journal; empty while unbound."""
        return cls(snapshot, route_code=route_code, version=version, allow_empty=True)

    @property
    def steps(self) -> tuple:
        return self._steps

    def step_count(self) -> int:
        return len(self._steps)

    def step_at(self, step_number: int) -> StepDefinition:
        if step_number < 1 or step_number > len(self._steps):
            raise NotFoundError("step", f"{self.route_code}#{step_number}")
        return self._steps[step_number - 1]

    def is_terminal(self, step_number: int) -> bool:
        """True when no step follows ``step_number``."""
        return bool(self._steps) and step_number == len(self._steps)

    def organization_codes(self) -> List[str]:
        return [s.organization_code for s in self._steps]

    def to_snapshot(self) -> List[Dict[str, Any]]:
        return [s.to_dict() for s in self._steps]

    def __iter__(self) -> Iterator[StepDefinition]:
        return iter(self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    def __repr__(self) -> str:
        return f"<RouteGraph {self.route_code} v{self.version} steps={len(self._steps)}>"
