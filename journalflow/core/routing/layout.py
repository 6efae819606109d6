"""Editor layout for approval routes.

The route editor stores a node/edge graph (start node, one node per
organization, end node) next to the step list. The layout is presentation
only: execution order always comes from the step numbers.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from journalflow.core.errors import StructureError


class Position(BaseModel):
    x: float
    y: float


class Viewport(BaseModel):
    x: float
    y: float
    zoom: float


class StartNode(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["startNode"]
    id: str
    position: Position
    data: Dict[str, Any] = Field(default_factory=dict)


class OrganizationNodeData(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    organization_code: str = Field(alias="organizationCode", min_length=1)
    organization_name: Optional[str] = Field(default=None, alias="organizationName")


class OrganizationNode(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["organizationNode"]
    id: str
    position: Position
    data: OrganizationNodeData


class EndNode(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["endNode"]
    id: str
    position: Position
    data: Dict[str, Any] = Field(default_factory=dict)


FlowNode = Annotated[Union[StartNode, OrganizationNode, EndNode], Field(discriminator="type")]


class FlowEdge(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    source: str
    target: str
    type: Optional[str] = None


class FlowLayout(BaseModel):
    """Node/edge graph drawn by the route editor."""

    nodes: List[FlowNode] = Field(default_factory=list)
    edges: List[FlowEdge] = Field(default_factory=list)
    viewport: Optional[Viewport] = None

    @classmethod
    def parse(cls, raw: Optional[Dict[str, Any]]) -> Optional["FlowLayout"]:
        """Parse a stored layout, raising StructureError on malformed input."""
        if raw is None:
            return None
        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            messages = [
                f"layout {'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            ]
            raise StructureError("Malformed route layout", messages) from e

    @classmethod
    def linear(cls, organizations: Sequence[tuple[str, Optional[str]]]) -> "FlowLayout":
        """
        Build a left-to-right layout for the given (code, name) pairs.

        Organization nodes are named step-1..step-N so a route may visit the
        same organization more than once.
        """
        nodes: List[Any] = [
            StartNode(type="startNode", id="start", position=Position(x=50, y=200), data={"label": "start"})
        ]
        for index, (code, name) in enumerate(organizations):
            nodes.append(
                OrganizationNode(
                    type="organizationNode",
                    id=f"step-{index + 1}",
                    position=Position(x=200 + 150 * index, y=200),
                    data=OrganizationNodeData(organization_code=code, organization_name=name),
                )
            )
        nodes.append(
            EndNode(
                type="endNode",
                id="end",
                position=Position(x=200 + 150 * len(organizations), y=200),
                data={"label": "end"},
            )
        )
        ids = [node.id for node in nodes]
        edges = [
            FlowEdge(id=f"e{i + 1}", source=source, target=target, type="smoothstep")
            for i, (source, target) in enumerate(zip(ids, ids[1:]))
        ]
        return cls(nodes=nodes, edges=edges)

    @property
    def start_nodes(self) -> List[StartNode]:
        return [n for n in self.nodes if isinstance(n, StartNode)]

    @property
    def end_nodes(self) -> List[EndNode]:
        return [n for n in self.nodes if isinstance(n, EndNode)]

    @property
    def organization_nodes(self) -> List[OrganizationNode]:
        return [n for n in self.nodes if isinstance(n, OrganizationNode)]

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
