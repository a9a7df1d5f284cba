"""Rendering of query plans returned in PLAN and PROFILE query modes."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from google.cloud.spanner_v1 import PlanNode, QueryPlan

PREDICATE_LINK_TYPES = ("Residual Condition", "Seek Condition", "Split Range")

PLAN_COLUMNS = ["ID", "Query_Execution_Plan"]
PROFILE_COLUMNS = PLAN_COLUMNS + ["Rows_Returned", "Executions", "Total_Latency"]


@dataclass
class PlanRow:
    """One operator line of the rendered plan tree."""
    node_id: int
    text: str
    has_predicates: bool = False
    execution_stats: Dict[str, Any] = field(default_factory=dict)

    @property
    def display_id(self) -> str:
        return f"*{self.node_id}" if self.has_predicates else str(self.node_id)

    def profile_columns(self) -> List[str]:
        rows = _nested(self.execution_stats, "rows", "total")
        executions = _nested(self.execution_stats, "execution_summary", "num_executions")
        latency = _nested(self.execution_stats, "latency", "total")
        unit = _nested(self.execution_stats, "latency", "unit")
        total_latency = f"{latency} {unit}".strip() if latency else ""
        return [rows, executions, total_latency]


def _nested(mapping: Mapping[str, Any], *keys: str) -> str:
    current: Any = mapping
    for key in keys:
        if not isinstance(current, Mapping) or key not in current:
            return ""
        current = current[key]
    return "" if current is None else str(current)


def _as_dict(value: Any) -> Dict[str, Any]:
    if not value:
        return {}
    return dict(value.items()) if isinstance(value, Mapping) else {}


def node_title(node: PlanNode) -> str:
    """Human readable operator name with its metadata, e.g. ``Table Scan (Table: Singers)``."""
    metadata = _as_dict(node.metadata)

    scan_type = str(metadata.get("scan_type", "") or "")
    if scan_type.endswith("Scan"):
        scan_type = scan_type[:-len("Scan")]
    components = [
        str(metadata.get("call_type", "") or ""),
        str(metadata.get("iterator_type", "") or ""),
        scan_type,
        node.display_name,
    ]
    operator = " ".join(c for c in components if c)

    fields = []
    for key, value in metadata.items():
        if key in ("call_type", "iterator_type", "scan_target", "subquery_cluster_node"):
            continue
        if key == "scan_type":
            fields.append(f"{scan_type}: {metadata.get('scan_target', '')}")
        else:
            fields.append(f"{key}: {value}")
    fields.sort()

    if fields:
        return f"{operator} ({', '.join(fields)})"
    return operator


class PlanRenderer:
    """Turns the flat node list of a QueryPlan into an indented operator tree."""

    def __init__(self, plan: QueryPlan) -> None:
        self.nodes: List[PlanNode] = list(plan.plan_nodes)
        self.rows: List[PlanRow] = []
        self.predicates: List[str] = []

    def _is_relational(self, index: int) -> bool:
        return 0 <= index < len(self.nodes) and self.nodes[index].kind == PlanNode.Kind.RELATIONAL

    def render(self) -> "PlanRenderer":
        if self.nodes:
            self._visit(0, link_type="", prefix="", child_prefix="")
        return self

    def _visit(self, index: int, link_type: str, prefix: str, child_prefix: str) -> None:
        node = self.nodes[index]

        predicates = []
        for link in node.child_links:
            if link.type_ in PREDICATE_LINK_TYPES and 0 <= link.child_index < len(self.nodes):
                description = self.nodes[link.child_index].short_representation.description
                predicates.append(f"{link.type_}: {description}")

        label = f"[{link_type}] {node_title(node)}" if link_type else node_title(node)
        self.rows.append(PlanRow(
            node_id=node.index,
            text=prefix + label,
            has_predicates=bool(predicates),
            execution_stats=_as_dict(node.execution_stats),
        ))
        for i, predicate in enumerate(predicates):
            lead = f"{node.index}:" if i == 0 else " " * (len(str(node.index)) + 1)
            self.predicates.append(f"{lead} {predicate}")

        children = [link for link in node.child_links if self._is_relational(link.child_index)]
        for i, link in enumerate(children):
            last = i == len(children) - 1
            self._visit(
                link.child_index,
                link_type=link.type_,
                prefix=child_prefix + "+- ",
                child_prefix=child_prefix + ("   " if last else "|  "),
            )


def render_plan(plan: Optional[QueryPlan], with_stats: bool = False):
    """Render a plan as (column names, table rows, predicate lines)."""
    if plan is None:
        return list(PROFILE_COLUMNS if with_stats else PLAN_COLUMNS), [], []

    renderer = PlanRenderer(plan).render()
    rows = []
    for plan_row in renderer.rows:
        columns = [plan_row.display_id, plan_row.text]
        if with_stats:
            columns.extend(plan_row.profile_columns())
        rows.append(columns)
    return list(PROFILE_COLUMNS if with_stats else PLAN_COLUMNS), rows, renderer.predicates
