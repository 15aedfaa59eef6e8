"""Cross-DAG dependency detection.

Rebuilds the "DAG Dependencies" view of the Airflow UI from DAG
objects: every trigger operator, external task sensor, external task
marker and REST API call that links one DAG to another becomes a
``DagDependency`` edge. The resulting graph of DAGs is not validated
by Airflow, so ``find_cycles`` reports loops such as two DAGs that
trigger each other.
"""

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from airflow.providers.http.operators.http import HttpOperator
from airflow.providers.standard.operators.trigger_dagrun import TriggerDagRunOperator
from airflow.providers.standard.sensors.external_task import ExternalTaskMarker, ExternalTaskSensor

from dag_dependencies.api import parse_dag_run_endpoint
from dag_dependencies.operators import TriggerDagRunViaApiOperator
from dag_dependencies.sensors import DagRunStateSensor

KINDS = ("trigger", "sensor", "marker", "api")


@dataclass(frozen=True, order=True)
class DagDependency:
    """A directed edge ``source -> target`` between two DAGs.

    Attributes:
        source: The upstream DAG id.
        target: The downstream DAG id.
        kind: How the dependency is expressed (trigger, sensor, marker, api).
        task_id: The task that creates the dependency.
    """

    source: str
    target: str
    kind: str
    task_id: str


def _task_dependency(dag_id: str, task: Any) -> DagDependency | None:
    """Return the dependency created by a single task, if any."""
    # Subclasses first: the REST operator and sensor are plain BaseOperators,
    # while ExternalTaskMarker is not an ExternalTaskSensor.
    if isinstance(task, TriggerDagRunViaApiOperator):
        return DagDependency(dag_id, task.trigger_dag_id, "api", task.task_id)
    if isinstance(task, DagRunStateSensor):
        return DagDependency(task.external_dag_id, dag_id, "api", task.task_id)
    if isinstance(task, TriggerDagRunOperator):
        return DagDependency(dag_id, task.trigger_dag_id, "trigger", task.task_id)
    if isinstance(task, ExternalTaskMarker):
        return DagDependency(dag_id, task.external_dag_id, "marker", task.task_id)
    if isinstance(task, ExternalTaskSensor):
        return DagDependency(task.external_dag_id, dag_id, "sensor", task.task_id)
    if isinstance(task, HttpOperator):
        target = parse_dag_run_endpoint(task.endpoint)
        if target:
            return DagDependency(dag_id, target, "api", task.task_id)
    return None


def detect_dependencies(dag: Any) -> list[DagDependency]:
    """Return the cross-DAG dependencies declared by one DAG's tasks.

    A sensor waiting on a DAG that this same DAG triggers only waits for
    its own trigger to finish, so that edge is dropped.

    Args:
        dag: An Airflow DAG.

    Returns:
        The dependencies sorted by (source, target, kind, task_id).
    """
    found = {dep for task in dag.tasks if (dep := _task_dependency(dag.dag_id, task)) is not None}
    triggered = {d.target for d in found if d.source == dag.dag_id and d.kind in ("trigger", "api")}
    return sorted(
        d for d in found if not (d.target == dag.dag_id and d.source != dag.dag_id and d.source in triggered)
    )


def collect_dependencies(dags: Iterable[Any]) -> list[DagDependency]:
    """Return the de-duplicated dependencies of many DAGs."""
    found: set[DagDependency] = set()
    for dag in dags:
        found.update(detect_dependencies(dag))
    return sorted(found)


def upstream_of(deps: Iterable[DagDependency], dag_id: str) -> list[str]:
    """DAG ids that ``dag_id`` directly depends on."""
    return sorted({d.source for d in deps if d.target == dag_id})


def downstream_of(deps: Iterable[DagDependency], dag_id: str) -> list[str]:
    """DAG ids that directly depend on ``dag_id``."""
    return sorted({d.target for d in deps if d.source == dag_id})


def find_cycles(deps: Iterable[DagDependency]) -> list[list[str]]:
    """Find cycles in the graph of DAGs.

    Markers are skipped: an ``ExternalTaskMarker`` always points the same
    way as the sensor it pairs with, and only propagates clears.

    Returns:
        Each cycle as a list of DAG ids starting and ending at the same
        DAG, e.g. ``["a", "b", "a"]``. Each cycle is reported once.
    """
    graph: dict[str, set[str]] = defaultdict(set)
    for dep in deps:
        if dep.kind != "marker":
            graph[dep.source].add(dep.target)

    cycles: list[list[str]] = []
    seen: set[tuple[str, ...]] = set()

    def visit(node: str, path: list[str], on_path: set[str]) -> None:
        for nxt in sorted(graph.get(node, ())):
            if nxt in on_path:
                cycle = path[path.index(nxt) :]
                # Rotate so the smallest id comes first for de-duplication
                pivot = cycle.index(min(cycle))
                key = tuple(cycle[pivot:] + cycle[:pivot])
                if key not in seen:
                    seen.add(key)
                    cycles.append([*key, key[0]])
                continue
            path.append(nxt)
            on_path.add(nxt)
            visit(nxt, path, on_path)
            on_path.discard(nxt)
            path.pop()

    for start in sorted(graph):
        visit(start, [start], {start})
    return cycles
