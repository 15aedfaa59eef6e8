"""Airflow REST API helpers for triggering and inspecting DAG runs.

Pure functions shared by the hook, the deferrable trigger and the
``deps`` CLI: endpoint paths, request payloads, and DAG run state
classification. Nothing here performs I/O, which keeps the helpers
easy to test.
"""

import re
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

from dag_dependencies.config import DEFAULT_API_VERSION

SUPPORTED_API_VERSIONS = ("v1", "v2")

# DagRunState values that end a run
TERMINAL_STATES = frozenset({"success", "failed"})
FAILED_STATES = frozenset({"failed"})

AUTH_MODES = ("basic", "bearer", "jwt")

_DAG_RUNS_RE = re.compile(r"^(?:.*/)?(?:api/v\d+/)?dags/(?P<dag_id>[^/?]+)/dagRuns/?(?:\?.*)?$")


def api_prefix(version: str = DEFAULT_API_VERSION) -> str:
    """Return the REST API path prefix for a version, e.g. ``/api/v1``."""
    if version not in SUPPORTED_API_VERSIONS:
        raise ValueError(f"Unsupported Airflow API version {version!r}, expected one of {SUPPORTED_API_VERSIONS}")
    return f"/api/{version}"


def dag_runs_endpoint(dag_id: str, version: str = DEFAULT_API_VERSION) -> str:
    """Return the endpoint used to create or list runs of a DAG.

    Args:
        dag_id: The DAG to address.
        version: REST API version (``v1`` or ``v2``).

    Returns:
        A path such as ``/api/v1/dags/my_dag/dagRuns``.
    """
    if not dag_id:
        raise ValueError("dag_id must not be empty")
    return f"{api_prefix(version)}/dags/{quote(dag_id, safe='')}/dagRuns"


def dag_run_endpoint(dag_id: str, run_id: str, version: str = DEFAULT_API_VERSION) -> str:
    """Return the endpoint of a single DAG run."""
    if not run_id:
        raise ValueError("run_id must not be empty")
    return f"{dag_runs_endpoint(dag_id, version)}/{quote(run_id, safe='')}"


def dag_endpoint(dag_id: str, version: str = DEFAULT_API_VERSION) -> str:
    """Return the endpoint of a DAG (used for pause/unpause)."""
    if not dag_id:
        raise ValueError("dag_id must not be empty")
    return f"{api_prefix(version)}/dags/{quote(dag_id, safe='')}"


def _isoformat(value: datetime | str) -> str:
    """Render a logical date as ISO-8601, treating naive datetimes as UTC."""
    if isinstance(value, str):
        return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def build_dag_run_payload(
    conf: dict[str, Any] | None = None,
    logical_date: datetime | str | None = None,
    dag_run_id: str | None = None,
    note: str | None = None,
    version: str = DEFAULT_API_VERSION,
) -> dict[str, Any]:
    """Build the JSON body for ``POST .../dags/<dag_id>/dagRuns``.

    Airflow 3 (``v2``) requires the ``logical_date`` key to be present,
    even when it is null. The ``v1`` API picks a logical date itself
    when the key is omitted.

    Args:
        conf: Parameters exposed to the triggered run as ``dag_run.conf``.
        logical_date: Logical date of the new run.
        dag_run_id: Explicit run id; Airflow generates one when omitted.
        note: Free-text note shown on the run in the UI.
        version: REST API version (``v1`` or ``v2``).

    Returns:
        The request body as a dict.
    """
    api_prefix(version)
    if conf is None:
        conf = {}
    if not isinstance(conf, dict):
        raise TypeError(f"conf must be a dict, got {type(conf).__name__}")

    body: dict[str, Any] = {"conf": conf}
    if logical_date is not None:
        body["logical_date"] = _isoformat(logical_date)
    elif version == "v2":
        body["logical_date"] = None
    if dag_run_id:
        body["dag_run_id"] = dag_run_id
    if note:
        body["note"] = note
    return body


def parse_dag_run_endpoint(endpoint: str | None) -> str | None:
    """Return the target dag_id of a ``dags/<dag_id>/dagRuns`` endpoint.

    Returns None for anything else, including templated dag ids which
    cannot be resolved without a run context.
    """
    if not endpoint:
        return None
    match = _DAG_RUNS_RE.match(endpoint.strip())
    if match is None:
        return None
    dag_id = match.group("dag_id")
    if "{{" in dag_id:
        return None
    return dag_id


def is_terminal(state: str | None) -> bool:
    """True when a DAG run state will not change any more."""
    return state in TERMINAL_STATES


def is_failed(state: str | None) -> bool:
    """True when a DAG run state is a failure."""
    return state in FAILED_STATES


def resolve_auth_mode(extras: dict[str, Any]) -> str:
    """Read the ``auth_type`` connection extra, defaulting to basic auth."""
    mode = str(extras.get("auth_type") or "basic").lower()
    if mode not in AUTH_MODES:
        raise ValueError(f"Unsupported auth_type {mode!r}, expected one of {AUTH_MODES}")
    return mode
