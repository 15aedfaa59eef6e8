"""Typer CLI for cross-DAG dependencies.

Triggers and watches DAG runs through the Airflow REST API, and prints
the cross-DAG dependency graph of a DAGs folder.

Usage::

    deps trigger 004_rest_api_target --conf '{"source": "cli"}' --wait
    deps wait 004_rest_api_target manual__2024-01-01T00:00:00+00:00
    deps status 004_rest_api_target manual__2024-01-01T00:00:00+00:00
    deps graph --dags-folder dags/

The v1 API authenticates with basic auth; v2 (Airflow 3) exchanges the
username and password for a JWT first.
"""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Annotated, Any, Optional

import httpx
import typer

from dag_dependencies.api import (
    api_prefix,
    build_dag_run_payload,
    dag_endpoint,
    dag_run_endpoint,
    dag_runs_endpoint,
    is_terminal,
)
from dag_dependencies.config import DEFAULT_API_VERSION

# ---------------------------------------------------------------------------
# Typer app
# ---------------------------------------------------------------------------

app = typer.Typer(help="Cross-DAG dependency CLI", no_args_is_help=True)

# ---------------------------------------------------------------------------
# Global state (set via callback)
# ---------------------------------------------------------------------------

_base_url: str = ""
_username: str = ""
_password: str = ""
_api_version: str = DEFAULT_API_VERSION


@app.callback()
def _main(
    base_url: Annotated[
        str, typer.Option("--base-url", envvar="AIRFLOW_URL", help="Airflow base URL")
    ] = "http://localhost:8080",
    username: Annotated[
        str, typer.Option("--username", envvar="AIRFLOW_USER", help="Airflow username")
    ] = "admin",
    password: Annotated[
        str, typer.Option("--password", envvar="AIRFLOW_PASS", help="Airflow password")
    ] = "admin",
    api_version: Annotated[
        str, typer.Option("--api-version", envvar="AIRFLOW_API_VERSION", help="REST API version (v1 or v2)")
    ] = DEFAULT_API_VERSION,
) -> None:
    global _base_url, _username, _password, _api_version  # noqa: PLW0603
    try:
        api_prefix(api_version)
    except ValueError as err:
        raise typer.BadParameter(str(err), param_hint="--api-version") from err
    _base_url = base_url.rstrip("/")
    _username = username
    _password = password
    _api_version = api_version


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------


def _get_token() -> str:
    """Authenticate and return a JWT access token (v2 only)."""
    resp = httpx.post(
        f"{_base_url}/auth/token",
        json={"username": _username, "password": _password},
    )
    if resp.status_code >= 400:
        typer.echo(f"Authentication failed: {resp.status_code} {resp.text}", err=True)
        raise typer.Exit(1)
    token: str = resp.json()["access_token"]
    return token


def _client() -> httpx.Client:
    """Return an authenticated httpx client."""
    if _api_version == "v1":
        return httpx.Client(base_url=_base_url, auth=(_username, _password), timeout=30.0)
    return httpx.Client(
        base_url=_base_url,
        headers={"Authorization": f"Bearer {_get_token()}"},
        timeout=30.0,
    )


def _check(resp: httpx.Response) -> dict[str, Any]:
    """Check response status and return JSON, or exit on error."""
    if resp.status_code >= 400:
        typer.echo(f"Error {resp.status_code}: {resp.text}", err=True)
        raise typer.Exit(1)
    result: dict[str, Any] = resp.json()
    return result


def _wait_for_run(c: httpx.Client, dag_id: str, run_id: str, timeout: int, interval: int) -> str:
    """Poll a DAG run until it reaches a terminal state. Returns final state."""
    elapsed = 0
    while elapsed <= timeout:
        data = _check(c.get(dag_run_endpoint(dag_id, run_id, _api_version)))
        state: str = data.get("state", "")
        typer.echo(f"  [{elapsed:>3d}s] state={state}")
        if is_terminal(state):
            return state
        time.sleep(interval)
        elapsed += interval
    typer.echo("Timeout waiting for run to complete", err=True)
    raise typer.Exit(1)


# ===========================================================================
# Commands
# ===========================================================================


@app.command()
def trigger(
    dag_id: str,
    conf: Annotated[Optional[str], typer.Option(help="JSON config for the run")] = None,
    run_id: Annotated[Optional[str], typer.Option("--run-id", help="Explicit run id")] = None,
    note: Annotated[Optional[str], typer.Option(help="Note attached to the run")] = None,
    wait: Annotated[bool, typer.Option("--wait", help="Wait for completion")] = False,
    timeout: Annotated[int, typer.Option(help="Wait timeout in seconds")] = 300,
    interval: Annotated[int, typer.Option(min=1, help="Poll interval in seconds")] = 5,
) -> None:
    """Trigger a DAG run via POST /api/<version>/dags/<dag_id>/dagRuns."""
    try:
        run_conf = json.loads(conf) if conf else None
        body = build_dag_run_payload(run_conf, dag_run_id=run_id, note=note, version=_api_version)
    except (json.JSONDecodeError, TypeError) as err:
        raise typer.BadParameter(f"--conf must be a JSON object: {err}", param_hint="--conf") from err

    with _client() as c:
        # Auto-unpause if needed so the run actually executes
        dag_data = _check(c.get(dag_endpoint(dag_id, _api_version)))
        was_paused = dag_data.get("is_paused", False)
        if was_paused:
            _check(c.patch(dag_endpoint(dag_id, _api_version), json={"is_paused": False}))
            typer.echo(f"Unpaused: {dag_id}")
        data = _check(c.post(dag_runs_endpoint(dag_id, _api_version), json=body))
        new_run_id: str = data.get("dag_run_id", "")
        typer.echo(f"Triggered: {dag_id}")
        typer.echo(f"  run_id: {new_run_id}")
        typer.echo(f"  state:  {data.get('state')}")
        if not wait:
            if was_paused:
                # A paused DAG never starts its queued runs
                typer.echo(f"Left unpaused so the run can execute: {dag_id}")
            return

        state = _wait_for_run(c, dag_id, new_run_id, timeout, interval)
        typer.echo(f"Terminal state: {state}")
        if was_paused:
            _check(c.patch(dag_endpoint(dag_id, _api_version), json={"is_paused": True}))
            typer.echo(f"Re-paused: {dag_id}")
        if state != "success":
            raise typer.Exit(1)


@app.command()
def wait(
    dag_id: str,
    run_id: str,
    timeout: Annotated[int, typer.Option(help="Timeout in seconds")] = 300,
    interval: Annotated[int, typer.Option(min=1, help="Poll interval in seconds")] = 5,
) -> None:
    """Poll a DAG run until it reaches a terminal state."""
    with _client() as c:
        state = _wait_for_run(c, dag_id, run_id, timeout, interval)
    typer.echo(f"Terminal state: {state}")
    if state != "success":
        raise typer.Exit(1)


@app.command()
def status(dag_id: str, run_id: str) -> None:
    """Show details for a DAG run."""
    with _client() as c:
        data = _check(c.get(dag_run_endpoint(dag_id, run_id, _api_version)))
    typer.echo(json.dumps(data, indent=2))


@app.command()
def graph(
    dags_folder: Annotated[Path, typer.Option("--dags-folder", help="Folder of DAG files")] = Path("dags"),
) -> None:
    """Print the cross-DAG dependencies declared in a DAGs folder."""
    # Importing airflow is slow, so only the graph command pays for it
    from airflow.models import DagBag

    from dag_dependencies.dependencies import collect_dependencies, find_cycles

    dagbag = DagBag(dag_folder=str(dags_folder))
    for path, error in dagbag.import_errors.items():
        typer.echo(f"Import error in {path}: {error}", err=True)

    deps = collect_dependencies(dagbag.dags.values())
    typer.echo(f"Cross-DAG dependencies: {len(deps)}\n")
    header = f"{'SOURCE':<30}  {'TARGET':<30}  {'KIND':<8}  TASK"
    typer.echo(header)
    typer.echo("-" * len(header))
    for dep in deps:
        typer.echo(f"{dep.source:<30}  {dep.target:<30}  {dep.kind:<8}  {dep.task_id}")

    cycles = find_cycles(deps)
    for cycle in cycles:
        typer.echo(f"Cycle: {' -> '.join(cycle)}", err=True)
    if dagbag.import_errors or cycles:
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Entry point (for `python -m dag_dependencies.cli`)
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app()
