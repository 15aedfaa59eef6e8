"""Tests for the ``deps`` Typer CLI.

The module-level ``_client`` factory is patched to return an httpx
client backed by ``httpx.MockTransport``.
"""

import json
import os
from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock, patch

import httpx
import pytest
from typer.testing import CliRunner

from dag_dependencies import cli

runner = CliRunner()

DAGS_DIR = os.path.join(os.path.dirname(__file__), "..", "dags")


class FakeAirflow:
    """Minimal in-memory stand-in for the DAG and DAG run endpoints."""

    def __init__(self, paused: bool = False, states: list[str] | None = None, prefix: str = "/api/v1") -> None:
        self.paused = paused
        self.states = states or ["success"]
        self.prefix = prefix
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == f"{self.prefix}/dags/target" and request.method == "GET":
            return httpx.Response(200, json={"dag_id": "target", "is_paused": self.paused})
        if path == f"{self.prefix}/dags/target" and request.method == "PATCH":
            self.paused = json.loads(request.content)["is_paused"]
            return httpx.Response(200, json={"dag_id": "target", "is_paused": self.paused})
        if path == f"{self.prefix}/dags/target/dagRuns" and request.method == "POST":
            body = json.loads(request.content)
            return httpx.Response(200, json={"dag_run_id": body.get("dag_run_id", "manual__1"), "state": "queued"})
        if path.startswith(f"{self.prefix}/dags/target/dagRuns/"):
            state = self.states.pop(0) if len(self.states) > 1 else self.states[0]
            return httpx.Response(200, json={"dag_run_id": "manual__1", "state": state})
        return httpx.Response(404, text="not found")

    def client(self) -> httpx.Client:
        return httpx.Client(base_url="http://localhost:8080", transport=httpx.MockTransport(self))


def invoke(fake: FakeAirflow, *args: str) -> Any:
    with (
        patch("dag_dependencies.cli._client", side_effect=fake.client),
        patch("dag_dependencies.cli.time.sleep"),
    ):
        return runner.invoke(cli.app, list(args))


# ---------------------------------------------------------------------------
# trigger
# ---------------------------------------------------------------------------


def test_trigger_posts_conf() -> None:
    fake = FakeAirflow()
    result = invoke(fake, "trigger", "target", "--conf", '{"source": "cli"}', "--run-id", "cli__1")

    assert result.exit_code == 0, result.output
    assert "Triggered: target" in result.output
    assert "run_id: cli__1" in result.output
    post = [r for r in fake.requests if r.method == "POST"][0]
    assert post.url.path == "/api/v1/dags/target/dagRuns"
    assert json.loads(post.content) == {"conf": {"source": "cli"}, "dag_run_id": "cli__1"}


def test_trigger_without_wait_leaves_dag_unpaused() -> None:
    """A paused DAG stays unpaused after triggering so the queued run executes."""
    fake = FakeAirflow(paused=True)
    result = invoke(fake, "trigger", "target")

    assert result.exit_code == 0, result.output
    assert "Unpaused: target" in result.output
    assert "Re-paused" not in result.output
    assert fake.paused is False
    calls = [(r.method, r.url.path) for r in fake.requests]
    assert calls == [
        ("GET", "/api/v1/dags/target"),
        ("PATCH", "/api/v1/dags/target"),
        ("POST", "/api/v1/dags/target/dagRuns"),
    ]


def test_trigger_wait_repauses_after_terminal_state() -> None:
    fake = FakeAirflow(paused=True, states=["running", "success"])
    result = invoke(fake, "trigger", "target", "--wait", "--interval", "1")

    assert result.exit_code == 0, result.output
    assert result.output.index("Terminal state: success") < result.output.index("Re-paused: target")
    assert fake.paused is True


def test_trigger_wait_failure_still_repauses() -> None:
    fake = FakeAirflow(paused=True, states=["failed"])
    result = invoke(fake, "trigger", "target", "--wait", "--interval", "1")

    assert result.exit_code == 1
    assert "Re-paused: target" in result.output
    assert fake.paused is True


def test_interval_below_one_rejected() -> None:
    fake = FakeAirflow()
    result = invoke(fake, "wait", "target", "manual__1", "--interval", "0")
    assert result.exit_code == 2
    assert fake.requests == []


def test_trigger_wait_success() -> None:
    fake = FakeAirflow(states=["queued", "running", "success"])
    result = invoke(fake, "trigger", "target", "--wait", "--interval", "1")

    assert result.exit_code == 0, result.output
    assert "state=running" in result.output
    assert "Terminal state: success" in result.output


def test_trigger_wait_failure_exits_nonzero() -> None:
    fake = FakeAirflow(states=["running", "failed"])
    result = invoke(fake, "trigger", "target", "--wait", "--interval", "1")

    assert result.exit_code == 1
    assert "Terminal state: failed" in result.output


def test_trigger_rejects_bad_conf() -> None:
    fake = FakeAirflow()
    result = invoke(fake, "trigger", "target", "--conf", "[1, 2]")
    assert result.exit_code == 2
    assert fake.requests == []


def test_trigger_unknown_dag() -> None:
    fake = FakeAirflow()
    result = invoke(fake, "trigger", "missing")
    assert result.exit_code == 1
    assert "Error 404" in result.output


def test_trigger_v2() -> None:
    fake = FakeAirflow(prefix="/api/v2")
    result = invoke(fake, "--api-version", "v2", "trigger", "target")

    assert result.exit_code == 0, result.output
    post = [r for r in fake.requests if r.method == "POST"][0]
    assert post.url.path == "/api/v2/dags/target/dagRuns"
    assert json.loads(post.content) == {"conf": {}, "logical_date": None}


def test_invalid_api_version() -> None:
    result = invoke(FakeAirflow(), "--api-version", "v5", "status", "target", "run")
    assert result.exit_code == 2


# ---------------------------------------------------------------------------
# wait / status
# ---------------------------------------------------------------------------


def test_wait_command() -> None:
    fake = FakeAirflow(states=["running", "success"])
    result = invoke(fake, "wait", "target", "manual__1", "--interval", "1")
    assert result.exit_code == 0, result.output
    assert "Terminal state: success" in result.output


def test_wait_timeout() -> None:
    fake = FakeAirflow(states=["running"])
    with patch("dag_dependencies.cli.time.sleep"):
        result = invoke(fake, "wait", "target", "manual__1", "--timeout", "2", "--interval", "1")
    assert result.exit_code == 1
    assert "Timeout" in result.output


def test_status_command() -> None:
    fake = FakeAirflow(states=["running"])
    result = invoke(fake, "status", "target", "manual__1")
    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["state"] == "running"


# ---------------------------------------------------------------------------
# Client construction
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_settings(monkeypatch: pytest.MonkeyPatch) -> Callable[[str], None]:
    def configure(version: str) -> None:
        monkeypatch.setattr(cli, "_base_url", "http://localhost:8080")
        monkeypatch.setattr(cli, "_username", "admin")
        monkeypatch.setattr(cli, "_password", "secret")
        monkeypatch.setattr(cli, "_api_version", version)

    return configure


def test_client_v1_uses_basic_auth(cli_settings: Callable[[str], None]) -> None:
    cli_settings("v1")
    with cli._client() as client:
        assert isinstance(client.auth, httpx.BasicAuth)


@patch("dag_dependencies.cli.httpx.post")
def test_client_v2_uses_jwt(mock_post: MagicMock, cli_settings: Callable[[str], None]) -> None:
    cli_settings("v2")
    mock_post.return_value = MagicMock(status_code=201)
    mock_post.return_value.json.return_value = {"access_token": "jwt-token"}
    with cli._client() as client:
        assert client.headers["Authorization"] == "Bearer jwt-token"
    assert mock_post.call_args[0][0] == "http://localhost:8080/auth/token"


# ---------------------------------------------------------------------------
# graph
# ---------------------------------------------------------------------------


def test_graph_command() -> None:
    result = runner.invoke(cli.app, ["graph", "--dags-folder", DAGS_DIR])
    assert result.exit_code == 0, result.output
    assert "Cross-DAG dependencies: 9" in result.output
    assert "002_trigger_dagrun_target" in result.output
    assert "Cycle" not in result.output
