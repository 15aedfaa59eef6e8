"""Tests for the api.py REST helper module."""

from datetime import datetime, timezone

import pytest

from dag_dependencies.api import (
    api_prefix,
    build_dag_run_payload,
    dag_endpoint,
    dag_run_endpoint,
    dag_runs_endpoint,
    is_failed,
    is_terminal,
    parse_dag_run_endpoint,
    resolve_auth_mode,
)


class TestEndpoints:
    def test_dag_runs_endpoint_v1(self) -> None:
        assert dag_runs_endpoint("my_dag") == "/api/v1/dags/my_dag/dagRuns"

    def test_dag_runs_endpoint_v2(self) -> None:
        assert dag_runs_endpoint("my_dag", "v2") == "/api/v2/dags/my_dag/dagRuns"

    def test_dag_run_endpoint_quotes_run_id(self) -> None:
        endpoint = dag_run_endpoint("my_dag", "manual__2024-01-01T00:00:00+00:00")
        assert endpoint == "/api/v1/dags/my_dag/dagRuns/manual__2024-01-01T00%3A00%3A00%2B00%3A00"

    def test_dag_endpoint(self) -> None:
        assert dag_endpoint("my_dag", "v2") == "/api/v2/dags/my_dag"

    def test_unsupported_version(self) -> None:
        with pytest.raises(ValueError, match="Unsupported"):
            api_prefix("v3")

    def test_empty_dag_id(self) -> None:
        with pytest.raises(ValueError):
            dag_runs_endpoint("")

    def test_empty_run_id(self) -> None:
        with pytest.raises(ValueError):
            dag_run_endpoint("my_dag", "")


class TestBuildDagRunPayload:
    def test_defaults_v1(self) -> None:
        assert build_dag_run_payload() == {"conf": {}}

    def test_defaults_v2_include_null_logical_date(self) -> None:
        assert build_dag_run_payload(version="v2") == {"conf": {}, "logical_date": None}

    def test_naive_logical_date_is_utc(self) -> None:
        body = build_dag_run_payload(logical_date=datetime(2024, 1, 1, 6, 30))
        assert body["logical_date"] == "2024-01-01T06:30:00+00:00"

    def test_aware_logical_date_kept(self) -> None:
        body = build_dag_run_payload(logical_date=datetime(2024, 1, 1, tzinfo=timezone.utc))
        assert body["logical_date"] == "2024-01-01T00:00:00+00:00"

    def test_string_logical_date_passthrough(self) -> None:
        body = build_dag_run_payload(logical_date="{{ logical_date }}")
        assert body["logical_date"] == "{{ logical_date }}"

    def test_all_fields(self) -> None:
        body = build_dag_run_payload(conf={"k": "v"}, dag_run_id="run_1", note="hello")
        assert body == {"conf": {"k": "v"}, "dag_run_id": "run_1", "note": "hello"}

    def test_conf_must_be_dict(self) -> None:
        with pytest.raises(TypeError, match="conf must be a dict"):
            build_dag_run_payload(conf=["not", "a", "dict"])  # type: ignore[arg-type]

    def test_bad_version(self) -> None:
        with pytest.raises(ValueError):
            build_dag_run_payload(version="v9")


class TestParseDagRunEndpoint:
    @pytest.mark.parametrize(
        "endpoint,expected",
        [
            ("/api/v1/dags/target/dagRuns", "target"),
            ("api/v2/dags/target/dagRuns/", "target"),
            ("http://airflow:8080/api/v1/dags/target/dagRuns", "target"),
            ("/api/v1/dags/target/dagRuns?limit=1", "target"),
            ("/api/v1/dags/target/dagRuns/run_1", None),
            ("/api/v1/dags/{{ params.dag }}/dagRuns", None),
            ("/get", None),
            ("", None),
            (None, None),
        ],
    )
    def test_parse(self, endpoint: str | None, expected: str | None) -> None:
        assert parse_dag_run_endpoint(endpoint) == expected


class TestStates:
    def test_terminal(self) -> None:
        assert is_terminal("success")
        assert is_terminal("failed")
        assert not is_terminal("running")
        assert not is_terminal("queued")
        assert not is_terminal(None)

    def test_failed(self) -> None:
        assert is_failed("failed")
        assert not is_failed("success")


class TestResolveAuthMode:
    def test_default_basic(self) -> None:
        assert resolve_auth_mode({}) == "basic"

    def test_case_insensitive(self) -> None:
        assert resolve_auth_mode({"auth_type": "JWT"}) == "jwt"

    def test_unknown(self) -> None:
        with pytest.raises(ValueError, match="auth_type"):
            resolve_auth_mode({"auth_type": "kerberos"})
