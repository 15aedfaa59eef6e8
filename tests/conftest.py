"""Test configuration for dag-dependencies.

Sets Airflow environment variables for lightweight SQLite-based testing
before any airflow imports occur. No running webserver needed: REST
calls are served by ``httpx.MockTransport``.
"""

import os
from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest

os.environ["AIRFLOW__CORE__UNIT_TEST_MODE"] = "True"
os.environ["AIRFLOW__DATABASE__SQL_ALCHEMY_CONN"] = "sqlite:////tmp/test_dag_dependencies.db"
os.environ["AIRFLOW__CORE__LOAD_EXAMPLES"] = "False"
os.environ["AIRFLOW__CORE__DAGS_FOLDER"] = os.path.join(os.path.dirname(__file__), "..", "dags")


def _make_connection(
    host: str = "localhost",
    port: int | None = 8080,
    login: str = "admin",
    password: str = "admin",
    schema: str | None = None,
    extras: dict[str, Any] | None = None,
) -> MagicMock:
    """Build a stand-in for an Airflow HTTP connection."""
    conn = MagicMock()
    conn.host = host
    conn.port = port
    conn.login = login
    conn.password = password
    conn.schema = schema
    conn.extra_dejson = extras or {}
    return conn


@pytest.fixture
def api_connection() -> MagicMock:
    """Default ``airflow_api`` connection: basic auth against the v1 API."""
    return _make_connection()


@pytest.fixture
def make_connection() -> Callable[..., MagicMock]:
    """Factory for connections with custom host, auth or extras."""
    return _make_connection
