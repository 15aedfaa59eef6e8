"""Hook for the Airflow REST API.

``AirflowApiHook`` turns an Airflow connection (host plus auth extras)
into an ``httpx`` client for a webserver's REST API, and exposes the
handful of calls needed to make one DAG depend on another: trigger a
run, read a run's state, and pause or unpause a DAG. The webserver may
be the local deployment or a different one entirely.

Connection extras::

    {
        "api_version": "v1",        # or "v2" on Airflow 3
        "auth_type": "basic",       # "basic", "bearer" or "jwt"
        "token": "...",             # bearer token (falls back to password)
        "headers": {"X-Team": "data"},
        "timeout": 30,
        "verify": true
    }
"""

from datetime import datetime
from typing import Any
from urllib.parse import urlsplit

import httpx
from airflow.exceptions import AirflowException
from airflow.hooks.base import BaseHook  # type: ignore[attr-defined]

from dag_dependencies.api import (
    api_prefix,
    build_dag_run_payload,
    dag_endpoint,
    dag_run_endpoint,
    dag_runs_endpoint,
    resolve_auth_mode,
)
from dag_dependencies.config import AIRFLOW_API_CONN_ID, DEFAULT_API_VERSION


def _as_bool(value: Any) -> bool:
    """Read a connection extra that may arrive as a bool or a string."""
    if isinstance(value, str):
        return value.strip().lower() not in ("false", "0", "no", "off", "")
    return bool(value)


class AirflowApiError(AirflowException):
    """Raised when the Airflow REST API answers with an error status.

    Args:
        message: Human-readable description of the failed call.
        status_code: HTTP status code of the response.
        body: Response body text.
    """

    def __init__(self, message: str, status_code: int, body: str = "") -> None:
        super().__init__(f"{message}: HTTP {status_code} {body}".strip())
        self.status_code = status_code
        self.body = body


class DagRunAlreadyExistsError(AirflowApiError):
    """Raised when a run with the requested run id or logical date exists."""


class AirflowApiHook(BaseHook):
    """Hook for triggering and inspecting DAG runs over the REST API.

    Args:
        airflow_api_conn_id: Airflow connection ID of the target webserver.
    """

    conn_name_attr = "airflow_api_conn_id"
    default_conn_name = AIRFLOW_API_CONN_ID
    conn_type = "http"
    hook_name = "Airflow REST API"

    def __init__(self, airflow_api_conn_id: str = AIRFLOW_API_CONN_ID) -> None:
        super().__init__()
        self.airflow_api_conn_id = airflow_api_conn_id
        self._connection: Any = None

    @property
    def connection(self) -> Any:
        """The Airflow connection, fetched once per hook."""
        if self._connection is None:
            self._connection = self.get_connection(self.airflow_api_conn_id)
        return self._connection

    @property
    def extras(self) -> dict[str, Any]:
        extras: dict[str, Any] = self.connection.extra_dejson or {}
        return extras

    @property
    def api_version(self) -> str:
        """REST API version from the ``api_version`` extra (``v1`` by default)."""
        version = str(self.extras.get("api_version") or DEFAULT_API_VERSION)
        api_prefix(version)
        return version

    def base_url(self) -> str:
        """Return ``<scheme>://<host>[:port]`` for the connection.

        The host may carry its own scheme; otherwise the connection's
        schema field is used, defaulting to ``http``.
        """
        conn = self.connection
        host = (conn.host or "").strip().rstrip("/")
        if not host:
            raise AirflowException(f"Connection {self.airflow_api_conn_id!r} has no host")
        if "://" not in host:
            host = f"{conn.schema or 'http'}://{host}"
        if conn.port and urlsplit(host).port is None:
            host = f"{host}:{conn.port}"
        return host

    def _fetch_jwt(self, base_url: str, timeout: float, verify: bool) -> str:
        """Exchange login/password for a JWT access token (Airflow 3)."""
        conn = self.connection
        resp = httpx.post(
            f"{base_url}/auth/token",
            json={"username": conn.login, "password": conn.password},
            timeout=timeout,
            verify=verify,
        )
        if resp.status_code >= 400:
            raise AirflowApiError("Authentication failed", resp.status_code, resp.text)
        token: str = resp.json()["access_token"]
        return token

    def client_kwargs(self) -> dict[str, Any]:
        """Build keyword arguments for an ``httpx`` client.

        Shared by the sync client of this hook and the async client of
        ``DagRunStateTrigger``.

        Returns:
            A dict with base_url, headers, timeout, verify and optionally auth.
        """
        conn = self.connection
        extras = self.extras
        base_url = self.base_url()
        timeout = float(extras.get("timeout", 30))
        verify = _as_bool(extras.get("verify", True))

        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        headers.update(extras.get("headers") or {})

        kwargs: dict[str, Any] = {
            "base_url": base_url,
            "headers": headers,
            "timeout": timeout,
            "verify": verify,
        }

        mode = resolve_auth_mode(extras)
        if mode == "basic":
            kwargs["auth"] = httpx.BasicAuth(conn.login or "", conn.password or "")
        elif mode == "bearer":
            token = extras.get("token") or conn.password
            if not token:
                raise AirflowException(
                    f"Connection {self.airflow_api_conn_id!r} uses bearer auth but has no token"
                )
            headers["Authorization"] = f"Bearer {token}"
        else:
            headers["Authorization"] = f"Bearer {self._fetch_jwt(base_url, timeout, verify)}"
        return kwargs

    def get_conn(self) -> httpx.Client:
        """Return an authenticated httpx client for the webserver."""
        return httpx.Client(**self.client_kwargs())

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Send a request and return the decoded JSON body."""
        with self.get_conn() as client:
            resp = client.request(method, path, **kwargs)
        if resp.status_code >= 400:
            raise AirflowApiError(f"{method} {path} failed", resp.status_code, resp.text)
        if not resp.content:
            return {}
        result: dict[str, Any] = resp.json()
        return result

    def trigger_dag_run(
        self,
        dag_id: str,
        conf: dict[str, Any] | None = None,
        logical_date: datetime | str | None = None,
        dag_run_id: str | None = None,
        note: str | None = None,
    ) -> dict[str, Any]:
        """Create a DAG run via ``POST /api/<version>/dags/<dag_id>/dagRuns``.

        Args:
            dag_id: The DAG to trigger.
            conf: Parameters passed to the run as ``dag_run.conf``.
            logical_date: Logical date of the new run.
            dag_run_id: Explicit run id.
            note: Note attached to the run.

        Returns:
            The created DAG run as returned by the API.

        Raises:
            DagRunAlreadyExistsError: A run with the same id or date exists.
            AirflowApiError: Any other error response.
        """
        version = self.api_version
        body = build_dag_run_payload(conf, logical_date, dag_run_id, note, version=version)
        self.log.info("Triggering DAG %s via %s API with conf=%s", dag_id, version, body["conf"])
        try:
            data = self._request("POST", dag_runs_endpoint(dag_id, version), json=body)
        except AirflowApiError as err:
            if err.status_code == 409:
                raise DagRunAlreadyExistsError(
                    f"DAG run already exists for {dag_id}", err.status_code, err.body
                ) from err
            raise
        self.log.info("Created run %s of %s (state=%s)", data.get("dag_run_id"), dag_id, data.get("state"))
        return data

    def get_dag_run(self, dag_id: str, run_id: str) -> dict[str, Any]:
        """Return a DAG run, including its ``state``."""
        return self._request("GET", dag_run_endpoint(dag_id, run_id, self.api_version))

    def get_dag_run_state(self, dag_id: str, run_id: str) -> str:
        """Return just the state of a DAG run."""
        state: str = self.get_dag_run(dag_id, run_id).get("state", "")
        return state

    def get_dag(self, dag_id: str) -> dict[str, Any]:
        """Return DAG details, including ``is_paused``."""
        return self._request("GET", dag_endpoint(dag_id, self.api_version))

    def set_paused(self, dag_id: str, paused: bool) -> dict[str, Any]:
        """Pause or unpause a DAG."""
        self.log.info("Setting is_paused=%s on %s", paused, dag_id)
        return self._request("PATCH", dag_endpoint(dag_id, self.api_version), json={"is_paused": paused})
