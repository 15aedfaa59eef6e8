"""Deferrable trigger that waits for a DAG run to finish.

``DagRunStateTrigger`` runs in the Airflow triggerer process and polls
the REST API of a (possibly remote) webserver until a DAG run reaches
one of the target states. Operators and sensors defer to it so that
waiting on another DAG does not occupy a worker slot.
"""

import asyncio
import time
from typing import Any, AsyncIterator

import httpx
from airflow.triggers.base import BaseTrigger, TriggerEvent

from dag_dependencies.api import TERMINAL_STATES, dag_run_endpoint
from dag_dependencies.config import AIRFLOW_API_CONN_ID
from dag_dependencies.hooks import AirflowApiHook


class DagRunStateTrigger(BaseTrigger):
    """Trigger that fires once a DAG run reaches a target state.

    Args:
        dag_id: DAG of the run to watch.
        run_id: Run id to watch.
        airflow_api_conn_id: Connection of the webserver hosting the run.
        poke_interval: Seconds between polls.
        timeout: Seconds to wait before giving up, or None to wait forever.
        target_states: States that end the wait.
    """

    def __init__(
        self,
        dag_id: str,
        run_id: str,
        airflow_api_conn_id: str = AIRFLOW_API_CONN_ID,
        poke_interval: float = 30,
        timeout: float | None = None,
        target_states: list[str] | None = None,
    ) -> None:
        super().__init__()
        self.dag_id = dag_id
        self.run_id = run_id
        self.airflow_api_conn_id = airflow_api_conn_id
        self.poke_interval = poke_interval
        self.timeout = timeout
        self.target_states = list(target_states or sorted(TERMINAL_STATES))

    def serialize(self) -> tuple[str, dict[str, Any]]:
        """Serialize the trigger for storage.

        Returns:
            A tuple of (classpath, kwargs) for reconstruction.
        """
        return (
            "dag_dependencies.triggers.DagRunStateTrigger",
            {
                "dag_id": self.dag_id,
                "run_id": self.run_id,
                "airflow_api_conn_id": self.airflow_api_conn_id,
                "poke_interval": self.poke_interval,
                "timeout": self.timeout,
                "target_states": self.target_states,
            },
        )

    def _event(self, status: str, state: str | None, message: str) -> TriggerEvent:
        return TriggerEvent(
            {
                "status": status,
                "state": state,
                "dag_id": self.dag_id,
                "run_id": self.run_id,
                "message": message,
            }
        )

    async def run(self) -> AsyncIterator[TriggerEvent]:
        """Poll the DAG run until it reaches a target state.

        Yields:
            A single TriggerEvent with ``status`` ``success`` when a target
            state was reached, or ``error`` on HTTP failure or timeout.
        """
        hook = AirflowApiHook(self.airflow_api_conn_id)
        # Connection lookup and JWT login are blocking calls
        client_kwargs = await asyncio.to_thread(hook.client_kwargs)
        version = await asyncio.to_thread(lambda: hook.api_version)
        endpoint = dag_run_endpoint(self.dag_id, self.run_id, version)

        started = time.monotonic()
        state: str | None = None
        async with httpx.AsyncClient(**client_kwargs) as client:
            while True:
                try:
                    resp = await client.get(endpoint)
                except httpx.HTTPError as err:
                    yield self._event("error", state, f"Request to {endpoint} failed: {err}")
                    return
                if resp.status_code >= 400:
                    yield self._event("error", state, f"HTTP {resp.status_code}: {resp.text}")
                    return

                state = resp.json().get("state")
                self.log.info("DAG run %s.%s is %s", self.dag_id, self.run_id, state)
                if state in self.target_states:
                    yield self._event("success", state, f"DAG run reached state {state}")
                    return

                if self.timeout is not None and time.monotonic() - started >= self.timeout:
                    yield self._event(
                        "error", state, f"Timed out after {self.timeout}s waiting for {self.dag_id}.{self.run_id}"
                    )
                    return
                await asyncio.sleep(self.poke_interval)
