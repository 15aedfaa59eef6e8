"""Sensor that waits for a DAG run through the Airflow REST API.

``DagRunStateSensor`` is the REST counterpart of ``ExternalTaskSensor``:
instead of reading the local metadata database it asks a webserver
for the state of a specific run, so the upstream DAG may live on a
different Airflow deployment.
"""

from collections.abc import Iterable
from typing import Any

from airflow.exceptions import AirflowException
from airflow.sdk import BaseSensorOperator

from dag_dependencies.api import TERMINAL_STATES, is_terminal
from dag_dependencies.config import AIRFLOW_API_CONN_ID
from dag_dependencies.hooks import AirflowApiHook
from dag_dependencies.triggers import DagRunStateTrigger


def validate_states(allowed_states: Iterable[str], failed_states: Iterable[str]) -> tuple[list[str], list[str]]:
    """Return the state lists, rejecting a state that is both allowed and failed."""
    allowed = list(allowed_states)
    failed = list(failed_states)
    overlap = set(allowed) & set(failed)
    if overlap:
        raise ValueError(f"States {sorted(overlap)} cannot be both allowed and failed")
    return allowed, failed


def check_dag_run_state(
    dag_id: str,
    run_id: str,
    state: str | None,
    allowed_states: Iterable[str],
    failed_states: Iterable[str],
) -> bool:
    """Decide whether waiting on a DAG run is over.

    Returns:
        True for an allowed state, False while the run is still going.

    Raises:
        AirflowException: The run ended in a failed or unexpected state.
    """
    allowed = list(allowed_states)
    if state in allowed:
        return True
    if state in failed_states:
        raise AirflowException(f"DAG run {dag_id}.{run_id} failed with state {state}")
    if is_terminal(state):
        raise AirflowException(f"DAG run {dag_id}.{run_id} finished in state {state}, expected one of {allowed}")
    return False


class DagRunStateSensor(BaseSensorOperator):
    """Wait for a DAG run to reach an allowed state.

    Args:
        external_dag_id: DAG of the run to wait for (supports Jinja templates).
        external_run_id: Run id to wait for, typically pulled from the
            XCom of the task that triggered it (supports Jinja templates).
        allowed_states: States that satisfy the sensor.
        failed_states: States that fail the sensor immediately.
        airflow_api_conn_id: Connection of the webserver hosting the run.
        deferrable: Wait in the triggerer instead of a worker slot.
    """

    template_fields = ("external_dag_id", "external_run_id")
    ui_color = "#4db7db"

    def __init__(
        self,
        external_dag_id: str,
        external_run_id: str,
        allowed_states: Iterable[str] = ("success",),
        failed_states: Iterable[str] = ("failed",),
        airflow_api_conn_id: str = AIRFLOW_API_CONN_ID,
        deferrable: bool = False,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.external_dag_id = external_dag_id
        self.external_run_id = external_run_id
        self.allowed_states, self.failed_states = validate_states(allowed_states, failed_states)
        self.airflow_api_conn_id = airflow_api_conn_id
        self.deferrable = deferrable

    def execute(self, context: Any) -> None:
        """Poke normally, or defer to ``DagRunStateTrigger`` when deferrable."""
        if not self.deferrable:
            super().execute(context)
            return
        if self.poke(context):
            return
        self.log.info("Deferring wait on %s.%s", self.external_dag_id, self.external_run_id)
        self.defer(
            trigger=DagRunStateTrigger(
                dag_id=self.external_dag_id,
                run_id=self.external_run_id,
                airflow_api_conn_id=self.airflow_api_conn_id,
                poke_interval=self.poke_interval,
                timeout=self.timeout,
                target_states=sorted(set(self.allowed_states) | set(self.failed_states) | TERMINAL_STATES),
            ),
            method_name="execute_complete",
        )

    def poke(self, context: Any) -> bool:
        """Check the state of the external DAG run.

        Args:
            context: The Airflow task instance context.

        Returns:
            True once the run is in an allowed state, False to keep waiting.
        """
        hook = AirflowApiHook(self.airflow_api_conn_id)
        state = hook.get_dag_run_state(self.external_dag_id, self.external_run_id)
        self.log.info("DAG run %s.%s is %s", self.external_dag_id, self.external_run_id, state or "unknown")
        return check_dag_run_state(
            self.external_dag_id, self.external_run_id, state, self.allowed_states, self.failed_states
        )

    def execute_complete(self, context: Any, event: dict[str, Any]) -> None:
        """Resume after the trigger fired.

        Args:
            context: The Airflow task instance context.
            event: The trigger event payload.
        """
        if event["status"] != "success":
            raise AirflowException(event["message"])
        if not check_dag_run_state(
            self.external_dag_id, self.external_run_id, event["state"], self.allowed_states, self.failed_states
        ):
            raise AirflowException(f"Trigger fired with non-terminal state {event['state']}")
        self.log.info("DAG run %s.%s finished: %s", self.external_dag_id, self.external_run_id, event["state"])
