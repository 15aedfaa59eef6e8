"""Operator that triggers a DAG through the Airflow REST API.

``TriggerDagRunViaApiOperator`` packages the REST technique: POST to
``/api/<version>/dags/<dag_id>/dagRuns`` on the webserver behind an
Airflow connection, optionally waiting for the new run to finish.
Unlike ``TriggerDagRunOperator`` it can reach DAGs on another
Airflow deployment.
"""

import time
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from airflow.exceptions import AirflowException, AirflowSkipException
from airflow.sdk import BaseOperator

from dag_dependencies.api import TERMINAL_STATES
from dag_dependencies.config import AIRFLOW_API_CONN_ID, timestamp
from dag_dependencies.hooks import AirflowApiHook, DagRunAlreadyExistsError
from dag_dependencies.sensors import check_dag_run_state, validate_states
from dag_dependencies.triggers import DagRunStateTrigger


class TriggerDagRunViaApiOperator(BaseOperator):
    """Trigger a DAG run over the REST API and return its run id.

    Args:
        trigger_dag_id: DAG to trigger (supports Jinja templates).
        conf: Parameters for the triggered run (supports Jinja templates).
        logical_date: Logical date of the triggered run.
        trigger_run_id: Explicit run id for the triggered run.
        note: Note attached to the triggered run.
        airflow_api_conn_id: Connection of the target webserver.
        wait_for_completion: Wait until the triggered run finishes.
        poke_interval: Seconds between state checks while waiting.
        timeout: Seconds to wait before failing.
        allowed_states: Final states that count as success.
        failed_states: Final states that fail this task.
        skip_when_already_exists: Skip instead of failing when the run exists.
        unpause: Unpause the target DAG before triggering it.
        deferrable: Wait in the triggerer instead of a worker slot.
    """

    template_fields = ("trigger_dag_id", "conf", "logical_date", "trigger_run_id", "note")
    template_fields_renderers = {"conf": "py"}
    ui_color = "#ffefeb"

    def __init__(
        self,
        trigger_dag_id: str,
        conf: dict[str, Any] | None = None,
        logical_date: datetime | str | None = None,
        trigger_run_id: str | None = None,
        note: str | None = None,
        airflow_api_conn_id: str = AIRFLOW_API_CONN_ID,
        wait_for_completion: bool = False,
        poke_interval: float = 30,
        timeout: float = 3600,
        allowed_states: Iterable[str] = ("success",),
        failed_states: Iterable[str] = ("failed",),
        skip_when_already_exists: bool = False,
        unpause: bool = False,
        deferrable: bool = False,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.trigger_dag_id = trigger_dag_id
        self.conf = conf
        self.logical_date = logical_date
        self.trigger_run_id = trigger_run_id
        self.note = note
        self.airflow_api_conn_id = airflow_api_conn_id
        self.wait_for_completion = wait_for_completion
        self.poke_interval = poke_interval
        self.timeout = timeout
        self.allowed_states, self.failed_states = validate_states(allowed_states, failed_states)
        self.skip_when_already_exists = skip_when_already_exists
        self.unpause = unpause
        self.deferrable = deferrable

    def execute(self, context: Any) -> str:
        """Trigger the DAG run, then optionally wait for it.

        Args:
            context: The Airflow task instance context.

        Returns:
            The run id of the triggered DAG run.
        """
        hook = AirflowApiHook(self.airflow_api_conn_id)
        if self.unpause and hook.get_dag(self.trigger_dag_id).get("is_paused"):
            hook.set_paused(self.trigger_dag_id, False)

        try:
            run = hook.trigger_dag_run(
                self.trigger_dag_id,
                conf=self.conf,
                logical_date=self.logical_date,
                dag_run_id=self.trigger_run_id,
                note=self.note,
            )
        except DagRunAlreadyExistsError:
            if self.skip_when_already_exists:
                raise AirflowSkipException(
                    f"DAG run {self.trigger_run_id or self.logical_date} of {self.trigger_dag_id} already exists"
                ) from None
            raise

        run_id: str = run["dag_run_id"]
        print(f"[{timestamp()}] Triggered {self.trigger_dag_id}: run_id={run_id}")
        if not self.wait_for_completion:
            return run_id

        if self.deferrable:
            self.defer(
                trigger=DagRunStateTrigger(
                    dag_id=self.trigger_dag_id,
                    run_id=run_id,
                    airflow_api_conn_id=self.airflow_api_conn_id,
                    poke_interval=self.poke_interval,
                    timeout=self.timeout,
                    target_states=sorted(set(self.allowed_states) | set(self.failed_states) | TERMINAL_STATES),
                ),
                method_name="execute_complete",
            )

        started = time.monotonic()
        while True:
            time.sleep(self.poke_interval)
            state = hook.get_dag_run_state(self.trigger_dag_id, run_id)
            self.log.info("Waiting on %s.%s: state=%s", self.trigger_dag_id, run_id, state)
            if check_dag_run_state(self.trigger_dag_id, run_id, state, self.allowed_states, self.failed_states):
                return run_id
            if time.monotonic() - started >= self.timeout:
                raise AirflowException(
                    f"Timed out after {self.timeout}s waiting for {self.trigger_dag_id}.{run_id}"
                )

    def execute_complete(self, context: Any, event: dict[str, Any]) -> str:
        """Resume after the trigger fired.

        Args:
            context: The Airflow task instance context.
            event: The trigger event payload.

        Returns:
            The run id of the triggered DAG run.
        """
        if event["status"] != "success":
            raise AirflowException(event["message"])
        run_id: str = event["run_id"]
        if not check_dag_run_state(self.trigger_dag_id, run_id, event["state"], self.allowed_states, self.failed_states):
            raise AirflowException(f"Trigger fired with non-terminal state {event['state']}")
        print(f"[{timestamp()}] {self.trigger_dag_id}.{run_id} finished: {event['state']}")
        return run_id
