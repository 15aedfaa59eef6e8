"""DAG 5: REST API operator and sensor.

The REST technique packaged as reusable components:

- ``TriggerDagRunViaApiOperator`` posts the run through
  ``AirflowApiHook`` and pushes the new ``dag_run_id`` to XCom.
- ``DagRunStateSensor`` pulls that run id and waits on the run's state
  through the same API, deferring to ``DagRunStateTrigger`` so no
  worker slot is held.

Because both only talk HTTP, ``airflow_api`` may point at another
Airflow deployment -- something neither ``TriggerDagRunOperator``
nor ``ExternalTaskSensor`` can do.
"""

from datetime import timedelta

from airflow.sdk import DAG, task

from dag_dependencies.config import AIRFLOW_API_CONN_ID, DEFAULT_ARGS, START_DATE, print_context, timestamp
from dag_dependencies.operators import TriggerDagRunViaApiOperator
from dag_dependencies.sensors import DagRunStateSensor

TARGET_DAG_ID = "005_api_target"

with DAG(
    dag_id="005_api_operator_and_sensor",
    default_args=DEFAULT_ARGS,
    description="Trigger and await a DAG run with AirflowApiHook-based operator and sensor",
    start_date=START_DATE,
    schedule="@daily",
    catchup=False,
    tags=["example", "api", "deferrable"],
) as upstream:
    trigger = TriggerDagRunViaApiOperator(
        task_id="trigger_remote",
        trigger_dag_id=TARGET_DAG_ID,
        airflow_api_conn_id=AIRFLOW_API_CONN_ID,
        conf={"requested_by": "{{ dag.dag_id }}", "ds": "{{ ds }}"},
        trigger_run_id="api__{{ run_id }}",
        note="Triggered by 005_api_operator_and_sensor",
        unpause=True,
        skip_when_already_exists=True,
    )

    wait = DagRunStateSensor(
        task_id="wait_for_remote",
        external_dag_id=TARGET_DAG_ID,
        external_run_id="{{ ti.xcom_pull(task_ids='trigger_remote') }}",
        airflow_api_conn_id=AIRFLOW_API_CONN_ID,
        poke_interval=15,
        timeout=timedelta(hours=1).total_seconds(),
        deferrable=True,
    )

    @task
    def after_remote(**context: object) -> None:
        """Continue once the remote run has succeeded."""
        run_id = context["ti"].xcom_pull(task_ids="trigger_remote")  # type: ignore[attr-defined]
        print(f"[{timestamp()}] {TARGET_DAG_ID} run {run_id} succeeded, continuing")

    trigger >> wait >> after_remote()

with DAG(
    dag_id=TARGET_DAG_ID,
    default_args=DEFAULT_ARGS,
    description="Target of 005_api_operator_and_sensor",
    start_date=START_DATE,
    schedule=None,
    catchup=False,
    tags=["example", "api"],
) as target:

    @task
    def remote_work(**context: object) -> None:
        """Stand-in for work on the remote deployment."""
        print_context(context)  # type: ignore[arg-type]
        print(f"[{timestamp()}] Remote work done")

    remote_work()
