"""DAG 3: ExternalTaskSensor.

Technique 2 -- the downstream DAG *pulls*: it runs on its own schedule
and waits with ``ExternalTaskSensor`` until a task (or the whole run)
of ``001_upstream_pipeline`` with the same logical date has succeeded.

- Both DAGs run ``@daily`` from the same start date. When schedules
  differ, ``execution_delta`` (or ``execution_date_fn``) maps this
  run's logical date onto the upstream one.
- ``mode="reschedule"`` frees the worker slot between pokes.
- ``failed_states`` fails fast instead of waiting for the timeout when
  the upstream task fails.
- ``check_existence`` fails immediately on a typo in the DAG/task id.

Trade-off: the upstream DAG stays unaware of its consumers, but the
two schedules must line up and the sensor occupies a slot (or a
reschedule loop) while waiting.
"""

from datetime import timedelta

from airflow.providers.standard.operators.bash import BashOperator
from airflow.providers.standard.sensors.external_task import ExternalTaskSensor
from airflow.sdk import DAG, task

from dag_dependencies.config import DEFAULT_ARGS, START_DATE, timestamp

UPSTREAM_DAG_ID = "001_upstream_pipeline"

with DAG(
    dag_id="003_external_task_sensor",
    default_args=DEFAULT_ARGS,
    description="Downstream DAG waiting on 001_upstream_pipeline with ExternalTaskSensor",
    start_date=START_DATE,
    schedule="@daily",
    catchup=False,
    tags=["example", "sensor"],
) as dag:
    # Wait for a single task of the upstream run
    wait_for_publish = ExternalTaskSensor(
        task_id="wait_for_publish",
        external_dag_id=UPSTREAM_DAG_ID,
        external_task_id="publish",
        allowed_states=["success"],
        failed_states=["failed", "upstream_failed"],
        execution_delta=timedelta(0),
        check_existence=True,
        mode="reschedule",
        poke_interval=60,
        timeout=60 * 60,
    )

    # Wait for the whole upstream DAG run (external_task_id=None)
    wait_for_run = ExternalTaskSensor(
        task_id="wait_for_upstream_run",
        external_dag_id=UPSTREAM_DAG_ID,
        external_task_id=None,
        allowed_states=["success"],
        failed_states=["failed"],
        mode="reschedule",
        poke_interval=60,
        timeout=60 * 60,
    )

    @task
    def process(**context: object) -> None:
        """Process the data published upstream for this logical date."""
        print(f"[{timestamp()}] Upstream published data for {context['ds']}, processing")

    report = BashOperator(
        task_id="report",
        bash_command='echo "Downstream processing done for {{ ds }}"',
    )

    [wait_for_publish, wait_for_run] >> process() >> report
