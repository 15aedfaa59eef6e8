"""DAG 1: Upstream pipeline.

The upstream side of every dependency example: a small daily
extract -> transform -> publish pipeline. DAG 3 waits on its
``publish`` task with ``ExternalTaskSensor``.

The final ``ExternalTaskMarker`` closes the loop in the other
direction: clearing ``publish`` (with "downstream" and "recursive"
selected) also clears the waiting sensor in DAG 3, so a re-run of
the upstream data is picked up by the downstream DAG.
"""

from airflow.providers.standard.operators.bash import BashOperator
from airflow.providers.standard.sensors.external_task import ExternalTaskMarker
from airflow.sdk import DAG, task

from dag_dependencies.config import DEFAULT_ARGS, START_DATE, timestamp

with DAG(
    dag_id="001_upstream_pipeline",
    default_args=DEFAULT_ARGS,
    description="Upstream daily pipeline that other DAGs depend on",
    start_date=START_DATE,
    schedule="@daily",
    catchup=False,
    tags=["example", "upstream"],
) as dag:
    extract = BashOperator(
        task_id="extract",
        bash_command='echo "Extracting data for {{ ds }}"',
    )

    @task
    def transform(**context: object) -> dict[str, object]:
        """Simulate a transform step and return a row count."""
        ds = context["ds"]
        rows = 42
        print(f"[{timestamp()}] Transformed {rows} rows for {ds}")
        return {"ds": ds, "rows": rows}

    publish = BashOperator(
        task_id="publish",
        bash_command='echo "Published {{ ti.xcom_pull(task_ids=\'transform\')[\'rows\'] }} rows for {{ ds }}"',
    )

    # Same logical date as the sensor run in DAG 3 (both run @daily)
    mark_downstream = ExternalTaskMarker(
        task_id="mark_downstream",
        external_dag_id="003_external_task_sensor",
        external_task_id="wait_for_publish",
        logical_date="{{ logical_date.isoformat() }}",
    )

    extract >> transform() >> publish >> mark_downstream
