"""DAG 6: Controller DAG.

A controller (or "master") DAG owns the order of several otherwise
independent DAGs: each ``TriggerDagRunOperator`` waits for its run to
finish before the next DAG starts. The controlled DAGs keep
``schedule=None``, so the controller is the single place where the
cross-DAG order is defined.

Trade-off: one more DAG to maintain, and the controller's run stays
open for as long as the slowest chain takes.
"""

from airflow.providers.standard.operators.empty import EmptyOperator
from airflow.providers.standard.operators.trigger_dagrun import TriggerDagRunOperator
from airflow.sdk import DAG, chain

from dag_dependencies.config import DEFAULT_ARGS, START_DATE

# Run in this order; each waits for the previous one to succeed
CONTROLLED_DAG_IDS = [
    "002_trigger_dagrun_target",
    "004_rest_api_target",
    "005_api_target",
]

with DAG(
    dag_id="006_controller_dag",
    default_args=DEFAULT_ARGS,
    description="Controller DAG that runs other DAGs in sequence",
    start_date=START_DATE,
    schedule="@weekly",
    catchup=False,
    tags=["example", "trigger", "controller"],
) as dag:
    start = EmptyOperator(task_id="start")
    end = EmptyOperator(task_id="end")

    triggers = [
        TriggerDagRunOperator(
            task_id=f"run_{dag_id}",
            trigger_dag_id=dag_id,
            trigger_run_id=f"controller__{dag_id}__{{{{ ds_nodash }}}}",
            conf={"controller_run_id": "{{ run_id }}"},
            wait_for_completion=True,
            poke_interval=15,
            failed_states=["failed"],
            reset_dag_run=True,
        )
        for dag_id in CONTROLLED_DAG_IDS
    ]

    chain(start, *triggers, end)
