"""DAG 2: TriggerDagRunOperator.

Technique 1 -- the upstream DAG *pushes*: its last task starts the
downstream DAG with ``TriggerDagRunOperator``.

- ``conf`` is templated and arrives in the target as ``dag_run.conf``.
- ``wait_for_completion=True`` keeps the upstream task running until
  the triggered run ends, so the upstream DAG fails if the downstream
  one does (``failed_states``).
- ``deferrable=True`` does that waiting in the triggerer instead of
  holding a worker slot.

Trade-off: the upstream DAG must know every DAG it triggers, and the
downstream DAG gets ``schedule=None`` -- it only runs when pushed.
"""

from airflow.providers.standard.operators.bash import BashOperator
from airflow.providers.standard.operators.trigger_dagrun import TriggerDagRunOperator
from airflow.sdk import DAG, task

from dag_dependencies.config import DEFAULT_ARGS, START_DATE, print_context, timestamp

TARGET_DAG_ID = "002_trigger_dagrun_target"

# --- Upstream: does its work, then triggers the target ---------------------

with DAG(
    dag_id="002_trigger_dagrun",
    default_args=DEFAULT_ARGS,
    description="Upstream DAG that triggers its downstream DAG with TriggerDagRunOperator",
    start_date=START_DATE,
    schedule="@daily",
    catchup=False,
    tags=["example", "trigger"],
) as upstream:

    @task
    def produce(**context: object) -> dict[str, object]:
        """Produce a batch and describe it for the downstream DAG."""
        batch = {"batch_id": f"batch_{context['ds_nodash']}", "rows": 128}
        print(f"[{timestamp()}] Produced {batch}")
        return batch

    trigger_target = TriggerDagRunOperator(
        task_id="trigger_target",
        trigger_dag_id=TARGET_DAG_ID,
        trigger_run_id="triggered__{{ run_id }}",
        conf={
            "upstream_run_id": "{{ run_id }}",
            "batch_id": "{{ ti.xcom_pull(task_ids='produce')['batch_id'] }}",
        },
        logical_date="{{ logical_date }}",
        reset_dag_run=True,
        wait_for_completion=True,
        poke_interval=10,
        allowed_states=["success"],
        failed_states=["failed"],
        deferrable=True,
    )

    done = BashOperator(
        task_id="done",
        bash_command='echo "Downstream DAG finished, upstream done"',
    )

    produce() >> trigger_target >> done

# --- Downstream: runs only when triggered -----------------------------------

with DAG(
    dag_id=TARGET_DAG_ID,
    default_args=DEFAULT_ARGS,
    description="Downstream DAG started by 002_trigger_dagrun",
    start_date=START_DATE,
    schedule=None,
    catchup=False,
    tags=["example", "trigger"],
) as target:

    @task
    def consume(**context: object) -> str:
        """Read the batch handed over in ``dag_run.conf``."""
        print(f"[{timestamp()}] Triggered run context:")
        print_context(context)  # type: ignore[arg-type]
        conf = context["dag_run"].conf or {}  # type: ignore[attr-defined]
        batch_id = conf.get("batch_id", "unknown")
        print(f"[{timestamp()}] Consuming {batch_id} from {conf.get('upstream_run_id')}")
        return str(batch_id)

    consume()
