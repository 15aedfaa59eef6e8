"""Shared configuration for the cross-DAG dependency examples.

Provides default DAG arguments, the shared start date, connection
defaults for the REST API technique, and context printing helpers
used across all example DAGs.
"""

from datetime import datetime, timedelta
from typing import Any

DEFAULT_ARGS: dict[str, Any] = {
    "owner": "dag_dependencies",
    "retries": 1,
    "retry_delay": timedelta(seconds=10),
}

# Sensor-based dependencies match runs by logical date, so every
# example DAG starts on the same day and shares a schedule.
START_DATE = datetime(2024, 1, 1)

AIRFLOW_API_CONN_ID = "airflow_api"
# Basic-auth connection to an Airflow 2 webserver, which still serves /api/v1
AIRFLOW_V1_API_CONN_ID = "airflow_v1_api"
DEFAULT_API_VERSION = "v1"


def timestamp() -> str:
    """Return current time as HH:MM:SS.fff string."""
    return datetime.now().strftime("%H:%M:%S.%f")[:12]


def print_context(context: dict[str, Any]) -> None:
    """Print key Airflow context variables, including the trigger conf.

    Args:
        context: The Airflow task instance context dict.
    """
    dag_run = context.get("dag_run")
    conf = getattr(dag_run, "conf", None) or {}
    print(f"  dag_id      = {context.get('dag_id', 'N/A')}")
    print(f"  task_id     = {context.get('task_id', 'N/A')}")
    print(f"  logical_date= {context.get('logical_date', 'N/A')}")
    print(f"  run_id      = {context.get('run_id', 'N/A')}")
    print(f"  conf        = {conf}")
