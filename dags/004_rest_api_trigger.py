r"""DAG 4: Triggering a DAG through the REST API.

Technique 3 -- the upstream DAG calls the Airflow REST API directly::

    POST /api/v1/dags/<dag-id>/dagRuns
    {"conf": {...}, "logical_date": "..."}

``HttpOperator`` sends the request over the ``airflow_v1_api`` HTTP
connection. The connection carries the webserver host and the
credentials; the login/password become basic auth, and any keys in the
connection extras are sent as request headers.

The ``/api/v1`` endpoint is served by Airflow 2 webservers only, so this
connection points at an Airflow 2 deployment. Airflow 3 serves
``/api/v2`` behind a short-lived JWT, which a plain ``HttpOperator``
cannot obtain; to trigger DAGs on an Airflow 3 deployment (including
this one) use DAG 5, whose hook logs in with ``auth_type: "jwt"``.

    airflow connections add airflow_v1_api \
        --conn-type http --conn-host airflow2.example.com --conn-port 8080 \
        --conn-login admin --conn-password admin \
        --conn-extra '{"Content-Type": "application/json"}'

Trade-off: works across Airflow deployments and from non-Airflow
systems, but needs credentials and network access to the webserver,
and the caller gets no built-in wait for completion (see DAG 5).
"""

import json

from airflow.providers.http.operators.http import HttpOperator
from airflow.sdk import DAG, task

from dag_dependencies.api import build_dag_run_payload, dag_runs_endpoint
from dag_dependencies.config import AIRFLOW_V1_API_CONN_ID, DEFAULT_ARGS, START_DATE, print_context, timestamp

TARGET_DAG_ID = "004_rest_api_target"


def created_run(response: object) -> bool:
    """Response check: the API answers 200 with the new dag_run_id."""
    body = response.json()  # type: ignore[attr-defined]
    print(f"[{timestamp()}] API created run {body.get('dag_run_id')} (state={body.get('state')})")
    return "dag_run_id" in body


with DAG(
    dag_id="004_rest_api_trigger",
    default_args=DEFAULT_ARGS,
    description="Upstream DAG that triggers its downstream DAG via POST /api/v1/dags/<id>/dagRuns",
    start_date=START_DATE,
    schedule="@daily",
    catchup=False,
    tags=["example", "api"],
) as upstream:

    @task
    def prepare() -> None:
        """Show the request that the next task sends."""
        print(f"[{timestamp()}] POST {dag_runs_endpoint(TARGET_DAG_ID, 'v1')}")

    # The body is rendered per run, so the target receives this run's id
    trigger_via_api = HttpOperator(
        task_id="trigger_via_api",
        http_conn_id=AIRFLOW_V1_API_CONN_ID,
        method="POST",
        endpoint=dag_runs_endpoint(TARGET_DAG_ID, "v1"),
        data=json.dumps(
            build_dag_run_payload(
                version="v1",
                conf={"upstream_dag_id": "{{ dag.dag_id }}", "upstream_run_id": "{{ run_id }}"},
                dag_run_id="api__{{ run_id }}",
            )
        ),
        headers={"Content-Type": "application/json"},
        response_check=created_run,
        log_response=True,
    )

    prepare() >> trigger_via_api

with DAG(
    dag_id=TARGET_DAG_ID,
    default_args=DEFAULT_ARGS,
    description="Downstream DAG started through the REST API by 004_rest_api_trigger",
    start_date=START_DATE,
    schedule=None,
    catchup=False,
    tags=["example", "api"],
) as target:

    @task
    def handle_request(**context: object) -> None:
        """Print what the API call handed over."""
        print(f"[{timestamp()}] Started through the REST API:")
        print_context(context)  # type: ignore[arg-type]

    handle_request()
