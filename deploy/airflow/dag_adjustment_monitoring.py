"""Airflow DAG template for hourly adjustment monitoring."""

from __future__ import annotations

from datetime import datetime

from airflow import DAG
from airflow.operators.bash import BashOperator


default_args = {
    "owner": "learning-platform",
    "depends_on_past": False,
    "retries": 0,
}


# One tick in flight; missed hours are not replayed.
with DAG(
    dag_id="adjustment_monitoring",
    default_args=default_args,
    start_date=datetime(2026, 1, 1),
    schedule="0 * * * *",
    catchup=False,
    max_active_runs=1,
    tags=["learning", "canary", "hourly"],
) as dag:
    purge_expired = BashOperator(
        task_id="purge_expired_adjustments",
        bash_command=(
            "cd /workspace && "
            "python3 -c \"from self_adjustment_engine.bootstrap import build_sqlite_engine; "
            "print(build_sqlite_engine().purge_expired())\""
        ),
    )

    run_monitoring_tick = BashOperator(
        task_id="run_monitoring_tick",
        bash_command=(
            "cd /workspace && "
            "export PATH=$HOME/.local/bin:$PATH && "
            "python3 scripts/run_monitoring_loop.py --once"
        ),
    )

    purge_expired >> run_monitoring_tick
