"""
Prefect Workflow Orchestration - Metrics Refresh

Scheduled refresh of the retention, churn, engagement and LTV snapshot:
- Load typed input streams (retried; the source may still be landing)
- Compute the snapshot in one pass
- Publish atomically to the curated zone
"""

from datetime import date
from typing import Optional

from prefect import flow, task, get_run_logger

from src.config import get_settings
from src.ingestion.loader import FileFormat, InputLoader
from src.metrics.export import SnapshotExporter
from src.metrics.pipeline import MetricsPipeline, PipelineInputs

settings = get_settings()


# =============================================================================
# TASKS
# =============================================================================

@task(
    name="load_inputs",
    description="Load users, subscriptions and workouts",
    retries=3,
    retry_delay_seconds=60,
)
def load_inputs(source_dir: str, file_format: str = "csv") -> PipelineInputs:
    """Load the three input streams"""
    logger = get_run_logger()

    inputs = InputLoader(source_dir, FileFormat(file_format)).load_all()

    logger.info(
        f"Loaded {inputs.users.height} users, {inputs.subscriptions.height} subscriptions, "
        f"{inputs.workouts.height} workouts"
    )
    return inputs


@task(
    name="compute_snapshot",
    description="Run the metrics pipeline",
)
def compute_snapshot(inputs: PipelineInputs, snapshot_horizon: date) -> dict:
    """Compute a snapshot; validation or integrity failures abort the flow"""
    logger = get_run_logger()

    result = MetricsPipeline(snapshot_horizon=snapshot_horizon).run(inputs)

    logger.info(
        f"Run {result.run_id} computed in {result.duration_seconds:.2f}s: "
        f"{result.snapshot.summary()}"
    )
    return {"run_id": result.run_id, "snapshot": result.snapshot}


@task(
    name="publish_snapshot",
    description="Write the snapshot and repoint CURRENT",
)
def publish_snapshot(computed: dict, output_dir: str) -> str:
    """Publish the snapshot to the curated zone"""
    logger = get_run_logger()

    run_dir = SnapshotExporter(output_dir).write(computed["snapshot"])

    logger.info(f"Published run {computed['run_id']} to {run_dir}")
    return str(run_dir)


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="metrics_refresh",
    description="Monthly retention metrics refresh",
)
def metrics_refresh(
    source_dir: Optional[str] = None,
    output_dir: Optional[str] = None,
    file_format: Optional[str] = None,
    snapshot_horizon: Optional[date] = None,
) -> dict:
    """
    Metrics refresh flow.

    Steps:
    1. Load input streams
    2. Compute the snapshot
    3. Publish it; on failure the previous snapshot stays current
    """
    logger = get_run_logger()

    source_dir = source_dir or settings.data_lake.raw_path
    output_dir = output_dir or settings.data_lake.curated_path
    file_format = file_format or settings.data_lake.input_format
    snapshot_horizon = snapshot_horizon or settings.metrics.snapshot_horizon

    logger.info(f"Starting metrics refresh as of {snapshot_horizon}")

    inputs = load_inputs(source_dir, file_format)
    computed = compute_snapshot(inputs, snapshot_horizon)
    run_dir = publish_snapshot(computed, output_dir)

    return {
        "run_id": computed["run_id"],
        "snapshot_horizon": snapshot_horizon.isoformat(),
        "path": run_dir,
        "status": "success",
    }


if __name__ == "__main__":
    metrics_refresh()
