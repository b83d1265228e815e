"""
Snapshot Export

Writes every table of a snapshot as Parquet into its own run directory, then
repoints the ``CURRENT`` marker with an atomic rename. Readers that resolve
``CURRENT`` never see a half-written run.
"""

import os
from pathlib import Path
from typing import Dict, Optional

import polars as pl
import structlog

from src.config import get_settings
from .snapshot import MetricsSnapshot

logger = structlog.get_logger(__name__)
settings = get_settings()

CURRENT_MARKER = "CURRENT"


class SnapshotExporter:
    """
    Publishes snapshots to the curated zone.

    Layout:
        <output_path>/snapshot_<timestamp>_<run_id>/<table>.parquet
        <output_path>/CURRENT   (name of the live run directory)
    """

    def __init__(self, output_path: Optional[str] = None):
        self.output_path = Path(output_path or settings.data_lake.curated_path)
        self.output_path.mkdir(parents=True, exist_ok=True)

    @property
    def marker_path(self) -> Path:
        return self.output_path / CURRENT_MARKER

    def _point_current(self, run_dir: Path) -> None:
        """Atomically replace the CURRENT marker"""
        tmp_marker = self.output_path / f".{CURRENT_MARKER}.{run_dir.name}.tmp"
        tmp_marker.write_text(run_dir.name, encoding="utf-8")
        os.replace(tmp_marker, self.marker_path)

    def write(self, snapshot: MetricsSnapshot) -> Path:
        """
        Write all snapshot tables and make them current.

        Returns:
            Path of the run directory
        """
        timestamp = snapshot.computed_at.strftime("%Y%m%d_%H%M%S")
        run_dir = self.output_path / f"snapshot_{timestamp}_{snapshot.run_id}"
        run_dir.mkdir(parents=True, exist_ok=False)

        for name, frame in snapshot.tables().items():
            frame.write_parquet(run_dir / f"{name}.parquet")
            logger.debug("Table written", table=name, rows=frame.height)

        self._point_current(run_dir)

        logger.info(
            "Snapshot exported",
            run_id=snapshot.run_id,
            path=str(run_dir),
            tables=len(snapshot.tables()),
        )
        return run_dir

    def current_dir(self) -> Optional[Path]:
        """Directory of the live snapshot, or None if nothing was published"""
        if not self.marker_path.exists():
            return None
        return self.output_path / self.marker_path.read_text(encoding="utf-8").strip()

    def read_current(self) -> Dict[str, pl.DataFrame]:
        """
        Load every table of the live snapshot.

        Raises:
            FileNotFoundError: if no snapshot has been published
        """
        run_dir = self.current_dir()
        if run_dir is None:
            raise FileNotFoundError(f"No published snapshot under {self.output_path}")

        return {
            path.stem: pl.read_parquet(path)
            for path in sorted(run_dir.glob("*.parquet"))
        }

