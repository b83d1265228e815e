"""
Input Loader

Reads the three typed input streams (users, subscriptions, workouts) from a
directory of CSV or Parquet files and pins them to the engine schema.
Cleaning and deduplication belong upstream; this only parses and casts.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Union

import polars as pl
import structlog

from src.config import get_settings
from src.metrics.pipeline import PipelineInputs

logger = structlog.get_logger(__name__)
settings = get_settings()


class FileFormat(str, Enum):
    """Supported file formats"""
    CSV = "csv"
    PARQUET = "parquet"


# Engine schema per stream; columns absent from a file are left out
SCHEMAS: Dict[str, Dict[str, pl.DataType]] = {
    "users": {
        "user_id": pl.Int64,
        "name": pl.Utf8,
        "email": pl.Utf8,
        "signup_date": pl.Date,
        "branch_id": pl.Int64,
        "gender": pl.Utf8,
        "age_group": pl.Utf8,
    },
    "subscriptions": {
        "subscription_id": pl.Int64,
        "user_id": pl.Int64,
        "plan": pl.Utf8,
        "start_date": pl.Date,
        "end_date": pl.Date,
        "price": pl.Float64,
    },
    "workouts": {
        "workout_id": pl.Int64,
        "user_id": pl.Int64,
        "workout_date": pl.Date,
        "workout_time": pl.Time,
        "workout_type": pl.Utf8,
    },
}

NULL_VALUES = ["", "NULL", "null", "None", "NA", "N/A"]


@dataclass
class LoadResult:
    """Result of loading one stream"""
    stream: str
    file_path: str
    rows_loaded: int
    started_at: datetime
    completed_at: datetime


def _cast_text(column: str, dtype: pl.DataType) -> pl.Expr:
    """Parse a text column into the engine type"""
    if dtype == pl.Date:
        return pl.col(column).str.strip_chars().str.to_date("%Y-%m-%d")
    if dtype == pl.Time:
        return pl.col(column).str.strip_chars().str.to_time("%H:%M:%S")
    if dtype == pl.Utf8:
        return pl.col(column).str.strip_chars()
    return pl.col(column).str.strip_chars().cast(dtype)


class InputLoader:
    """
    Loads the engine input streams.

    Example:
        loader = InputLoader("data/raw", FileFormat.CSV)
        inputs = loader.load_all()
    """

    def __init__(
        self,
        source_path: Optional[Union[str, Path]] = None,
        file_format: Optional[FileFormat] = None,
    ):
        self.source_path = Path(source_path or settings.data_lake.raw_path)
        self.file_format = FileFormat(file_format or settings.data_lake.input_format)
        self.results: Dict[str, LoadResult] = {}

    def _file_for(self, stream: str) -> Path:
        path = self.source_path / f"{stream}.{self.file_format.value}"
        if not path.exists():
            raise FileNotFoundError(f"Input file not found: {path}")
        return path

    def _read_csv(self, path: Path, stream: str) -> pl.DataFrame:
        """Read every column as text, then parse the known ones"""
        df = pl.read_csv(path, infer_schema_length=0, null_values=NULL_VALUES)
        schema = SCHEMAS[stream]
        return df.with_columns([
            _cast_text(column, dtype).alias(column)
            for column, dtype in schema.items()
            if column in df.columns
        ])

    def _read_parquet(self, path: Path, stream: str) -> pl.DataFrame:
        df = pl.read_parquet(path)
        schema = SCHEMAS[stream]
        return df.with_columns([
            pl.col(column).cast(dtype)
            for column, dtype in schema.items()
            if column in df.columns
        ])

    def load(self, stream: str) -> pl.DataFrame:
        """
        Load one stream.

        Args:
            stream: "users", "subscriptions" or "workouts"

        Raises:
            FileNotFoundError: if the stream file is missing
            ValueError: for an unknown stream
        """
        if stream not in SCHEMAS:
            raise ValueError(f"Unknown input stream: {stream}")

        started_at = datetime.utcnow()
        path = self._file_for(stream)

        if self.file_format == FileFormat.CSV:
            df = self._read_csv(path, stream)
        else:
            df = self._read_parquet(path, stream)

        self.results[stream] = LoadResult(
            stream=stream,
            file_path=str(path),
            rows_loaded=df.height,
            started_at=started_at,
            completed_at=datetime.utcnow(),
        )
        logger.info("Input stream loaded", stream=stream, file=str(path), rows=df.height)
        return df

    def load_all(self) -> PipelineInputs:
        """Load users, subscriptions and workouts"""
        return PipelineInputs(
            users=self.load("users"),
            subscriptions=self.load("subscriptions"),
            workouts=self.load("workouts"),
        )
