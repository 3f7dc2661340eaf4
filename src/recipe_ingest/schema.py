from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def timestamp(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.strftime(TIMESTAMP_FORMAT)


class CamelModel(BaseModel):
    """Base for models that travel as camelCase JSON (artifacts, HTTP)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def dump(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class TaskError(CamelModel):
    file: str
    error: str
    timestamp: str = Field(default_factory=timestamp)


class IngestionTask(CamelModel):
    task_id: str
    directory: str
    total_files: int = Field(..., ge=0)
    current_file: int = 0
    current_file_name: str = ""
    start_time: str = Field(default_factory=timestamp)
    errors: list[TaskError] = []
    is_processing: bool = True

    # files queued for this run, in processing order
    files: list[Path] = Field(default_factory=list, exclude=True)


class ProgressSnapshot(CamelModel):
    is_processing: bool = False
    current_file: int = 0
    total_files: int = 0
    current_file_name: str = ""
    progress: int = Field(0, ge=0, le=100)
    start_time: str | None = None
    errors: list[TaskError] = []
    task_id: str | None = None
    directory: str | None = None


class ExtractedRecord(BaseModel):
    """Structured result of analyzing one source file.

    ``fields`` holds whatever the model returned (after backfill); the
    bookkeeping attributes are merged in when the record is written out.
    """

    kind: Literal["parsed", "fallback"]
    fields: dict[str, Any]
    file_path: str
    processed_at: str = Field(default_factory=timestamp)
    error: str | None = None

    def to_item(self) -> dict[str, Any]:
        item = dict(self.fields)
        item["filePath"] = self.file_path
        item["processedAt"] = self.processed_at
        if self.error is not None:
            item["error"] = self.error
        return item


class ParsedRecord(ExtractedRecord):
    kind: Literal["parsed"] = "parsed"


class FallbackRecord(ExtractedRecord):
    kind: Literal["fallback"] = "fallback"
    error: str


class IngestionArtifact(CamelModel):
    processed_at: str = Field(default_factory=timestamp)
    directory: str
    total_files: int
    processed_files: int
    task_id: str
    items: list[dict[str, Any]] = []
    errors: list[TaskError] = []

    @classmethod
    def from_records(
        cls,
        *,
        task: IngestionTask,
        records: list[ExtractedRecord],
    ) -> "IngestionArtifact":
        return cls(
            directory=task.directory,
            total_files=task.total_files,
            processed_files=len(records),
            task_id=task.task_id,
            items=[r.to_item() for r in records],
            errors=list(task.errors),
        )
