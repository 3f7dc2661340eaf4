from typing import Literal, Optional

from recipe_ingest.schema import CamelModel, ProgressSnapshot


class StartResult(CamelModel):
    task_id: str
    started: bool
    message: str
    progress: ProgressSnapshot


class RunResult(CamelModel):
    status: Literal["ok", "failed", "already_running"]
    profile: Optional[str] = None
    task_id: Optional[str] = None
    message: str = ""

    # success fields
    output_file: Optional[str] = None
    total_files: int = 0
    processed_files: int = 0
    error_count: int = 0
