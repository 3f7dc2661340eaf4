import logging
import threading
import time
from pathlib import Path

from recipe_ingest.schema import IngestionTask, ProgressSnapshot, TaskError

logger = logging.getLogger(__name__)


def make_task_id(directory: Path | str) -> str:
    return f"{Path(directory).name}_{time.time_ns() // 1_000_000}"


def percent(current: int, total: int) -> int:
    if total <= 0:
        return 0
    return int(current * 100 / total + 0.5)


class TaskRegistry:
    """
    In-memory registry of running ingestion tasks, keyed by task id.

    An entry exists only while its run is in flight; nothing survives a
    process restart. At most one running task may own a given directory.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, IngestionTask] = {}
        self._lock = threading.Lock()

    def claim(self, directory: Path | str, files: list[Path]) -> tuple[IngestionTask, bool]:
        """Register a run for ``directory``, or return the one already running there."""
        directory = str(directory)
        with self._lock:
            existing = self._find_running(directory)
            if existing is not None:
                return existing, False

            task = IngestionTask(
                task_id=make_task_id(directory),
                directory=directory,
                total_files=len(files),
                files=list(files),
            )
            self._tasks[task.task_id] = task
            logger.info("Registered task %s for %s (%d files)", task.task_id, directory, len(files))
            return task, True

    def get(self, task_id: str) -> IngestionTask | None:
        with self._lock:
            return self._tasks.get(task_id)

    def find_running(self, directory: Path | str) -> IngestionTask | None:
        with self._lock:
            return self._find_running(str(directory))

    def advance(self, task_id: str, index: int, file_name: str) -> None:
        with self._lock:
            task = self._tasks[task_id]
            task.current_file = index
            task.current_file_name = file_name

    def record_error(self, task_id: str, file_name: str, message: str) -> TaskError:
        error = TaskError(file=file_name, error=message)
        with self._lock:
            self._tasks[task_id].errors.append(error)
        return error

    def remove(self, task_id: str) -> None:
        with self._lock:
            self._tasks.pop(task_id, None)

    def snapshot(self, task_id: str | None) -> ProgressSnapshot:
        with self._lock:
            task = self._tasks.get(task_id) if task_id else None
            return _snapshot(task)

    def snapshot_for_directory(self, directory: Path | str) -> ProgressSnapshot:
        with self._lock:
            return _snapshot(self._find_running(str(directory)))

    def snapshots(self) -> dict[str, ProgressSnapshot]:
        with self._lock:
            return {task_id: _snapshot(task) for task_id, task in self._tasks.items()}

    def _find_running(self, directory: str) -> IngestionTask | None:
        for task in self._tasks.values():
            if task.directory == directory and task.is_processing:
                return task
        return None


def _snapshot(task: IngestionTask | None) -> ProgressSnapshot:
    if task is None:
        return ProgressSnapshot()
    return ProgressSnapshot(
        is_processing=task.is_processing,
        current_file=task.current_file,
        total_files=task.total_files,
        current_file_name=task.current_file_name,
        progress=percent(task.current_file, task.total_files),
        start_time=task.start_time,
        errors=list(task.errors),
        task_id=task.task_id,
        directory=task.directory,
    )
