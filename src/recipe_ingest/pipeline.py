import logging
import time
from pathlib import Path
from typing import Callable

from recipe_ingest.discover import find_markdown_files
from recipe_ingest.extract import analyze_file, failed_record, get_llm_client
from recipe_ingest.llm_client import LLMClient
from recipe_ingest.persist import cleanup_old_artifacts, persist_artifact
from recipe_ingest.profiles import CONTENT_PLACEHOLDER, IngestionProfile
from recipe_ingest.progress import TaskRegistry
from recipe_ingest.results import RunResult, StartResult
from recipe_ingest.schema import ExtractedRecord, IngestionArtifact
from recipe_ingest.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class IngestionError(RuntimeError):
    pass


class ProfileConfigError(IngestionError, ValueError):
    pass


class NoFilesFoundError(IngestionError):
    pass


class IngestionPipeline:
    """
    Runs one ingestion profile: walk, analyze each file, write one artifact.

    ``start`` does every check that can fail the whole run and registers the
    task; ``run`` then processes the files one by one. Splitting the two lets
    an HTTP caller get the task id back before the slow part begins.
    """

    def __init__(
        self,
        profile: IngestionProfile,
        *,
        registry: TaskRegistry,
        client: LLMClient | None = None,
        settings: Settings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.profile = profile
        self.registry = registry
        self.settings = settings or get_settings()
        self.client = client or get_llm_client(self.settings)
        self.sleep = sleep

    @property
    def directory(self) -> Path:
        return Path(self.profile.source_dir).resolve()

    @property
    def output_dir(self) -> Path:
        return Path(self.settings.output_dir)

    def start(self) -> StartResult:
        self._check_profile()
        directory = self.directory

        existing = self.registry.find_running(directory)
        if existing is not None:
            logger.info("Task %s is already processing %s", existing.task_id, directory)
            return self._start_result(existing.task_id, started=False)

        logger.info("Starting AI processing of %s", directory)
        files = find_markdown_files(directory)
        logger.info("Found %d markdown file(s) in %s", len(files), directory)
        if not files:
            raise NoFilesFoundError(f"No markdown files found in {directory}")

        task, created = self.registry.claim(directory, files)
        return self._start_result(task.task_id, started=created)

    def run(self, task_id: str) -> RunResult:
        task = self.registry.get(task_id)
        if task is None:
            raise IngestionError(f"No running task with id {task_id}")

        directory = Path(task.directory)
        records: list[ExtractedRecord] = []
        try:
            for index, file_path in enumerate(task.files, start=1):
                self.registry.advance(task_id, index, file_path.name)
                logger.info("Processing file %d/%d: %s", index, task.total_files, file_path.name)

                content = ""
                try:
                    content = file_path.read_text(encoding="utf-8")
                    records.append(
                        analyze_file(
                            file_path,
                            content,
                            base_dir=directory,
                            profile=self.profile,
                            client=self.client,
                            settings=self.settings,
                            failure_dir=self.output_dir,
                        )
                    )
                except Exception as e:
                    logger.exception("Failed to process %s", file_path)
                    message = str(e) or type(e).__name__
                    self.registry.record_error(task_id, file_path.name, message)
                    records.append(
                        failed_record(
                            file_path,
                            content,
                            base_dir=directory,
                            profile=self.profile,
                            error=message,
                        )
                    )

                if self.settings.pacing_delay_seconds > 0:
                    self.sleep(self.settings.pacing_delay_seconds)

            artifact = IngestionArtifact.from_records(task=task, records=records)
            out_path = persist_artifact(artifact, output_dir=self.output_dir)
            logger.info("AI processing finished; results saved to %s", out_path)

            cleanup_old_artifacts(self.output_dir, directory.name, self.profile.max_artifacts)

            return RunResult(
                status="ok",
                profile=self.profile.name,
                task_id=task_id,
                message="AI processing complete",
                output_file=str(out_path),
                total_files=task.total_files,
                processed_files=len(records),
                error_count=len(task.errors),
            )
        finally:
            self.registry.remove(task_id)

    def process(self) -> RunResult:
        started = self.start()
        if not started.started:
            return RunResult(
                status="already_running",
                profile=self.profile.name,
                task_id=started.task_id,
                message=started.message,
                total_files=started.progress.total_files,
            )
        return self.run(started.task_id)

    def _check_profile(self) -> None:
        if not self.profile.prompt or CONTENT_PLACEHOLDER not in self.profile.prompt:
            raise ProfileConfigError(f"Profile '{self.profile.name}' has no usable prompt")

    def _start_result(self, task_id: str, *, started: bool) -> StartResult:
        message = "AI processing started" if started else "AI processing already in progress"
        return StartResult(
            task_id=task_id,
            started=started,
            message=message,
            progress=self.registry.snapshot(task_id),
        )
