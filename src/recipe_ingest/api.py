from __future__ import annotations

import logging

from fastapi import BackgroundTasks, FastAPI, HTTPException, Request

from recipe_ingest.persist import load_latest_artifact
from recipe_ingest.pipeline import IngestionError, IngestionPipeline
from recipe_ingest.profiles import IngestionProfile, UnknownProfileError, get_profile
from recipe_ingest.progress import TaskRegistry
from recipe_ingest.settings import get_settings

logger = logging.getLogger(__name__)


app = FastAPI(
    title="Recipe Ingest",
    version="0.1.0",
    description="Start AI extraction over recipe markdown, poll its progress, read the results.",
)
app.state.registry = TaskRegistry()


def _registry(request: Request) -> TaskRegistry:
    return request.app.state.registry


def _profile(name: str) -> IngestionProfile:
    try:
        return get_profile(name)
    except UnknownProfileError as e:
        raise HTTPException(status_code=404, detail=f"Unknown profile: {name}") from e


def _run_in_background(pipeline: IngestionPipeline, task_id: str) -> None:
    try:
        pipeline.run(task_id)
    except Exception:
        logger.exception("AI processing task %s failed", task_id)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/api/{profile_name}/ai-process")
def start_processing(profile_name: str, request: Request, background_tasks: BackgroundTasks) -> dict:
    profile = _profile(profile_name)
    pipeline = IngestionPipeline(profile, registry=_registry(request))

    try:
        started = pipeline.start()
    except (FileNotFoundError, NotADirectoryError) as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except IngestionError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    if started.started:
        background_tasks.add_task(_run_in_background, pipeline, started.task_id)
    return started.dump()


@app.get("/api/ai-process/progress")
def all_progress(request: Request) -> dict:
    return {task_id: snap.dump() for task_id, snap in _registry(request).snapshots().items()}


@app.get("/api/{profile_name}/ai-process/progress")
def profile_progress(profile_name: str, request: Request) -> dict:
    profile = _profile(profile_name)
    return _registry(request).snapshot_for_directory(profile.source_dir.resolve()).dump()


@app.get("/api/{profile_name}/ai-processed")
def latest_processed(profile_name: str) -> dict:
    profile = _profile(profile_name)
    try:
        artifact = load_latest_artifact(get_settings().output_dir, profile.source_dir)
    except FileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return artifact.dump()
