from prefect import flow, task, get_run_logger

from recipe_ingest.pipeline import IngestionError, IngestionPipeline
from recipe_ingest.profiles import UnknownProfileError, get_profile, list_profiles
from recipe_ingest.progress import TaskRegistry
from recipe_ingest.results import RunResult

# one registry per process keeps concurrent runs off the same directory
_registry = TaskRegistry()


@task(retries=0)  # no Prefect retries: a run already isolates per-file failures
def t_ingest_profile(profile_name: str) -> RunResult:
    """
    Best-effort wrapper:
    - errors that stop a run before it starts become a failed result
    - anything else (e.g. the artifact write failing) fails the task
    """
    logger = get_run_logger()

    try:
        pipeline = IngestionPipeline(get_profile(profile_name), registry=_registry)
        result = pipeline.process()
    except (IngestionError, UnknownProfileError, FileNotFoundError, NotADirectoryError) as e:
        logger.error(f"Ingestion of '{profile_name}' could not start: {e}")
        return RunResult(
            status="failed",
            profile=profile_name,
            message=f"{type(e).__name__}: {e}",
        )

    if result.status == "already_running":
        logger.warning(f"'{profile_name}' is already being processed by task {result.task_id}")
    else:
        logger.info(
            f"'{profile_name}' done: {result.processed_files}/{result.total_files} files, "
            f"{result.error_count} errors -> {result.output_file}"
        )
    return result


@flow(name="recipe-ingest", retries=0)
def ingest_profile_flow(profile_name: str) -> RunResult:
    logger = get_run_logger()
    logger.info(f"Starting ingestion flow for profile '{profile_name}'.")
    return t_ingest_profile(profile_name)


@flow(name="recipe-ingest-batch")
def ingest_batch_flow(profile_names: list[str] | None = None) -> list[RunResult]:
    logger = get_run_logger()
    names = profile_names or list_profiles()
    logger.info(f"Starting batch ingestion flow. profiles={names}")

    futures = t_ingest_profile.map(names)
    # Resolve to actual values (not State objects)
    results: list[RunResult] = [f.result(raise_on_failure=False) for f in futures]

    ok = sum(1 for r in results if isinstance(r, RunResult) and r.status == "ok")
    logger.info(f"Batch complete. ok={ok} other={len(results) - ok}")
    return results


if __name__ == "__main__":
    print(ingest_profile_flow("tips"))
