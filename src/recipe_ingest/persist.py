import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path

from recipe_ingest.schema import IngestionArtifact

logger = logging.getLogger(__name__)

ARTIFACT_TIME_FORMAT = "%Y-%m-%d_%H-%M-%S"


def artifact_pattern(basename: str) -> re.Pattern:
    return re.compile(rf"^{re.escape(basename)}_\d{{4}}-\d{{2}}-\d{{2}}_\d{{2}}-\d{{2}}-\d{{2}}\.json$")


def artifact_path(output_dir: Path | str, directory: Path | str, now: datetime | None = None) -> Path:
    now = now or datetime.now(timezone.utc)
    return Path(output_dir) / f"{Path(directory).name}_{now.strftime(ARTIFACT_TIME_FORMAT)}.json"


def persist_artifact(
    artifact: IngestionArtifact,
    *,
    output_dir: Path | str,
    now: datetime | None = None,
) -> Path:
    """
    Write one run's artifact as JSON.
    - Named <directory basename>_<timestamp>.json; a second run in the same second overwrites
    - Uses atomic write via temp file + replace
    """
    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = artifact_path(out_dir, artifact.directory, now)

    data = json.dumps(artifact.dump(), indent=2, ensure_ascii=False)
    tmp_path = path.with_suffix(".json.tmp")
    tmp_path.write_text(data, encoding="utf-8")
    tmp_path.replace(path)  # atomic on same filesystem

    return path


def list_artifacts(output_dir: Path | str, basename: str) -> list[Path]:
    """Artifacts for ``basename``, most recently modified first."""
    out_dir = Path(output_dir)
    if not out_dir.is_dir():
        return []

    pattern = artifact_pattern(basename)
    matches = [p for p in out_dir.iterdir() if p.is_file() and pattern.match(p.name)]
    return sorted(matches, key=lambda p: (p.stat().st_mtime, p.name), reverse=True)


def cleanup_old_artifacts(output_dir: Path | str, basename: str, keep: int) -> list[Path]:
    """Delete all but the ``keep`` newest artifacts. Best effort: failures are only logged."""
    deleted: list[Path] = []
    try:
        stale = list_artifacts(output_dir, basename)[keep:]
    except OSError:
        logger.exception("Could not list artifacts for %s in %s", basename, output_dir)
        return deleted

    for path in stale:
        try:
            path.unlink()
        except OSError:
            logger.exception("Could not delete old artifact: %s", path)
            continue
        logger.info("Deleted old artifact: %s", path.name)
        deleted.append(path)

    if deleted:
        logger.info("Removed %d old artifact(s) for %s, kept the newest %d", len(deleted), basename, keep)
    return deleted


def latest_artifact(output_dir: Path | str, basename: str) -> Path | None:
    artifacts = list_artifacts(output_dir, basename)
    return artifacts[0] if artifacts else None


def load_latest_artifact(output_dir: Path | str, directory: Path | str) -> IngestionArtifact:
    basename = Path(directory).name
    path = latest_artifact(output_dir, basename)
    if path is None:
        raise FileNotFoundError(f"No processed artifact for '{basename}' in {output_dir}; run ingestion first")

    return IngestionArtifact.model_validate(json.loads(path.read_text(encoding="utf-8")))
