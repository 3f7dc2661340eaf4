import json
import hashlib
from datetime import datetime, timezone
from pathlib import Path

FAIL_SUBDIR = "fail"
RAW_PREVIEW_CHARS = 200


def _sha256_hex(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def persist_failure(
    *,
    output_dir: Path | str,
    file_path: str,
    provider: str,
    model: str,
    error_type: str,
    error_message: str,
    raw_output: str | None = None,
    keep_raw: bool = False,
) -> Path:
    """
    Writes a structured failure artifact for a reply that could not be repaired.
    - Key derives from the source file path, so reruns of one file group together
    - The raw reply is only kept (truncated) when keep_raw is set
    """
    fail_dir = Path(output_dir) / FAIL_SUBDIR
    fail_dir.mkdir(parents=True, exist_ok=True)

    key = _sha256_hex(file_path)[:16]
    ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    path = fail_dir / f"ingest_failure_{key}_{ts}.json"
    raw = raw_output or ""

    payload = {
        "key": key,
        "timestamp_utc": ts,
        "file_path": file_path,
        "provider": provider,
        "model": model,
        "error_type": error_type,
        "error_message": error_message,
        "raw_output_sha256": _sha256_hex(raw) if raw else None,
        "raw_output_preview": raw[:RAW_PREVIEW_CHARS] if keep_raw else "",
    }

    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    return path
