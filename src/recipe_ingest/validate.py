import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

LIST_FIELDS = {"tags", "dishes", "recommendedFor", "suitableFor"}
LEVEL_FIELDS = {"starLevel"}
TITLE_FIELDS = {"title", "name"}
DESCRIPTION_FIELDS = {"summary", "description"}

DEFAULT_LEVEL = 1
UNCATEGORIZED = "未分类"
NO_DESCRIPTION = "暂无描述"
UNKNOWN = "未知"


def is_empty(value: Any) -> bool:
    return value is None or value == "" or (isinstance(value, list) and not value)


def find_missing_fields(fields: dict[str, Any], required: list[str]) -> list[str]:
    return [name for name in required if is_empty(fields.get(name))]


def default_for(field: str, file_path: Path | str) -> Any:
    if field in LIST_FIELDS:
        return []
    if field in LEVEL_FIELDS:
        return DEFAULT_LEVEL
    if field in TITLE_FIELDS:
        return Path(file_path).stem
    if field == "category":
        return UNCATEGORIZED
    if field in DESCRIPTION_FIELDS:
        return NO_DESCRIPTION
    return UNKNOWN


def backfill_required_fields(
    fields: dict[str, Any],
    required: list[str],
    file_path: Path | str,
) -> tuple[dict[str, Any], list[str]]:
    """
    Fill every missing or empty required field with a type-appropriate default.
    - Never raises; returns a new dict plus the names that were filled
    - List fields fall back to [], so an empty list from the model stays empty
    """
    missing = find_missing_fields(fields, required)
    if not missing:
        return dict(fields), []

    logger.warning(
        "Missing or empty required fields in %s: %s", file_path, ", ".join(missing)
    )
    filled = dict(fields)
    for name in missing:
        filled[name] = default_for(name, file_path)
    return filled, missing
