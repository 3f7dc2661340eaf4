import logging
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

MARKDOWN_EXTENSIONS = (".md",)


def find_markdown_files(root: Path | str, extensions: Iterable[str] = MARKDOWN_EXTENSIONS) -> list[Path]:
    """
    Depth-first walk of ``root`` collecting files with a matching extension.
    - Missing root raises FileNotFoundError; a file raises NotADirectoryError
    - Entries are visited in name order so runs are reproducible
    - Symlinked directories are skipped (no cycle detection needed); symlinked files are kept
    """
    root = Path(root).resolve()
    if not root.exists():
        raise FileNotFoundError(f"Directory not found: {root}")
    if not root.is_dir():
        raise NotADirectoryError(f"Not a directory: {root}")

    wanted = {ext.lower() for ext in extensions}
    return _walk(root, wanted)


def _walk(directory: Path, wanted: set[str]) -> list[Path]:
    files: list[Path] = []
    for entry in sorted(directory.iterdir(), key=lambda p: p.name):
        if entry.is_dir():
            if entry.is_symlink():
                logger.debug("Skipping symlinked directory: %s", entry)
                continue
            files.extend(_walk(entry, wanted))
        elif entry.suffix.lower() in wanted:
            files.append(entry)
    return files
