"""
Source file operations inside the workspace root.
"""

import logging
from pathlib import Path
from typing import Iterator

from typehole.config import log_event, SUPPORTED_EXTENSIONS, IGNORED_DIRECTORIES


def resolve_source_path(root: Path, file_name: str) -> Path:
    """Absolute path of a workspace-relative file. Refuses paths outside the root."""
    root = root.resolve()
    path = (root / file_name).resolve()
    if path != root and root not in path.parents:
        raise ValueError(f"{file_name} is outside the workspace")
    return path


def relative_file_name(root: Path, path: Path) -> str:
    """Workspace-relative POSIX name used as the registry key."""
    return Path(path).resolve().relative_to(root.resolve()).as_posix()


def is_source_file(path: Path) -> bool:
    path = Path(path)
    return path.suffix in SUPPORTED_EXTENSIONS and not any(part in IGNORED_DIRECTORIES for part in path.parts)


def iter_source_files(root: Path) -> Iterator[Path]:
    """Every supported file under the root, in a stable order."""
    for path in sorted(Path(root).rglob("*")):
        if path.is_file() and is_source_file(path.relative_to(root)):
            yield path


def read_source_file(root: Path, file_name: str) -> str:
    path = resolve_source_path(root, file_name)
    content = path.read_text(encoding="utf-8")
    log_event(logging.DEBUG, "source_file_read", file=file_name, bytes=len(content))
    return content


def write_source_file(root: Path, file_name: str, content: str) -> bool:
    """Write content to a source file. Returns True on success."""
    try:
        path = resolve_source_path(root, file_name)
        path.write_text(content, encoding="utf-8")
        log_event(logging.INFO, "source_file_written", file=file_name, bytes=len(content))
        return True
    except (OSError, ValueError) as e:
        log_event(logging.ERROR, "source_file_write_failed", file=file_name, error=str(e))
        return False
