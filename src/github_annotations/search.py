"""Discovery of the result files to upload annotations from."""

import logging
import os
from pathlib import Path
from typing import NamedTuple

from pathspec import GitIgnoreSpec

logger = logging.getLogger(__name__)


class SearchResult(NamedTuple):
    """Result files found for a search path, and the directory they share."""

    files_to_upload: list[Path]
    root_directory: Path


def _split_patterns(search_path: str) -> tuple[list[str], list[str]]:
    includes: list[str] = []
    excludes: list[str] = []
    for raw_line in search_path.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("!"):
            excludes.append(line[1:])
        else:
            includes.append(line)
    return includes, excludes


def _relative_or_absolute(path: Path, working_dir: Path) -> str:
    try:
        return path.relative_to(working_dir).as_posix()
    except ValueError:
        return path.as_posix()


def find_results(search_path: str, working_dir: Path | None = None) -> SearchResult:
    """Find all result files matching a search path.

    The search path holds one pattern per line. Existing files are taken as is,
    existing directories contribute all files below them, anything else is treated
    as a gitignore-style glob relative to the working directory. Lines starting with
    ``!`` exclude matching files again.

    :param search_path: newline-separated paths and glob patterns
    :param working_dir: directory globs are resolved against, defaults to the cwd
    :return: the matched files in a stable order, and their common root directory
    """
    working_dir = (working_dir or Path.cwd()).resolve()
    includes, excludes = _split_patterns(search_path)

    found: set[Path] = set()
    globs: list[str] = []
    for pattern in includes:
        candidate = Path(pattern)
        if not candidate.is_absolute():
            candidate = working_dir / candidate
        if candidate.is_file():
            found.add(candidate.resolve())
        elif candidate.is_dir():
            found.update(p.resolve() for p in candidate.rglob("*") if p.is_file())
        else:
            globs.append(pattern)

    if globs:
        include_spec = GitIgnoreSpec.from_lines(globs)
        found.update(
            (working_dir / match).resolve()
            for match in include_spec.match_tree_files(working_dir)
        )

    if excludes:
        exclude_spec = GitIgnoreSpec.from_lines(excludes)
        found = {
            path
            for path in found
            if not exclude_spec.match_file(_relative_or_absolute(path, working_dir))
        }

    files_to_upload = sorted(found)
    if not files_to_upload:
        return SearchResult([], working_dir)

    root_directory = Path(os.path.commonpath([p.parent for p in files_to_upload]))
    logger.debug(
        "Found %d result file(s) below %s",
        len(files_to_upload),
        root_directory,
    )
    return SearchResult(files_to_upload, root_directory)
