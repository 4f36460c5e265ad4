"""Helpers shared by the annotation formatters."""

from pathlib import Path


class AnnotationFormatError(ValueError):
    """Raised when a result file cannot be read as the expected format."""


def repo_relative_path(filepath: str, local_repo_base: Path) -> str:
    """Return a path relative to the repository root, as GitHub expects it.

    Relative paths are assumed to already be relative to the repository root and are
    returned unchanged.

    :param filepath: path as found in the result file
    :param local_repo_base: local repository base path
    :raises AnnotationFormatError: if an absolute path lies outside the repository
    """
    path = Path(filepath)
    if not path.is_absolute():
        return filepath
    try:
        return path.relative_to(local_repo_base.resolve()).as_posix()
    except ValueError as exc:
        msg = f"{filepath} is not located in the repository at {local_repo_base}."
        raise AnnotationFormatError(msg) from exc
