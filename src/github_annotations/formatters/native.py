"""Formatter reading annotations already in the shape of the GitHub Checks API."""

import json
from collections.abc import Iterator
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from github_annotations.formatters.utils import AnnotationFormatError, repo_relative_path
from github_annotations.models import CheckAnnotation

_annotation_list = TypeAdapter(list[CheckAnnotation])


def format_native_json_annotations(
    json_output_fp: Path,
    local_repo_base: Path,
) -> Iterator[CheckAnnotation]:
    """Yield the annotations of a json file holding a list of check annotations.

    The file contains either a plain json array of annotation objects, or an object
    carrying that array under the ``annotations`` key.

    :param json_output_fp: filepath to the json file
    :param local_repo_base: local repository base path, for deriving repo-relative paths
    :raises AnnotationFormatError: if the file is not valid json of this shape
    """
    with json_output_fp.open("r", encoding="utf-8") as json_file:
        try:
            json_content = json.load(json_file)
        except json.JSONDecodeError as exc:
            msg = f"{json_output_fp} is not valid json: {exc}"
            raise AnnotationFormatError(msg) from exc

    if isinstance(json_content, dict):
        json_content = json_content.get("annotations", [])

    try:
        annotations = _annotation_list.validate_python(json_content)
    except ValidationError as exc:
        msg = f"{json_output_fp} does not contain valid annotations:\n{exc}"
        raise AnnotationFormatError(msg) from exc

    for annotation in annotations:
        relative_path = repo_relative_path(annotation.path, local_repo_base)
        if relative_path == annotation.path:
            yield annotation
        else:
            yield annotation.model_copy(update={"path": relative_path})
