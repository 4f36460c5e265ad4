"""Formatter to process SARIF output and yield GitHub annotations."""

import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

from pydantic import ValidationError
from pysarif import ReportingDescriptor, Result, load_from_dict

from github_annotations.formatters.utils import (
    AnnotationFormatError,
    repo_relative_path,
)
from github_annotations.models import AnnotationLevel, CheckAnnotation

SARIF_LEVELS: dict[str, AnnotationLevel] = {
    "error": AnnotationLevel.FAILURE,
    "warning": AnnotationLevel.WARNING,
    "note": AnnotationLevel.NOTICE,
    "none": AnnotationLevel.NOTICE,
}


def get_rule_name(full_rule: ReportingDescriptor) -> str:
    """Extract the rule name from a SARIF ReportingDescriptor.

    :param full_rule: SARIF ReportingDescriptor for the rule
    :return: rule name as a string
    """
    if full_rule.name:
        return str(full_rule.name)
    if full_rule.help_uri:
        # if we have a URI for the rule, the final part is usually the rule name
        return str(full_rule.help_uri.rstrip("/").split("/")[-1])
    return "Unknown Rule"


def get_annotation_level(
    result_level: str | None,
    full_rule: ReportingDescriptor | None,
) -> AnnotationLevel:
    """Determine the annotation level of a result.

    pysarif fills in ``warning`` for results without a level, so the level has to be
    taken from the raw result. It falls back to the rule's default level, and then to
    SARIF's default of ``warning``.

    :param result_level: ``level`` of the raw SARIF result, if it has one
    :param full_rule: SARIF ReportingDescriptor for the rule, if the tool listed it
    :raises AnnotationFormatError: for levels SARIF does not define
    """
    level = result_level
    if level is None and full_rule and full_rule.default_configuration:
        level = full_rule.default_configuration.level
    level = level or "warning"
    if level not in SARIF_LEVELS:
        msg = f"Unknown SARIF level {level!r}"
        raise AnnotationFormatError(msg)
    return SARIF_LEVELS[level]


def get_annotation_texts_from_sarif_result(
    result: Result,
    full_rule: ReportingDescriptor | None,
) -> tuple[str, str, str | None]:
    """Extract title, message, and raw_details for a SARIF result annotation.

    :param result: SARIF result object
    :param full_rule: SARIF ReportingDescriptor for the rule, if the tool listed it
    :return: tuple of (title, message, raw_details)
    """
    rule_name = get_rule_name(full_rule) if full_rule else "Unknown Rule"
    # Note: github annotations do not have markdown support, only check run summaries do
    title: str = f"[{result.rule_id}]: {rule_name}" if result.rule_id else rule_name

    raw_details: str | None = None
    if full_rule and full_rule.full_description:
        description = (
            full_rule.full_description.text or full_rule.full_description.markdown
        )
        if description:
            raw_details = (
                "Background for this rule per tool's documentation:\n> "
                + "\n> ".join(description.split("\n"))
            )

    message: str = result.message.text or result.message.markdown or ""
    if full_rule and full_rule.help_uri:
        message = f"{message}\n\n" if message else ""
        message += f"See {full_rule.help_uri} for more information."
    if not message:
        message = "No additional information provided."

    return title, message, raw_details


def _location_path(uri: str) -> str:
    parsed = urlparse(uri)
    if parsed.scheme == "file":
        return unquote(parsed.path)
    return uri


def _raw_results(json_content: dict[str, Any]) -> Iterator[list[dict[str, Any]]]:
    for raw_run in json_content["runs"]:
        yield raw_run.get("results") or []


def format_sarif_annotations(
    json_output_fp: Path,
    local_repo_base: Path,
) -> Iterator[CheckAnnotation]:
    """Generate annotations for any SARIF json output.

    Results without a usable file location cannot be shown inline and are skipped.

    :param json_output_fp: filepath to the full SARIF json output
    :param local_repo_base: local repository base path, for deriving repo-relative paths
    :raises AnnotationFormatError: if the file is not a valid SARIF log
    """
    with json_output_fp.open("r", encoding="utf-8") as json_file:
        try:
            json_content = json.load(json_file)
            sarif_log = load_from_dict(json_content)
        # pysarif surfaces schema violations as plain lookup and type errors
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            msg = f"{json_output_fp} is not a valid SARIF log: {exc}"
            raise AnnotationFormatError(msg) from exc

    for run, raw_results in zip(sarif_log.runs, _raw_results(json_content)):
        rules = {rule.id: rule for rule in run.tool.driver.rules or []}

        for result, raw_result in zip(run.results or [], raw_results):
            full_rule = rules.get(result.rule_id) if result.rule_id else None
            title, message, raw_details = get_annotation_texts_from_sarif_result(
                result,
                full_rule,
            )
            annotation_level = get_annotation_level(raw_result.get("level"), full_rule)

            for location in result.locations or []:
                physical = location.physical_location
                if not (
                    physical
                    and physical.artifact_location
                    and physical.artifact_location.uri
                    and physical.region
                    and physical.region.start_line
                ):
                    # error without any sensible location, skip it
                    continue
                region = physical.region
                end_line = region.end_line or region.start_line
                on_one_line: bool = region.start_line == end_line

                try:
                    annotation = CheckAnnotation(
                        annotation_level=annotation_level,
                        start_line=region.start_line,
                        start_column=region.start_column if on_one_line else None,
                        end_line=end_line,
                        end_column=region.end_column if on_one_line else None,
                        path=repo_relative_path(
                            _location_path(physical.artifact_location.uri),
                            local_repo_base,
                        ),
                        message=message,
                        raw_details=raw_details,
                        title=title,
                    )
                except ValidationError as exc:
                    msg = f"{json_output_fp} has an invalid result location: {exc}"
                    raise AnnotationFormatError(msg) from exc
                yield annotation
