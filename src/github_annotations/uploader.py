"""Orchestration of a full upload, from result files to a completed check run."""

import logging
from collections.abc import Callable, Iterable
from itertools import chain
from pathlib import Path
from typing import NamedTuple

from github_annotations.checks import (
    MAX_ANNOTATIONS_PER_REQUEST,
    CheckRunLifecycle,
    batch_annotations,
    compute_filter,
    filter_annotations,
    get_conclusion,
)
from github_annotations.config import UploadSettings
from github_annotations.github_api import GitHubChecks
from github_annotations.models import CheckAnnotation, CheckRunConclusion
from github_annotations.search import SearchResult, find_results

logger = logging.getLogger(__name__)

AnnotationFormatter = Callable[[Path, Path], Iterable[CheckAnnotation]]


class UploadResult(NamedTuple):
    """What an upload reported to GitHub."""

    check_run_id: int
    conclusion: CheckRunConclusion
    annotation_count: int


def upload_annotations(
    settings: UploadSettings,
    gh_checks: GitHubChecks,
    head_sha: str,
    formatter: AnnotationFormatter,
    search: Callable[[str], SearchResult] = find_results,
) -> UploadResult | None:
    """Upload the annotations of all result files as a single check run.

    :param settings: validated inputs of this upload
    :param gh_checks: client for the repository the check run is reported on
    :param head_sha: the commit the check run is attached to
    :param formatter: reads the annotations of one result file
    :param search: finds the result files for the configured path
    :return: the reported check run, or None if no result files were found
    """
    changed_files = compute_filter(gh_checks, head_sha, settings.changed_since)
    if changed_files:
        logger.debug(
            "Got the filter of %d files, e.g. %s",
            len(changed_files),
            sorted(changed_files)[:3],
        )

    search_result = search(settings.path)
    if not search_result.files_to_upload:
        logger.warning(
            "No files were found for the provided path: %s. "
            "No results will be uploaded.",
            settings.path,
        )
        return None
    logger.info(
        "With the provided path, there will be %d results uploaded",
        len(search_result.files_to_upload),
    )
    logger.debug("Root artifact directory is %s", search_result.root_directory)

    all_annotations = list(
        chain.from_iterable(
            formatter(result_fp, settings.local_repo_path)
            for result_fp in search_result.files_to_upload
        ),
    )
    annotations = filter_annotations(all_annotations, changed_files)
    logger.debug(
        "Grouping %d filtered out of %d annotations into chunks of %d",
        len(annotations),
        len(all_annotations),
        MAX_ANNOTATIONS_PER_REQUEST,
    )
    batches = batch_annotations(annotations)
    logger.debug("Created %d buckets", len(batches))

    conclusion = get_conclusion(annotations, settings.conclusions)
    total = len(annotations)

    lifecycle = CheckRunLifecycle(gh_checks, head_sha, settings.name, settings.title)
    if settings.reuse_check_run:
        check_run_id = lifecycle.reuse(total)
    else:
        check_run_id = lifecycle.create(total)

    processed = 0
    for batch in batches:
        lifecycle.attach(batch, processed, total)
        processed += len(batch)

    lifecycle.complete(conclusion, total)
    return UploadResult(check_run_id, conclusion, total)
