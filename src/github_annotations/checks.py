"""Core logic for turning a set of annotations into a finished GitHub check run."""

import logging
from collections import Counter
from collections.abc import Iterable, Sequence

from pydantic import BaseModel, ConfigDict

from github_annotations.github_api import GitHubChecks
from github_annotations.models import (
    AnnotationLevel,
    CheckAnnotation,
    CheckRunConclusion,
    CheckRunOutput,
    CheckRunStatus,
)

logger = logging.getLogger(__name__)

# GitHub rejects check run updates carrying more annotations than this
MAX_ANNOTATIONS_PER_REQUEST = 50


class CheckRunStateError(RuntimeError):
    """Raised when a check run lifecycle step is invoked out of order."""


class ConclusionPolicy(BaseModel):
    """Conclusions to report, by the most severe annotation level present."""

    model_config = ConfigDict(frozen=True)

    error: CheckRunConclusion = CheckRunConclusion.FAILURE
    warning: CheckRunConclusion = CheckRunConclusion.NEUTRAL
    notice: CheckRunConclusion = CheckRunConclusion.SUCCESS


def compute_filter(
    gh_checks: GitHubChecks,
    head_sha: str,
    changed_since: str,
) -> set[str]:
    """Determine the files changed between a base reference and the head commit.

    An empty result means no filtering should take place, not that nothing changed.

    :param gh_checks: client used to ask GitHub for the comparison
    :param head_sha: the commit being checked
    :param changed_since: base reference, empty to disable filtering
    :return: the changed file paths, verbatim as GitHub reports them
    """
    if not changed_since:
        return set()
    return set(gh_checks.compare_commits(base=changed_since, head=head_sha))


def filter_annotations(
    annotations: Iterable[CheckAnnotation],
    changed_files: set[str],
) -> list[CheckAnnotation]:
    """Keep only annotations on changed files, or all of them if no filter is set."""
    if not changed_files:
        return list(annotations)
    return [annotation for annotation in annotations if annotation.path in changed_files]


def get_conclusion(
    annotations: Iterable[CheckAnnotation],
    policy: ConclusionPolicy,
) -> CheckRunConclusion:
    """Pick the conclusion configured for the most severe annotation level present.

    Failures take precedence over warnings, which take precedence over notices.
    """
    levels = Counter(annotation.annotation_level for annotation in annotations)
    if levels[AnnotationLevel.FAILURE]:
        return policy.error
    if levels[AnnotationLevel.WARNING]:
        return policy.warning
    if levels[AnnotationLevel.NOTICE]:
        return policy.notice
    return CheckRunConclusion.SUCCESS


def batch_annotations(
    annotations: Sequence[CheckAnnotation],
    max_size: int = MAX_ANNOTATIONS_PER_REQUEST,
) -> list[list[CheckAnnotation]]:
    """Split annotations into consecutive batches of at most ``max_size`` elements.

    Order is kept as is. Up to ``max_size`` annotations (none included) end up in
    one single batch.
    """
    if max_size < 1:
        msg = f"Batch size must be positive, got {max_size}."
        raise ValueError(msg)
    if len(annotations) <= max_size:
        return [list(annotations)]
    return [
        list(annotations[start : start + max_size])
        for start in range(0, len(annotations), max_size)
    ]


def _summary(total: int) -> str:
    return f"{total} violation(s) found"


class CheckRunLifecycle:
    """Handler to start, annotate & finish an individual GitHub check run.

    The steps must be called in order: ``create`` (or ``reuse``) once, ``attach`` once
    per batch, then ``complete`` once. Any API error propagates and leaves the check
    run as it was after the last successful step.
    """

    def __init__(
        self,
        gh_checks: GitHubChecks,
        head_sha: str,
        name: str,
        title: str,
    ) -> None:
        self.gh_checks = gh_checks
        self.head_sha = head_sha
        self.name = name
        self.title = title
        self.check_run_id: int | None = None
        self.status: CheckRunStatus | None = None

    def _require_in_progress(self, step: str) -> int:
        if self.check_run_id is None or self.status != CheckRunStatus.IN_PROGRESS:
            msg = (
                f"Cannot {step} check run '{self.name}', it is not in progress "
                f"(status: {self.status.value if self.status else 'absent'})."
            )
            raise CheckRunStateError(msg)
        return self.check_run_id

    def _output(
        self,
        total: int,
        annotations: list[CheckAnnotation] | None = None,
    ) -> CheckRunOutput:
        return CheckRunOutput(
            title=self.title,
            summary=_summary(total),
            annotations=annotations,
        )

    def create(self, total: int) -> int:
        """Create a new check run in progress and return its id."""
        if self.status is not None:
            msg = f"Check run '{self.name}' was already started."
            raise CheckRunStateError(msg)
        self.check_run_id = self.gh_checks.create_check_run(
            check_name=self.name,
            revision_sha=self.head_sha,
            output=self._output(total),
        )
        self.status = CheckRunStatus.IN_PROGRESS
        logger.info(
            "Created GitHub check %s@%s as %s",
            self.check_run_id,
            self.head_sha,
            self.name,
        )
        return self.check_run_id

    def reuse(self, total: int) -> int:
        """Reuse the latest check run of the same name on the head commit.

        Falls back to creating a new check run if none exists yet.
        """
        if self.status is not None:
            msg = f"Check run '{self.name}' was already started."
            raise CheckRunStateError(msg)
        existing = self.gh_checks.find_check_runs(self.head_sha, self.name)
        if not existing:
            return self.create(total)
        self.check_run_id = existing[0]
        self.gh_checks.update_check_run(
            self.check_run_id,
            output=self._output(total),
            status=CheckRunStatus.IN_PROGRESS,
        )
        self.status = CheckRunStatus.IN_PROGRESS
        logger.info(
            "Reusing GitHub check %s@%s as %s",
            self.check_run_id,
            self.head_sha,
            self.name,
        )
        return self.check_run_id

    def attach(
        self,
        batch: list[CheckAnnotation],
        processed: int,
        total: int,
    ) -> None:
        """Append a batch of annotations to the check run's output."""
        check_run_id = self._require_in_progress("annotate")
        logger.info(
            "Uploading %d + %d / %d annotations to GitHub check %s@%s as %s",
            processed,
            len(batch),
            total,
            check_run_id,
            self.head_sha,
            self.name,
        )
        self.gh_checks.update_check_run(
            check_run_id,
            output=self._output(total, batch),
        )

    def complete(self, conclusion: CheckRunConclusion, total: int) -> None:
        """Finish the check run with the given conclusion."""
        check_run_id = self._require_in_progress("complete")
        logger.info(
            "Finishing GitHub check %s@%s as %s with conclusion %s",
            check_run_id,
            self.head_sha,
            self.name,
            conclusion.value,
        )
        self.gh_checks.update_check_run(
            check_run_id,
            output=self._output(total),
            status=CheckRunStatus.COMPLETED,
            conclusion=conclusion,
        )
        self.status = CheckRunStatus.COMPLETED
