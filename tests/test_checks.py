"""Tests for filtering, classifying, batching and the check run lifecycle."""

# ruff: noqa: S101, D103, PLR2004, INP001

from unittest.mock import MagicMock

import pytest
from requests import HTTPError

from github_annotations.checks import (
    CheckRunLifecycle,
    CheckRunStateError,
    ConclusionPolicy,
    batch_annotations,
    compute_filter,
    filter_annotations,
    get_conclusion,
)
from github_annotations.github_api import GitHubChecks
from github_annotations.models import (
    AnnotationLevel,
    CheckAnnotation,
    CheckRunConclusion,
    CheckRunStatus,
)


def make_annotation(
    path: str = "src/a.py",
    line: int = 1,
    level: AnnotationLevel = AnnotationLevel.WARNING,
) -> CheckAnnotation:
    return CheckAnnotation(
        path=path,
        start_line=line,
        end_line=line,
        annotation_level=level,
        message=f"Finding in {path}:{line}",
    )


@pytest.fixture
def gh_checks() -> MagicMock:
    client = MagicMock(spec=GitHubChecks)
    client.create_check_run.return_value = 1234
    return client


@pytest.fixture
def policy() -> ConclusionPolicy:
    return ConclusionPolicy(
        error=CheckRunConclusion.FAILURE,
        warning=CheckRunConclusion.NEUTRAL,
        notice=CheckRunConclusion.SUCCESS,
    )


@pytest.mark.parametrize("count", [0, 1, 49, 50])
def test_batch_annotations_single_batch(count: int) -> None:
    annotations = [make_annotation(line=i + 1) for i in range(count)]
    assert batch_annotations(annotations) == [annotations]


@pytest.mark.parametrize(
    ("count", "expected_sizes"),
    [(51, [50, 1]), (100, [50, 50]), (120, [50, 50, 20]), (151, [50, 50, 50, 1])],
)
def test_batch_annotations_splits_in_order(
    count: int,
    expected_sizes: list[int],
) -> None:
    annotations = [make_annotation(line=i + 1) for i in range(count)]
    batches = batch_annotations(annotations)
    assert [len(batch) for batch in batches] == expected_sizes
    assert [a for batch in batches for a in batch] == annotations


def test_batch_annotations_custom_size() -> None:
    annotations = [make_annotation(line=i + 1) for i in range(5)]
    assert batch_annotations(annotations, max_size=2) == [
        annotations[0:2],
        annotations[2:4],
        annotations[4:5],
    ]


def test_batch_annotations_rejects_non_positive_size() -> None:
    with pytest.raises(ValueError, match="positive"):
        batch_annotations([make_annotation()], max_size=0)


def test_get_conclusion_empty_is_success() -> None:
    all_neutral = ConclusionPolicy(
        error=CheckRunConclusion.NEUTRAL,
        warning=CheckRunConclusion.NEUTRAL,
        notice=CheckRunConclusion.NEUTRAL,
    )
    assert get_conclusion([], all_neutral) == CheckRunConclusion.SUCCESS


@pytest.mark.parametrize(
    ("levels", "expected"),
    [
        ([AnnotationLevel.FAILURE], CheckRunConclusion.FAILURE),
        (
            [AnnotationLevel.NOTICE, AnnotationLevel.WARNING, AnnotationLevel.FAILURE],
            CheckRunConclusion.FAILURE,
        ),
        ([AnnotationLevel.NOTICE, AnnotationLevel.WARNING], CheckRunConclusion.NEUTRAL),
        ([AnnotationLevel.NOTICE, AnnotationLevel.NOTICE], CheckRunConclusion.SUCCESS),
    ],
)
def test_get_conclusion_precedence(
    policy: ConclusionPolicy,
    levels: list[AnnotationLevel],
    expected: CheckRunConclusion,
) -> None:
    annotations = [make_annotation(level=level) for level in levels]
    assert get_conclusion(annotations, policy) == expected


def test_get_conclusion_uses_configured_values() -> None:
    lenient = ConclusionPolicy(
        error=CheckRunConclusion.NEUTRAL,
        warning=CheckRunConclusion.SUCCESS,
        notice=CheckRunConclusion.FAILURE,
    )
    notice_only = [make_annotation(level=AnnotationLevel.NOTICE)]
    with_warning = [*notice_only, make_annotation(level=AnnotationLevel.WARNING)]
    with_failure = [*with_warning, make_annotation(level=AnnotationLevel.FAILURE)]
    assert get_conclusion(notice_only, lenient) == CheckRunConclusion.FAILURE
    assert get_conclusion(with_warning, lenient) == CheckRunConclusion.SUCCESS
    assert get_conclusion(with_failure, lenient) == CheckRunConclusion.NEUTRAL


def test_conclusion_policy_rejects_unknown_values() -> None:
    with pytest.raises(ValueError, match="error"):
        ConclusionPolicy.model_validate({"error": "action_required"})


def test_compute_filter_without_base_is_empty(gh_checks: MagicMock) -> None:
    assert compute_filter(gh_checks, "abc123", "") == set()
    gh_checks.compare_commits.assert_not_called()


def test_compute_filter_returns_changed_files(gh_checks: MagicMock) -> None:
    gh_checks.compare_commits.return_value = ["src/a.ts", "docs/Readme.md"]
    assert compute_filter(gh_checks, "abc123", "main") == {
        "src/a.ts",
        "docs/Readme.md",
    }
    gh_checks.compare_commits.assert_called_once_with(base="main", head="abc123")


def test_compute_filter_propagates_errors(gh_checks: MagicMock) -> None:
    gh_checks.compare_commits.side_effect = HTTPError("404 Not Found")
    with pytest.raises(HTTPError):
        compute_filter(gh_checks, "abc123", "unknown-branch")


def test_filter_annotations_without_filter_keeps_all() -> None:
    annotations = [make_annotation("a.py"), make_annotation("b.py")]
    assert filter_annotations(annotations, set()) == annotations


def test_filter_annotations_keeps_order_of_changed_files() -> None:
    annotations = [
        make_annotation("b.py", 1),
        make_annotation("a.py", 2),
        make_annotation("c.py", 3),
        make_annotation("b.py", 4),
    ]
    result = filter_annotations(annotations, {"b.py", "c.py"})
    assert result == [annotations[0], annotations[2], annotations[3]]


def test_filter_annotations_does_not_normalize_paths() -> None:
    annotations = [make_annotation("./a.py"), make_annotation("a.py")]
    assert filter_annotations(annotations, {"a.py"}) == [annotations[1]]


def test_lifecycle_create(gh_checks: MagicMock) -> None:
    lifecycle = CheckRunLifecycle(gh_checks, "abc123", "Lint", "Lint results")
    assert lifecycle.create(7) == 1234
    assert lifecycle.status == CheckRunStatus.IN_PROGRESS

    kwargs = gh_checks.create_check_run.call_args.kwargs
    assert kwargs["check_name"] == "Lint"
    assert kwargs["revision_sha"] == "abc123"
    assert kwargs["output"].title == "Lint results"
    assert kwargs["output"].summary == "7 violation(s) found"
    assert kwargs["output"].annotations is None


def test_lifecycle_attach_and_complete(gh_checks: MagicMock) -> None:
    lifecycle = CheckRunLifecycle(gh_checks, "abc123", "Lint", "Lint results")
    batch = [make_annotation(line=1), make_annotation(line=2)]
    lifecycle.create(2)
    lifecycle.attach(batch, 0, 2)
    lifecycle.complete(CheckRunConclusion.NEUTRAL, 2)

    attach_call, complete_call = gh_checks.update_check_run.call_args_list
    assert attach_call.args == (1234,)
    assert attach_call.kwargs["output"].annotations == batch
    assert attach_call.kwargs["output"].summary == "2 violation(s) found"
    assert "status" not in attach_call.kwargs

    assert complete_call.args == (1234,)
    assert complete_call.kwargs["status"] == CheckRunStatus.COMPLETED
    assert complete_call.kwargs["conclusion"] == CheckRunConclusion.NEUTRAL
    assert complete_call.kwargs["output"].annotations is None
    assert lifecycle.status == CheckRunStatus.COMPLETED


def test_lifecycle_rejects_steps_out_of_order(gh_checks: MagicMock) -> None:
    lifecycle = CheckRunLifecycle(gh_checks, "abc123", "Lint", "Lint results")
    with pytest.raises(CheckRunStateError):
        lifecycle.attach([make_annotation()], 0, 1)
    with pytest.raises(CheckRunStateError):
        lifecycle.complete(CheckRunConclusion.SUCCESS, 1)

    lifecycle.create(1)
    with pytest.raises(CheckRunStateError):
        lifecycle.create(1)

    lifecycle.complete(CheckRunConclusion.SUCCESS, 1)
    with pytest.raises(CheckRunStateError):
        lifecycle.attach([make_annotation()], 0, 1)
    with pytest.raises(CheckRunStateError):
        lifecycle.complete(CheckRunConclusion.SUCCESS, 1)
    gh_checks.create_check_run.assert_called_once()
    gh_checks.update_check_run.assert_called_once()


def test_lifecycle_create_failure_leaves_run_absent(gh_checks: MagicMock) -> None:
    gh_checks.create_check_run.side_effect = HTTPError("401 Unauthorized")
    lifecycle = CheckRunLifecycle(gh_checks, "abc123", "Lint", "Lint results")
    with pytest.raises(HTTPError):
        lifecycle.create(1)
    assert lifecycle.check_run_id is None
    assert lifecycle.status is None


def test_lifecycle_reuse_existing_run(gh_checks: MagicMock) -> None:
    gh_checks.find_check_runs.return_value = [99, 42]
    lifecycle = CheckRunLifecycle(gh_checks, "abc123", "Lint", "Lint results")
    assert lifecycle.reuse(3) == 99

    gh_checks.find_check_runs.assert_called_once_with("abc123", "Lint")
    gh_checks.create_check_run.assert_not_called()
    update = gh_checks.update_check_run.call_args
    assert update.args == (99,)
    assert update.kwargs["status"] == CheckRunStatus.IN_PROGRESS
    assert update.kwargs["output"].summary == "3 violation(s) found"
    assert lifecycle.status == CheckRunStatus.IN_PROGRESS


def test_lifecycle_reuse_creates_when_none_exists(gh_checks: MagicMock) -> None:
    gh_checks.find_check_runs.return_value = []
    lifecycle = CheckRunLifecycle(gh_checks, "abc123", "Lint", "Lint results")
    assert lifecycle.reuse(3) == 1234
    gh_checks.create_check_run.assert_called_once()
    gh_checks.update_check_run.assert_not_called()
