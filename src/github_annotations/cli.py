"""Command line entry point, configured through flags or GitHub Actions inputs."""

import logging
import os
import sys
from argparse import Namespace
from collections.abc import Callable, Iterable, Sequence
from pathlib import Path

from configargparse import ArgumentParser
from pydantic import ValidationError
from requests import RequestException

from github_annotations.checks import CheckRunStateError, ConclusionPolicy
from github_annotations.config import ConfigurationError, GitHubContext, UploadSettings
from github_annotations.formatters.native import format_native_json_annotations
from github_annotations.formatters.sarif import format_sarif_annotations
from github_annotations.formatters.utils import AnnotationFormatError
from github_annotations.github_api import AppInstallation, GitHubChecks
from github_annotations.log import configure_logging
from github_annotations.models import CheckAnnotation
from github_annotations.uploader import UploadResult, upload_annotations

log_to_annotation_formatters: dict[
    str,
    Callable[[Path, Path], Iterable[CheckAnnotation]],
] = {
    "json": format_native_json_annotations,
    "sarif": format_sarif_annotations,
}

DEFAULT_CHECK_NAME = "Annotations"


def build_parser() -> ArgumentParser:
    """Create the argument parser, reading GitHub Actions inputs as fallback."""
    argparser = ArgumentParser(
        prog="github-annotations",
        description="Upload annotations from result files to a GitHub check run. "
        "Every option can also be given through the environment variable GitHub "
        "Actions sets for the action input of the same name.",
    )
    argparser.add_argument(
        "--path",
        type=str,
        env_var="INPUT_PATH",
        required=True,
        help="Result files to upload, one path or glob pattern per line. Patterns "
        "starting with ! exclude files again.",
    )
    argparser.add_argument(
        "--format",
        dest="result_format",
        type=str,
        default="json",
        env_var="INPUT_FORMAT",
        help="Format of the result files, json or sarif.",
    )
    argparser.add_argument(
        "--name",
        type=str,
        default=DEFAULT_CHECK_NAME,
        env_var="INPUT_NAME",
        help="Name of the check run. Will be shown on any respective GitHub PRs.",
    )
    argparser.add_argument(
        "--title",
        type=str,
        default="",
        env_var="INPUT_TITLE",
        help="Title of the check run output, defaults to the check run name.",
    )
    argparser.add_argument(
        "--commit",
        type=str,
        default="",
        env_var="INPUT_COMMIT",
        help="Commit to report on. Defaults to the head of the triggering pull "
        "request, or else the commit the workflow runs on.",
    )
    argparser.add_argument(
        "--changed-since",
        type=str,
        default="",
        env_var="INPUT_CHANGED-SINCE",
        help="Only upload annotations for files changed since this reference. "
        "Leave empty to upload all annotations.",
    )
    for severity, default in (
        ("error", "failure"),
        ("warning", "neutral"),
        ("notice", "success"),
    ):
        argparser.add_argument(
            f"--{severity}-conclusion",
            type=str,
            default=default,
            env_var=f"INPUT_{severity.upper()}-CONCLUSION",
            help=f"Conclusion if {severity}-level annotations are the most severe "
            "ones found. One of success, failure, neutral.",
        )
    argparser.add_argument(
        "--local-repo-path",
        type=Path,
        default=Path(),
        env_var="GITHUB_WORKSPACE",
        help="Path to the local copy of the repository, for deduction of relative paths"
        " by the formatter, for any absolute paths contained in the result files.",
    )
    argparser.add_argument(
        "--reuse-check-run",
        type=str,
        nargs="?",
        const="true",
        default="",
        env_var="INPUT_REUSE-CHECK-RUN",
        help="Update the latest check run of the same name on the commit instead of "
        "creating a new one. Given alone or as true, yes or 1 it is enabled.",
    )
    argparser.add_argument(
        "--token",
        type=str,
        default="",
        env_var="INPUT_TOKEN",
        help="GitHub token authorized to create check runs, defaults to GITHUB_TOKEN.",
    )
    argparser.add_argument(
        "--app-id",
        type=str,
        env_var="GH_APP_ID",
        help="ID of a GitHub App authorized to orchestrate check runs, as an "
        "alternative to --token.",
    )
    argparser.add_argument(
        "--pem-path",
        type=Path,
        env_var="GH_PRIVATE_KEY_PEM",
        help="Private key to authenticate as the GitHub App specified in --app-id.",
    )
    argparser.add_argument(
        "--app-install-id",
        type=str,
        env_var="GH_APP_INSTALL_ID",
        help="ID of the repository's GitHub App installation used by the check.",
    )
    argparser.add_argument(
        "--debug",
        action="store_true",
        env_var="RUNNER_DEBUG",
        help="Log debug output.",
    )
    return argparser


def settings_from_args(args: Namespace) -> UploadSettings:
    """Validate the parsed arguments, empty values falling back to defaults.

    :raises ValidationError: if any value, e.g. a conclusion, is invalid
    """
    name = args.name or DEFAULT_CHECK_NAME
    conclusions = {
        severity: value
        for severity, value in (
            ("error", args.error_conclusion),
            ("warning", args.warning_conclusion),
            ("notice", args.notice_conclusion),
        )
        if value
    }
    return UploadSettings(
        path=args.path,
        name=name,
        title=args.title or name,
        commit=args.commit,
        changed_since=args.changed_since,
        conclusions=ConclusionPolicy.model_validate(conclusions),
        result_format=args.result_format or "json",
        local_repo_path=args.local_repo_path,
        reuse_check_run=args.reuse_check_run or False,
    )


def get_access_token(args: Namespace, context: GitHubContext) -> str:
    """Pick the token to authenticate with, minting one if a GitHub App is set.

    :raises ConfigurationError: if no way to authenticate was configured
    """
    if args.app_id and args.app_install_id and args.pem_path:
        app = AppInstallation(
            app_id=args.app_id,
            app_installation_id=args.app_install_id,
            github_api_url=context.api_url,
        )
        return app.authenticate(args.pem_path)
    token = args.token or os.getenv("GITHUB_TOKEN", "")
    if not token:
        msg = "No GitHub token or GitHub App credentials were provided."
        raise ConfigurationError(msg)
    return token


def write_outputs(result: UploadResult) -> None:
    """Expose the check run as step outputs, if running in GitHub Actions."""
    if not (output_path := os.getenv("GITHUB_OUTPUT")):
        return
    with Path(output_path).open("a", encoding="utf-8") as output_file:
        output_file.write(f"check-run-id={result.check_run_id}\n")
        output_file.write(f"conclusion={result.conclusion.value}\n")


def main(argv: Sequence[str] | None = None) -> None:
    """Run a complete upload, exiting with a non-zero status on any failure."""
    args = build_parser().parse_args(argv)
    configure_logging(debug=args.debug)

    try:
        settings = settings_from_args(args)
        context = GitHubContext.from_env()
        if not context.repository:
            msg = "GITHUB_REPOSITORY is not set, cannot tell which repository to use."
            raise ConfigurationError(msg)
        head_sha = context.resolve_head_sha(settings.commit)
    except (ValidationError, ConfigurationError) as exc:
        logging.fatal("[github-annotations] Invalid configuration: %s. Aborting.", exc)
        sys.exit(-1)

    try:
        gh_checks = GitHubChecks(
            repository=context.repository,
            access_token=get_access_token(args, context),
            github_api_url=context.api_url,
        )
        result = upload_annotations(
            settings,
            gh_checks,
            head_sha,
            log_to_annotation_formatters[settings.result_format],
        )
    except (
        RequestException,
        AnnotationFormatError,
        ConfigurationError,
        CheckRunStateError,
    ) as exc:
        logging.fatal("[github-annotations] Upload failed: %s. Aborting.", exc)
        sys.exit(-1)

    if result is not None:
        write_outputs(result)


if __name__ == "__main__":
    main(sys.argv[1:])
