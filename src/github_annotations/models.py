"""Model representation of GitHub checks specific dictionary/json structures."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, PositiveInt


class CheckRunConclusion(Enum):
    """The conclusion states a check run can be finished with by this tool."""

    SUCCESS = "success"
    FAILURE = "failure"
    NEUTRAL = "neutral"


class CheckRunStatus(Enum):
    """The lifecycle states of a check run."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class AnnotationLevel(Enum):
    """The severity levels permitted by GitHub checks for each individual annotation."""

    NOTICE = "notice"
    WARNING = "warning"
    FAILURE = "failure"


class CheckAnnotation(BaseModel):
    """Models the json expected by GitHub checks for each individual annotation."""

    model_config = ConfigDict(frozen=True)

    path: str
    start_line: PositiveInt
    end_line: PositiveInt
    annotation_level: AnnotationLevel
    message: str
    title: str | None = None
    raw_details: str | None = None
    start_column: PositiveInt | None = None
    end_column: PositiveInt | None = None

    def to_payload(self) -> dict[str, str | int]:
        """Serialize to the json body expected by the Checks API."""
        return self.model_dump(mode="json", exclude_none=True)


class CheckRunOutput(BaseModel):
    """The json format expected for the output of a Checks run."""

    title: str
    summary: str
    annotations: list[CheckAnnotation] | None = None

    def to_payload(self) -> dict:
        """Serialize to the json body expected by the Checks API.

        Annotations are only sent when present, as the API appends any annotations
        it receives to the ones already attached to the check run.
        """
        payload: dict = {"title": self.title, "summary": self.summary}
        if self.annotations is not None:
            payload["annotations"] = [
                annotation.to_payload() for annotation in self.annotations
            ]
        return payload
