import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field

from mediaflow_merge.merge.errors import InvalidTransitionError


class AssetRole(str, Enum):
    VIDEO = "video"
    AUDIO = "audio"
    SUBTITLE = "subtitle"


class JobState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    STAGING = "staging"
    MERGING = "merging"
    EXPORTING = "exporting"
    CLEANING_UP = "cleaning_up"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = frozenset({JobState.DONE, JobState.FAILED})

# Happy-path successor of each state. Any non-terminal state other than
# CLEANING_UP may also jump straight to CLEANING_UP on failure.
_NEXT_STATE = {
    JobState.IDLE: JobState.FETCHING,
    JobState.FETCHING: JobState.STAGING,
    JobState.STAGING: JobState.MERGING,
    JobState.MERGING: JobState.EXPORTING,
    JobState.EXPORTING: JobState.CLEANING_UP,
}


def allowed_transitions(state: JobState) -> frozenset[JobState]:
    if state in TERMINAL_STATES:
        return frozenset()
    if state == JobState.CLEANING_UP:
        return frozenset({JobState.DONE, JobState.FAILED})
    return frozenset({_NEXT_STATE[state], JobState.CLEANING_UP})


class MergeRequest(BaseModel):
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    video_source: AnyHttpUrl = Field(..., description="URL of the source MP4 video.")
    audio_key: str = Field(..., min_length=1, description="Storage key of the MP3 audio track.")
    subtitle_key: str = Field(..., min_length=1, description="Storage key of the SRT subtitle track.")


@dataclass(frozen=True, slots=True)
class StagedAsset:
    logical_name: str
    data: bytes


@dataclass(frozen=True, slots=True)
class OutputArtifact:
    """Merged container handed over to the download sink."""

    data: bytes
    mime_type: str
    filename: str

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class StateChange:
    state: JobState
    at: datetime


@dataclass
class MergeJob:
    """
    Run-time state of one pipeline execution.

    A job only moves forward through the states listed in ``JobState``; the
    allowed moves are checked by ``transition``. ``artifact`` is only set once
    the job reaches ``DONE``.
    """

    request: MergeRequest
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: JobState = JobState.IDLE
    error: Optional[BaseException] = None
    failure_reason: Optional[str] = None
    artifact: Optional[OutputArtifact] = None
    history: list[StateChange] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def failed(self) -> bool:
        return self.error is not None or self.failure_reason is not None

    def transition(self, new_state: JobState) -> None:
        if new_state not in allowed_transitions(self.state):
            raise InvalidTransitionError(f"Job {self.job_id}: cannot move from {self.state.value} to {new_state.value}")
        self.state = new_state
        self.history.append(StateChange(state=new_state, at=datetime.now(tz=timezone.utc)))
        if new_state in TERMINAL_STATES:
            self.completed_at = datetime.now(tz=timezone.utc)

    def record_failure(self, error: BaseException) -> None:
        # Only the first failure is kept; cleanup errors must not mask the cause.
        if self.error is None:
            self.error = error
            self.failure_reason = f"{type(error).__name__}: {error}"
