"""Pydantic models describing builds, causes, change sets and recipients.

These schemas are the shared vocabulary between the history sources, the
collector and the outer surfaces (CLI and API). They are used for:
- Loading build history snapshots from JSON/YAML files
- Parsing build data fetched from a Jenkins-compatible JSON API
- Request/response validation in the API layer

Key design decisions:
- A build is identified by its BuildRef (job name + number), which is
  hashable and is what upstream deduplication keys on
- Causes are a tagged union discriminated on ``kind`` so that upstream
  causes are told apart by matching, not by inspecting arbitrary objects
- ``change_sets is None`` means the build has no change-set capability,
  while an empty list means it has one but recorded no commits
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class BuildStatus(str, Enum):
    """Outcome of a build.

    Only SUCCESS bounds the "since last success" window; every other status
    counts as a build that still needs its upstream committers notified.
    """

    SUCCESS = "SUCCESS"
    UNSTABLE = "UNSTABLE"
    FAILURE = "FAILURE"
    ABORTED = "ABORTED"
    NOT_BUILT = "NOT_BUILT"
    IN_PROGRESS = "IN_PROGRESS"


# ---------------------------------------------------------------------------
# Build identity and change history
# ---------------------------------------------------------------------------


class BuildRef(BaseModel):
    """Identity of a single build: the job it belongs to and its number."""

    model_config = ConfigDict(frozen=True)

    job: str = Field(..., min_length=1, description="Job name (folders separated by '/')")
    number: int = Field(..., gt=0, description="Sequential build number")

    def __str__(self) -> str:
        return f"{self.job}#{self.number}"


class User(BaseModel):
    """A version-control identity as known to the build host.

    Attributes:
        id: Host user id (usually the SCM login)
        full_name: Display name, may be empty
        email: Address configured for the user, if any
    """

    id: str = Field(..., min_length=1, description="User id")
    full_name: str = Field("", description="Display name")
    email: str | None = Field(None, description="Configured email address")


class ChangeEntry(BaseModel):
    """A single commit recorded in a change set."""

    author: User
    commit_id: str = Field("", description="Commit identifier (SHA, revision)")
    message: str = Field("", description="Commit message")


class ChangeSet(BaseModel):
    """Ordered commits pulled in by one SCM checkout of a build."""

    kind: str = Field("", description="SCM kind, e.g. 'git'")
    entries: list[ChangeEntry] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Causes
# ---------------------------------------------------------------------------


class UpstreamCause(BaseModel):
    """The build was triggered by the completion of another build.

    ``nested_causes`` carries the upstream build's own causes, which is how
    transitive trigger chains are represented.
    """

    kind: Literal["upstream"] = "upstream"
    upstream_build: BuildRef | None = Field(
        None, description="Triggering build, absent if it was deleted"
    )
    nested_causes: list[Cause] = Field(default_factory=list)


class OtherCause(BaseModel):
    """Any cause that carries no committer information (manual, timer, ...)."""

    kind: Literal["other"] = "other"
    description: str = ""


Cause = Annotated[Union[UpstreamCause, OtherCause], Field(discriminator="kind")]

UpstreamCause.model_rebuild()


class Build(BaseModel):
    """One execution of a job.

    Attributes:
        job: Name of the job this build belongs to
        number: Build number within the job
        status: Outcome of the build
        display_name: Human-readable job name, defaults to ``job``
        causes: Why the build started
        change_sets: SCM change sets, or None if the build cannot report them
    """

    job: str = Field(..., min_length=1)
    number: int = Field(..., gt=0)
    status: BuildStatus = BuildStatus.SUCCESS
    display_name: str = ""
    causes: list[Cause] = Field(default_factory=list)
    change_sets: list[ChangeSet] | None = None

    @property
    def ref(self) -> BuildRef:
        return BuildRef(job=self.job, number=self.number)

    @property
    def job_display_name(self) -> str:
        return self.display_name or self.job

    def upstream_causes(self) -> list[UpstreamCause]:
        """Causes of this build that point at an upstream build."""
        return [c for c in self.causes if isinstance(c, UpstreamCause)]


# ---------------------------------------------------------------------------
# Recipients
# ---------------------------------------------------------------------------


class RecipientSets(BaseModel):
    """The to/cc/bcc address sets filled in by the resolution policy."""

    to: set[str] = Field(default_factory=set)
    cc: set[str] = Field(default_factory=set)
    bcc: set[str] = Field(default_factory=set)

    def is_empty(self) -> bool:
        return not (self.to or self.cc or self.bcc)


# ---------------------------------------------------------------------------
# Snapshot / API Schemas
# ---------------------------------------------------------------------------


class HistorySnapshot(BaseModel):
    """A self-contained set of builds the collector can run against."""

    builds: list[Build] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_unique_builds(self) -> "HistorySnapshot":
        """Reject snapshots that describe the same build twice."""
        seen: set[BuildRef] = set()
        for build in self.builds:
            if build.ref in seen:
                raise ValueError(f"Duplicate build in snapshot: {build.ref}")
            seen.add(build.ref)
        return self


class RecipientRequest(BaseModel):
    """Input for a recipient collection run."""

    job: str = Field(..., min_length=1, description="Job of the current build")
    number: int = Field(..., gt=0, description="Number of the current build")
    history: HistorySnapshot
    env: dict[str, str] = Field(default_factory=dict, description="Build environment")


class RecipientResponse(BaseModel):
    """Output of a recipient collection run.

    Address lists are sorted so that responses are stable across runs.
    """

    to: list[str] = Field(default_factory=list)
    cc: list[str] = Field(default_factory=list)
    bcc: list[str] = Field(default_factory=list)
    upstream_builds: list[BuildRef] = Field(
        default_factory=list, description="Upstream builds found in the window"
    )

    @classmethod
    def from_result(
        cls, recipients: RecipientSets, upstream_builds: list[BuildRef]
    ) -> "RecipientResponse":
        return cls(
            to=sorted(recipients.to),
            cc=sorted(recipients.cc),
            bcc=sorted(recipients.bcc),
            upstream_builds=sorted(upstream_builds, key=lambda r: (r.job, r.number)),
        )
