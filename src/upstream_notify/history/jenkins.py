"""Jenkins JSON API loader for build history.

Fetches everything the collector needs for one build from a Jenkins (or
Jenkins-compatible) server and returns it as an InMemoryBuildHistory:
- The current build and every older build of the same job back to, and
  including, the last successful one
- Every upstream build referenced by an upstream cause of the builds after
  the last success, including causes nested inside other upstream causes

Doing all HTTP work up front keeps the collection itself synchronous and
free of I/O: it runs against an immutable snapshot.

Design notes:
- Uses httpx.AsyncClient, created per load() call
- A 404 for an upstream build means it was deleted; it is left out of the
  snapshot and the collector treats the reference as dangling
- Freestyle builds report ``changeSet``, pipeline runs report ``changeSets``;
  a build with neither has no change-set capability

API docs: https://www.jenkins.io/doc/book/using/remote-access-api/
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Iterator
from typing import Any
from urllib.parse import quote, unquote

import httpx

from upstream_notify.history.store import InMemoryBuildHistory
from upstream_notify.logging_config import get_logger
from upstream_notify.schemas import (
    Build,
    BuildRef,
    BuildStatus,
    Cause,
    ChangeEntry,
    ChangeSet,
    OtherCause,
    UpstreamCause,
    User,
)

logger = get_logger(__name__)


class JenkinsHistoryLoader:
    """Builds a history snapshot from the Jenkins remote access API.

    Usage:
        loader = JenkinsHistoryLoader("https://ci.example.com", user="bot", token="...")
        history = await loader.load("folder/app", 12)
    """

    def __init__(
        self,
        url: str | None = None,
        user: str | None = None,
        token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the loader.

        Args:
            url: Jenkins root URL. Falls back to JENKINS_URL.
            user: User for basic auth. Falls back to JENKINS_USER.
            token: API token for basic auth. Falls back to JENKINS_TOKEN.
            timeout: Per-request timeout in seconds
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self._url = (url or os.environ.get("JENKINS_URL", "")).rstrip("/")
        if not self._url:
            raise ValueError("Jenkins URL is required (pass url or set JENKINS_URL)")
        self._user = user or os.environ.get("JENKINS_USER", "")
        self._token = token or os.environ.get("JENKINS_TOKEN", "")
        self._timeout = timeout
        self._transport = transport

    async def load(self, job: str, number: int) -> InMemoryBuildHistory:
        """Fetch the history window and upstream builds for ``job#number``.

        Args:
            job: Full job name, folders separated by '/'
            number: Number of the current build

        Returns:
            A history containing every build the collector may look at

        Raises:
            KeyError: If the current build does not exist
            httpx.HTTPStatusError: On any non-404 error response
        """
        auth = (self._user, self._token) if self._user and self._token else None
        history = InMemoryBuildHistory()

        async with httpx.AsyncClient(
            base_url=self._url,
            auth=auth,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            data = await self._fetch_build(client, BuildRef(job=job, number=number))
            if data is None:
                raise KeyError(f"Build not found: {job}#{number}")

            pending: list[BuildRef] = []
            while data is not None:
                build = parse_build(job, data)
                history.add(build)
                if build.number != number and build.status == BuildStatus.SUCCESS:
                    break
                pending.extend(iter_upstream_refs(build.causes))
                previous = data.get("previousBuild")
                if not previous:
                    break
                data = await self._fetch_build(
                    client, BuildRef(job=job, number=previous["number"])
                )

            seen: set[BuildRef] = set()
            for ref in pending:
                if ref in seen or ref in history:
                    continue
                seen.add(ref)
                upstream = await self._fetch_build(client, ref)
                if upstream is None:
                    logger.info("upstream_build_missing", upstream=str(ref))
                    continue
                history.add(parse_build(ref.job, upstream))

        logger.info("jenkins_history_loaded", job=job, number=number, builds=len(history))
        return history

    async def _fetch_build(
        self, client: httpx.AsyncClient, ref: BuildRef
    ) -> dict[str, Any] | None:
        """GET one build's JSON; None if the server answers 404."""
        resp = await client.get(f"{job_path(ref.job)}/{ref.number}/api/json")
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def job_path(job: str) -> str:
    """Map a full job name to its URL path: ``a/b`` -> ``/job/a/job/b``."""
    return "".join(f"/job/{quote(part, safe='')}" for part in job.split("/") if part)


def parse_build(job: str, data: dict[str, Any]) -> Build:
    """Convert a Jenkins build JSON object into a Build."""
    result = data.get("result")
    if result is None:
        status = BuildStatus.IN_PROGRESS
    elif result in BuildStatus.__members__:
        status = BuildStatus(result)
    else:
        logger.warning("unknown_build_result", job=job, result=result)
        status = BuildStatus.FAILURE

    raw_causes: list[dict[str, Any]] = list(data.get("causes") or [])
    for action in data.get("actions") or []:
        if action and action.get("causes"):
            raw_causes.extend(action["causes"])

    if "changeSets" in data:
        change_sets: list[ChangeSet] | None = [
            parse_change_set(cs) for cs in data["changeSets"] or []
        ]
    elif "changeSet" in data:
        change_sets = [parse_change_set(data["changeSet"])] if data["changeSet"] else []
    else:
        change_sets = None

    return Build(
        job=job,
        number=data["number"],
        status=status,
        causes=[parse_cause(c) for c in raw_causes],
        change_sets=change_sets,
    )


def parse_cause(data: dict[str, Any]) -> Cause:
    """Convert one cause JSON object; anything not upstream becomes OtherCause."""
    cls = data.get("_class", "")
    # Jenkins cuts off very deep chains with a placeholder that has no build
    if "DeeplyNested" in cls:
        return OtherCause(description=data.get("shortDescription", ""))
    if not (cls.endswith("UpstreamCause") or "upstreamProject" in data):
        return OtherCause(description=data.get("shortDescription", ""))

    project = data.get("upstreamProject")
    number = data.get("upstreamBuild")
    ref = BuildRef(job=project, number=number) if project and number else None
    return UpstreamCause(
        upstream_build=ref,
        nested_causes=[parse_cause(c) for c in data.get("upstreamCauses") or []],
    )


def parse_change_set(data: dict[str, Any]) -> ChangeSet:
    return ChangeSet(
        kind=data.get("kind") or "",
        entries=[parse_change_entry(item) for item in data.get("items") or []],
    )


def parse_change_entry(item: dict[str, Any]) -> ChangeEntry:
    author = item.get("author") or {}
    full_name = author.get("fullName", "")
    # absoluteUrl ends in /user/<id>, percent-encoded
    user_id = unquote((author.get("absoluteUrl") or "").rstrip("/").rsplit("/", 1)[-1])
    return ChangeEntry(
        author=User(
            id=user_id or full_name or "unknown",
            full_name=full_name,
            email=item.get("authorEmail") or None,
        ),
        commit_id=item.get("commitId") or "",
        message=item.get("msg") or "",
    )


def iter_upstream_refs(causes: Iterable[Cause]) -> Iterator[BuildRef]:
    """Yield every upstream build reference in ``causes``, nested ones included."""
    for cause in causes:
        if isinstance(cause, UpstreamCause):
            if cause.upstream_build is not None:
                yield cause.upstream_build
            yield from iter_upstream_refs(cause.nested_causes)
