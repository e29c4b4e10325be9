"""Traversal and collection of upstream committers.

Three steps, each a plain function so it can be tested on its own:

1. collect_upstream_causes: walk the job's history backward from the
   current build to the last successful one (exclusive) and gather the
   upstream causes of every build on the way.
2. collect_upstream_builds: follow an upstream cause and all the upstream
   causes nested in it, gathering every upstream build that still exists.
3. add_upstream_committers: hand the author of every change in an upstream
   build to the resolution policy.

Nothing here raises because history is incomplete. A missing reference
point, a deleted upstream build or a build without change sets all simply
contribute nothing.
"""

from __future__ import annotations

from collections.abc import Iterator

from upstream_notify.context import PublisherContext
from upstream_notify.debug import safe_send
from upstream_notify.history.store import BuildHistoryProtocol
from upstream_notify.logging_config import get_logger
from upstream_notify.resolver import RecipientResolverProtocol
from upstream_notify.schemas import (
    Build,
    BuildRef,
    RecipientSets,
    UpstreamCause,
    User,
)

logger = get_logger(__name__)


def collect_upstream_causes(
    current: Build,
    last_successful: Build | None,
    history: BuildHistoryProtocol,
) -> list[UpstreamCause]:
    """Gather the upstream causes of every build since the last success.

    The walk starts at ``current`` and follows previous-build links. It stops
    at ``last_successful`` (whose causes are not included: they explain the
    last success, not what changed since) or when history runs out.

    Args:
        current: The build being processed
        last_successful: Its last successful predecessor. None means there
            is no reference point and nothing is collected.
        history: Source of previous-build links

    Returns:
        Upstream causes in walk order (newest build first)
    """
    if last_successful is None:
        return []

    stop = last_successful.ref
    walked: set[BuildRef] = set()
    causes: list[UpstreamCause] = []
    build: Build | None = current
    while build is not None and build.ref != stop:
        if build.ref in walked:
            logger.warning("history_loop_detected", build=str(build.ref))
            break
        walked.add(build.ref)
        causes.extend(build.upstream_causes())
        build = history.previous_build(build)
    return causes


def collect_upstream_builds(
    cause: UpstreamCause,
    result: dict[BuildRef, Build],
    history: BuildHistoryProtocol,
    visited: set[int] | None = None,
) -> None:
    """Add every build reachable through ``cause`` and its nested causes to ``result``.

    ``result`` is keyed by BuildRef, so a build reached along several paths
    is stored once. A reference to a build that no longer exists ends that
    path. ``visited`` holds the identities of causes already expanded; a
    cause met again (a cycle in a malformed chain) is not expanded twice.

    Args:
        cause: The upstream cause to expand
        result: Upstream builds found so far, updated in place
        history: Used to resolve build references
        visited: Cause identities already expanded, shared across calls
    """
    if visited is None:
        visited = set()

    stack: list[UpstreamCause] = [cause]
    while stack:
        current = stack.pop()
        if id(current) in visited:
            continue
        visited.add(id(current))

        ref = current.upstream_build
        if ref is None:
            continue
        build = history.get_build(ref)
        if build is None:
            logger.debug("upstream_build_unavailable", upstream=str(ref))
            continue
        result.setdefault(ref, build)

        nested = [c for c in current.nested_causes if isinstance(c, UpstreamCause)]
        # reversed so nested causes are expanded in their listed order
        stack.extend(reversed(nested))


def iter_change_authors(build: Build) -> Iterator[User]:
    """Yield the author of each change in ``build``, in change-history order.

    Builds without change-set capability yield nothing.
    """
    if build.change_sets is None:
        return
    for change_set in build.change_sets:
        for entry in change_set.entries:
            yield entry.author


def add_upstream_committers(
    build: Build,
    recipients: RecipientSets,
    resolver: RecipientResolverProtocol,
    context: PublisherContext,
    env: dict[str, str],
) -> int:
    """Resolve every change author of an upstream build into ``recipients``.

    Each entry produces one resolution call, even when the same author
    appears more than once.

    Returns:
        The number of resolution calls made
    """
    safe_send(
        context.debug,
        "Adding upstream committer from job %s with build number %s",
        build.job_display_name,
        build.number,
    )
    calls = 0
    for author in iter_change_authors(build):
        resolver.resolve(author, context, env, recipients)
        calls += 1
    return calls
