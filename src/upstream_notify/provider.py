"""Recipient provider: upstream committers since the last successful build.

This module ties the pieces together:
- History lookups (history/)
- Traversal and change extraction (collector.py)
- Address resolution (resolver.py)
- Diagnostics (debug.py)

The provider follows this flow:
1. Find the last successful build before the current one; stop if none
2. Walk the builds in between and collect their upstream causes
3. Expand those causes into one deduplicated set of upstream builds
4. Resolve the authors of every change in those builds into to/cc/bcc

It is also the CLI entry point (``upstream-notify``).
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import yaml

from upstream_notify.collector import (
    add_upstream_committers,
    collect_upstream_builds,
    collect_upstream_causes,
)
from upstream_notify.config import load_config
from upstream_notify.context import PublisherContext
from upstream_notify.debug import (
    DebugSinkProtocol,
    LoggerDebugSink,
    NullDebugSink,
    safe_send,
)
from upstream_notify.history.jenkins import JenkinsHistoryLoader
from upstream_notify.history.store import (
    BuildHistoryProtocol,
    InMemoryBuildHistory,
    parse_snapshot,
)
from upstream_notify.logging_config import (
    bind_build_context,
    clear_build_context,
    get_logger,
    setup_logging,
)
from upstream_notify.resolver import DirectoryResolver, RecipientResolverProtocol
from upstream_notify.schemas import (
    Build,
    BuildRef,
    RecipientResponse,
    RecipientSets,
)

logger = get_logger(__name__)


class UpstreamCommitterRecipientProvider:
    """Adds the committers of upstream builds since the last success.

    The provider is stateless; each call to add_recipients() is independent.

    Usage:
        provider = UpstreamCommitterRecipientProvider(resolver=DirectoryResolver())
        upstream = provider.add_recipients(context, env, recipients)
    """

    name = "upstreamDevelopersSinceLastSuccess"
    display_name = "Upstream Committers since last success"

    def __init__(self, resolver: RecipientResolverProtocol | None = None) -> None:
        """Initialize the provider.

        Args:
            resolver: Resolution policy for change authors. Defaults to a
                      DirectoryResolver with an empty directory.
        """
        self.resolver = resolver or DirectoryResolver()

    def add_recipients(
        self,
        context: PublisherContext,
        env: dict[str, str],
        recipients: RecipientSets,
    ) -> list[BuildRef]:
        """Add upstream committers of ``context.build`` to ``recipients``.

        Args:
            context: The run being processed and its history
            env: Build environment, passed through to the resolver
            recipients: The to/cc/bcc sets, updated in place

        Returns:
            The upstream builds that were found in the window
        """
        debug = context.debug
        current = context.build
        history = context.history

        last_successful = history.previous_successful_build(current)
        if last_successful is None:
            safe_send(
                debug,
                "No previous successful build for job %s#%s, skipping upstream "
                "committers since last success.",
                current.job,
                current.number,
            )
            logger.info("no_previous_success", job=current.job, number=current.number)
            return []

        safe_send(debug, "Sending email to upstream committer(s) since last successful build.")
        safe_send(
            debug,
            "Collecting upstream builds for job %s#%s since last success (%s#%s).",
            current.job,
            current.number,
            last_successful.job,
            last_successful.number,
        )

        upstream: dict[BuildRef, Build] = {}
        visited: set[int] = set()
        for cause in collect_upstream_causes(current, last_successful, history):
            collect_upstream_builds(cause, upstream, history, visited)

        safe_send(debug, "Found %d upstream builds in the time window.", len(upstream))
        logger.info(
            "upstream_builds_found",
            provider=context.provider_name,
            job=current.job,
            number=current.number,
            last_success=last_successful.number,
            count=len(upstream),
        )

        for build in upstream.values():
            try:
                add_upstream_committers(build, recipients, self.resolver, context, env)
            except Exception as e:
                logger.error(
                    "upstream_committers_failed",
                    upstream=str(build.ref),
                    error=str(e),
                    exc_info=True,
                )
                raise

        return list(upstream)


def collect_recipients(
    history: BuildHistoryProtocol,
    ref: BuildRef,
    resolver: RecipientResolverProtocol | None = None,
    env: dict[str, str] | None = None,
    debug: DebugSinkProtocol | None = None,
) -> tuple[RecipientSets, list[BuildRef]]:
    """Run the provider for one build and return fresh recipient sets.

    Args:
        history: History containing the build
        ref: The current build
        resolver: Resolution policy (DirectoryResolver if None)
        env: Build environment
        debug: Diagnostic sink (NullDebugSink if None)

    Returns:
        The filled recipient sets and the upstream builds found

    Raises:
        KeyError: If ``ref`` is not in ``history``
    """
    build = history.get_build(ref)
    if build is None:
        raise KeyError(f"Build not found: {ref}")

    provider = UpstreamCommitterRecipientProvider(resolver)
    context = PublisherContext(
        build=build,
        history=history,
        debug=debug or NullDebugSink(),
        provider_name=provider.name,
    )
    recipients = RecipientSets()
    bind_build_context(ref.job, ref.number)
    try:
        upstream = provider.add_recipients(context, env or {}, recipients)
    finally:
        clear_build_context()

    logger.info(
        "recipients_collected",
        job=ref.job,
        number=ref.number,
        to_count=len(recipients.to),
        cc_count=len(recipients.cc),
        bcc_count=len(recipients.bcc),
    )
    return recipients, upstream


# ---------------------------------------------------------------------------
# CLI Entry Point
# ---------------------------------------------------------------------------


def _parse_env(pairs: list[str]) -> dict[str, str]:
    env: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected KEY=VALUE, got {pair!r}")
        env[key] = value
    return env


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Usage:
        upstream-notify --snapshot history.yaml --job app --build 12
        cat history.json | upstream-notify --job app --build 12
        upstream-notify --jenkins --job folder/app --build 12

    Prints the recipients as JSON on stdout.
    """
    parser = argparse.ArgumentParser(
        description=f"List recipients: {UpstreamCommitterRecipientProvider.display_name}"
    )
    parser.add_argument(
        "--snapshot", "-s",
        type=str,
        help="JSON/YAML history snapshot (reads stdin if omitted)",
    )
    parser.add_argument("--job", "-j", type=str, help="Job of the current build")
    parser.add_argument("--build", "-b", type=int, help="Number of the current build")
    parser.add_argument("--config", "-c", type=str, help="Path to YAML config")
    parser.add_argument(
        "--env", "-e",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Build environment variable (repeatable)",
    )
    parser.add_argument(
        "--jenkins",
        action="store_true",
        help="Load history from the configured Jenkins server",
    )
    parser.add_argument("--debug", action="store_true", help="Print diagnostics to stderr")
    args = parser.parse_args(argv)

    if args.job is None or args.build is None:
        parser.print_usage()
        print("Provide --job and --build for the build to notify about.")
        return

    if not args.snapshot and not args.jenkins and sys.stdin.isatty():
        parser.print_usage()
        print("Provide --snapshot FILE, --jenkins, or pipe a snapshot via stdin.")
        return

    try:
        env = _parse_env(args.env)
    except ValueError as exc:
        parser.error(str(exc))

    setup_logging()
    config = load_config(args.config)

    history: BuildHistoryProtocol
    if args.jenkins:
        loader = JenkinsHistoryLoader(
            url=config.jenkins.url,
            user=config.jenkins.user,
            token=config.jenkins.token,
            timeout=config.jenkins.timeout,
        )
        history = asyncio.run(loader.load(args.job, args.build))
    elif args.snapshot:
        history = InMemoryBuildHistory.from_file(args.snapshot)
    else:
        history = InMemoryBuildHistory.from_snapshot(
            parse_snapshot(yaml.safe_load(sys.stdin.read()), source="<stdin>")
        )

    debug: DebugSinkProtocol
    if args.debug or config.debug_mode:
        debug = LoggerDebugSink(stream=sys.stderr)
    else:
        debug = NullDebugSink()

    ref = BuildRef(job=args.job, number=args.build)
    try:
        recipients, upstream = collect_recipients(
            history,
            ref,
            resolver=DirectoryResolver(config.resolver),
            env=env,
            debug=debug,
        )
    except KeyError as exc:
        parser.exit(1, f"error: {exc.args[0]}\n")

    print(RecipientResponse.from_result(recipients, upstream).model_dump_json(indent=2))


if __name__ == "__main__":
    main()
