"""Resolution policy: from an SCM user to notification addresses.

The collector hands every change author it finds to a resolver. The
resolver decides which addresses, if any, that user maps to and which of
the to/cc/bcc sets they go into. Deduplication happens here, at the set
level: the same author seen twice is resolved twice and lands once.

DirectoryResolver implements the usual rules of the email notification
plugin this tool feeds:
- An explicit directory entry wins over the user's own address
- Users without an address get ``default_suffix`` appended to their id
- Entries may carry a "cc:" or "bcc:" prefix to pick the target set
- ``$VAR`` / ``${VAR}`` references are expanded from the build environment
- Excluded users and domains are dropped silently
"""

from __future__ import annotations

from email.utils import parseaddr
from string import Template
from typing import Protocol

from upstream_notify.config import ResolverConfig
from upstream_notify.context import PublisherContext
from upstream_notify.debug import safe_send
from upstream_notify.logging_config import get_logger
from upstream_notify.schemas import RecipientSets, User

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class RecipientResolverProtocol(Protocol):
    """Protocol for recipient resolution policies."""

    def resolve(
        self,
        user: User,
        context: PublisherContext,
        env: dict[str, str],
        recipients: RecipientSets,
    ) -> None:
        """Add zero or more addresses for ``user`` to ``recipients``.

        Args:
            user: The change author to resolve
            context: The run being processed, passed through untouched
            env: Build environment variables
            recipients: The to/cc/bcc sets to add to
        """
        ...


# ---------------------------------------------------------------------------
# Directory Implementation
# ---------------------------------------------------------------------------


class DirectoryResolver:
    """Resolves users through a configured address directory.

    Usage:
        resolver = DirectoryResolver(ResolverConfig(default_suffix="@example.com"))
        resolver.resolve(user, context, env, recipients)
    """

    def __init__(self, config: ResolverConfig | None = None) -> None:
        self.config = config or ResolverConfig()
        self._excluded_users = {u.lower() for u in self.config.excluded_users}
        self._excluded_domains = {d.lower().lstrip("@") for d in self.config.excluded_domains}

    def resolve(
        self,
        user: User,
        context: PublisherContext,
        env: dict[str, str],
        recipients: RecipientSets,
    ) -> None:
        if user.id.lower() in self._excluded_users:
            safe_send(context.debug, "User %s is excluded from notifications.", user.id)
            return

        entries = self.addresses_for(user)
        if not entries:
            safe_send(context.debug, "Failed to get email address for user %s.", user.id)
            return

        for entry in entries:
            expanded = Template(entry).safe_substitute(env)
            for part in expanded.split(","):
                if part.strip():
                    self._add(part, recipients, context)

    def addresses_for(self, user: User) -> list[str]:
        """Return the raw (unexpanded, possibly prefixed) entries for ``user``."""
        if user.id in self.config.addresses:
            return list(self.config.addresses[user.id])
        if user.email:
            return [user.email]
        if "@" in user.id:
            return [user.id]
        if self.config.allow_unregistered and self.config.default_suffix:
            return [f"{user.id}{self.config.default_suffix}"]
        return []

    def _add(self, entry: str, recipients: RecipientSets, context: PublisherContext) -> None:
        target, raw = route_entry(entry, recipients)
        address = normalize_address(raw)
        if address is None:
            logger.warning("invalid_address", address=raw.strip())
            safe_send(context.debug, "Invalid address: %s", raw.strip())
            return
        if address.rsplit("@", 1)[1] in self._excluded_domains:
            safe_send(context.debug, "Address %s is in an excluded domain.", address)
            return
        target.add(address)


# ---------------------------------------------------------------------------
# Recording Implementation
# ---------------------------------------------------------------------------


class RecordingResolver:
    """Records every resolution call, optionally delegating to another resolver.

    Useful in tests and dry runs to see exactly which authors were handed
    to the policy, in which order.
    """

    def __init__(self, delegate: RecipientResolverProtocol | None = None) -> None:
        self.calls: list[str] = []
        self._delegate = delegate

    def resolve(
        self,
        user: User,
        context: PublisherContext,
        env: dict[str, str],
        recipients: RecipientSets,
    ) -> None:
        self.calls.append(user.id)
        if self._delegate is not None:
            self._delegate.resolve(user, context, env, recipients)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def route_entry(entry: str, recipients: RecipientSets) -> tuple[set[str], str]:
    """Pick the target set from a "cc:"/"bcc:" prefix and strip it."""
    stripped = entry.strip()
    lowered = stripped.lower()
    if lowered.startswith("bcc:"):
        return recipients.bcc, stripped[4:]
    if lowered.startswith("cc:"):
        return recipients.cc, stripped[3:]
    return recipients.to, stripped


def normalize_address(raw: str) -> str | None:
    """Return the lowercased bare address, or None if it is not one.

    Accepts both ``a@b.com`` and ``Alice <a@b.com>``.
    """
    _, address = parseaddr(raw.strip())
    address = address.strip().lower()
    if address.count("@") != 1:
        return None
    local, domain = address.split("@")
    if not local or not domain or " " in address:
        return None
    return address
