"""
Removal attribution: who (or what) removed a piece of content.
"""

from collections.abc import Iterable

from modbridge.models.domain.states import RemovalAttribution

# Platform administrative accounts; their removals are never a moderator decision
ADMIN_ACCOUNTS = frozenset(
    {
        "anti_evil_ops",
        "anti_evil ops",
        "anti_evil operations",
        "anti-evil operations",
        "modcodeofconduct",
        "reddit_legal",
        "reddit legal",
        "aevo",
        "safety",
        "[ redacted ]",
    }
)

# Accounts that act on behalf of the platform or its automation, never "unknown"
PLATFORM_ACTORS = frozenset({"automoderator", "anti_evil_ops", "reddit"})


def is_admin_account(name: str | None) -> bool:
    return bool(name) and name.strip().lower() in ADMIN_ACCOUNTS


def classify_removal(removed_by: str | None, automated_users: Iterable[str]) -> RemovalAttribution:
    """
    Bucket the removing account.

    Automated covers the configured allow-list plus the fixed administrative
    set; any other named account is a human moderator; no name is unknown.
    """
    if not removed_by or not removed_by.strip():
        return RemovalAttribution.UNKNOWN

    name = removed_by.strip().lower()
    if name in {user.lower() for user in automated_users} or is_admin_account(name):
        return RemovalAttribution.AUTOMATED
    return RemovalAttribution.MODERATOR


def removal_notice_attribution(
    removed_by: str | None,
    moderators: Iterable[str],
    automated: bool,
) -> RemovalAttribution:
    """
    Pick which removal notice text applies.

    Automated removals get the automatic notice. A remover that is neither on
    the moderator team nor a known platform actor is treated as an admin
    removal and gets the "unknown" notice.
    """
    if automated:
        return RemovalAttribution.AUTOMATED

    known = {name.lower() for name in moderators} | PLATFORM_ACTORS
    if not removed_by or removed_by.lower() not in known:
        return RemovalAttribution.UNKNOWN
    return RemovalAttribution.MODERATOR
