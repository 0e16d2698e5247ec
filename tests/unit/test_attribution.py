import pytest

from modbridge.models.domain.states import RemovalAttribution
from modbridge.services.attribution import (
    classify_removal,
    is_admin_account,
    removal_notice_attribution,
)

AUTOMATED = {"automoderator", "reddit"}


@pytest.mark.parametrize(
    ("removed_by", "expected"),
    [
        ("AutoModerator", RemovalAttribution.AUTOMATED),
        ("Anti-Evil Operations", RemovalAttribution.AUTOMATED),
        ("ModAlice", RemovalAttribution.MODERATOR),
        (None, RemovalAttribution.UNKNOWN),
        ("  ", RemovalAttribution.UNKNOWN),
    ],
)
def test_classify_removal(removed_by, expected):
    assert classify_removal(removed_by, AUTOMATED) == expected


def test_custom_automated_account():
    assert classify_removal("CleanupBot", {"cleanupbot"}) == RemovalAttribution.AUTOMATED


def test_admin_accounts():
    assert is_admin_account("reddit_legal")
    assert not is_admin_account("ModAlice")
    assert not is_admin_account(None)


def test_removal_notice_attribution():
    moderators = ["ModAlice"]

    assert removal_notice_attribution("modalice", moderators, automated=False) == (
        RemovalAttribution.MODERATOR
    )
    assert removal_notice_attribution("Stranger", moderators, automated=False) == (
        RemovalAttribution.UNKNOWN
    )
    assert removal_notice_attribution("AutoModerator", moderators, automated=True) == (
        RemovalAttribution.AUTOMATED
    )
