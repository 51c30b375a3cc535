from __future__ import annotations

import pytest

from app.verticals.wholesale.engine.tags import (
    assign_type_tags,
    login_status,
    registration_tags,
    review_tags,
)
from app.verticals.wholesale.errors import InvalidInput, NotFound


def test_registration_tags(registry):
    assert registration_tags(registry.get("t_salon")) == ["pending-approval", "salon"]
    assert registration_tags(registry.get("t_student")) == ["student", "pro-pricing"]
    assert registration_tags(None) == ["consumer"]


def test_approve_replaces_pending():
    assert review_tags("salon, pending-approval", "approve") == ["salon", "pro-pricing"]


def test_approve_after_reject_drops_rejected():
    assert review_tags(["salon", "rejected", "archived"], "approve") == ["salon", "pro-pricing"]


def test_reject_drops_approval():
    assert review_tags(["salon", "pro-pricing"], "reject") == ["salon", "rejected"]


def test_archive_keeps_verdict():
    assert review_tags(["salon", "pending-approval"], "archive") == ["salon", "archived"]


def test_unknown_action():
    with pytest.raises(InvalidInput) as e:
        review_tags(["salon"], "promote")
    assert e.value.code == "UNKNOWN_ACTION"


def test_assign_type_swaps_type_tag(registry):
    tags = assign_type_tags(["vip", "salon", "pro-pricing"], registry, "t_esth")

    assert tags == ["vip", "pro-pricing", "esthetician"]


def test_assign_unknown_type(registry):
    with pytest.raises(NotFound) as e:
        assign_type_tags(["salon"], registry, "nope")
    assert e.value.code == "CUSTOMER_TYPE_NOT_FOUND"


@pytest.mark.parametrize(
    "tags,can_login,reason,kind",
    [
        (["salon", "pending-approval"], False, "pending_approval", None),
        (["salon", "rejected"], False, "rejected", None),
        (["salon", "pro-pricing"], True, None, "professional"),
        ([], True, None, "consumer"),
    ],
)
def test_login_status(tags, can_login, reason, kind):
    status = login_status(tags)

    assert status.can_login is can_login
    assert status.reason == reason
    assert status.customer_type == kind
