from datetime import timedelta

import pytest

from app.core.clock import utcnow
from app.core.errors import Conflict, InvalidState, NotFound
from app.models.order import OrderStatus, Plan, can_transition


def _create(repo, owner_id="u1", query="acme"):
    return repo.create(owner_id, Plan.PRO, query, amount_cents=2000, currency="MXN")


def test_create_and_get(repo):
    order = _create(repo)

    fetched = repo.get(order.id)
    assert fetched.owner_id == "u1"
    assert fetched.plan == "PRO"
    assert fetched.status == OrderStatus.PENDING_PAYMENT.value
    assert fetched.document_url is None
    assert fetched.download_token_used is False


def test_get_unknown_raises_not_found(repo):
    with pytest.raises(NotFound):
        repo.get("does-not-exist")


def test_compare_and_set_applies_patch(repo):
    order = _create(repo)

    updated = repo.compare_and_set_status(
        order.id, OrderStatus.PENDING_PAYMENT, OrderStatus.PAID, {"payment_ref": "ref-1"}
    )

    assert updated.status == "paid"
    assert updated.payment_ref == "ref-1"


def test_compare_and_set_conflict_leaves_order_untouched(repo):
    order = _create(repo)

    with pytest.raises(Conflict):
        repo.compare_and_set_status(
            order.id, OrderStatus.PAID, OrderStatus.PROCESSING, {"failure_reason": "x"}
        )

    fresh = repo.get(order.id)
    assert fresh.status == "pending_payment"
    assert fresh.failure_reason is None


def test_compare_and_set_unknown_order(repo):
    with pytest.raises(NotFound):
        repo.compare_and_set_status("missing", OrderStatus.PAID, OrderStatus.PROCESSING)


def test_transition_outside_state_machine_is_rejected(repo):
    order = _create(repo)

    with pytest.raises(InvalidState):
        repo.compare_and_set_status(order.id, OrderStatus.PENDING_PAYMENT, OrderStatus.READY)
    assert repo.get(order.id).status == "pending_payment"


def test_patch_cannot_rewrite_identity(repo):
    order = _create(repo)

    with pytest.raises(ValueError):
        repo.compare_and_set_status(
            order.id, OrderStatus.PENDING_PAYMENT, OrderStatus.PAID, {"owner_id": "u2"}
        )


def test_state_machine_table():
    assert can_transition(OrderStatus.PENDING_PAYMENT, OrderStatus.PROOF_SUBMITTED)
    assert can_transition(OrderStatus.PROOF_SUBMITTED, OrderStatus.PAID)
    assert can_transition(OrderStatus.FAILED, OrderStatus.PAID)
    assert not can_transition(OrderStatus.READY, OrderStatus.PAID)
    assert not can_transition(OrderStatus.PROCESSING, OrderStatus.PAID)
    assert not can_transition(OrderStatus.PAID, OrderStatus.READY)


def test_attach_proof_once(repo):
    order = _create(repo)

    updated = repo.attach_proof(order.id, "abc.png")
    assert updated.status == "proof_submitted"
    assert updated.proof_ref == "abc.png"

    with pytest.raises(InvalidState):
        repo.attach_proof(order.id, "other.png")
    assert repo.get(order.id).proof_ref == "abc.png"


def test_attach_proof_unknown_order(repo):
    with pytest.raises(NotFound):
        repo.attach_proof("missing", "x.png")


def test_consume_download_token_flips_once(repo):
    order = repo.create(
        "u1", Plan.BASIC, "acme", amount_cents=1000, currency="MXN", download_token="tok"
    )

    assert repo.consume_download_token(order.id, "tok") is True
    assert repo.consume_download_token(order.id, "tok") is False
    assert repo.get(order.id).download_token_used is True


def test_list_stale_processing(repo):
    stale = _create(repo, query="old")
    fresh = _create(repo, query="new")
    for order, claimed in ((stale, utcnow() - timedelta(hours=2)), (fresh, utcnow())):
        repo.compare_and_set_status(order.id, OrderStatus.PENDING_PAYMENT, OrderStatus.PAID)
        repo.compare_and_set_status(
            order.id, OrderStatus.PAID, OrderStatus.PROCESSING, {"claimed_at": claimed}
        )

    found = repo.list_stale_processing(utcnow() - timedelta(minutes=30))
    assert [o.id for o in found] == [stale.id]


def test_record_notification(repo):
    order = _create(repo)

    repo.record_notification(order.id, "bounced")
    assert repo.get(order.id).notify_error == "bounced"

    repo.record_notification(order.id)
    fresh = repo.get(order.id)
    assert fresh.notify_error is None
    assert fresh.notified_at is not None
