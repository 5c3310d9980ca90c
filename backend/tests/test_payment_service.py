import pytest

from layaway.config import DepositPolicy
from layaway.errors import InvalidStateError, NotFoundError, OverpaymentError, ValidationError
from layaway.models import CashMovement, DepositPayment
from layaway.services import cash_service, deposit_service, lifecycle_service, payment_service

ACTOR_ID = 7


@pytest.fixture
def open_order(make_product, make_order):
    product = make_product(price_cents=100, on_hand=1)
    return make_order({"items": [{"product_id": product.id, "quantity": 1}]})


def test_partial_payment_then_overpayment_is_rejected(db_session, open_order, policy):
    payment = payment_service.record_payment(open_order.id, 60, "cash", received_by=ACTOR_ID, policy=policy)

    assert payment.id is not None
    assert payment.order.balance_due_cents == 40

    with pytest.raises(OverpaymentError) as excinfo:
        payment_service.record_payment(open_order.id, 50, "cash", received_by=ACTOR_ID, policy=policy)

    assert excinfo.value.details["remaining_cents"] == 40
    assert excinfo.value.details["amount_cents"] == 50
    order = deposit_service.get_order(open_order.id)
    assert order.amount_paid_cents == 60
    assert len(order.payments) == 1


def test_overpayment_tolerance_allows_small_excess(db_session, open_order):
    lenient = DepositPolicy(overpayment_tolerance_cents=5)

    payment_service.record_payment(open_order.id, 104, "card", received_by=ACTOR_ID, policy=lenient)

    order = deposit_service.get_order(open_order.id)
    assert order.amount_paid_cents == 104
    assert order.balance_due_cents == 0


def test_overpayment_tolerance_is_cumulative(db_session, open_order):
    lenient = DepositPolicy(overpayment_tolerance_cents=10)

    payment_service.record_payment(open_order.id, 105, "card", received_by=ACTOR_ID, policy=lenient)
    payment_service.record_payment(open_order.id, 5, "card", received_by=ACTOR_ID, policy=lenient)

    for amount in (10, 1):
        with pytest.raises(OverpaymentError) as excinfo:
            payment_service.record_payment(open_order.id, amount, "card", received_by=ACTOR_ID, policy=lenient)
        assert excinfo.value.details["remaining_cents"] == 0

    order = deposit_service.get_order(open_order.id)
    assert order.amount_paid_cents == 110
    assert len(order.payments) == 2


@pytest.mark.parametrize("amount", [0, -10, 12.5, True])
def test_non_positive_or_non_integer_amounts_rejected(db_session, open_order, policy, amount):
    with pytest.raises(ValidationError):
        payment_service.record_payment(open_order.id, amount, "cash", received_by=ACTOR_ID, policy=policy)

    assert deposit_service.get_order(open_order.id).payments == []


def test_unknown_method_rejected(db_session, open_order, policy):
    with pytest.raises(ValidationError) as excinfo:
        payment_service.record_payment(open_order.id, 10, "cheque", received_by=ACTOR_ID, policy=policy)

    assert excinfo.value.details["field"] == "method"


def test_payment_on_missing_order(db_session, policy):
    with pytest.raises(NotFoundError):
        payment_service.record_payment(12345, 10, "cash", received_by=ACTOR_ID, policy=policy)


def test_payment_on_closed_order_rejected(db_session, open_order, policy):
    lifecycle_service.cancel_order(open_order.id, actor_id=ACTOR_ID)

    with pytest.raises(InvalidStateError) as excinfo:
        payment_service.record_payment(open_order.id, 10, "cash", received_by=ACTOR_ID, policy=policy)

    assert excinfo.value.details["status"] == "cancelled"


def test_cash_payment_emits_cash_in_movement(db_session, open_order, policy):
    payment_service.record_payment(open_order.id, 30, "cash", received_by=ACTOR_ID, policy=policy)
    payment_service.record_payment(open_order.id, 20, "card", received_by=ACTOR_ID, policy=policy)

    movements = db_session.query(CashMovement).all()
    assert len(movements) == 1
    assert movements[0].movement_type == "deposit_cash_in"
    assert movements[0].direction == "IN"
    assert movements[0].amount_cents == 30
    assert movements[0].reference == open_order.document_number
    assert movements[0].acknowledged_at is None


def test_payment_history_has_running_balance(db_session, make_product, make_order, policy):
    product = make_product(price_cents=1000, on_hand=1)
    order = make_order({
        "items": [{"product_id": product.id, "quantity": 1}],
        "part_exchanges": [{"product_name": "Old chain", "allowance_cents": 200}],
    })
    for amount in (300, 250, 250):
        payment_service.record_payment(order.id, amount, "transfer", received_by=ACTOR_ID, policy=policy)

    summary = payment_service.get_payment_summary(order.id)

    assert summary["payable_total_cents"] == 800
    assert summary["amount_paid_cents"] == 800
    assert summary["balance_due_cents"] == 0
    assert [p["balance_after_cents"] for p in summary["payments"]] == [500, 250, 0]


def test_payments_are_immutable(db_session, open_order, policy):
    payment = payment_service.record_payment(open_order.id, 10, "cash", received_by=ACTOR_ID, policy=policy)

    payment.amount_cents = 99
    with pytest.raises(ValueError, match="immutable"):
        db_session.flush()
    db_session.rollback()

    payment = db_session.get(DepositPayment, payment.id)
    db_session.delete(payment)
    with pytest.raises(ValueError, match="immutable"):
        db_session.flush()
    db_session.rollback()

    assert db_session.get(DepositPayment, payment.id).amount_cents == 10


def test_acknowledge_cash_movements(db_session, open_order, policy):
    payment_service.record_payment(open_order.id, 30, "cash", received_by=ACTOR_ID, policy=policy)
    pending = cash_service.list_pending_cash_movements()
    assert len(pending) == 1

    acked = cash_service.acknowledge_cash_movements([pending[0].id])
    first_ack = acked[0].acknowledged_at
    assert first_ack is not None
    assert cash_service.list_pending_cash_movements() == []

    again = cash_service.acknowledge_cash_movements([pending[0].id])
    assert again[0].acknowledged_at == first_ack

    with pytest.raises(NotFoundError):
        cash_service.acknowledge_cash_movements([pending[0].id, 9999])
