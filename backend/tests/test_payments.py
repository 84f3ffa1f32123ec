# Overview: Pytest coverage for the payment ledger.

"""
Payment Ledger Tests

Covers:
- Split payments and payment status derivation (PENDING/PARTIAL/PAID)
- Over-payment rejection with the remaining balance, nothing written
- Auto-completion of SERVED orders on settlement, with table release
- Receipt numbers minted with the payment; no active series is a config error
- Shift attribution happens once and is not overwritten
- Voids recompute the order status from the remaining payments
- Concurrent payments never exceed the order total
"""

import threading

import pytest
from conftest import make_restaurant, make_user
from rpos.errors import ConfigurationError, NotFoundError, SettlementError
from rpos.extensions import db
from rpos.models import CashRegisterShift, DiningTable, Order, Payment
from rpos.services import cash_register_service, order_service, payment_service, receipt_service
from rpos.services.payment_service import OverpaymentError, PaymentError


def _order(restaurant, user, total_cents=10000, **kwargs):
    return order_service.create_order(restaurant.id, user.id, subtotal_cents=total_cents, **kwargs)


def _payment_count(db_session, order_id):
    return db_session.query(Payment).filter_by(order_id=order_id).count()


class TestSplitPayments:
    def test_partial_then_paid(self, db_session, restaurant_a, cashier_a):
        """100.00 order: 60.00 -> PARTIAL (40.00 left), then 40.00 -> PAID."""
        order = _order(restaurant_a, cashier_a)

        payment, order = payment_service.register_payment(restaurant_a.id, order.id, cashier_a.id, "CASH", 6000)
        assert payment.status == "COMPLETED"
        assert order.payment_status == "PARTIAL"
        assert payment_service.get_payment_summary(restaurant_a.id, order.id)["remaining_cents"] == 4000

        _, order = payment_service.register_payment(restaurant_a.id, order.id, cashier_a.id, "CARD", 4000)
        assert order.payment_status == "PAID"
        assert order.amount_paid_cents == 10000
        assert order.amount_due_cents == 0

    def test_paid_served_order_auto_completes(self, db_session, restaurant_a, cashier_a, table_a):
        order = _order(restaurant_a, cashier_a, table_id=table_a.id)
        order_service.transition_order_status(restaurant_a.id, order.id, "SERVED")

        payment_service.register_payment(restaurant_a.id, order.id, cashier_a.id, "CASH", 6000)
        _, order = payment_service.register_payment(restaurant_a.id, order.id, cashier_a.id, "CASH", 4000)

        assert order.status == "COMPLETED"
        assert order.completed_at is not None
        db_session.expire_all()
        assert db_session.get(DiningTable, table_a.id).status == "AVAILABLE"

    def test_paid_order_not_yet_served_keeps_status(self, db_session, restaurant_a, cashier_a):
        order = _order(restaurant_a, cashier_a)
        order_service.transition_order_status(restaurant_a.id, order.id, "PREPARING")

        _, order = payment_service.register_payment(restaurant_a.id, order.id, cashier_a.id, "CASH", 10000)

        assert order.payment_status == "PAID"
        assert order.status == "PREPARING"
        assert order.completed_at is None


class TestOverpayment:
    def test_overpayment_rejected_with_remaining(self, db_session, restaurant_a, cashier_a):
        """100.00 order with 80.00 paid: 50.00 is rejected, 20.00 reported."""
        order = _order(restaurant_a, cashier_a)
        payment_service.register_payment(restaurant_a.id, order.id, cashier_a.id, "CASH", 8000)

        with pytest.raises(OverpaymentError) as excinfo:
            payment_service.register_payment(restaurant_a.id, order.id, cashier_a.id, "CASH", 5000)

        assert excinfo.value.remaining_cents == 2000
        assert excinfo.value.details == {"remaining_cents": 2000}
        assert _payment_count(db_session, order.id) == 1
        db_session.expire_all()
        assert db_session.get(Order, order.id).amount_paid_cents == 8000

    def test_non_positive_amount_rejected(self, db_session, restaurant_a, cashier_a):
        order = _order(restaurant_a, cashier_a)
        with pytest.raises(SettlementError):
            payment_service.register_payment(restaurant_a.id, order.id, cashier_a.id, "CASH", 0)

    def test_unknown_method_rejected(self, db_session, restaurant_a, cashier_a):
        order = _order(restaurant_a, cashier_a)
        with pytest.raises(PaymentError):
            payment_service.register_payment(restaurant_a.id, order.id, cashier_a.id, "BITCOIN", 100)

    def test_cancelled_order_rejects_payment(self, db_session, restaurant_a, cashier_a):
        order = _order(restaurant_a, cashier_a)
        order_service.transition_order_status(restaurant_a.id, order.id, "CANCELLED")

        with pytest.raises(PaymentError):
            payment_service.register_payment(restaurant_a.id, order.id, cashier_a.id, "CASH", 100)

    def test_cross_tenant_order_is_not_found(self, db_session, restaurant_a, restaurant_b, cashier_a, admin_b):
        order = _order(restaurant_a, cashier_a)
        with pytest.raises(NotFoundError):
            payment_service.register_payment(restaurant_b.id, order.id, admin_b.id, "CASH", 100)


class TestReceipts:
    def test_receipt_number_minted_with_payment(self, db_session, restaurant_a, cashier_a, boleta_series_a):
        order = _order(restaurant_a, cashier_a)

        first, _ = payment_service.register_payment(
            restaurant_a.id, order.id, cashier_a.id, "CASH", 3000,
            receipt_type="BOLETA", customer_doc="12345678",
        )
        second, _ = payment_service.register_payment(
            restaurant_a.id, order.id, cashier_a.id, "CARD", 3000,
            receipt_type="boleta", customer_doc="12345678",
        )

        assert first.receipt_number == "B001-00000001"
        assert second.receipt_number == "B001-00000002"

    def test_no_active_series_is_configuration_error(self, db_session, restaurant_a, cashier_a):
        order = _order(restaurant_a, cashier_a)

        with pytest.raises(ConfigurationError):
            payment_service.register_payment(
                restaurant_a.id, order.id, cashier_a.id, "CASH", 3000, receipt_type="TICKET",
            )
        assert _payment_count(db_session, order.id) == 0

    def test_factura_requires_customer_identity(self, db_session, restaurant_a, cashier_a):
        order = _order(restaurant_a, cashier_a)
        with pytest.raises(PaymentError):
            payment_service.register_payment(
                restaurant_a.id, order.id, cashier_a.id, "CASH", 3000,
                receipt_type="FACTURA", customer_doc="20123456789",
            )

    def test_rejected_payment_does_not_consume_a_number(self, db_session, restaurant_a, cashier_a, boleta_series_a):
        order = _order(restaurant_a, cashier_a, total_cents=1000)

        with pytest.raises(OverpaymentError):
            payment_service.register_payment(
                restaurant_a.id, order.id, cashier_a.id, "CASH", 5000,
                receipt_type="BOLETA", customer_doc="12345678",
            )

        preview = receipt_service.preview_next_number(restaurant_a.id, "BOLETA")
        assert preview["formatted"] == "B001-00000001"


class TestShiftAttribution:
    def test_first_payment_attributes_order_to_open_shift(self, db_session, restaurant_a, cashier_a, manager_a):
        shift = cash_register_service.open_shift(restaurant_a.id, cashier_a.id, 20000, "MORNING")
        order = _order(restaurant_a, cashier_a)

        _, order = payment_service.register_payment(restaurant_a.id, order.id, cashier_a.id, "CASH", 5000)
        assert order.cash_register_shift_id == shift.id

        other_shift = cash_register_service.open_shift(restaurant_a.id, manager_a.id, 0, "MORNING")
        _, order = payment_service.register_payment(restaurant_a.id, order.id, manager_a.id, "CASH", 5000)

        assert order.cash_register_shift_id == shift.id
        assert order.cash_register_shift_id != other_shift.id

    def test_shift_closed_first_is_not_attributed(self, db_session, restaurant_a, cashier_a, monkeypatch):
        shift = cash_register_service.open_shift(restaurant_a.id, cashier_a.id, 20000, "MORNING")
        shift_id = shift.id
        cash_register_service.close_shift(restaurant_a.id, shift_id, cashier_a.id, counted_cash_cents=20000)

        # Lookup that read the shift just before the close committed
        stale = db_session.get(CashRegisterShift, shift_id)
        monkeypatch.setattr(payment_service, "get_user_open_shift", lambda user_id: stale)
        order = _order(restaurant_a, cashier_a)

        _, order = payment_service.register_payment(restaurant_a.id, order.id, cashier_a.id, "CASH", 5000)

        assert order.cash_register_shift_id is None
        closed = db_session.get(CashRegisterShift, shift_id)
        assert closed.expected_cash_cents == 20000
        assert cash_register_service.compute_expected_cash(closed) == 20000

    def test_payment_on_attributed_order_after_close_stays_out_of_drawer(self, db_session, restaurant_a, cashier_a):
        shift = cash_register_service.open_shift(restaurant_a.id, cashier_a.id, 0, "MORNING")
        shift_id = shift.id
        order = _order(restaurant_a, cashier_a)
        payment_service.register_payment(restaurant_a.id, order.id, cashier_a.id, "CASH", 4000)
        cash_register_service.close_shift(restaurant_a.id, shift_id, cashier_a.id, counted_cash_cents=4000)

        payment_service.register_payment(restaurant_a.id, order.id, cashier_a.id, "CASH", 6000)

        closed = db_session.get(CashRegisterShift, shift_id)
        assert closed.expected_cash_cents == 4000
        assert cash_register_service.compute_expected_cash(closed) == 4000

    def test_no_open_shift_leaves_order_unattributed(self, db_session, restaurant_a, cashier_a):
        order = _order(restaurant_a, cashier_a)
        _, order = payment_service.register_payment(restaurant_a.id, order.id, cashier_a.id, "CARD", 5000)
        assert order.cash_register_shift_id is None


class TestVoids:
    def test_void_recomputes_status(self, db_session, restaurant_a, cashier_a, manager_a):
        order = _order(restaurant_a, cashier_a)
        first, _ = payment_service.register_payment(restaurant_a.id, order.id, cashier_a.id, "CASH", 6000)
        payment_service.register_payment(restaurant_a.id, order.id, cashier_a.id, "CASH", 4000)

        payment, order = payment_service.void_payment(restaurant_a.id, first.id, manager_a.id, "Wrong order")

        assert payment.status == "VOIDED"
        assert payment.voided_by_user_id == manager_a.id
        assert order.payment_status == "PARTIAL"
        assert order.amount_paid_cents == 4000

        # The freed balance can be paid again
        _, order = payment_service.register_payment(restaurant_a.id, order.id, cashier_a.id, "CARD", 6000)
        assert order.payment_status == "PAID"

    def test_void_twice_rejected(self, db_session, restaurant_a, cashier_a, manager_a):
        order = _order(restaurant_a, cashier_a)
        payment, _ = payment_service.register_payment(restaurant_a.id, order.id, cashier_a.id, "CASH", 6000)
        payment_service.void_payment(restaurant_a.id, payment.id, manager_a.id, "Duplicate")

        with pytest.raises(PaymentError):
            payment_service.void_payment(restaurant_a.id, payment.id, manager_a.id, "Again")

    def test_void_requires_reason(self, db_session, restaurant_a, cashier_a, manager_a):
        order = _order(restaurant_a, cashier_a)
        payment, _ = payment_service.register_payment(restaurant_a.id, order.id, cashier_a.id, "CASH", 6000)

        with pytest.raises(PaymentError):
            payment_service.void_payment(restaurant_a.id, payment.id, manager_a.id, "  ")

    def test_voided_payments_hidden_by_default(self, db_session, restaurant_a, cashier_a, manager_a):
        order = _order(restaurant_a, cashier_a)
        payment, _ = payment_service.register_payment(restaurant_a.id, order.id, cashier_a.id, "CASH", 6000)
        payment_service.void_payment(restaurant_a.id, payment.id, manager_a.id, "Duplicate")

        assert payment_service.get_order_payments(restaurant_a.id, order.id) == []
        assert len(payment_service.get_order_payments(restaurant_a.id, order.id, include_voided=True)) == 1


class TestPaymentHistory:
    def test_history_filters_and_paginates(self, db_session, restaurant_a, cashier_a):
        for _ in range(3):
            order = _order(restaurant_a, cashier_a, total_cents=1000)
            payment_service.register_payment(restaurant_a.id, order.id, cashier_a.id, "CASH", 1000)
        order = _order(restaurant_a, cashier_a, total_cents=1000)
        payment_service.register_payment(restaurant_a.id, order.id, cashier_a.id, "CARD", 1000)

        page = payment_service.get_payment_history(restaurant_a.id, page=1, limit=2, method="cash")
        assert page["meta"] == {"total": 3, "page": 1, "limit": 2, "total_pages": 2}
        assert len(page["data"]) == 2

        search = payment_service.get_payment_history(restaurant_a.id, search="PAY-0004")
        assert [p["method"] for p in search["data"]] == ["CARD"]


class TestConcurrentPayments:
    def test_concurrent_payments_never_exceed_total(self, file_app):
        with file_app.app_context():
            restaurant = make_restaurant(db.session, "Concurrency", "CONC")
            cashier = make_user(db.session, restaurant, "CASHIER", "cashier@conc.test")
            order = _order(restaurant, cashier, total_cents=10000)
            restaurant_id, cashier_id, order_id = restaurant.id, cashier.id, order.id

        successes = []
        errors = []
        lock = threading.Lock()

        def worker():
            with file_app.app_context():
                try:
                    payment_service.register_payment(restaurant_id, order_id, cashier_id, "CASH", 6000)
                    with lock:
                        successes.append(True)
                except SettlementError as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(successes) == 1
        assert len(errors) == 3

        with file_app.app_context():
            assert payment_service.completed_total(order_id) == 6000
            assert db.session.get(Order, order_id).amount_paid_cents == 6000
