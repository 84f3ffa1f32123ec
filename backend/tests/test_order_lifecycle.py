# Overview: Pytest coverage for the order lifecycle state machine and table release.

"""
Order Lifecycle Tests

Covers:
- Order creation (numbering, totals, table occupancy)
- Forward-only transitions with skipping, cancellation, terminal states
- Per-transition timestamps
- Table release only when no other active order holds the table
- A table freed while a new order is seated ends up occupied
- Kitchen queue, pending-payment queue and the kitchen watcher
"""

import threading

import pytest
from conftest import make_restaurant, make_user
from sqlalchemy import update
from rpos.errors import NotFoundError, SettlementError, ValidationError
from rpos.extensions import db
from rpos.models import DiningTable
from rpos.services import order_service
from rpos.services.order_service import OrderError


def _table_status(db_session, table_id):
    db_session.expire_all()
    return db_session.get(DiningTable, table_id).status


class TestOrderCreation:
    def test_create_order_computes_total_and_numbers(self, db_session, restaurant_a, waiter_a):
        order = order_service.create_order(
            restaurant_a.id, waiter_a.id, subtotal_cents=8000, tax_cents=1440, tip_cents=560,
        )

        assert order.status == "PENDING"
        assert order.payment_status == "PENDING"
        assert order.total_cents == 10000
        assert order.discount_cents == 0
        assert order.order_number == "O-0001"
        assert order.payment_code == "PAY-0001"

    def test_order_numbers_are_sequential_per_restaurant(self, db_session, restaurant_a, restaurant_b, waiter_a, admin_b):
        first = order_service.create_order(restaurant_a.id, waiter_a.id, 1000)
        second = order_service.create_order(restaurant_a.id, waiter_a.id, 1000)
        other = order_service.create_order(restaurant_b.id, admin_b.id, 1000)

        assert first.order_number == "O-0001"
        assert second.order_number == "O-0002"
        assert other.order_number == "O-0001"

    def test_create_order_occupies_table(self, db_session, restaurant_a, waiter_a, table_a):
        order_service.create_order(restaurant_a.id, waiter_a.id, 1000, table_id=table_a.id)
        assert _table_status(db_session, table_a.id) == "OCCUPIED"

    def test_foreign_table_is_not_found(self, db_session, restaurant_a, restaurant_b, admin_b, table_a):
        with pytest.raises(NotFoundError):
            order_service.create_order(restaurant_b.id, admin_b.id, 1000, table_id=table_a.id)

    def test_negative_amount_rejected(self, db_session, restaurant_a, waiter_a):
        with pytest.raises(ValidationError):
            order_service.create_order(restaurant_a.id, waiter_a.id, -100)

    def test_fractional_amount_rejected(self, db_session, restaurant_a, waiter_a):
        with pytest.raises(ValidationError):
            order_service.create_order(restaurant_a.id, waiter_a.id, 10.5)

    def test_total_above_maximum_rejected(self, db_session, restaurant_a, waiter_a):
        with pytest.raises(ValidationError):
            order_service.create_order(restaurant_a.id, waiter_a.id, 999_999_999, tax_cents=1)

    def test_total_at_maximum_accepted(self, db_session, restaurant_a, waiter_a):
        order = order_service.create_order(restaurant_a.id, waiter_a.id, 999_999_000, tax_cents=900, tip_cents=99)
        assert order.total_cents == 999_999_999

    def test_invalid_order_type_rejected(self, db_session, restaurant_a, waiter_a):
        with pytest.raises(OrderError):
            order_service.create_order(restaurant_a.id, waiter_a.id, 1000, order_type="DRIVE_THRU")


class TestTransitions:
    def test_forward_transitions_stamp_timestamps(self, db_session, restaurant_a, waiter_a):
        order = order_service.create_order(restaurant_a.id, waiter_a.id, 1000)

        for status, field in (
            ("CONFIRMED", "confirmed_at"),
            ("PREPARING", "preparing_at"),
            ("READY", "ready_at"),
            ("SERVED", "served_at"),
            ("COMPLETED", "completed_at"),
        ):
            order = order_service.transition_order_status(restaurant_a.id, order.id, status)
            assert order.status == status
            assert getattr(order, field) is not None

    def test_skipping_states_only_stamps_target(self, db_session, restaurant_a, waiter_a):
        order = order_service.create_order(restaurant_a.id, waiter_a.id, 1000)
        order = order_service.transition_order_status(restaurant_a.id, order.id, "SERVED")

        assert order.served_at is not None
        assert order.confirmed_at is None
        assert order.preparing_at is None

    def test_backward_transition_rejected(self, db_session, restaurant_a, waiter_a):
        order = order_service.create_order(restaurant_a.id, waiter_a.id, 1000)
        order_service.transition_order_status(restaurant_a.id, order.id, "READY")

        with pytest.raises(OrderError):
            order_service.transition_order_status(restaurant_a.id, order.id, "PREPARING")

    def test_same_status_rejected(self, db_session, restaurant_a, waiter_a):
        order = order_service.create_order(restaurant_a.id, waiter_a.id, 1000)
        with pytest.raises(OrderError):
            order_service.transition_order_status(restaurant_a.id, order.id, "PENDING")

    def test_cancel_from_non_terminal(self, db_session, restaurant_a, waiter_a):
        order = order_service.create_order(restaurant_a.id, waiter_a.id, 1000)
        order_service.transition_order_status(restaurant_a.id, order.id, "PREPARING")
        order = order_service.transition_order_status(restaurant_a.id, order.id, "cancelled")

        assert order.status == "CANCELLED"
        assert order.cancelled_at is not None

    @pytest.mark.parametrize("terminal", ["COMPLETED", "CANCELLED"])
    def test_terminal_orders_cannot_move(self, db_session, restaurant_a, waiter_a, terminal):
        order = order_service.create_order(restaurant_a.id, waiter_a.id, 1000)
        order_service.transition_order_status(restaurant_a.id, order.id, terminal)

        with pytest.raises(OrderError):
            order_service.transition_order_status(restaurant_a.id, order.id, "CANCELLED")

    def test_unknown_status_rejected(self, db_session, restaurant_a, waiter_a):
        order = order_service.create_order(restaurant_a.id, waiter_a.id, 1000)
        with pytest.raises(OrderError):
            order_service.transition_order_status(restaurant_a.id, order.id, "EATEN")

    def test_cross_tenant_order_is_not_found(self, db_session, restaurant_a, restaurant_b, waiter_a):
        order = order_service.create_order(restaurant_a.id, waiter_a.id, 1000)
        with pytest.raises(NotFoundError):
            order_service.transition_order_status(restaurant_b.id, order.id, "CONFIRMED")


class TestTableRelease:
    def test_terminal_status_releases_table(self, db_session, restaurant_a, waiter_a, table_a):
        order = order_service.create_order(restaurant_a.id, waiter_a.id, 1000, table_id=table_a.id)
        order_service.transition_order_status(restaurant_a.id, order.id, "CANCELLED")

        assert _table_status(db_session, table_a.id) == "AVAILABLE"

    def test_table_stays_occupied_while_another_order_is_active(self, db_session, restaurant_a, waiter_a, table_a):
        first = order_service.create_order(restaurant_a.id, waiter_a.id, 1000, table_id=table_a.id)
        second = order_service.create_order(restaurant_a.id, waiter_a.id, 2000, table_id=table_a.id)

        order_service.transition_order_status(restaurant_a.id, first.id, "COMPLETED")
        assert _table_status(db_session, table_a.id) == "OCCUPIED"

        order_service.transition_order_status(restaurant_a.id, second.id, "CANCELLED")
        assert _table_status(db_session, table_a.id) == "AVAILABLE"

    def test_non_terminal_transition_keeps_table(self, db_session, restaurant_a, waiter_a, table_a):
        order = order_service.create_order(restaurant_a.id, waiter_a.id, 1000, table_id=table_a.id)
        order_service.transition_order_status(restaurant_a.id, order.id, "SERVED")

        assert _table_status(db_session, table_a.id) == "OCCUPIED"

    def test_new_order_reoccupies_table_freed_after_it_was_read(self, db_session, restaurant_a, waiter_a, table_a):
        order_service.create_order(restaurant_a.id, waiter_a.id, 1000, table_id=table_a.id)
        assert db_session.get(DiningTable, table_a.id).status == "OCCUPIED"

        # Freed by another writer after this session loaded the table
        db_session.execute(
            update(DiningTable)
            .where(DiningTable.id == table_a.id)
            .values(status="AVAILABLE")
            .execution_options(synchronize_session=False)
        )

        order_service.create_order(restaurant_a.id, waiter_a.id, 2000, table_id=table_a.id)
        assert _table_status(db_session, table_a.id) == "OCCUPIED"


class TestQueues:
    def test_kitchen_queue_and_pending_payment(self, db_session, restaurant_a, waiter_a):
        pending = order_service.create_order(restaurant_a.id, waiter_a.id, 1000)
        served = order_service.create_order(restaurant_a.id, waiter_a.id, 1000)
        order_service.transition_order_status(restaurant_a.id, served.id, "SERVED")
        cancelled = order_service.create_order(restaurant_a.id, waiter_a.id, 1000)
        order_service.transition_order_status(restaurant_a.id, cancelled.id, "CANCELLED")

        kitchen_ids = [o.id for o in order_service.get_kitchen_orders(restaurant_a.id)]
        pending_payment_ids = [o.id for o in order_service.get_pending_payment_orders(restaurant_a.id)]

        assert kitchen_ids == [pending.id]
        assert pending_payment_ids == [served.id]

    def test_lookup_by_payment_code_is_case_insensitive(self, db_session, restaurant_a, waiter_a):
        order = order_service.create_order(restaurant_a.id, waiter_a.id, 1000)
        found = order_service.get_order_by_payment_code(restaurant_a.id, "pay-0001")
        assert found.id == order.id

    def test_lookup_by_unknown_payment_code(self, db_session, restaurant_a):
        with pytest.raises(NotFoundError):
            order_service.get_order_by_payment_code(restaurant_a.id, "PAY-9999")


class TestKitchenWatcher:
    def test_poll_reports_each_new_order_once(self, db_session, restaurant_a, waiter_a):
        watcher = order_service.KitchenOrderWatcher(restaurant_a.id)
        first = order_service.create_order(restaurant_a.id, waiter_a.id, 1000)

        assert [o.id for o in watcher.poll()] == [first.id]
        assert watcher.poll() == []

        second = order_service.create_order(restaurant_a.id, waiter_a.id, 1000)
        assert [o.id for o in watcher.poll()] == [second.id]

    def test_prime_skips_existing_orders(self, db_session, restaurant_a, waiter_a):
        order_service.create_order(restaurant_a.id, waiter_a.id, 1000)
        watcher = order_service.KitchenOrderWatcher(restaurant_a.id)
        watcher.prime()

        assert watcher.poll() == []

    def test_run_stops_after_max_polls(self, db_session, restaurant_a, waiter_a):
        order_service.create_order(restaurant_a.id, waiter_a.id, 1000)
        announced = []

        watcher = order_service.KitchenOrderWatcher(restaurant_a.id)
        watcher.run(announced.extend, interval=0, max_polls=2)

        assert len(announced) == 1


class TestConcurrentSeating:
    def test_table_stays_occupied_when_seating_races_release(self, file_app):
        with file_app.app_context():
            restaurant = make_restaurant(db.session, "Seating", "SEAT")
            waiter = make_user(db.session, restaurant, "WAITER", "waiter@seat.test")
            table = DiningTable(restaurant_id=restaurant.id, number="7", capacity=2, status="AVAILABLE")
            db.session.add(table)
            db.session.commit()
            current = order_service.create_order(restaurant.id, waiter.id, 1000, table_id=table.id)
            restaurant_id, waiter_id, table_id, current_id = restaurant.id, waiter.id, table.id, current.id

        errors = []
        seated = []
        lock = threading.Lock()

        def finish(order_id, start):
            with file_app.app_context():
                try:
                    start.wait()
                    order_service.transition_order_status(restaurant_id, order_id, "COMPLETED")
                except SettlementError as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        def seat(start):
            with file_app.app_context():
                try:
                    start.wait()
                    order = order_service.create_order(restaurant_id, waiter_id, 1000, table_id=table_id)
                    with lock:
                        seated.append(order.id)
                except SettlementError as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        for _ in range(5):
            start = threading.Barrier(2)
            threads = [
                threading.Thread(target=finish, args=(current_id, start)),
                threading.Thread(target=seat, args=(start,)),
            ]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

            assert errors == []
            with file_app.app_context():
                assert db.session.get(DiningTable, table_id).status == "OCCUPIED"
                db.session.remove()
            current_id = seated[-1]
