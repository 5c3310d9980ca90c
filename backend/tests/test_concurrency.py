# Overview: Threaded concurrency tests for deposit order transitions against a file-backed SQLite database.

"""
Concurrency tests for the deposit engine.

Each worker runs in its own app context (and therefore its own session and
connection) against a temporary SQLite file, so the database write lock is
really contended.
"""
import os
import tempfile
import threading
import unittest

from layaway import create_app
from layaway.config import DepositPolicy
from layaway.errors import InsufficientStockError, InvalidStateError
from layaway.extensions import db
from layaway.models import DepositOrder, Product, Sale, StockItem
from layaway.services import inventory_service, lifecycle_service, payment_service
from layaway.validation import parse_create_order

ACTOR_ID = 7


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "LOCK_TIMEOUT_SECONDS": 10,
        })
        self.policy = DepositPolicy(lock_retry_attempts=5)

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            product = Product(
                sku="CONCUR-1",
                name="Concurrent Ring",
                price_cents=1000,
                unit_cost_cents=400,
                track_stock=True,
                is_active=True,
            )
            db.session.add(product)
            db.session.flush()
            db.session.add(StockItem(product_id=product.id, quantity_on_hand=1))
            db.session.commit()
            self.product_id = product.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _create_paid_order(self) -> int:
        with self.app.app_context():
            order = lifecycle_service.create_order(
                parse_create_order({
                    "items": [{"product_id": self.product_id, "quantity": 1}],
                    "initial_payment": {"amount_cents": 1000, "method": "cash"},
                }),
                actor_id=ACTOR_ID,
                policy=self.policy,
            )
            return order.id

    def _run_workers(self, *targets):
        results = []
        lock = threading.Lock()
        barrier = threading.Barrier(len(targets))

        def run(target):
            with self.app.app_context():
                try:
                    barrier.wait()
                    outcome = target()
                    with lock:
                        results.append(("ok", outcome))
                except Exception as exc:
                    with lock:
                        results.append(("error", exc))
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=run, args=(t,)) for t in targets]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results

    def test_concurrent_completes_create_one_sale(self):
        order_id = self._create_paid_order()

        def complete():
            return lifecycle_service.complete_order(order_id, actor_id=ACTOR_ID, policy=self.policy).sale.id

        results = self._run_workers(complete, complete)

        successes = [value for status, value in results if status == "ok"]
        errors = [value for status, value in results if status == "error"]
        self.assertEqual(len(successes), 1)
        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], InvalidStateError)

        with self.app.app_context():
            self.assertEqual(db.session.query(Sale).count(), 1)
            self.assertEqual(inventory_service.get_quantity_on_hand(self.product_id), 0)

    def test_complete_races_void(self):
        order_id = self._create_paid_order()

        def complete():
            return lifecycle_service.complete_order(order_id, actor_id=ACTOR_ID, policy=self.policy).order.status

        def void():
            return lifecycle_service.void_order(order_id, actor_id=ACTOR_ID, attempts=5).order.status

        results = self._run_workers(complete, void)

        successes = [value for status, value in results if status == "ok"]
        errors = [value for status, value in results if status == "error"]
        self.assertEqual(len(successes), 1)
        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], InvalidStateError)

        with self.app.app_context():
            order = db.session.get(DepositOrder, order_id)
            self.assertEqual(order.status, successes[0])
            sales = db.session.query(Sale).count()
            on_hand = inventory_service.get_quantity_on_hand(self.product_id)
            if order.status == DepositOrder.STATUS_COMPLETED:
                self.assertEqual((sales, on_hand), (1, 0))
            else:
                self.assertEqual((sales, on_hand), (0, 1))
                self.assertEqual(order.refund_due_cents, 1000)

    def test_concurrent_creates_for_last_unit(self):
        def create():
            return lifecycle_service.create_order(
                parse_create_order({"items": [{"product_id": self.product_id, "quantity": 1}]}),
                actor_id=ACTOR_ID,
                policy=self.policy,
            ).id

        results = self._run_workers(create, create, create)

        successes = [value for status, value in results if status == "ok"]
        errors = [value for status, value in results if status == "error"]
        self.assertEqual(len(successes), 1)
        self.assertEqual(len(errors), 2)
        for exc in errors:
            self.assertIsInstance(exc, InsufficientStockError)

        with self.app.app_context():
            self.assertEqual(inventory_service.get_reserved_quantity(self.product_id), 1)
            self.assertEqual(db.session.query(DepositOrder).count(), 1)

    def test_concurrent_payments_never_overpay(self):
        with self.app.app_context():
            order_id = lifecycle_service.create_order(
                parse_create_order({"items": [{"product_id": self.product_id, "quantity": 1}]}),
                actor_id=ACTOR_ID,
                policy=self.policy,
            ).id

        def pay():
            return payment_service.record_payment(
                order_id, 600, "card", received_by=ACTOR_ID, policy=self.policy
            ).amount_cents

        results = self._run_workers(pay, pay)

        self.assertEqual(sum(1 for status, _ in results if status == "ok"), 1)
        with self.app.app_context():
            order = db.session.get(DepositOrder, order_id)
            self.assertEqual(order.amount_paid_cents, 600)
            self.assertEqual(order.balance_due_cents, 400)


if __name__ == "__main__":
    unittest.main()
