# Overview: Thread-based concurrency checks against a file-backed SQLite database.

"""
Concurrency tests for stockroom.

Each test gets its own on-disk database so worker threads use real,
separate connections. Workers push their own app context and always
remove their session.
"""
import os
import tempfile
import threading
import unittest
from decimal import Decimal

from stockroom import create_app
from stockroom.errors import CapExceededError, InsufficientStockError
from stockroom.extensions import db
from stockroom.services import (
    inventory_service,
    products_service,
    purchase_service,
    return_service,
    sales_service,
)


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "RETRY_ATTEMPTS": 10,
            "RETRY_BACKOFF_SECONDS": 0.01,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            product = products_service.create_product({
                "name": "Concurrent Product",
                "base_unit": "pc",
                "retail_price": "10",
            })
            products_service.add_package_unit(product.id, {"name": "box", "conversion_rate": "5"})
            self.product_id = product.id

            order = purchase_service.create_purchase_order(
                supplier="Seed",
                items=[{"product_id": self.product_id, "quantity": 2, "unit": "box"}],
            )
            purchase_service.confirm_purchase_order(order.id)

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_parallel(self, target, args_list):
        results = []
        lock = threading.Lock()

        def worker(*args):
            with self.app.app_context():
                try:
                    value = target(*args)
                    with lock:
                        results.append(value)
                except Exception as exc:
                    with lock:
                        results.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker, args=args) for args in args_list]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results

    def _sales_order(self, quantity, unit="pc"):
        with self.app.app_context():
            order = sales_service.create_sales_order(
                items=[{"product_id": self.product_id, "quantity": quantity, "unit": unit}]
            )
            return order.id

    def test_order_numbers_are_unique(self):
        # first number of the day already allocated by the seed order
        def create():
            order = purchase_service.create_purchase_order(
                supplier="Parallel",
                items=[{"product_id": self.product_id, "quantity": 1, "unit": "pc"}],
            )
            return order.order_number

        results = self._run_parallel(create, [() for _ in range(8)])

        errors = [r for r in results if isinstance(r, Exception)]
        self.assertFalse(errors)
        self.assertEqual(len(results), len(set(results)))

    def test_concurrent_confirm_cannot_oversell(self):
        first = self._sales_order(6)
        second = self._sales_order(6)

        def confirm(order_id):
            sales_service.confirm_sales_order(order_id)
            return "confirmed"

        results = self._run_parallel(confirm, [(first,), (second,)])

        with self.app.app_context():
            balance = inventory_service.get_balance(self.product_id)
            ledger = inventory_service.verify_ledger(self.product_id)

        confirmed = [r for r in results if r == "confirmed"]
        rejected = [r for r in results if isinstance(r, InsufficientStockError)]
        self.assertEqual(len(confirmed), 1, results)
        self.assertEqual(len(rejected), 1, results)
        self.assertEqual(balance, Decimal(4))
        self.assertTrue(ledger["consistent"])

    def test_concurrent_returns_respect_cap(self):
        order_id = self._sales_order(1, unit="box")
        with self.app.app_context():
            sales_service.confirm_sales_order(order_id)
            returns = [
                return_service.create_return_order(
                    original_order_id=order_id,
                    order_type="SALES",
                    items=[{"product_id": self.product_id, "quantity": 4, "unit": "pc"}],
                ).id
                for _ in range(2)
            ]

        def confirm(return_id):
            return_service.confirm_return_order(return_id)
            return "confirmed"

        results = self._run_parallel(confirm, [(rid,) for rid in returns])

        with self.app.app_context():
            returned = return_service.already_returned(order_id, "SALES")
            ledger = inventory_service.verify_ledger(self.product_id)

        self.assertEqual(sum(1 for r in results if r == "confirmed"), 1, results)
        self.assertEqual(sum(1 for r in results if isinstance(r, CapExceededError)), 1, results)
        self.assertEqual(returned[self.product_id], Decimal(4))
        self.assertTrue(ledger["consistent"])


if __name__ == "__main__":
    unittest.main()
