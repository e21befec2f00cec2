#   Copyright 2026 UCP Authors
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.

"""Tests for the checkout workflow against a mocked payment gateway."""

import asyncio
from decimal import Decimal
import json
from unittest import mock

from absl.testing import absltest
from config import Settings
import db
import db_testutil
from enums import OrderStatus
from enums import PaymentStatus
from exceptions import GatewayError
from exceptions import NotFoundError
from exceptions import PersistenceError
from exceptions import SignatureMismatchError
from exceptions import ValidationError
import httpx
from models import MergeCartItem
from models import VerifyPaymentRequest
from services.cart_service import CartResolver
from services.checkout_service import CheckoutService
from services.gateway_client import PaymentGatewayClient
from services.order_service import OrderAssembler
from services.payment_service import compute_signature
from services.payment_service import PaymentRecorder
from services.payment_service import PaymentVerifier
from services.payment_service import StateReconciler
from sqlalchemy.exc import OperationalError

SECRET = "s3cret"
SETTINGS = Settings(
    currency="INR",
    gateway_base_url="https://gateway.test/v1",
    gateway_key_id="key_test",
    gateway_key_secret=SECRET,
)


class CheckoutServiceTest(absltest.TestCase):

  def setUp(self) -> None:
    super().setUp()
    self.dbs = db_testutil.TempDatabases()
    asyncio.run(self.dbs.create_all())
    self.gateway_requests = []
    self.gateway_status = 200
    self.transport = httpx.MockTransport(self._gateway)

  def tearDown(self) -> None:
    asyncio.run(self.dbs.dispose())
    self.dbs.cleanup()
    super().tearDown()

  def _gateway(self, request: httpx.Request) -> httpx.Response:
    body = json.loads(request.content)
    self.gateway_requests.append(body)
    if self.gateway_status != 200:
      return httpx.Response(self.gateway_status, text="gateway down")
    return httpx.Response(
        200,
        json={
            "id": f"order_gw_{len(self.gateway_requests)}",
            "amount": body["amount"],
            "currency": body["currency"],
            "receipt": body["receipt"],
            "status": "created",
        },
    )

  def _call(self, method, *args):
    async def run():
      async with self.dbs.products_session_factory() as products:
        async with self.dbs.transactions_session_factory() as transactions:
          cart_resolver = CartResolver(products, transactions)
          service = CheckoutService(
              settings=SETTINGS,
              transactions_session=transactions,
              cart_resolver=cart_resolver,
              order_assembler=OrderAssembler(transactions, cart_resolver),
              gateway_client=PaymentGatewayClient(
                  SETTINGS, transport=self.transport
              ),
              payment_recorder=PaymentRecorder(transactions),
              payment_verifier=PaymentVerifier(SECRET),
              state_reconciler=StateReconciler(transactions),
          )
          return await getattr(service, method)(*args)

    return asyncio.run(run())

  def _merge(self, user_id, product_id, quantity):
    async def run():
      async with self.dbs.products_session_factory() as products:
        async with self.dbs.transactions_session_factory() as transactions:
          await CartResolver(products, transactions).merge_items(
              user_id, [MergeCartItem(product_id=product_id, quantity=quantity)]
          )

    asyncio.run(run())

  def _load(self, order_id):
    async def run():
      async with self.dbs.transactions_session_factory() as session:
        order = await db.get_order(session, order_id)
        payment = await db.get_payment_for_order(session, order_id)
        return order, payment

    return asyncio.run(run())

  def _verify_request(
      self, gateway_order_id, payment_id="pay_1", secret=SECRET
  ):
    return VerifyPaymentRequest(
        gateway_order_id=gateway_order_id,
        gateway_payment_id=payment_id,
        signature=compute_signature(gateway_order_id, payment_id, secret),
    )

  def test_checkout_and_verify(self) -> None:
    self._merge("user_1", "P1", 2)

    created = self._call("create_order", "user_1")
    self.assertEqual(created.amount, 10000)
    self.assertEqual(created.currency, "INR")
    self.assertEqual(created.key, "key_test")
    self.assertEqual(created.gateway_order_id, "order_gw_1")
    self.assertEqual(
        self.gateway_requests,
        [{
            "amount": 10000,
            "currency": "INR",
            "receipt": f"order_{created.order_id}",
        }],
    )
    order, payment = self._load(created.order_id)
    self.assertEqual(order.status, OrderStatus.CREATED)
    self.assertEqual(order.gateway_order_id, "order_gw_1")
    self.assertEqual(payment.status, PaymentStatus.CREATED)
    self.assertEqual(payment.amount, 10000)

    verified = self._call(
        "verify_payment", self._verify_request(created.gateway_order_id)
    )
    self.assertTrue(verified.success)
    self.assertEqual(verified.order_id, created.order_id)
    self.assertIsNone(verified.message)

    order, payment = self._load(created.order_id)
    self.assertEqual(order.status, OrderStatus.CONFIRMED)
    self.assertEqual(order.payment_status, PaymentStatus.PAID)
    self.assertEqual(payment.status, PaymentStatus.PAID)
    self.assertEqual(payment.gateway_payment_id, "pay_1")

  def test_create_order_retry_reuses_gateway_order(self) -> None:
    self._merge("user_1", "P3", 1)
    first = self._call("create_order", "user_1")
    second = self._call("create_order", "user_1")

    self.assertEqual(first.order_id, second.order_id)
    self.assertEqual(first.gateway_order_id, second.gateway_order_id)
    self.assertEqual(second.amount, 19950)
    self.assertLen(self.gateway_requests, 1)

  def test_verify_replay_is_noop(self) -> None:
    self._merge("user_1", "P2", 4)
    created = self._call("create_order", "user_1")
    request = self._verify_request(created.gateway_order_id)

    self._call("verify_payment", request)
    replay = self._call("verify_payment", request)

    self.assertTrue(replay.success)
    self.assertEqual(replay.order_id, created.order_id)
    self.assertEqual(replay.message, "Already verified")
    order, _ = self._load(created.order_id)
    self.assertEqual(order.status, OrderStatus.CONFIRMED)

  def test_bad_signature_and_unknown_order_look_alike(self) -> None:
    self._merge("user_1", "P1", 1)
    created = self._call("create_order", "user_1")

    with self.assertRaises(SignatureMismatchError) as bad_signature:
      self._call(
          "verify_payment",
          self._verify_request(created.gateway_order_id, secret="wrong"),
      )
    with self.assertRaises(SignatureMismatchError) as unknown_order:
      self._call("verify_payment", self._verify_request("order_gw_404"))

    self.assertEqual(
        bad_signature.exception.message, unknown_order.exception.message
    )
    self.assertEqual(bad_signature.exception.code, "SIGNATURE_MISMATCH")
    order, payment = self._load(created.order_id)
    self.assertEqual(order.status, OrderStatus.CREATED)
    self.assertEqual(payment.status, PaymentStatus.CREATED)

  def test_verify_missing_fields(self) -> None:
    request = VerifyPaymentRequest(gateway_order_id="order_gw_1")
    with self.assertRaises(ValidationError):
      self._call("verify_payment", request)

  def test_gateway_failure_then_retry(self) -> None:
    self._merge("user_1", "P1", 1)
    self.gateway_status = 500
    with self.assertRaises(GatewayError):
      self._call("create_order", "user_1")

    self.gateway_status = 200
    created = self._call("create_order", "user_1")
    order, payment = self._load(created.order_id)
    self.assertEqual(order.status, OrderStatus.CREATED)
    self.assertEqual(payment.gateway_order_id, created.gateway_order_id)
    self.assertLen(self.gateway_requests, 2)

  def test_dangling_gateway_order_is_logged(self) -> None:
    self._merge("user_1", "P1", 1)

    async def failing_link(session, order_id, gateway_order_id):
      del session, order_id, gateway_order_id
      raise OperationalError("UPDATE orders", {}, Exception("disk I/O error"))

    with mock.patch.object(db, "link_gateway_order", failing_link):
      with self.assertLogs(level="ERROR") as logs:
        with self.assertRaises(PersistenceError):
          self._call("create_order", "user_1")
    self.assertIn("Dangling gateway order order_gw_1", "\n".join(logs.output))

    # The order survives without a payment; a retry opens a new gateway order.
    created = self._call("create_order", "user_1")
    self.assertEqual(created.gateway_order_id, "order_gw_2")

  def test_get_order_is_scoped_to_user(self) -> None:
    self._merge("user_1", "P1", 2)
    created = self._call("create_order", "user_1")

    order = self._call("get_order", "user_1", created.order_id)
    self.assertEqual(order.grand_total, Decimal("100.00"))
    self.assertEqual([i.qty for i in order.items], [2])

    with self.assertRaises(NotFoundError):
      self._call("get_order", "user_2", created.order_id)
    with self.assertRaises(NotFoundError):
      self._call("get_order", "user_1", "missing")

  def test_get_cart(self) -> None:
    self._merge("user_1", "P2", 2)
    cart = self._call("get_cart", "user_1")
    self.assertEqual(cart.subtotal, Decimal("49.50"))
    self.assertEqual(cart.items[0].product_name, "Tulips")


if __name__ == "__main__":
  absltest.main()
