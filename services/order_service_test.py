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

"""Tests for order assembly."""

import asyncio
from decimal import Decimal
from unittest import mock

from absl.testing import absltest
import db
import db_testutil
from enums import CartStatus
from enums import OrderStatus
from enums import PaymentStatus
from exceptions import EmptyCartError
from exceptions import NotFoundError
from models import MergeCartItem
from services.cart_service import CartResolver
from services.order_service import OrderAssembler
from services.order_service import to_minor_units
from sqlalchemy import func
from sqlalchemy import select


class ToMinorUnitsTest(absltest.TestCase):

  def test_conversions(self) -> None:
    self.assertEqual(to_minor_units(Decimal("199.5")), 19950)
    self.assertEqual(to_minor_units(Decimal("100")), 10000)
    self.assertEqual(to_minor_units(Decimal("24.75")), 2475)
    self.assertEqual(to_minor_units(Decimal("0.005")), 1)
    self.assertIsInstance(to_minor_units(Decimal("1.10")), int)


class OrderAssemblerTest(absltest.TestCase):

  def setUp(self) -> None:
    super().setUp()
    self.dbs = db_testutil.TempDatabases()
    asyncio.run(self.dbs.create_all())

  def tearDown(self) -> None:
    asyncio.run(self.dbs.dispose())
    self.dbs.cleanup()
    super().tearDown()

  async def _merge(self, user_id, items):
    async with self.dbs.products_session_factory() as products:
      async with self.dbs.transactions_session_factory() as transactions:
        await CartResolver(products, transactions).merge_items(user_id, items)

  async def _assemble(self, user_id):
    async with self.dbs.products_session_factory() as products:
      async with self.dbs.transactions_session_factory() as transactions:
        assembler = OrderAssembler(
            transactions, CartResolver(products, transactions)
        )
        order = await assembler.assemble_order(user_id)
        return order.id

  async def _count_orders(self):
    async with self.dbs.transactions_session_factory() as session:
      return await session.scalar(select(func.count()).select_from(db.Order))

  def test_assemble_snapshots_cart(self) -> None:
    async def run():
      await self._merge(
          "user_1", [MergeCartItem(product_id="P1", quantity=2)]
      )
      order_id = await self._assemble("user_1")
      async with self.dbs.transactions_session_factory() as session:
        order = await db.get_order(session, order_id)
        items = await db.get_order_items(session, order_id)
        carts = (await session.execute(select(db.Cart))).scalars().all()
        return order, items, carts

    order, items, carts = asyncio.run(run())
    self.assertEqual(order.status, OrderStatus.CREATED)
    self.assertEqual(order.payment_status, PaymentStatus.CREATED)
    self.assertEqual(order.sub_total, Decimal("100.00"))
    self.assertEqual(order.discount_total, Decimal("0"))
    self.assertEqual(order.grand_total, Decimal("100.00"))
    self.assertIsNone(order.gateway_order_id)
    self.assertLen(items, 1)
    self.assertEqual(items[0].product_id, "P1")
    self.assertEqual(items[0].product_name, "Rose Bouquet")
    self.assertEqual(items[0].price, Decimal("50.00"))
    self.assertEqual(items[0].qty, 2)
    self.assertEqual(items[0].item_total, Decimal("100.00"))
    self.assertLen(carts, 1)
    self.assertEqual(carts[0].status, CartStatus.CONVERTED)

  def test_assemble_is_idempotent(self) -> None:
    async def run():
      await self._merge(
          "user_1", [MergeCartItem(product_id="P2", quantity=1)]
      )
      first = await self._assemble("user_1")
      second = await self._assemble("user_1")
      return first, second, await self._count_orders()

    first, second, count = asyncio.run(run())
    self.assertEqual(first, second)
    self.assertEqual(count, 1)

  def test_created_order_is_not_repriced(self) -> None:
    async def run():
      await self._merge(
          "user_1", [MergeCartItem(product_id="P1", quantity=1)]
      )
      first = await self._assemble("user_1")
      # A new cart while the order awaits payment does not change it.
      await self._merge(
          "user_1", [MergeCartItem(product_id="P3", quantity=4)]
      )
      second = await self._assemble("user_1")
      async with self.dbs.transactions_session_factory() as session:
        order = await db.get_order(session, second)
      return first, order

    first, order = asyncio.run(run())
    self.assertEqual(first, order.id)
    self.assertEqual(order.grand_total, Decimal("50.00"))

  def test_assemble_without_cart(self) -> None:
    with self.assertRaises(NotFoundError):
      asyncio.run(self._assemble("nobody"))

  def test_assemble_empty_cart(self) -> None:
    async def run():
      await self._merge(
          "user_1", [MergeCartItem(product_id="ghost", quantity=1)]
      )
      await self._assemble("user_1")

    with self.assertRaises(EmptyCartError):
      asyncio.run(run())
    self.assertEqual(asyncio.run(self._count_orders()), 0)

  def test_concurrent_assembly_returns_winner(self) -> None:
    real_get_created_order = db.get_created_order
    calls = []

    async def stale_get_created_order(session, user_id):
      calls.append(user_id)
      if len(calls) == 1:
        return None
      return await real_get_created_order(session, user_id)

    async def run():
      await self._merge(
          "user_1", [MergeCartItem(product_id="P1", quantity=1)]
      )
      winner = await self._assemble("user_1")
      # The losing request still sees an ACTIVE cart and no CREATED order.
      await self._merge(
          "user_1", [MergeCartItem(product_id="P2", quantity=1)]
      )
      with mock.patch.object(
          db, "get_created_order", stale_get_created_order
      ):
        loser = await self._assemble("user_1")
      async with self.dbs.transactions_session_factory() as session:
        cart = await db.get_active_cart(session, "user_1")
      return winner, loser, cart, await self._count_orders()

    winner, loser, cart, count = asyncio.run(run())
    self.assertEqual(winner, loser)
    self.assertEqual(count, 1)
    self.assertIsNotNone(cart)

  def test_cart_converted_concurrently(self) -> None:
    async def cart_already_converted(session, cart_id):
      del session, cart_id
      return False

    async def run():
      await self._merge(
          "user_1", [MergeCartItem(product_id="P1", quantity=1)]
      )
      with mock.patch.object(db, "convert_cart", cart_already_converted):
        await self._assemble("user_1")

    with self.assertRaises(NotFoundError):
      asyncio.run(run())
    self.assertEqual(asyncio.run(self._count_orders()), 0)


if __name__ == "__main__":
  absltest.main()
