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

"""Order assembly: snapshotting the active cart into an immutable order.

`OrderAssembler.assemble_order` is idempotent per user. While the user has an
order in CREATED state that order is returned unchanged, so a retried or
double-submitted checkout never produces a second order. The lookup alone
would leave a race window between concurrent requests; it is closed by the
partial unique index on CREATED orders and by converting the cart with a
conditional update. The loser of either race rolls back and returns the
winner's order.
"""

import datetime
import decimal
from decimal import Decimal
import logging
import uuid

import db
from enums import OrderStatus
from enums import PaymentStatus
from exceptions import NotFoundError
from exceptions import PersistenceError
from services.cart_service import CartResolver
from sqlalchemy.exc import IntegrityError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def to_minor_units(amount: Decimal) -> int:
  """Converts a major-unit amount to integer minor units (cents, paise)."""
  minor = (Decimal(amount) * 100).quantize(
      Decimal("1"), rounding=decimal.ROUND_HALF_UP
  )
  return int(minor)


class _CartAlreadyConverted(Exception):
  pass


class OrderAssembler:
  """Turns a user's ACTIVE cart into a CREATED order."""

  def __init__(
      self, transactions_session: AsyncSession, cart_resolver: CartResolver
  ):
    self.transactions_session = transactions_session
    self.cart_resolver = cart_resolver

  async def assemble_order(self, user_id: str) -> db.Order:
    """Returns the user's CREATED order, assembling one from the cart if needed.

    The order insert, the item snapshot and the cart conversion commit
    together or not at all.

    Args:
      user_id: The verified user ID.

    Returns:
      The CREATED order.

    Raises:
      NotFoundError: If there is neither a CREATED order nor an ACTIVE cart.
      EmptyCartError: If the ACTIVE cart has no items.
      PersistenceError: If the store rejects the write.
    """
    session = self.transactions_session
    existing = await db.get_created_order(session, user_id)
    if existing is not None:
      logger.info("Reusing CREATED order %s for user %s", existing.id, user_id)
      return existing

    resolved = await self.cart_resolver.get_active_cart_with_items(user_id)
    subtotal = resolved.subtotal
    discount = Decimal("0")
    now = datetime.datetime.now(datetime.timezone.utc).isoformat()

    order = db.Order(
        id=str(uuid.uuid4()),
        user_id=user_id,
        sub_total=subtotal,
        discount_total=discount,
        grand_total=subtotal - discount,
        status=OrderStatus.CREATED.value,
        payment_status=PaymentStatus.CREATED.value,
        created_at=now,
        updated_at=now,
    )
    order_items = [
        db.OrderItem(
            id=str(uuid.uuid4()),
            order_id=order.id,
            product_id=item.product_id,
            product_name=item.product_name,
            price=item.price,
            qty=item.quantity,
            item_total=item.item_total,
        )
        for item in resolved.items
    ]

    try:
      session.add(order)
      session.add_all(order_items)
      await session.flush()
      if not await db.convert_cart(session, resolved.cart.id):
        raise _CartAlreadyConverted()
      await session.commit()
    except (IntegrityError, _CartAlreadyConverted):
      # A concurrent checkout for the same user won.
      await session.rollback()
      winner = await db.get_created_order(session, user_id)
      if winner is None:
        raise NotFoundError("No active cart found")
      logger.info(
          "Concurrent checkout for user %s resolved to order %s",
          user_id,
          winner.id,
      )
      return winner
    except SQLAlchemyError as e:
      await session.rollback()
      raise PersistenceError("Failed to create order") from e

    logger.info(
        "Assembled order %s (%d items, total %s) from cart %s",
        order.id,
        len(order_items),
        order.grand_total,
        resolved.cart.id,
    )
    return order
