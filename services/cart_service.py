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

"""Cart resolution: merging items into the active cart and pricing it."""

import dataclasses
from decimal import Decimal
import logging
from typing import List, Optional, Sequence, Tuple

import db
from exceptions import EmptyCartError
from exceptions import NotFoundError
from exceptions import PersistenceError
from exceptions import ValidationError
from models import CartLine
from models import MergeCartItem
from models import MergeCartResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def _normalize_entry(item: MergeCartItem) -> Optional[Tuple[str, int]]:
  """Returns `(product_id, quantity)` for a usable entry, else None."""
  product_id = item.product_id
  quantity = item.quantity
  if isinstance(product_id, bool) or not isinstance(product_id, (str, int)):
    return None
  product_id = str(product_id)
  if not product_id:
    return None
  if isinstance(quantity, bool) or not isinstance(quantity, int):
    return None
  if not 0 < quantity <= db.MAX_LINE_QUANTITY:
    return None
  return product_id, quantity


@dataclasses.dataclass(frozen=True)
class ResolvedItem:
  product_id: str
  product_name: str
  price: Decimal
  quantity: int

  @property
  def item_total(self) -> Decimal:
    return self.price * self.quantity


@dataclasses.dataclass(frozen=True)
class ResolvedCart:
  cart: db.Cart
  items: List[ResolvedItem]
  subtotal: Decimal


class CartResolver:
  """Reads and merges a user's single ACTIVE cart."""

  def __init__(
      self,
      products_session: AsyncSession,
      transactions_session: AsyncSession,
  ):
    self.products_session = products_session
    self.transactions_session = transactions_session

  async def merge_items(
      self, user_id: str, items: Sequence[MergeCartItem]
  ) -> MergeCartResponse:
    """Merges incoming items into the user's ACTIVE cart.

    Quantities accumulate per product, capped at `db.MAX_LINE_QUANTITY`.
    Entries without a usable product ID (a non-empty string or an integer),
    without an integer quantity between 1 and `db.MAX_LINE_QUANTITY`, or
    naming a product missing from the catalog are skipped.

    Args:
      user_id: The verified user ID.
      items: The incoming cart entries.

    Returns:
      The cart ID and its full merged item list.

    Raises:
      ValidationError: If `items` is empty.
      PersistenceError: If the store rejects the write.
    """
    if not items:
      raise ValidationError("Items required")

    wanted = []
    for item in items:
      entry = _normalize_entry(item)
      if entry is not None:
        wanted.append(entry)
    if len(wanted) != len(items):
      logger.warning(
          "Skipping %d cart entries without product or valid quantity",
          len(items) - len(wanted),
      )
    products = await db.get_products(
        self.products_session, [product_id for product_id, _ in wanted]
    )

    session = self.transactions_session
    try:
      cart = await self._get_or_create_cart(user_id)
      for product_id, quantity in wanted:
        if product_id not in products:
          logger.warning("Skipping unknown product %s", product_id)
          continue
        await db.add_cart_item(session, cart.id, product_id, quantity)
      cart_id = cart.id
      await session.commit()
    except SQLAlchemyError as e:
      await session.rollback()
      raise PersistenceError("Failed to update cart") from e

    merged = await db.get_cart_items(session, cart_id)
    logger.info("Merged %d entries into cart %s", len(wanted), cart_id)
    return MergeCartResponse(
        cart_id=cart_id,
        items=[
            CartLine(product_id=ci.product_id, quantity=ci.quantity)
            for ci in merged
        ],
    )

  async def _get_or_create_cart(self, user_id: str) -> db.Cart:
    session = self.transactions_session
    cart = await db.get_active_cart(session, user_id)
    if cart is not None:
      return cart
    try:
      return await db.create_cart(session, user_id)
    except IntegrityError:
      # A concurrent request created the ACTIVE cart first.
      await session.rollback()
      cart = await db.get_active_cart(session, user_id)
      if cart is None:
        raise
      return cart

  async def get_active_cart_with_items(self, user_id: str) -> ResolvedCart:
    """Reads the user's ACTIVE cart and prices it from the catalog.

    Raises:
      NotFoundError: If the user has no ACTIVE cart.
      EmptyCartError: If the cart has no items.
      ValidationError: If an item's product is no longer in the catalog.
    """
    cart = await db.get_active_cart(self.transactions_session, user_id)
    if cart is None:
      raise NotFoundError("No active cart found")

    cart_items = await db.get_cart_items(self.transactions_session, cart.id)
    if not cart_items:
      raise EmptyCartError()

    products = await db.get_products(
        self.products_session, [ci.product_id for ci in cart_items]
    )
    resolved = []
    for ci in cart_items:
      product = products.get(ci.product_id)
      if product is None:
        raise ValidationError(f"Product {ci.product_id} not found")
      resolved.append(
          ResolvedItem(
              product_id=product.id,
              product_name=product.name,
              price=Decimal(product.price),
              quantity=ci.quantity,
          )
      )

    subtotal = sum((r.item_total for r in resolved), Decimal("0"))
    return ResolvedCart(cart=cart, items=resolved, subtotal=subtotal)
