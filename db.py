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

"""Database management and persistence layer for the checkout server.

This module provides the schema definitions, database session management, and
asynchronous data access helpers used by the server. It utilizes SQLAlchemy with
SQLite (via aiosqlite) and separates the product catalog from the transactional
cart, order and payment data.

Key features include:
- `DatabaseManager`: Handles asynchronous engine initialization and session
  factory setup for both 'Products' and 'Transactions' databases.
- WAL Mode: Enables SQLite Write-Ahead Logging so concurrent requests can read
  while another one writes.
- Soft singletons as constraints: at most one ACTIVE cart and one CREATED
  order per user are enforced with partial unique indexes, and one row per
  (cart, product) with a unique constraint.
- Conditional updates: status flips only happen `WHERE` the row is still in
  the expected state, and callers check `rowcount` to detect a lost race.
"""

import datetime
import logging
from typing import Any, Dict, Iterable, List, Optional
import uuid

from enums import CartStatus
from enums import OrderStatus
from enums import PaymentStatus
from sqlalchemy import CheckConstraint
from sqlalchemy import Column
from sqlalchemy import ForeignKey
from sqlalchemy import func
from sqlalchemy import Index
from sqlalchemy import Integer
from sqlalchemy import JSON
from sqlalchemy import Numeric
from sqlalchemy import select
from sqlalchemy import String
from sqlalchemy import text
from sqlalchemy import UniqueConstraint
from sqlalchemy import update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)

ProductBase = declarative_base()
TransactionBase = declarative_base()

# Upper bound on the quantity of one product in a cart.
MAX_LINE_QUANTITY = 10000


class DatabaseManager:
  """Manages database engines and sessions without using global variables."""

  def __init__(self) -> None:
    self.products_engine: Optional[AsyncEngine] = None
    self.transactions_engine: Optional[AsyncEngine] = None
    self.products_session_factory: Optional[sessionmaker] = None
    self.transactions_session_factory: Optional[sessionmaker] = None

  async def init_dbs(self, products_path: str, transactions_path: str) -> None:
    """Initializes database engines and creates tables."""
    # Products DB Setup
    prod_url = f"sqlite+aiosqlite:///{products_path}"
    self.products_engine = create_async_engine(prod_url, echo=False)

    async with self.products_engine.connect() as conn:
      await conn.execute(text("PRAGMA journal_mode=WAL"))

    self.products_session_factory = sessionmaker(
        self.products_engine, expire_on_commit=False, class_=AsyncSession
    )

    async with self.products_engine.begin() as conn:
      await conn.run_sync(ProductBase.metadata.create_all)

    # Transactions DB Setup
    trans_url = f"sqlite+aiosqlite:///{transactions_path}"
    self.transactions_engine = create_async_engine(trans_url, echo=False)

    async with self.transactions_engine.connect() as conn:
      await conn.execute(text("PRAGMA journal_mode=WAL"))

    self.transactions_session_factory = sessionmaker(
        self.transactions_engine, expire_on_commit=False, class_=AsyncSession
    )

    async with self.transactions_engine.begin() as conn:
      await conn.run_sync(TransactionBase.metadata.create_all)

    logger.info(
        "Databases ready (products=%s, transactions=%s)",
        products_path,
        transactions_path,
    )

  async def close(self) -> None:
    """Closes all database engines."""
    if self.products_engine:
      await self.products_engine.dispose()
    if self.transactions_engine:
      await self.transactions_engine.dispose()


# Global manager instance (to be initialized via lifespan)
manager = DatabaseManager()


def _now() -> str:
  return datetime.datetime.now(datetime.timezone.utc).isoformat()


class Product(ProductBase):
  __tablename__ = "products"

  id = Column(String, primary_key=True)
  name = Column(String)
  price = Column(Numeric(10, 2))  # Major currency units


class Cart(TransactionBase):
  __tablename__ = "carts"
  __table_args__ = (
      Index(
          "uq_carts_active_user",
          "user_id",
          unique=True,
          sqlite_where=text("status = 'ACTIVE'"),
          postgresql_where=text("status = 'ACTIVE'"),
      ),
  )

  id = Column(String, primary_key=True)
  user_id = Column(String, nullable=False, index=True)
  status = Column(String, nullable=False, default=CartStatus.ACTIVE.value)
  created_at = Column(String)
  updated_at = Column(String)


class CartItem(TransactionBase):
  __tablename__ = "cart_items"
  __table_args__ = (
      UniqueConstraint("cart_id", "product_id", name="uq_cart_items_product"),
      CheckConstraint(
          f"quantity > 0 AND quantity <= {MAX_LINE_QUANTITY}",
          name="ck_cart_items_quantity",
      ),
  )

  id = Column(String, primary_key=True)
  cart_id = Column(String, ForeignKey("carts.id"), nullable=False)
  product_id = Column(String, nullable=False)
  quantity = Column(Integer, nullable=False)


class Order(TransactionBase):
  __tablename__ = "orders"
  __table_args__ = (
      Index(
          "uq_orders_created_user",
          "user_id",
          unique=True,
          sqlite_where=text("status = 'CREATED'"),
          postgresql_where=text("status = 'CREATED'"),
      ),
  )

  id = Column(String, primary_key=True)
  user_id = Column(String, nullable=False, index=True)
  sub_total = Column(Numeric(12, 2), nullable=False)
  discount_total = Column(Numeric(12, 2), nullable=False, default=0)
  grand_total = Column(Numeric(12, 2), nullable=False)
  status = Column(String, nullable=False)
  payment_status = Column(String, nullable=False)
  gateway_order_id = Column(String, unique=True, nullable=True)
  created_at = Column(String)
  updated_at = Column(String)


class OrderItem(TransactionBase):
  __tablename__ = "order_items"

  id = Column(String, primary_key=True)
  order_id = Column(String, ForeignKey("orders.id"), nullable=False)
  product_id = Column(String, nullable=False)
  product_name = Column(String)
  price = Column(Numeric(10, 2), nullable=False)
  qty = Column(Integer, nullable=False)
  item_total = Column(Numeric(12, 2), nullable=False)


class Payment(TransactionBase):
  __tablename__ = "payments"

  id = Column(String, primary_key=True)
  order_id = Column(
      String, ForeignKey("orders.id"), unique=True, nullable=False
  )
  gateway_order_id = Column(String, unique=True, nullable=False)
  gateway_payment_id = Column(String, nullable=True)
  amount = Column(Integer, nullable=False)  # Minor currency units
  currency = Column(String)
  status = Column(String, nullable=False)
  raw_payload = Column(JSON, nullable=True)
  created_at = Column(String)
  updated_at = Column(String)


async def get_products(
    session: AsyncSession, product_ids: Iterable[str]
) -> Dict[str, Product]:
  """Retrieves catalog products keyed by ID."""
  ids = list(set(product_ids))
  if not ids:
    return {}
  result = await session.execute(select(Product).where(Product.id.in_(ids)))
  return {p.id: p for p in result.scalars().all()}


async def get_active_cart(
    session: AsyncSession, user_id: str
) -> Optional[Cart]:
  """Retrieves the user's ACTIVE cart, if any."""
  result = await session.execute(
      select(Cart).where(
          Cart.user_id == user_id, Cart.status == CartStatus.ACTIVE.value
      )
  )
  return result.scalar_one_or_none()


async def create_cart(session: AsyncSession, user_id: str) -> Cart:
  """Inserts a new ACTIVE cart.

  Raises `sqlalchemy.exc.IntegrityError` if the user already has one.
  """
  now = _now()
  cart = Cart(
      id=str(uuid.uuid4()),
      user_id=user_id,
      status=CartStatus.ACTIVE.value,
      created_at=now,
      updated_at=now,
  )
  session.add(cart)
  await session.flush()
  return cart


async def add_cart_item(
    session: AsyncSession, cart_id: str, product_id: str, quantity: int
) -> None:
  """Adds `quantity` of a product to a cart, accumulating on an existing row.

  The accumulated quantity is capped at `MAX_LINE_QUANTITY`.
  """
  stmt = sqlite_insert(CartItem).values(
      id=str(uuid.uuid4()),
      cart_id=cart_id,
      product_id=product_id,
      quantity=quantity,
  )
  stmt = stmt.on_conflict_do_update(
      index_elements=["cart_id", "product_id"],
      set_={
          "quantity": func.min(
              CartItem.quantity + stmt.excluded.quantity, MAX_LINE_QUANTITY
          )
      },
  )
  await session.execute(stmt)


async def get_cart_items(
    session: AsyncSession, cart_id: str
) -> List[CartItem]:
  """Retrieves the items of a cart."""
  # Quantities are changed with bulk upserts, so reload loaded rows.
  result = await session.execute(
      select(CartItem)
      .where(CartItem.cart_id == cart_id)
      .order_by(CartItem.product_id)
      .execution_options(populate_existing=True)
  )
  return list(result.scalars().all())


async def convert_cart(session: AsyncSession, cart_id: str) -> bool:
  """Flips a cart from ACTIVE to CONVERTED; False if it was not ACTIVE."""
  result = await session.execute(
      update(Cart)
      .where(Cart.id == cart_id)
      .where(Cart.status == CartStatus.ACTIVE.value)
      .values(status=CartStatus.CONVERTED.value, updated_at=_now())
      .execution_options(synchronize_session=False)
  )
  return result.rowcount > 0


async def get_created_order(
    session: AsyncSession, user_id: str
) -> Optional[Order]:
  """Retrieves the user's order that is still in CREATED state, if any."""
  result = await session.execute(
      select(Order).where(
          Order.user_id == user_id, Order.status == OrderStatus.CREATED.value
      )
  )
  return result.scalar_one_or_none()


async def get_order(session: AsyncSession, order_id: str) -> Optional[Order]:
  """Retrieves an order by ID."""
  return await session.get(Order, order_id)


async def get_order_items(
    session: AsyncSession, order_id: str
) -> List[OrderItem]:
  """Retrieves the item snapshot of an order."""
  result = await session.execute(
      select(OrderItem)
      .where(OrderItem.order_id == order_id)
      .order_by(OrderItem.product_id)
  )
  return list(result.scalars().all())


async def list_orders(session: AsyncSession) -> List[Order]:
  """Retrieves all orders, oldest first."""
  result = await session.execute(select(Order).order_by(Order.created_at))
  return list(result.scalars().all())


async def get_payment_for_order(
    session: AsyncSession, order_id: str
) -> Optional[Payment]:
  """Retrieves the payment row of an order, if any."""
  result = await session.execute(
      select(Payment).where(Payment.order_id == order_id)
  )
  return result.scalar_one_or_none()


async def get_payment_by_gateway_order_id(
    session: AsyncSession, gateway_order_id: str, for_update: bool = False
) -> Optional[Payment]:
  """Retrieves a payment by its gateway order ID.

  With `for_update`, the row is locked on dialects that support
  `SELECT ... FOR UPDATE`; SQLite serializes writers on its own.
  """
  stmt = select(Payment).where(Payment.gateway_order_id == gateway_order_id)
  if for_update:
    stmt = stmt.with_for_update()
  result = await session.execute(
      stmt.execution_options(populate_existing=True)
  )
  return result.scalar_one_or_none()


async def link_gateway_order(
    session: AsyncSession, order_id: str, gateway_order_id: str
) -> bool:
  """Sets an order's gateway order ID once; False if it was already set."""
  result = await session.execute(
      update(Order)
      .where(Order.id == order_id)
      .where(Order.gateway_order_id.is_(None))
      .values(gateway_order_id=gateway_order_id, updated_at=_now())
      .execution_options(synchronize_session=False)
  )
  return result.rowcount > 0


async def mark_payment_paid(
    session: AsyncSession,
    payment_id: str,
    gateway_payment_id: str,
    raw_payload: Optional[Dict[str, Any]],
) -> bool:
  """Flips a payment from CREATED to PAID; False if it was not CREATED."""
  result = await session.execute(
      update(Payment)
      .where(Payment.id == payment_id)
      .where(Payment.status == PaymentStatus.CREATED.value)
      .values(
          status=PaymentStatus.PAID.value,
          gateway_payment_id=gateway_payment_id,
          raw_payload=raw_payload,
          updated_at=_now(),
      )
      .execution_options(synchronize_session=False)
  )
  return result.rowcount > 0


async def confirm_order(session: AsyncSession, order_id: str) -> bool:
  """Marks an order CONFIRMED and PAID."""
  result = await session.execute(
      update(Order)
      .where(Order.id == order_id)
      .values(
          status=OrderStatus.CONFIRMED.value,
          payment_status=PaymentStatus.PAID.value,
          updated_at=_now(),
      )
      .execution_options(synchronize_session=False)
  )
  return result.rowcount > 0
