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

"""Temporary SQLite databases shared by the checkout server tests."""

from decimal import Decimal
import os
import shutil
import tempfile

import db
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool
from sqlalchemy.sql import delete

SEED_PRODUCTS = (
    ("P1", "Rose Bouquet", "50.00"),
    ("P2", "Tulips", "24.75"),
    ("P3", "Orchid", "199.50"),
)


class TempDatabases:
  """Products and transactions databases living in a temporary directory.

  Engines do not pool connections, so the databases can be used from several
  event loops (each `asyncio.run` and the test client's own loop).
  """

  def __init__(self) -> None:
    self.test_dir = tempfile.mkdtemp()
    self.products_db = os.path.join(self.test_dir, "test_products.db")
    self.transactions_db = os.path.join(self.test_dir, "test_transactions.db")

    self.products_engine = create_async_engine(
        f"sqlite+aiosqlite:///{self.products_db}",
        echo=False,
        poolclass=NullPool,
    )
    self.products_session_factory = sessionmaker(
        self.products_engine, expire_on_commit=False, class_=AsyncSession
    )

    self.transactions_engine = create_async_engine(
        f"sqlite+aiosqlite:///{self.transactions_db}",
        echo=False,
        poolclass=NullPool,
    )
    self.transactions_session_factory = sessionmaker(
        self.transactions_engine, expire_on_commit=False, class_=AsyncSession
    )

  async def create_all(self) -> None:
    """Creates both schemas and seeds the catalog."""
    async with self.products_engine.begin() as conn:
      await conn.run_sync(db.ProductBase.metadata.create_all)
    async with self.transactions_engine.begin() as conn:
      await conn.run_sync(db.TransactionBase.metadata.create_all)

    async with self.products_session_factory() as session:
      await session.execute(delete(db.Product))
      session.add_all([
          db.Product(id=pid, name=name, price=Decimal(price))
          for pid, name, price in SEED_PRODUCTS
      ])
      await session.commit()

  async def dispose(self) -> None:
    await self.products_engine.dispose()
    await self.transactions_engine.dispose()

  def cleanup(self) -> None:
    shutil.rmtree(self.test_dir, ignore_errors=True)
