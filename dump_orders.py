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

"""Utility script to dump orders and their payments.

This script reads the transactions SQLite database and prints every order with
its status, item snapshot and payment row. Orders that hold a gateway order
but whose payment is still CREATED are flagged: they are the candidates to
compare against the gateway when reconciling by hand.

Usage:
  uv run dump_orders.py --transactions_db_path=... [--pending_only]
"""

import asyncio
import sys

from absl import app as absl_app
from absl import flags
import config
import db
from enums import PaymentStatus
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker

FLAGS = config.FLAGS
flags.DEFINE_bool(
    "pending_only", False, "Only show orders awaiting payment confirmation"
)


async def dump_orders():
  """Queries the database and prints all orders."""
  if not FLAGS.transactions_db_path:
    print("Error: --transactions_db_path is required.")
    sys.exit(1)

  db_url = f"sqlite+aiosqlite:///{FLAGS.transactions_db_path}"
  engine = create_async_engine(db_url, echo=False)
  session_factory = sessionmaker(
      engine, expire_on_commit=False, class_=AsyncSession
  )

  async with session_factory() as session:
    orders = await db.list_orders(session)
    if not orders:
      print("No orders found.")
      return

    for order in orders:
      payment = await db.get_payment_for_order(session, order.id)
      pending = (
          payment is not None and payment.status == PaymentStatus.CREATED
      )
      if FLAGS.pending_only and not pending:
        continue

      print(
          f"Order: {order.id} user={order.user_id}"
          f" [{order.status}/{order.payment_status}]"
          f" total={order.grand_total}"
      )
      for item in await db.get_order_items(session, order.id):
        print(
            f"  - {item.product_name} (ID: {item.product_id}) x{item.qty}"
            f" @ {item.price} = {item.item_total}"
        )
      if payment is None:
        print("  Payment: none")
      else:
        print(
            f"  Payment: {payment.id} [{payment.status}]"
            f" gateway_order={payment.gateway_order_id}"
            f" gateway_payment={payment.gateway_payment_id or '-'}"
            f" amount={payment.amount} {payment.currency}"
        )
      if pending:
        print("  ! awaiting confirmation; check gateway status")
      print("-" * 60)

  await engine.dispose()


def main(argv):
  """Main entry point for the order dump script."""
  del argv
  asyncio.run(dump_orders())


if __name__ == "__main__":
  absl_app.run(main)
