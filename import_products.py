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

"""Database initialization script for the checkout server.

This script imports the product catalog from a CSV file into the configured
products database, replacing whatever was there, and makes sure the
transactions database schema exists.

Usage:
  uv run import_products.py --products_db_path=... --transactions_db_path=...
  --data_dir=...
"""

import asyncio
import csv
from decimal import Decimal
import logging
import os

from absl import app as absl_app
from absl import flags
import config
import db
from db import Product
from sqlalchemy import delete

FLAGS = config.FLAGS
flags.DEFINE_string(
    "data_dir",
    os.path.join(os.path.dirname(os.path.abspath(__file__)), "data"),
    "Directory containing products.csv",
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def import_csv_data() -> None:
  """Reads the products CSV and populates the products database."""
  # Ensure tables exist
  await db.manager.init_dbs(FLAGS.products_db_path, FLAGS.transactions_db_path)

  try:
    async with db.manager.products_session_factory() as session:
      logger.info("Clearing existing products...")
      await session.execute(delete(Product))

      logger.info("Importing Products from CSV...")
      products = []
      with open(os.path.join(FLAGS.data_dir, "products.csv"), "r") as f:
        reader = csv.DictReader(f)
        for row in reader:
          products.append(
              Product(
                  id=row["id"],
                  name=row["name"],
                  price=Decimal(row["price"]),
              )
          )
      session.add_all(products)
      await session.commit()
      logger.info("Imported %d products", len(products))
  finally:
    await db.manager.close()


def main(argv):
  """Main entry point for the import script."""
  del argv
  if not FLAGS.products_db_path or not FLAGS.transactions_db_path:
    logger.error("--products_db_path and --transactions_db_path are required.")
    return 1
  asyncio.run(import_csv_data())


if __name__ == "__main__":
  absl_app.run(main)
