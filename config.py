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

"""Shared configuration and startup logic for the checkout server.

Process configuration is declared as absl flags. Secrets default to their
environment variables so they do not have to appear on the command line. The
lifespan manager turns the flags into a single frozen `Settings` value that is
handed to every component through the FastAPI dependencies. When the app is
served without `absl.app.run` the flags are never parsed and their
environment-derived defaults are used.
"""

import contextlib
import logging
import os
from absl import flags
import db
from dotenv import load_dotenv
from fastapi import FastAPI
from pydantic import BaseModel
from pydantic import ConfigDict

FLAGS = flags.FLAGS

logger = logging.getLogger(__name__)

# Secrets in .env become flag defaults below.
load_dotenv()

DEFAULT_GATEWAY_BASE_URL = "https://api.razorpay.com/v1"

# Define flags only if they haven't been defined yet (to avoid duplicates
# during tests or re-imports)
try:
  flags.DEFINE_string(
      "products_db_path",
      os.environ.get("PRODUCTS_DB_PATH"),
      "Path to products DB",
  )
  flags.DEFINE_string(
      "transactions_db_path",
      os.environ.get("TRANSACTIONS_DB_PATH"),
      "Path to transactions DB",
  )
  flags.DEFINE_integer("port", None, "Port to run the server on")
  flags.DEFINE_string("currency", "INR", "ISO currency of all orders")
  flags.DEFINE_string(
      "gateway_base_url",
      os.environ.get("GATEWAY_BASE_URL", DEFAULT_GATEWAY_BASE_URL),
      "Base URL of the payment gateway REST API",
  )
  flags.DEFINE_string(
      "gateway_key_id",
      os.environ.get("GATEWAY_KEY_ID", ""),
      "Payment gateway key id (also returned to clients)",
  )
  flags.DEFINE_string(
      "gateway_key_secret",
      os.environ.get("GATEWAY_KEY_SECRET", ""),
      "Payment gateway key secret, also the signature secret",
  )
  flags.DEFINE_float(
      "gateway_timeout", 10.0, "Timeout in seconds for gateway requests"
  )
  flags.DEFINE_string(
      "auth_base_url",
      os.environ.get("AUTH_BASE_URL", ""),
      "Base URL of the auth provider",
  )
  flags.DEFINE_string(
      "auth_api_key",
      os.environ.get("AUTH_API_KEY", ""),
      "API key sent to the auth provider",
  )
except flags.DuplicateFlagError:
  pass


def _flag_value(name: str):
  # Unparsed flags (the app served by a bare ASGI server) keep their
  # environment-derived defaults.
  return FLAGS[name].value


class Settings(BaseModel):
  """Immutable runtime configuration, built once at process start."""

  model_config = ConfigDict(frozen=True)

  currency: str = "INR"
  gateway_base_url: str = DEFAULT_GATEWAY_BASE_URL
  gateway_key_id: str = ""
  gateway_key_secret: str = ""
  gateway_timeout: float = 10.0
  auth_base_url: str = ""
  auth_api_key: str = ""

  @classmethod
  def from_flags(cls) -> "Settings":
    """Builds the settings from the absl flags, parsed or not."""
    return cls(
        currency=_flag_value("currency"),
        gateway_base_url=_flag_value("gateway_base_url").rstrip("/"),
        gateway_key_id=_flag_value("gateway_key_id"),
        gateway_key_secret=_flag_value("gateway_key_secret"),
        gateway_timeout=_flag_value("gateway_timeout"),
        auth_base_url=_flag_value("auth_base_url").rstrip("/"),
        auth_api_key=_flag_value("auth_api_key"),
    )


def get_flag_settings() -> Settings:
  """Returns settings from flags, warning about a missing signing secret."""
  settings = Settings.from_flags()
  if not settings.gateway_key_secret:
    logger.warning(
        "No gateway key secret configured; payment verification will fail"
    )
  return settings


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
  """Shared lifespan manager for initializing databases and settings."""
  app.state.settings = get_flag_settings()
  products_db_path = _flag_value("products_db_path")
  transactions_db_path = _flag_value("transactions_db_path")
  if products_db_path and transactions_db_path:
    await db.manager.init_dbs(products_db_path, transactions_db_path)
  else:
    # Tests override the session dependencies instead.
    logger.warning("Database paths not configured; databases not opened")
  yield
  await db.manager.close()
