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

"""Tests for startup configuration."""

import asyncio
from unittest import mock

from absl.testing import absltest
import config
import db
import dependencies
from exceptions import PersistenceError
from fastapi import FastAPI


class ConfigTest(absltest.TestCase):

  def test_lifespan_sets_settings(self) -> None:
    app = FastAPI()

    async def run():
      async with config.lifespan(app):
        return app.state.settings

    with mock.patch.object(
        db.manager, "init_dbs", new=mock.AsyncMock()
    ), mock.patch.object(db.manager, "close", new=mock.AsyncMock()):
      settings = asyncio.run(run())

    self.assertIsInstance(settings, config.Settings)
    self.assertEqual(settings.currency, config.FLAGS["currency"].value)
    self.assertEqual(settings.gateway_timeout, 10.0)

  def test_settings_are_frozen(self) -> None:
    settings = config.Settings.from_flags()
    with self.assertRaises(ValueError):
      settings.currency = "USD"

  def test_unopened_database_is_reported(self) -> None:
    async def open_session():
      sessions = dependencies.get_transactions_db()
      await sessions.__anext__()

    with mock.patch.object(db.manager, "transactions_session_factory", None):
      with self.assertRaises(PersistenceError) as cm:
        asyncio.run(open_session())
    self.assertEqual(cm.exception.status_code, 500)


if __name__ == "__main__":
  absltest.main()
