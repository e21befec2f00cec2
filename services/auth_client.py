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

"""Resolves bearer credentials to user IDs through the auth provider."""

import logging
from typing import Optional

from config import Settings
from exceptions import Unauthorized
import httpx

logger = logging.getLogger(__name__)


class AuthClient:
  """Asks the auth provider's `/auth/v1/user` endpoint who a caller is."""

  def __init__(
      self,
      settings: Settings,
      transport: Optional[httpx.AsyncBaseTransport] = None,
  ):
    self.settings = settings
    self._transport = transport

  async def get_user_id(self, authorization: Optional[str]) -> str:
    """Returns the verified user ID for an `Authorization` header value."""
    if not authorization:
      raise Unauthorized("Missing Authorization")
    if not self.settings.auth_base_url:
      logger.error("No auth provider configured")
      raise Unauthorized("Invalid user")

    try:
      async with httpx.AsyncClient(
          transport=self._transport, timeout=self.settings.gateway_timeout
      ) as client:
        response = await client.get(
            f"{self.settings.auth_base_url}/auth/v1/user",
            headers={
                "Authorization": authorization,
                "apikey": self.settings.auth_api_key,
            },
        )
    except httpx.RequestError as e:
      logger.error("Network error contacting auth provider: %s", e)
      raise Unauthorized("Invalid user") from e

    if response.status_code != 200:
      logger.info("Auth provider rejected credential: %d", response.status_code)
      raise Unauthorized("Invalid user")

    try:
      user_id = response.json().get("id")
    except (ValueError, AttributeError) as e:
      raise Unauthorized("Invalid user") from e
    if not user_id:
      raise Unauthorized("Invalid user")
    return str(user_id)
