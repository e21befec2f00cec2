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

"""Client for the payment gateway's order API."""

import logging
from typing import Optional

from config import Settings
from exceptions import GatewayError
from exceptions import ValidationError
import httpx
from models import GatewayOrder

logger = logging.getLogger(__name__)


class PaymentGatewayClient:
  """Creates gateway orders (payment intents). Holds no local state.

  Requests are single shot: failures surface as `GatewayError` and any retry
  policy belongs to the caller.
  """

  def __init__(
      self,
      settings: Settings,
      transport: Optional[httpx.AsyncBaseTransport] = None,
  ):
    self.settings = settings
    self._transport = transport

  async def create_gateway_order(
      self, amount_minor_units: int, currency: str, receipt: str
  ) -> GatewayOrder:
    """Creates a gateway order.

    Args:
      amount_minor_units: Amount in the currency's minor unit. Must already be
        an integer; no conversion happens here.
      currency: ISO currency code.
      receipt: Merchant reference stored on the gateway order.

    Returns:
      The validated gateway order.

    Raises:
      ValidationError: If the amount is not an integer.
      GatewayError: On transport failure, non-success status or a malformed
        response body.
    """
    if isinstance(amount_minor_units, bool) or not isinstance(
        amount_minor_units, int
    ):
      raise ValidationError("Gateway amount must be an integer in minor units")

    url = f"{self.settings.gateway_base_url}/orders"
    payload = {
        "amount": amount_minor_units,
        "currency": currency,
        "receipt": receipt,
    }
    try:
      async with httpx.AsyncClient(
          transport=self._transport, timeout=self.settings.gateway_timeout
      ) as client:
        response = await client.post(
            url,
            json=payload,
            auth=(
                self.settings.gateway_key_id,
                self.settings.gateway_key_secret,
            ),
        )
    except httpx.HTTPError as e:
      logger.error("Network error creating gateway order %s: %s", receipt, e)
      raise GatewayError("Payment gateway unreachable") from e

    if not response.is_success:
      logger.error(
          "Gateway rejected order %s: status %d, body %s",
          receipt,
          response.status_code,
          response.text,
      )
      raise GatewayError(
          "Payment gateway order creation failed", raw_body=response.text
      )

    try:
      gateway_order = GatewayOrder.model_validate(response.json())
    except (ValueError, TypeError) as e:
      logger.error(
          "Malformed gateway response for %s: %s", receipt, response.text
      )
      raise GatewayError(
          "Malformed gateway response", raw_body=response.text
      ) from e

    logger.info(
        "Created gateway order %s for %s (%d %s)",
        gateway_order.id,
        receipt,
        amount_minor_units,
        currency,
    )
    return gateway_order
