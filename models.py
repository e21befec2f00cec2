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

"""Request, response and boundary models for the checkout server.

Everything that crosses a process boundary (client requests, responses and
gateway payloads) is validated into one of these models before it reaches the
services.
"""

from decimal import Decimal
from typing import Any, List, Optional

from pydantic import AliasChoices
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field


class MergeCartItem(BaseModel):
  """One incoming cart entry, kept as sent.

  Fields are untyped so that one unusable entry does not reject the whole
  request; the cart resolver skips entries it cannot use.
  """

  product_id: Any = None
  quantity: Any = None


class MergeCartRequest(BaseModel):
  items: List[MergeCartItem] = []


class CartLine(BaseModel):
  product_id: str
  quantity: int


class MergeCartResponse(BaseModel):
  cart_id: str
  items: List[CartLine]


class ResolvedCartLine(BaseModel):
  product_id: str
  product_name: Optional[str] = None
  price: Decimal
  quantity: int
  item_total: Decimal


class CartResponse(BaseModel):
  cart_id: str
  items: List[ResolvedCartLine]
  subtotal: Decimal


class CreateOrderResponse(BaseModel):
  order_id: str
  gateway_order_id: str
  amount: int  # Minor currency units
  currency: str
  key: str


class VerifyPaymentRequest(BaseModel):
  """Payment confirmation sent back after the gateway checkout completes.

  The `razorpay_*` names used by the Razorpay checkout widget are accepted as
  aliases.
  """

  gateway_order_id: Optional[str] = Field(
      default=None,
      validation_alias=AliasChoices("gateway_order_id", "razorpay_order_id"),
  )
  gateway_payment_id: Optional[str] = Field(
      default=None,
      validation_alias=AliasChoices(
          "gateway_payment_id", "razorpay_payment_id"
      ),
  )
  signature: Optional[str] = Field(
      default=None,
      validation_alias=AliasChoices("signature", "razorpay_signature"),
  )


class VerifyPaymentResponse(BaseModel):
  success: bool
  order_id: str
  message: Optional[str] = None


class OrderLine(BaseModel):
  product_id: str
  product_name: Optional[str] = None
  price: Decimal
  qty: int
  item_total: Decimal


class OrderResponse(BaseModel):
  id: str
  sub_total: Decimal
  discount_total: Decimal
  grand_total: Decimal
  status: str
  payment_status: str
  gateway_order_id: Optional[str] = None
  items: List[OrderLine]


class GatewayOrder(BaseModel):
  """Order object returned by the gateway's `POST /orders`."""

  model_config = ConfigDict(extra="allow")

  id: str = Field(min_length=1)
  amount: Optional[int] = None
  currency: Optional[str] = None
  receipt: Optional[str] = None
  status: Optional[str] = None
