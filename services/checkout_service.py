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

"""Checkout service coordinating local orders with the payment gateway.

This module provides the `CheckoutService` class, which drives the two halves
of the checkout workflow:

- `create_order` (synchronous): cart -> order -> gateway order -> payment row.
  The gateway call and the local write are two independent commits. When the
  local write fails after the gateway accepted the order, the gateway order is
  left dangling; this is logged at ERROR with everything needed to reconcile
  it out-of-band, and the error is still surfaced to the caller.
- `verify_payment` (asynchronous callback, delivered at least once): signature
  check -> payment PAID, order CONFIRMED. Replays are no-ops.

Both halves are safe to repeat: a retried `create_order` returns the same
order and gateway order, and a replayed `verify_payment` reports success
without touching the rows again.
"""

import logging

from config import Settings
import db
from enums import PaymentStatus
from exceptions import NotFoundError
from exceptions import PersistenceError
from exceptions import SignatureMismatchError
from exceptions import ValidationError
from models import CartResponse
from models import CreateOrderResponse
from models import OrderLine
from models import OrderResponse
from models import ResolvedCartLine
from models import VerifyPaymentRequest
from models import VerifyPaymentResponse
from services.cart_service import CartResolver
from services.gateway_client import PaymentGatewayClient
from services.order_service import OrderAssembler
from services.order_service import to_minor_units
from services.payment_service import PaymentRecorder
from services.payment_service import PaymentVerifier
from services.payment_service import StateReconciler
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class CheckoutService:
  """Service for checking out carts and confirming their payments."""

  def __init__(
      self,
      settings: Settings,
      transactions_session: AsyncSession,
      cart_resolver: CartResolver,
      order_assembler: OrderAssembler,
      gateway_client: PaymentGatewayClient,
      payment_recorder: PaymentRecorder,
      payment_verifier: PaymentVerifier,
      state_reconciler: StateReconciler,
  ):
    self.settings = settings
    self.transactions_session = transactions_session
    self.cart_resolver = cart_resolver
    self.order_assembler = order_assembler
    self.gateway_client = gateway_client
    self.payment_recorder = payment_recorder
    self.payment_verifier = payment_verifier
    self.state_reconciler = state_reconciler

  async def create_order(self, user_id: str) -> CreateOrderResponse:
    """Checks out the user's active cart and opens a gateway order for it."""
    logger.info("Creating order for user %s", user_id)
    order = await self.order_assembler.assemble_order(user_id)
    order_id = order.id
    currency = self.settings.currency
    amount = to_minor_units(order.grand_total)

    payment = await db.get_payment_for_order(
        self.transactions_session, order_id
    )
    if payment is not None:
      logger.info(
          "Order %s already has gateway order %s",
          order_id,
          payment.gateway_order_id,
      )
    else:
      gateway_order = await self.gateway_client.create_gateway_order(
          amount, currency, f"order_{order_id}"
      )
      try:
        payment = await self.payment_recorder.record_payment(
            order, gateway_order, amount, currency
        )
      except PersistenceError:
        logger.error(
            "Dangling gateway order %s: created for order %s (%d %s) but not"
            " recorded locally; reconcile out-of-band",
            gateway_order.id,
            order_id,
            amount,
            currency,
        )
        raise

    return CreateOrderResponse(
        order_id=order_id,
        gateway_order_id=payment.gateway_order_id,
        amount=payment.amount,
        currency=payment.currency or currency,
        key=self.settings.gateway_key_id,
    )

  async def verify_payment(
      self, request: VerifyPaymentRequest
  ) -> VerifyPaymentResponse:
    """Confirms an order from the gateway's signed payment callback.

    Unknown gateway orders and bad signatures fail with the same error so the
    response does not reveal which orders exist.
    """
    gateway_order_id = request.gateway_order_id
    gateway_payment_id = request.gateway_payment_id
    signature = request.signature
    if not gateway_order_id or not gateway_payment_id or not signature:
      raise ValidationError("Missing payment verification fields")

    session = self.transactions_session
    payment = await db.get_payment_by_gateway_order_id(
        session, gateway_order_id, for_update=True
    )
    if payment is None:
      logger.warning(
          "Verification for unknown gateway order %s", gateway_order_id
      )
      raise SignatureMismatchError()

    order_id = payment.order_id
    already_paid = payment.status == PaymentStatus.PAID
    if not self.payment_verifier.verify(
        payment, gateway_payment_id, signature
    ):
      logger.warning(
          "Signature mismatch for gateway order %s (payment %s)",
          gateway_order_id,
          gateway_payment_id,
      )
      raise SignatureMismatchError()

    if already_paid:
      logger.info("Gateway order %s already verified", gateway_order_id)
      return VerifyPaymentResponse(
          success=True, order_id=order_id, message="Already verified"
      )

    order = await db.get_order(session, order_id)
    if order is None:
      logger.error(
          "Payment %s references missing order %s", payment.id, order_id
      )
      raise SignatureMismatchError()

    applied = await self.state_reconciler.reconcile(
        order,
        payment,
        gateway_payment_id,
        raw_payload=request.model_dump(),
    )
    return VerifyPaymentResponse(
        success=True,
        order_id=order_id,
        message=None if applied else "Already verified",
    )

  async def get_cart(self, user_id: str) -> CartResponse:
    """Returns the user's priced ACTIVE cart."""
    resolved = await self.cart_resolver.get_active_cart_with_items(user_id)
    return CartResponse(
        cart_id=resolved.cart.id,
        items=[
            ResolvedCartLine(
                product_id=item.product_id,
                product_name=item.product_name,
                price=item.price,
                quantity=item.quantity,
                item_total=item.item_total,
            )
            for item in resolved.items
        ],
        subtotal=resolved.subtotal,
    )

  async def get_order(self, user_id: str, order_id: str) -> OrderResponse:
    """Returns one of the user's orders with its item snapshot."""
    session = self.transactions_session
    order = await db.get_order(session, order_id)
    if order is None or order.user_id != user_id:
      raise NotFoundError("Order not found")
    items = await db.get_order_items(session, order_id)
    return OrderResponse(
        id=order.id,
        sub_total=order.sub_total,
        discount_total=order.discount_total,
        grand_total=order.grand_total,
        status=order.status,
        payment_status=order.payment_status,
        gateway_order_id=order.gateway_order_id,
        items=[
            OrderLine(
                product_id=i.product_id,
                product_name=i.product_name,
                price=i.price,
                qty=i.qty,
                item_total=i.item_total,
            )
            for i in items
        ],
    )
