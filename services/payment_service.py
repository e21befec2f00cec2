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

"""Local payment records and their reconciliation with the gateway.

This module provides the three steps that tie a local order to its gateway
counterpart:
- `PaymentRecorder` stores the Payment row for a freshly created gateway order
  and links the gateway order ID onto the order.
- `PaymentVerifier` checks the gateway's HMAC-SHA256 signature over
  "{gateway_order_id}|{gateway_payment_id}".
- `StateReconciler` applies the terminal transition, payment PAID and order
  CONFIRMED, exactly once.
"""

import datetime
import hashlib
import hmac
import logging
from typing import Any, Dict, Optional
import uuid

import db
from enums import PaymentStatus
from exceptions import PersistenceError
from models import GatewayOrder
from sqlalchemy.exc import IntegrityError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def compute_signature(
    gateway_order_id: str, gateway_payment_id: str, secret: str
) -> str:
  """Returns the lower-case hex HMAC-SHA256 the gateway signs payments with."""
  payload = f"{gateway_order_id}|{gateway_payment_id}"
  return hmac.new(
      secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256
  ).hexdigest()


class _OrderAlreadyLinked(Exception):
  pass


class PaymentRecorder:
  """Persists the local payment row for a gateway order."""

  def __init__(self, transactions_session: AsyncSession):
    self.transactions_session = transactions_session

  async def record_payment(
      self,
      order: db.Order,
      gateway_order: GatewayOrder,
      amount: int,
      currency: str,
  ) -> db.Payment:
    """Inserts a CREATED payment and links the gateway order onto the order.

    If a concurrent request already linked a different gateway order, nothing
    is written and that request's payment is returned instead.

    Raises:
      PersistenceError: If the store rejects the write.
    """
    session = self.transactions_session
    order_id = order.id
    now = datetime.datetime.now(datetime.timezone.utc).isoformat()
    payment = db.Payment(
        id=str(uuid.uuid4()),
        order_id=order_id,
        gateway_order_id=gateway_order.id,
        amount=amount,
        currency=currency,
        status=PaymentStatus.CREATED.value,
        created_at=now,
        updated_at=now,
    )
    try:
      if not await db.link_gateway_order(session, order_id, gateway_order.id):
        raise _OrderAlreadyLinked()
      session.add(payment)
      await session.commit()
    except (IntegrityError, _OrderAlreadyLinked) as e:
      await session.rollback()
      winner = await db.get_payment_for_order(session, order_id)
      if winner is None:
        raise PersistenceError("Failed to record payment") from e
      logger.warning(
          "Gateway order %s superseded by %s for order %s",
          gateway_order.id,
          winner.gateway_order_id,
          order_id,
      )
      return winner
    except SQLAlchemyError as e:
      await session.rollback()
      raise PersistenceError("Failed to record payment") from e

    logger.info(
        "Recorded payment %s for order %s (gateway order %s)",
        payment.id,
        order_id,
        gateway_order.id,
    )
    return payment


class PaymentVerifier:
  """Checks that a payment confirmation was signed by the gateway."""

  def __init__(self, shared_secret: str):
    self._shared_secret = shared_secret

  def verify(
      self, payment: db.Payment, gateway_payment_id: str, signature: str
  ) -> bool:
    """Returns whether the confirmation for `payment` is authentic.

    A payment that is already PAID counts as verified without re-running the
    HMAC, so replayed callbacks succeed. Never raises for a bad signature.
    """
    if payment.status == PaymentStatus.PAID:
      return True
    if not self._shared_secret:
      logger.error("No shared secret configured; rejecting signature")
      return False
    expected = compute_signature(
        payment.gateway_order_id, gateway_payment_id, self._shared_secret
    )
    return hmac.compare_digest(
        expected.encode("utf-8"), (signature or "").encode("utf-8")
    )


class StateReconciler:
  """Applies the verified payment to the payment and order rows."""

  def __init__(self, transactions_session: AsyncSession):
    self.transactions_session = transactions_session

  async def reconcile(
      self,
      order: db.Order,
      payment: db.Payment,
      gateway_payment_id: str,
      raw_payload: Optional[Dict[str, Any]] = None,
  ) -> bool:
    """Marks the payment PAID and the order CONFIRMED in one transaction.

    This is the only place an order becomes CONFIRMED.

    Returns:
      True if this call applied the transition, False if a concurrent callback
      had already applied it.

    Raises:
      PersistenceError: If the store rejects the write.
    """
    session = self.transactions_session
    order_id = order.id
    payment_id = payment.id
    try:
      applied = await db.mark_payment_paid(
          session, payment_id, gateway_payment_id, raw_payload
      )
      if applied:
        await db.confirm_order(session, order_id)
      await session.commit()
    except SQLAlchemyError as e:
      await session.rollback()
      raise PersistenceError("Failed to confirm payment") from e

    if applied:
      logger.info(
          "Payment %s PAID (gateway payment %s); order %s CONFIRMED",
          payment_id,
          gateway_payment_id,
          order_id,
      )
    else:
      logger.info("Payment %s was already PAID", payment_id)
    return applied
