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

"""FastAPI dependencies for the checkout server.

This module contains dependency injection logic for FastAPI endpoints,
including:
- Access to the immutable `Settings` built at startup.
- Database session management (Products and Transactions DBs).
- Caller authentication through the auth provider.
- Service instantiation (cart, order, gateway and payment components).
"""

from typing import AsyncGenerator, Optional

from config import Settings
import db
from exceptions import PersistenceError
from fastapi import Depends
from fastapi import Header
from fastapi import Request
from services.auth_client import AuthClient
from services.cart_service import CartResolver
from services.checkout_service import CheckoutService
from services.gateway_client import PaymentGatewayClient
from services.order_service import OrderAssembler
from services.payment_service import PaymentRecorder
from services.payment_service import PaymentVerifier
from services.payment_service import StateReconciler
from sqlalchemy.ext.asyncio import AsyncSession


def get_settings(request: Request) -> Settings:
  """Dependency provider for the startup settings."""
  return request.app.state.settings


async def get_products_db() -> AsyncGenerator[AsyncSession, None]:
  """Dependency provider for Products DB session."""
  if db.manager.products_session_factory is None:
    raise PersistenceError("Products database is not configured")
  async with db.manager.products_session_factory() as session:
    yield session


async def get_transactions_db() -> AsyncGenerator[AsyncSession, None]:
  """Dependency provider for Transactions DB session."""
  if db.manager.transactions_session_factory is None:
    raise PersistenceError("Transactions database is not configured")
  async with db.manager.transactions_session_factory() as session:
    yield session


def get_auth_client(settings: Settings = Depends(get_settings)) -> AuthClient:
  """Dependency provider for AuthClient."""
  return AuthClient(settings)


async def get_current_user_id(
    authorization: Optional[str] = Header(None),
    auth_client: AuthClient = Depends(get_auth_client),
) -> str:
  """Resolves the caller's bearer credential to a verified user ID."""
  return await auth_client.get_user_id(authorization)


def get_gateway_client(
    settings: Settings = Depends(get_settings),
) -> PaymentGatewayClient:
  """Dependency provider for PaymentGatewayClient."""
  return PaymentGatewayClient(settings)


def get_cart_resolver(
    products_session: AsyncSession = Depends(get_products_db),
    transactions_session: AsyncSession = Depends(get_transactions_db),
) -> CartResolver:
  """Dependency provider for CartResolver."""
  return CartResolver(products_session, transactions_session)


def get_checkout_service(
    settings: Settings = Depends(get_settings),
    transactions_session: AsyncSession = Depends(get_transactions_db),
    cart_resolver: CartResolver = Depends(get_cart_resolver),
    gateway_client: PaymentGatewayClient = Depends(get_gateway_client),
) -> CheckoutService:
  """Dependency provider for CheckoutService."""
  return CheckoutService(
      settings=settings,
      transactions_session=transactions_session,
      cart_resolver=cart_resolver,
      order_assembler=OrderAssembler(transactions_session, cart_resolver),
      gateway_client=gateway_client,
      payment_recorder=PaymentRecorder(transactions_session),
      payment_verifier=PaymentVerifier(settings.gateway_key_secret),
      state_reconciler=StateReconciler(transactions_session),
  )
