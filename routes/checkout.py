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

"""Cart, checkout and payment verification routes."""

import dependencies
from fastapi import APIRouter
from fastapi import Body
from fastapi import Depends
from fastapi import Path
from models import CartResponse
from models import CreateOrderResponse
from models import MergeCartRequest
from models import MergeCartResponse
from models import OrderResponse
from models import VerifyPaymentRequest
from models import VerifyPaymentResponse
from services.cart_service import CartResolver
from services.checkout_service import CheckoutService

router = APIRouter()


@router.post(
    "/merge-cart",
    response_model=MergeCartResponse,
    operation_id="merge_cart",
)
async def merge_cart(
    request: MergeCartRequest = Body(...),
    user_id: str = Depends(dependencies.get_current_user_id),
    cart_resolver: CartResolver = Depends(dependencies.get_cart_resolver),
) -> MergeCartResponse:
  """Merge items into the caller's active cart."""
  return await cart_resolver.merge_items(user_id, request.items)


@router.get(
    "/cart",
    response_model=CartResponse,
    operation_id="get_cart",
)
async def get_cart(
    user_id: str = Depends(dependencies.get_current_user_id),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> CartResponse:
  """Get the caller's active cart with catalog prices."""
  return await checkout_service.get_cart(user_id)


@router.post(
    "/create-order",
    response_model=CreateOrderResponse,
    operation_id="create_order",
)
async def create_order(
    user_id: str = Depends(dependencies.get_current_user_id),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> CreateOrderResponse:
  """Check out the caller's active cart and open a gateway order."""
  return await checkout_service.create_order(user_id)


@router.post(
    "/verify-payment",
    response_model=VerifyPaymentResponse,
    response_model_exclude_none=True,
    operation_id="verify_payment",
)
async def verify_payment(
    request: VerifyPaymentRequest = Body(...),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> VerifyPaymentResponse:
  """Confirm an order from the gateway's signed payment result."""
  return await checkout_service.verify_payment(request)


@router.get(
    "/orders/{id}",
    response_model=OrderResponse,
    operation_id="get_order",
)
async def get_order(
    order_id: str = Path(..., alias="id"),
    user_id: str = Depends(dependencies.get_current_user_id),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> OrderResponse:
  """Get one of the caller's orders."""
  return await checkout_service.get_order(user_id, order_id)
