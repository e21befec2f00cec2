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

"""Custom exceptions for the checkout server."""

from typing import Optional


class CheckoutError(Exception):
  """Base class for all checkout exceptions."""

  def __init__(
      self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500
  ):
    self.message = message
    self.code = code
    self.status_code = status_code
    super().__init__(self.message)


class ValidationError(CheckoutError):
  """Raised when the request is malformed or misses required fields."""

  def __init__(self, message: str):
    super().__init__(message, code="INVALID_REQUEST", status_code=400)


class Unauthorized(CheckoutError):
  """Raised when the caller's credential is missing or rejected."""

  def __init__(self, message: str):
    super().__init__(message, code="UNAUTHORIZED", status_code=401)


class NotFoundError(CheckoutError):
  """Raised when a requested resource is not found."""

  def __init__(self, message: str):
    super().__init__(message, code="RESOURCE_NOT_FOUND", status_code=404)


class EmptyCartError(CheckoutError):
  """Raised when checking out an active cart that holds no items."""

  def __init__(self, message: str = "Cart is empty"):
    super().__init__(message, code="EMPTY_CART", status_code=400)


class GatewayError(CheckoutError):
  """Raised when the payment gateway rejects or fails a request.

  The gateway's raw response body is kept on `raw_body` for diagnostics; it is
  logged but never sent back to the client.
  """

  def __init__(self, message: str, raw_body: Optional[str] = None):
    super().__init__(message, code="GATEWAY_ERROR", status_code=502)
    self.raw_body = raw_body


class SignatureMismatchError(CheckoutError):
  """Raised when a payment confirmation cannot be verified."""

  def __init__(self, message: str = "Payment verification failed"):
    super().__init__(message, code="SIGNATURE_MISMATCH", status_code=400)


class PersistenceError(CheckoutError):
  """Raised when a write to the transactional store fails."""

  def __init__(self, message: str):
    super().__init__(message, code="PERSISTENCE_ERROR", status_code=500)
