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

"""Enumerations for the checkout server.

This module defines the states of carts, orders and payments. Orders carry
two of them: `OrderStatus` for the order itself and `PaymentStatus` for the
money side. (CONFIRMED, PAID) is terminal.
"""

import enum


class CartStatus(str, enum.Enum):
  ACTIVE = "ACTIVE"
  CONVERTED = "CONVERTED"


class OrderStatus(str, enum.Enum):
  CREATED = "CREATED"
  CONFIRMED = "CONFIRMED"


class PaymentStatus(str, enum.Enum):
  CREATED = "CREATED"
  PAID = "PAID"
