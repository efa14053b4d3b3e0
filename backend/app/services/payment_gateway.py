"""
Token packages and the (mock) external payment gateway.

The gateway is the only outbound call on the payment path, so every charge
goes through the payment circuit breaker.
"""

import logging
import uuid
from dataclasses import dataclass, asdict
from typing import Dict, List

from backend.app.core.datetime_utils import utcnow
from backend.app.core.exceptions import ValidationError, PaymentGatewayError, ServiceUnavailableError
from backend.app.core.reliability import CircuitOpenError, payment_gateway_breaker

logger = logging.getLogger("gym.payments.gateway")


@dataclass(frozen=True)
class TokenPackage:
    id: str
    name: str
    tokens: int
    price: float

    def as_dict(self) -> dict:
        return asdict(self)


TOKEN_PACKAGES: Dict[str, TokenPackage] = {
    "basic": TokenPackage("basic", "Basic Package", 10, 0.0),
    "standard": TokenPackage("standard", "Standard Package", 30, 0.0),
    "premium": TokenPackage("premium", "Premium Package", 100, 0.0),
}


def list_packages() -> List[TokenPackage]:
    return list(TOKEN_PACKAGES.values())


def get_package(package_id: str) -> TokenPackage:
    package = TOKEN_PACKAGES.get((package_id or "").lower())
    if package is None:
        raise ValidationError(
            "Invalid token package",
            details={"package_id": package_id, "available": list(TOKEN_PACKAGES)}
        )
    return package


@dataclass
class GatewayCharge:
    gateway_reference: str
    amount: float
    status: str
    charged_at: str


class MockPaymentGateway:
    """
    Stand-in for a card/online processor. Every charge succeeds.

    Tests replace `charge` to simulate processor failures.
    """

    async def charge(self, member_id: int, package: TokenPackage) -> GatewayCharge:
        return GatewayCharge(
            gateway_reference=f"gw_{uuid.uuid4().hex}",
            amount=package.price,
            status="completed",
            charged_at=utcnow().isoformat(),
        )


payment_gateway = MockPaymentGateway()


async def charge_package(member_id: int, package: TokenPackage) -> GatewayCharge:
    """
    Charge a package through the circuit breaker.

    Raises:
        ServiceUnavailableError: breaker is open
        PaymentGatewayError: the gateway call failed
    """
    try:
        return await payment_gateway_breaker.call(payment_gateway.charge, member_id, package)
    except CircuitOpenError as exc:
        logger.warning("Payment gateway short-circuited for member %d", member_id)
        raise ServiceUnavailableError("Payment gateway") from exc
    except PaymentGatewayError:
        raise
    except Exception as exc:
        logger.exception("Payment gateway charge failed for member %d", member_id)
        raise PaymentGatewayError(details={"package_id": package.id}) from exc
