"""
External collaborators consumed by the core.

The core calls each of them once per operation with no retry loop. Chat
creation is best-effort; payment and identity results gate state changes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ridemarket.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class PaymentOrder:
    order_id: str
    amount: float
    currency: str = "INR"


@dataclass
class PaymentVerification:
    verified: bool
    transaction_id: Optional[str] = None


@dataclass
class IdentityResult:
    verified: bool
    task_id: Optional[str] = None


class ConversationGateway(ABC):

    @abstractmethod
    async def create_or_get_conversation(self, booking_id: int, service_type: str) -> None:
        pass


class PaymentAuthority(ABC):

    @abstractmethod
    async def create_order(self, booking_id: int, amount: float) -> PaymentOrder:
        pass

    @abstractmethod
    async def verify_payment(self, order_id: str, payment_id: str, signature: str) -> PaymentVerification:
        pass


class IdentityVerifier(ABC):

    @abstractmethod
    async def verify(self, document_type: str, number: str, extra: Optional[dict] = None) -> IdentityResult:
        pass


class LoggingConversationGateway(ConversationGateway):
    """Default gateway when no chat service is wired: records the request only."""

    async def create_or_get_conversation(self, booking_id: int, service_type: str) -> None:
        logger.info("conversation_requested", booking_id=booking_id, service_type=service_type)
