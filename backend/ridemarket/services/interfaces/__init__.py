"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .admission import AdmissionStrategy
from .optimistic_admission import OptimisticAdmission
from .inventory import OfferInventory
from .ledger import UserLedger
from .trips import TripAdvancer
from .collaborators import (
    ConversationGateway,
    IdentityResult,
    IdentityVerifier,
    LoggingConversationGateway,
    PaymentAuthority,
    PaymentOrder,
    PaymentVerification,
)

__all__ = [
    'AdmissionStrategy', 'OptimisticAdmission',
    'OfferInventory', 'UserLedger', 'TripAdvancer',
    'ConversationGateway', 'LoggingConversationGateway',
    'PaymentAuthority', 'PaymentOrder', 'PaymentVerification',
    'IdentityVerifier', 'IdentityResult',
]
