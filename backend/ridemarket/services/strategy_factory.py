"""
Admission strategy factory.
Configures which admission control strategy to use.
"""

from ridemarket.core.config import get_settings
from ridemarket.services.interfaces.admission import AdmissionStrategy
from ridemarket.services.interfaces.optimistic_admission import OptimisticAdmission


def get_admission_strategy() -> AdmissionStrategy:
    """
    Build the configured admission strategy.

    Strategy selection based on environment:
    - Development: OptimisticAdmission (simple)
    - Production: RedisAdmission (high-contention)

    Can be overridden via ADMISSION_STRATEGY env var.
    """
    strategy = get_settings().ADMISSION_STRATEGY

    if strategy == 'redis':
        from ridemarket.services.admission_service import RedisAdmission
        return RedisAdmission()
    return OptimisticAdmission()
