"""
Shared route dependencies.
"""

from fastapi import Depends

from app.infrastructure.gateway import PaymentGateway, get_gateway
from app.services.payment_service import PaymentOrchestrator, build_orchestrator


def get_payment_orchestrator(gateway: PaymentGateway = Depends(get_gateway)) -> PaymentOrchestrator:
    return build_orchestrator(gateway)
