"""
Infrastructure layer - the payment gateway adapter.
Workflows depend on PaymentGateway; get_gateway picks the implementation.
"""

from .gateway import PaymentGateway, MockGateway, GatewayError, GatewayRefund, get_gateway, sign_payment

__all__ = ['PaymentGateway', 'MockGateway', 'GatewayError', 'GatewayRefund', 'get_gateway', 'sign_payment']
