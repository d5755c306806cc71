"""
app/connectors package marker.
"""

from app.connectors.base import (
    BaseConnector,
    GatewayClientError,
    GatewayError,
    GatewayServerError,
    GatewayTransportError,
)
from app.connectors.municipal_money_connector import MunicipalMoneyConnector

__all__ = [
    "BaseConnector",
    "GatewayClientError",
    "GatewayError",
    "GatewayServerError",
    "GatewayTransportError",
    "MunicipalMoneyConnector",
]
