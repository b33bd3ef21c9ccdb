"""External integrations: MoneyFusion API client and webhook ingress.

The webhook ingress depends on the reconciliation engine; import it from
``fusion_payments.integrations.webhook_handler`` directly.
"""
from .gateway_client import MoneyFusionClient

__all__ = ["MoneyFusionClient"]
