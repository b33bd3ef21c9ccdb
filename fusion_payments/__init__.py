"""MoneyFusion mobile-money payments: initiation, webhooks and reconciliation."""

__version__ = "0.1.0"
