"""
SQLAlchemy models package.
"""
from app.models.integration import IntegrationCredential, IntegrationLog
from app.models.webhook import Webhook, WebhookLog

__all__ = ["IntegrationCredential", "IntegrationLog", "Webhook", "WebhookLog"]
