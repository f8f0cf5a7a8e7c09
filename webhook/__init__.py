"""HTTP surface for ingestion and partner queries."""
from webhook.webhook_handler import WebhookHandler, start_webhook_server, sign_payload

__all__ = ['WebhookHandler', 'start_webhook_server', 'sign_payload']
