from .webhook_service import WebhookService, extract_message_content, message_type, ERP_WEBHOOK_EVENTS

__all__ = ['WebhookService', 'extract_message_content', 'message_type', 'ERP_WEBHOOK_EVENTS']
