from .event_queue_service import EventQueueService, ORDER_EVENTS, PRODUCT_EVENTS, MESSAGE_EVENTS

__all__ = ['EventQueueService', 'ORDER_EVENTS', 'PRODUCT_EVENTS', 'MESSAGE_EVENTS']
