import logging
from typing import Optional
from coparent_service.rabbitmq.producer import get_rabbitmq_producer
from coparent_service.services.errors import DependencyFailure

logger = logging.getLogger(__name__)


def notify(user_id: str, type: str, message: str, related_id: Optional[str] = None, producer=None) -> None:
    """Publish an in-app notification; raises DependencyFailure when the broker rejects it"""
    producer = producer or get_rabbitmq_producer()
    if not producer.publish_notification(user_id, type, message, related_id):
        raise DependencyFailure("notification", f"could not notify {user_id} about {related_id}")
    logger.info(f"Queued {type} notification for {user_id}")
