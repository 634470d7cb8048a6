import json
import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional
import pika
from .config import rabbitmq_config
from .setup import RabbitMQSetup

logger = logging.getLogger(__name__)


class RabbitMQProducer:
    """Handles publishing messages to RabbitMQ"""
    
    def __init__(self):
        self.connection: Optional[pika.BlockingConnection] = None
        self.channel = None
        self.setup = RabbitMQSetup()
    
    def connect(self) -> None:
        """Establish connection to RabbitMQ"""
        try:
            self.connection = self.setup.create_connection()
            self.channel = self.connection.channel()
            logger.info("RabbitMQ producer connected successfully")
        except Exception as e:
            logger.error(f"Failed to connect RabbitMQ producer: {e}")
            raise
    
    def disconnect(self) -> None:
        """Close RabbitMQ connection"""
        if self.channel and not self.channel.is_closed:
            self.channel.close()
        if self.connection and not self.connection.is_closed:
            self.connection.close()
        logger.info("RabbitMQ producer disconnected")

    def _publish(self, exchange: str, routing_key: str, payload: Dict[str, Any], correlation_id: Optional[str] = None) -> bool:
        """
        Publish a persistent JSON message

        Returns:
            bool: True if message published successfully, False otherwise
        """
        try:
            if not self.connection or self.connection.is_closed:
                self.connect()

            body = dict(payload)
            body["timestamp"] = datetime.now(timezone.utc).isoformat()

            self.channel.basic_publish(
                exchange=exchange,
                routing_key=routing_key,
                body=json.dumps(body, default=str),
                properties=pika.BasicProperties(
                    delivery_mode=2,  # Make message persistent
                    content_type='application/json',
                    correlation_id=correlation_id
                )
            )
            logger.info(f"Published {routing_key} message to {exchange}")
            return True

        except Exception as e:
            logger.error(f"Failed to publish {routing_key} message: {e}")
            return False

    def publish_message(self, sender_id: str, receiver_id: str, text: str, attachments: Optional[list] = None) -> bool:
        """Send a direct message from one co-parent to the other"""
        return self._publish(
            rabbitmq_config.messages_exchange,
            rabbitmq_config.message_send_key,
            {
                "sender_id": sender_id,
                "receiver_id": receiver_id,
                "text": text,
                "attachments": attachments or []
            }
        )

    def publish_notification(self, user_id: str, type: str, message: str, related_id: Optional[str] = None) -> bool:
        """Create an in-app notification for a user"""
        return self._publish(
            rabbitmq_config.notifications_exchange,
            rabbitmq_config.notification_create_key,
            {
                "user_id": user_id,
                "type": type,
                "message": message,
                "related_id": related_id
            },
            correlation_id=related_id
        )

    def publish_expense_approval_email(self, payload: Dict[str, Any]) -> bool:
        """Ask the e-mail service to send an approve/clarify request"""
        return self._publish(
            rabbitmq_config.email_exchange,
            rabbitmq_config.expense_approval_email_key,
            payload,
            correlation_id=payload.get("approval_token")
        )


# Global producer instance
_rabbitmq_producer: Optional[RabbitMQProducer] = None


def get_rabbitmq_producer() -> RabbitMQProducer:
    """Get or create RabbitMQ producer instance; connects lazily on first publish"""
    global _rabbitmq_producer
    if _rabbitmq_producer is None:
        _rabbitmq_producer = RabbitMQProducer()
    return _rabbitmq_producer


def close_rabbitmq_producer() -> None:
    """Close RabbitMQ producer connection"""
    global _rabbitmq_producer
    if _rabbitmq_producer:
        _rabbitmq_producer.disconnect()
        _rabbitmq_producer = None
