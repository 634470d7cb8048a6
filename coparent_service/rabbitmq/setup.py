import logging
import pika
from .config import rabbitmq_config

logger = logging.getLogger(__name__)


class RabbitMQSetup:
    """Creates connections and declares the exchanges this service publishes to"""

    def __init__(self, config=rabbitmq_config):
        self.config = config

    def create_connection(self) -> pika.BlockingConnection:
        credentials = pika.PlainCredentials(self.config.username, self.config.password)
        parameters = pika.ConnectionParameters(
            host=self.config.host,
            port=self.config.port,
            virtual_host=self.config.virtual_host,
            credentials=credentials,
            heartbeat=self.config.heartbeat,
            blocked_connection_timeout=self.config.blocked_connection_timeout
        )
        return pika.BlockingConnection(parameters)

    def declare_exchanges(self, channel) -> None:
        for exchange in (
            self.config.messages_exchange,
            self.config.notifications_exchange,
            self.config.email_exchange,
        ):
            channel.exchange_declare(exchange=exchange, exchange_type="topic", durable=True)
            logger.info(f"Declared exchange {exchange}")


def init_rabbitmq() -> bool:
    """Declare exchanges at startup; the service keeps running without a broker"""
    setup = RabbitMQSetup()
    try:
        connection = setup.create_connection()
    except Exception as e:
        logger.error(f"RabbitMQ unavailable, outbound messages will fail until it is reachable: {e}")
        return False

    try:
        setup.declare_exchanges(connection.channel())
    finally:
        connection.close()
    logger.info("RabbitMQ exchanges initialised")
    return True
