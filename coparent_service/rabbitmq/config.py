from pydantic_settings import BaseSettings, SettingsConfigDict


class RabbitMQConfig(BaseSettings):
    """RabbitMQ connection and routing settings"""
    model_config = SettingsConfigDict(env_prefix="RABBITMQ_", env_file=".env", extra="ignore")

    host: str = "localhost"
    port: int = 5672
    username: str = "guest"
    password: str = "guest"
    virtual_host: str = "/"
    heartbeat: int = 600
    blocked_connection_timeout: int = 300

    # Outbound exchanges consumed by the messaging, notification and e-mail services
    messages_exchange: str = "coparent.messages"
    message_send_key: str = "message.send"
    notifications_exchange: str = "coparent.notifications"
    notification_create_key: str = "notification.create"
    email_exchange: str = "coparent.email"
    expense_approval_email_key: str = "email.expense.approval"


rabbitmq_config = RabbitMQConfig()
