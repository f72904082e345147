"""
Configuration de l'application.

Tout est lu dans l'environnement au moment du déploiement, avec des
valeurs par défaut adaptées à un poste de développement. La logique
métier ne lit jamais l'environnement : seuls bootstrap et les
adapters appellent ces fonctions.
"""

from __future__ import annotations

import os

from botocore.config import Config


def get_store_backend() -> str:
    return os.environ.get("STORE_BACKEND", "sqlalchemy")


def get_database_uri() -> str:
    return os.environ.get("DATABASE_URL", "sqlite:///orders.db")


def get_orders_table() -> str:
    return os.environ.get("ORDERS_TABLE", "orders")


def get_inventory_table() -> str:
    return os.environ.get("INVENTORY_TABLE", "inventory")


def get_aws_region() -> str:
    return os.environ.get("AWS_REGION", "us-east-1")


def get_boto3_config() -> Config:
    """Timeouts explicites : un appel AWS ne doit jamais bloquer indéfiniment."""
    return Config(
        region_name=get_aws_region(),
        connect_timeout=2,
        read_timeout=5,
        retries={"max_attempts": 3, "mode": "standard"},
    )


def get_order_topic() -> str:
    """ARN du topic SNS ; vide -> bus en mémoire."""
    return os.environ.get("ORDER_TOPIC_ARN", "")


def get_queue_url(queue: str) -> str:
    return os.environ.get(f"{queue.upper()}_QUEUE_URL", "")


def get_completions_settings() -> dict[str, str]:
    return dict(
        base_url=os.environ.get("COMPLETIONS_BASE_URL", "https://api.groq.com/openai/v1"),
        api_key=os.environ.get("COMPLETIONS_API_KEY", ""),
        model=os.environ.get("COMPLETIONS_MODEL", "llama-3.3-70b-versatile"),
    )


def get_email_transport() -> str:
    return os.environ.get("EMAIL_TRANSPORT", "smtp")


def get_smtp_settings() -> dict:
    return dict(
        smtp_host=os.environ.get("SMTP_HOST", "localhost"),
        smtp_port=int(os.environ.get("SMTP_PORT", "587")),
    )


def get_email_addresses() -> dict[str, str]:
    sender = os.environ.get("SENDER_EMAIL", "orders@example.com")
    return dict(
        sender=sender,
        recipient=os.environ.get("RECIPIENT_EMAIL", sender),
    )


def get_notification_batch_size() -> int:
    return int(os.environ.get("NOTIFICATION_BATCH_SIZE", "5"))


def get_embedded_workers() -> bool:
    """Workers dans le processus de l'API quand le bus est en mémoire."""
    return os.environ.get("EMBEDDED_WORKERS", "true").lower() in ("1", "true", "yes")
