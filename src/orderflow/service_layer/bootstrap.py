"""
Bootstrap : assemblage de l'application (Composition Root).

Ce module construit le message bus avec toutes ses dépendances.
C'est ici que l'injection de dépendances est réalisée :
on assemble les composants concrets (ou les fakes pour les tests).

C'est le seul endroit de l'application qui connaît les
implémentations concrètes de chaque abstraction.
"""

from __future__ import annotations

from typing import Any

import boto3

from orderflow import config
from orderflow.adapters import event_bus as event_bus_adapters
from orderflow.adapters import notifications, store as store_adapters
from orderflow.adapters.completions import HttpCompletions
from orderflow.adapters.email_content import EmailContentGenerator
from orderflow.adapters.risk_gate import RiskGate
from orderflow.domain import commands
from orderflow.service_layer import handlers, messagebus

LOCAL_ORDER_TOPIC = "orders"
INVENTORY_QUEUE = "inventory"
NOTIFICATION_QUEUE = "notification"


def bootstrap(
    store: store_adapters.AbstractStore | None = None,
    event_bus: event_bus_adapters.AbstractEventBus | None = None,
    risk_gate: RiskGate | None = None,
    content_generator: EmailContentGenerator | None = None,
    notifications_adapter: notifications.AbstractNotifications | None = None,
    order_topic: str | None = None,
    **extra_dependencies: Any,
) -> messagebus.MessageBus:
    """
    Construit et retourne un MessageBus configuré.

    En production, utilise les implémentations concrètes.
    En test, on injecte des fakes via les paramètres.
    """
    if store is None:
        store = build_store()

    if event_bus is None:
        event_bus = build_event_bus()

    if risk_gate is None or content_generator is None:
        completions = HttpCompletions(**config.get_completions_settings())
        risk_gate = risk_gate or RiskGate(completions)
        content_generator = content_generator or EmailContentGenerator(completions)

    if notifications_adapter is None:
        notifications_adapter = build_notifications()

    addresses = config.get_email_addresses()
    dependencies: dict[str, Any] = {
        "event_bus": event_bus,
        "order_topic": order_topic or config.get_order_topic() or LOCAL_ORDER_TOPIC,
        "risk_gate": risk_gate,
        "content_generator": content_generator,
        "notifications": notifications_adapter,
        "sender": addresses["sender"],
        "recipient": addresses["recipient"],
        **extra_dependencies,
    }

    return messagebus.MessageBus(
        store=store,
        command_handlers=COMMAND_HANDLERS,
        dependencies=dependencies,
    )


def build_store() -> store_adapters.AbstractStore:
    if config.get_store_backend() == "dynamodb":
        client = boto3.client("dynamodb", config=config.get_boto3_config())
        return store_adapters.DynamoDBStore(client)
    return store_adapters.SqlAlchemyStore()


def build_event_bus() -> event_bus_adapters.AbstractEventBus:
    """
    SNS si un topic est configuré ; sinon un bus en mémoire avec les
    deux queues abonnées, pour une exécution dans un seul processus.
    """
    if config.get_order_topic():
        return event_bus_adapters.SnsEventBus(
            boto3.client("sns", config=config.get_boto3_config())
        )
    bus = event_bus_adapters.InMemoryEventBus()
    bus.subscribe(LOCAL_ORDER_TOPIC, INVENTORY_QUEUE)
    bus.subscribe(LOCAL_ORDER_TOPIC, NOTIFICATION_QUEUE)
    return bus


def build_subscription(
    queue_name: str, event_bus: event_bus_adapters.AbstractEventBus
) -> event_bus_adapters.AbstractSubscription:
    if isinstance(event_bus, event_bus_adapters.InMemoryEventBus):
        return event_bus.queue(queue_name)
    return event_bus_adapters.SqsSubscription(
        boto3.client("sqs", config=config.get_boto3_config()),
        config.get_queue_url(queue_name),
    )


def build_notifications() -> notifications.AbstractNotifications:
    if config.get_email_transport() == "ses":
        return notifications.SesNotifications(
            boto3.client("ses", config=config.get_boto3_config())
        )
    return notifications.EmailNotifications(**config.get_smtp_settings())


# --- Routage des commands vers les handlers ---

COMMAND_HANDLERS: dict[type[commands.Command], Any] = {
    commands.CreateOrder: handlers.create_order,
    commands.SettleInventory: handlers.settle_inventory,
    commands.NotifyCustomer: handlers.notify_customer,
}
