"""
Consommateurs de queues (workers).

Chaque worker est un abonné indépendant : il lit sa propre queue,
reconvertit l'event OrderCreated en sa command, l'envoie au message
bus, puis acquitte (succès) ou signale l'échec (relivraison, puis
dead-letter une fois le budget épuisé).

- inventaire : lots de 1, chaque décision porte sur un stock frais
- notification : lots de plusieurs messages, sans invariant croisé
"""

from __future__ import annotations

import argparse
import logging
import threading
from dataclasses import dataclass
from typing import Callable

from orderflow import config
from orderflow.adapters.event_bus import AbstractSubscription, Delivery
from orderflow.domain import commands, events
from orderflow.service_layer import bootstrap, messagebus

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    acked: int = 0
    failed: int = 0


def settlement_command(payload: dict) -> commands.SettleInventory:
    return commands.SettleInventory.from_event(events.OrderCreated.from_message(payload))


def notification_command(payload: dict) -> commands.NotifyCustomer:
    return commands.NotifyCustomer.from_event(events.OrderCreated.from_message(payload))


def process_delivery(
    bus: messagebus.MessageBus,
    to_command: Callable[[dict], commands.Command],
    delivery: Delivery,
) -> bool:
    """
    Traite un message livré. Retourne False si le message doit être
    relivré : l'erreur est loggée ici, jamais avalée silencieusement.
    """
    event_type = delivery.attributes.get("eventType")
    if event_type and event_type != events.OrderCreated.EVENT_TYPE:
        logger.info("Event %s ignoré", event_type)
        return True
    try:
        bus.handle(to_command(delivery.payload))
    except Exception:
        logger.exception(
            "Échec du traitement (réception n°%d), le message sera relivré",
            delivery.receive_count,
        )
        return False
    return True


class QueueConsumer:

    def __init__(
        self,
        subscription: AbstractSubscription,
        bus: messagebus.MessageBus,
        to_command: Callable[[dict], commands.Command],
        batch_size: int = 1,
        idle_delay: float = 1.0,
    ):
        self.subscription = subscription
        self.bus = bus
        self.to_command = to_command
        self.batch_size = batch_size
        self.idle_delay = idle_delay

    def poll_once(self) -> BatchResult:
        """
        Traite un lot. Chaque message est acquitté ou non
        indépendamment : un échec ne bloque pas les autres.
        """
        result = BatchResult()
        for delivery in self.subscription.receive(self.batch_size):
            if self.process(delivery):
                self.subscription.ack(delivery)
                result.acked += 1
            else:
                self.subscription.nack(delivery)
                result.failed += 1
        return result

    def process(self, delivery: Delivery) -> bool:
        return process_delivery(self.bus, self.to_command, delivery)

    def run(self, stop: threading.Event | None = None) -> None:
        """Boucle jusqu'à stop ; attend idle_delay après chaque lot vide."""
        stop = stop or threading.Event()
        while not stop.is_set():
            result = self.poll_once()
            if not (result.acked or result.failed):
                stop.wait(self.idle_delay)


WORKERS = {
    bootstrap.INVENTORY_QUEUE: settlement_command,
    bootstrap.NOTIFICATION_QUEUE: notification_command,
}


def start_embedded_workers(
    bus: messagebus.MessageBus, stop: threading.Event | None = None
) -> list[threading.Thread]:
    """
    Lance les deux workers dans des threads du processus courant.

    Sert quand le bus d'événements est en mémoire : seul le processus
    qui publie peut alors vider les queues.
    """
    threads = []
    for queue in sorted(WORKERS):
        thread = threading.Thread(
            target=build_consumer(queue, bus).run,
            args=(stop,),
            name=f"worker-{queue}",
            daemon=True,
        )
        thread.start()
        threads.append(thread)
    logger.info("Workers embarqués démarrés : %s", ", ".join(sorted(WORKERS)))
    return threads


def build_consumer(queue: str, bus: messagebus.MessageBus) -> QueueConsumer:
    batch_size = 1 if queue == bootstrap.INVENTORY_QUEUE else config.get_notification_batch_size()
    return QueueConsumer(
        subscription=bootstrap.build_subscription(queue, bus.dependencies["event_bus"]),
        bus=bus,
        to_command=WORKERS[queue],
        batch_size=batch_size,
    )


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Lance un worker de traitement des commandes.")
    parser.add_argument("queue", choices=sorted(WORKERS))
    args = parser.parse_args(argv)
    if not config.get_order_topic() or not config.get_queue_url(args.queue):
        parser.error(
            f"ORDER_TOPIC_ARN et {args.queue.upper()}_QUEUE_URL sont requis ; "
            "avec le bus en mémoire, les workers tournent dans le processus de l'API"
        )

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    consumer = build_consumer(args.queue, bootstrap.bootstrap())
    logger.info("Worker %s démarré", args.queue)
    try:
        consumer.run()
    except KeyboardInterrupt:
        logger.info("Worker %s arrêté", args.queue)


if __name__ == "__main__":
    main()
