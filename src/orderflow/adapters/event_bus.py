"""
Adapter pour le bus d'événements (publish / subscribe).

Un topic producteur, N queues consommatrices : chaque publication est
copiée dans toutes les queues abonnées (fan-out). Chaque queue offre :

- une livraison au moins une fois (at-least-once)
- une fenêtre d'invisibilité pendant le traitement
- un compteur de réceptions
- une dead-letter queue une fois le budget de réceptions épuisé

Les consommateurs doivent acquitter explicitement (ack) ou signaler
l'échec (nack) ; aucun ordre FIFO n'est garanti.
"""

from __future__ import annotations

import abc
import copy
import json
import logging
import threading
import time
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)

DEFAULT_MAX_RECEIVE_COUNT = 3


@dataclass(frozen=True)
class Delivery:
    """Une copie de message livrée à un consommateur."""

    payload: dict[str, Any]
    attributes: dict[str, str]
    handle: str
    receive_count: int = 1


class AbstractEventBus(abc.ABC):
    """Interface abstraite côté producteur."""

    @abc.abstractmethod
    def publish(self, topic: str, payload: dict[str, Any], attributes: dict[str, str]) -> None:
        raise NotImplementedError


class AbstractSubscription(abc.ABC):
    """Interface abstraite côté consommateur (une queue)."""

    @abc.abstractmethod
    def receive(self, max_messages: int = 1) -> list[Delivery]:
        raise NotImplementedError

    @abc.abstractmethod
    def ack(self, delivery: Delivery) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def nack(self, delivery: Delivery) -> None:
        raise NotImplementedError


# --- Implémentation en mémoire ---


@dataclass
class _QueuedMessage:
    payload: dict[str, Any]
    attributes: dict[str, str]
    message_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    receive_count: int = 0
    visible_at: float = 0.0
    handle: str | None = None


class InMemoryQueue(AbstractSubscription):
    """
    Queue en mémoire reproduisant la sémantique d'une queue SQS
    avec redrive policy.

    Un message reçu devient invisible pendant visibility_timeout.
    Sans ack, il redevient visible et est relivré. Quand il a déjà été
    reçu max_receive_count fois, la réception suivante le déplace
    dans dead_letters au lieu de le relivrer.

    Le verrou interne protège uniquement les structures de la queue :
    il modélise l'atomicité du transport, pas celle du métier.
    """

    def __init__(
        self,
        name: str,
        visibility_timeout: float = 30.0,
        max_receive_count: int = DEFAULT_MAX_RECEIVE_COUNT,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.visibility_timeout = visibility_timeout
        self.max_receive_count = max_receive_count
        self.clock = clock
        self.dead_letters: list[_QueuedMessage] = []
        self._messages: list[_QueuedMessage] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._messages)

    def enqueue(self, payload: dict[str, Any], attributes: dict[str, str]) -> None:
        with self._lock:
            self._messages.append(
                _QueuedMessage(payload=copy.deepcopy(payload), attributes=dict(attributes))
            )

    def receive(self, max_messages: int = 1) -> list[Delivery]:
        now = self.clock()
        deliveries: list[Delivery] = []
        with self._lock:
            for message in list(self._messages):
                if len(deliveries) >= max_messages:
                    break
                if message.visible_at > now:
                    continue
                if message.receive_count >= self.max_receive_count:
                    self._messages.remove(message)
                    self.dead_letters.append(message)
                    logger.warning(
                        "Message %s déplacé en dead-letter (%s) après %d réceptions",
                        message.message_id, self.name, message.receive_count,
                    )
                    continue
                message.receive_count += 1
                message.visible_at = now + self.visibility_timeout
                message.handle = uuid.uuid4().hex
                deliveries.append(
                    Delivery(
                        payload=copy.deepcopy(message.payload),
                        attributes=dict(message.attributes),
                        handle=message.handle,
                        receive_count=message.receive_count,
                    )
                )
        return deliveries

    def _find(self, delivery: Delivery) -> _QueuedMessage | None:
        return next((m for m in self._messages if m.handle == delivery.handle), None)

    def ack(self, delivery: Delivery) -> None:
        with self._lock:
            message = self._find(delivery)
            if message is None:
                # handle périmé : le message a été relivré entre-temps
                logger.warning("Ack ignoré, handle inconnu sur %s", self.name)
                return
            self._messages.remove(message)

    def nack(self, delivery: Delivery) -> None:
        """Le message redevient visible à la fin de sa fenêtre d'invisibilité."""
        with self._lock:
            message = self._find(delivery)
            if message is not None:
                message.visible_at = self.clock() + self.visibility_timeout


class InMemoryEventBus(AbstractEventBus):
    """
    Bus en mémoire : fan-out d'un topic vers des InMemoryQueue.

    Utilisé pour les exécutions embarquées (un seul processus)
    et par les tests.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[InMemoryQueue]] = defaultdict(list)

    def subscribe(self, topic: str, queue_name: str, **queue_options: Any) -> InMemoryQueue:
        queue = InMemoryQueue(queue_name, **queue_options)
        self._subscriptions[topic].append(queue)
        return queue

    def queue(self, name: str) -> InMemoryQueue:
        for queues in self._subscriptions.values():
            for queue in queues:
                if queue.name == name:
                    return queue
        raise KeyError(f"Aucune queue nommée {name}")

    def publish(self, topic, payload, attributes):
        queues = self._subscriptions.get(topic, [])
        if not queues:
            logger.debug("Aucune queue abonnée au topic %s", topic)
        for queue in queues:
            queue.enqueue(payload, attributes)


# --- Implémentation SNS / SQS ---


class SnsEventBus(AbstractEventBus):
    """Publie sur un topic SNS ; le fan-out vers les queues SQS est fait par AWS."""

    def __init__(self, client):
        self.client = client

    def publish(self, topic, payload, attributes):
        self.client.publish(
            TopicArn=topic,
            Message=json.dumps(payload),
            MessageAttributes={
                name: {"DataType": "String", "StringValue": value}
                for name, value in attributes.items()
            },
        )


def unwrap_sqs_body(body: str, message_attributes: dict | None = None) -> tuple[dict, dict]:
    """
    Extrait (payload, attributes) du corps d'un message SQS.

    Quand la queue est abonnée à un topic SNS sans raw delivery,
    le corps est une enveloppe SNS dont le champ Message contient
    le payload publié.
    """
    try:
        body_data = json.loads(body)
    except ValueError:
        logger.warning("Corps de message SQS illisible : %.200s", body)
        return {}, {}

    if isinstance(body_data, dict) and "TopicArn" in body_data and "Message" in body_data:
        try:
            payload = json.loads(body_data["Message"])
        except ValueError:
            logger.warning("Message SNS illisible : %.200s", body_data["Message"])
            payload = {}
        attributes = {
            name: attr.get("Value", "")
            for name, attr in body_data.get("MessageAttributes", {}).items()
        }
        return payload, attributes

    attributes = {
        name: attr.get("StringValue", attr.get("stringValue", ""))
        for name, attr in (message_attributes or {}).items()
    }
    return body_data if isinstance(body_data, dict) else {}, attributes


class SqsSubscription(AbstractSubscription):
    """
    Consomme une queue SQS en long polling.

    nack ne fait rien : le message redevient visible à l'expiration de
    sa visibility timeout, et la redrive policy de la queue le déplace
    en dead-letter après maxReceiveCount réceptions.
    """

    def __init__(self, client, queue_url: str, wait_time_seconds: int = 10):
        self.client = client
        self.queue_url = queue_url
        self.wait_time_seconds = wait_time_seconds

    def receive(self, max_messages=1):
        resp = self.client.receive_message(
            QueueUrl=self.queue_url,
            MaxNumberOfMessages=min(max_messages, 10),
            WaitTimeSeconds=self.wait_time_seconds,
            AttributeNames=["ApproximateReceiveCount"],
            MessageAttributeNames=["All"],
        )
        deliveries = []
        for message in resp.get("Messages", []):
            payload, attributes = unwrap_sqs_body(
                message["Body"], message.get("MessageAttributes")
            )
            deliveries.append(
                Delivery(
                    payload=payload,
                    attributes=attributes,
                    handle=message["ReceiptHandle"],
                    receive_count=int(
                        message.get("Attributes", {}).get("ApproximateReceiveCount", 1)
                    ),
                )
            )
        return deliveries

    def ack(self, delivery):
        self.client.delete_message(QueueUrl=self.queue_url, ReceiptHandle=delivery.handle)

    def nack(self, delivery):
        logger.debug("Message laissé à la redrive policy de %s", self.queue_url)
