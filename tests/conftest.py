"""
Configuration partagée pour les tests.

Les fakes définis ici remplacent les dépendances externes
(store, service de complétion, transport d'email) pour tester
le comportement métier sans réseau ni base de données.
"""

from __future__ import annotations

import os
import threading

# Import de flask_app : ni fichier SQLite ni workers en arrière-plan.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("EMBEDDED_WORKERS", "false")

import pytest

from orderflow.adapters.completions import AbstractCompletions, CompletionUnavailable
from orderflow.adapters.email_content import EmailContentGenerator
from orderflow.adapters.event_bus import InMemoryEventBus
from orderflow.adapters.notifications import AbstractNotifications
from orderflow.adapters.risk_gate import RiskGate
from orderflow.adapters.store import (
    INVENTORY,
    KEYS,
    AbstractStore,
    AtLeast,
    ConditionFailed,
    Decrement,
    Equals,
)
from orderflow.service_layer import bootstrap

TOPIC = "orders"


# --- Fakes ---


class FakeStore(AbstractStore):
    """
    Store en mémoire.

    Le verrou rend chaque écriture conditionnelle atomique, comme le
    ferait le vrai store : c'est lui qui est testé en concurrence,
    pas un verrou applicatif.
    """

    def __init__(self) -> None:
        self.tables: dict[str, dict[str, dict]] = {"orders": {}, "inventory": {}}
        self._lock = threading.Lock()

    def get(self, table, key):
        record = self.tables[table].get(key[KEYS[table]])
        return dict(record) if record else None

    def put(self, table, item, condition=None):
        with self._lock:
            key = item[KEYS[table]]
            if condition is not None and key in self.tables[table]:
                raise ConditionFailed(f"{table}: {key} existe déjà")
            self.tables[table][key] = dict(item)

    def update(self, table, key, changes, condition=None):
        with self._lock:
            record = self.tables[table].get(key[KEYS[table]])
            if record is None:
                raise ConditionFailed(f"{table}: {key} absent")
            if isinstance(condition, AtLeast) and not record.get(condition.field, 0) >= condition.value:
                raise ConditionFailed(f"{table}: {condition}")
            if isinstance(condition, Equals) and record.get(condition.field) != condition.value:
                raise ConditionFailed(f"{table}: {condition}")
            for name, value in changes.items():
                if isinstance(value, Decrement):
                    record[name] = record[name] - value.amount
                else:
                    record[name] = value

    def seed_stock(self, product_id: str, stock: int) -> None:
        self.tables[INVENTORY][product_id] = {"product_id": product_id, "stock": stock}

    def stock(self, product_id: str) -> int:
        return self.tables[INVENTORY][product_id]["stock"]


class FakeCompletions(AbstractCompletions):
    """Renvoie une réponse prédéfinie, ou lève CompletionUnavailable si réponse=None."""

    def __init__(self, response: dict | None = None) -> None:
        self.response = response
        self.calls: list[dict] = []

    def complete_json(self, instructions, prompt, temperature, max_tokens, timeout):
        self.calls.append(dict(
            instructions=instructions, prompt=prompt, temperature=temperature,
            max_tokens=max_tokens, timeout=timeout,
        ))
        if self.response is None:
            raise CompletionUnavailable("service injoignable")
        return dict(self.response)


class FakeNotifications(AbstractNotifications):
    """Capture les emails envoyés pour vérification dans les tests."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.envoyés: list[dict] = []

    def send(self, sender, recipient, subject, body):
        if self.fail:
            raise ConnectionError("SMTP injoignable")
        self.envoyés.append(dict(sender=sender, recipient=recipient, subject=subject, body=body))


# --- Bootstrap de test ---


def make_event_bus() -> InMemoryEventBus:
    event_bus = InMemoryEventBus()
    event_bus.subscribe(TOPIC, bootstrap.INVENTORY_QUEUE, visibility_timeout=0)
    event_bus.subscribe(TOPIC, bootstrap.NOTIFICATION_QUEUE, visibility_timeout=0)
    return event_bus


def bootstrap_test_bus(
    store: AbstractStore | None = None,
    event_bus: InMemoryEventBus | None = None,
    risk_verdict: dict | None = None,
    email_content: dict | None = None,
    notifications: FakeNotifications | None = None,
):
    """
    Construit un MessageBus configuré avec des fakes.

    Même wiring que la production, mais avec des implémentations
    en mémoire pour l'isolation et la rapidité.
    """
    return bootstrap.bootstrap(
        store=store if store is not None else FakeStore(),
        event_bus=event_bus if event_bus is not None else make_event_bus(),
        risk_gate=RiskGate(FakeCompletions(risk_verdict)),
        content_generator=EmailContentGenerator(FakeCompletions(email_content)),
        notifications_adapter=notifications if notifications is not None else FakeNotifications(),
        order_topic=TOPIC,
    )


CLEAN_VERDICT = {"isFraudulent": False, "reason": "looks normal", "riskScore": 5}
FRAUD_VERDICT = {"isFraudulent": True, "reason": "quantity too high", "riskScore": 95}


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def event_bus():
    return make_event_bus()


@pytest.fixture
def notifications():
    return FakeNotifications()


@pytest.fixture
def bus(store, event_bus, notifications):
    return bootstrap_test_bus(
        store=store,
        event_bus=event_bus,
        risk_verdict=CLEAN_VERDICT,
        notifications=notifications,
    )
