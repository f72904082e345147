"""
Tests end-to-end des handlers Lambda.

Les événements API Gateway et SQS sont construits à la main au
format reçu par Lambda ; le bus est remplacé par un bus de test.
"""

import json
import logging

import pytest

from conftest import CLEAN_VERDICT, FRAUD_VERDICT, FakeNotifications, bootstrap_test_bus
from orderflow.adapters.store import ORDERS
from orderflow.entrypoints import lambda_handlers


@pytest.fixture
def lambda_bus(monkeypatch, bus):
    monkeypatch.setattr(lambda_handlers, "bus", bus)
    return bus


def api_event(body) -> dict:
    return {"httpMethod": "POST", "path": "/orders", "body": body if isinstance(body, str) else json.dumps(body)}


def sqs_record(message_id: str, payload: dict, event_type: str = "ORDER_CREATED", receive_count: int = 1) -> dict:
    return {
        "messageId": message_id,
        "body": json.dumps(payload),
        "attributes": {"ApproximateReceiveCount": str(receive_count)},
        "messageAttributes": {"eventType": {"dataType": "String", "stringValue": event_type}},
    }


def create(lambda_bus, **overrides) -> str:
    body = {"customerId": "CUST-1", "productId": "P-1", "quantity": 2, "totalAmount": 100, **overrides}
    response = lambda_handlers.intake_handler(api_event(body), None)
    assert response["statusCode"] == 201
    return json.loads(response["body"])["orderId"]


class TestIntakeHandler:
    def test_créer_une_commande(self, lambda_bus, store):
        response = lambda_handlers.intake_handler(
            api_event({"customerId": "CUST-1", "productId": "P-1", "quantity": 2, "totalAmount": 100}), None
        )

        assert response["statusCode"] == 201
        body = json.loads(response["body"])
        assert body["status"] == "PENDING"
        assert store.get(ORDERS, {"order_id": body["orderId"]}) is not None

    @pytest.mark.parametrize("body", [None, "{pas du json", "42"])
    def test_corps_invalide(self, lambda_bus, body):
        response = lambda_handlers.intake_handler({"body": body}, None)

        assert response["statusCode"] == 400

    def test_champs_manquants(self, lambda_bus):
        response = lambda_handlers.intake_handler(api_event({"customerId": "CUST-1"}), None)

        assert response["statusCode"] == 400
        assert json.loads(response["body"])["error"].startswith("Missing required fields")

    def test_fraude(self, monkeypatch, store):
        monkeypatch.setattr(lambda_handlers, "bus", bootstrap_test_bus(store=store, risk_verdict=FRAUD_VERDICT))

        response = lambda_handlers.intake_handler(
            api_event({"customerId": "CUST-1", "productId": "P-1", "quantity": 500, "totalAmount": 1}), None
        )

        assert response["statusCode"] == 422
        assert json.loads(response["body"])["reason"] == "quantity too high"


class TestSqsHandlers:
    def test_lot_d_inventaire(self, lambda_bus, store, event_bus):
        store.seed_stock("P-1", 3)
        first = create(lambda_bus)
        second = create(lambda_bus)
        payloads = [d.payload for d in event_bus.queue("inventory").receive(10)]

        response = lambda_handlers.inventory_handler(
            {"Records": [sqs_record(f"m-{i}", p) for i, p in enumerate(payloads)]}, None
        )

        assert response == {"batchItemFailures": []}
        statuses = {store.get(ORDERS, {"order_id": o})["status"] for o in (first, second)}
        assert statuses == {"CONFIRMED", "FAILED_INSUFFICIENT_STOCK"}
        assert store.stock("P-1") == 1

    def test_commande_inconnue_est_signalée_en_échec(self, lambda_bus):
        record = sqs_record("m-1", {
            "orderId": "absente", "customerId": "c", "productId": "P-1", "quantity": 1, "totalAmount": 1,
        })

        response = lambda_handlers.inventory_handler({"Records": [record]}, None)

        assert response == {"batchItemFailures": [{"itemIdentifier": "m-1"}]}

    def test_notification_partielle(self, monkeypatch, store, event_bus):
        notifications = FakeNotifications()
        bus = bootstrap_test_bus(
            store=store, event_bus=event_bus, risk_verdict=CLEAN_VERDICT, notifications=notifications,
        )
        monkeypatch.setattr(lambda_handlers, "bus", bus)
        create(bus)
        [delivery] = event_bus.queue("notification").receive()

        response = lambda_handlers.notification_handler({"Records": [
            sqs_record("m-ok", delivery.payload),
            sqs_record("m-ko", {"orderId": "incomplet"}),
            sqs_record("m-autre", {}, event_type="ORDER_SHIPPED"),
        ]}, None)

        assert response == {"batchItemFailures": [{"itemIdentifier": "m-ko"}]}
        assert len(notifications.envoyés) == 1

    def test_enveloppe_sns(self, lambda_bus, store, event_bus):
        store.seed_stock("P-1", 10)
        order_id = create(lambda_bus)
        [delivery] = event_bus.queue("inventory").receive()
        record = {
            "messageId": "m-1",
            "body": json.dumps({
                "Type": "Notification",
                "TopicArn": "arn:aws:sns:us-east-1:123456789012:orders",
                "Message": json.dumps(delivery.payload),
                "MessageAttributes": {"eventType": {"Type": "String", "Value": "ORDER_CREATED"}},
            }),
        }

        assert lambda_handlers.inventory_handler({"Records": [record]}, None) == {"batchItemFailures": []}
        assert store.get(ORDERS, {"order_id": order_id})["status"] == "CONFIRMED"
        assert store.stock("P-1") == 8


def test_niveau_de_log_hérité_de_la_configuration_du_runtime():
    """Le module ne fixe pas son propre niveau : c'est le root logger qui décide."""
    assert lambda_handlers.logger.level == logging.NOTSET
    assert lambda_handlers.logger.getEffectiveLevel() == logging.getLogger().getEffectiveLevel()
