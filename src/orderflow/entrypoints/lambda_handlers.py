"""
Points d'entrée AWS Lambda.

- intake_handler : événement API Gateway (proxy) -> POST /orders
- inventory_handler / notification_handler : événement SQS

Les handlers SQS renvoient une réponse de lot partiel
(batchItemFailures) : seuls les messages en échec sont relivrés.
"""

from __future__ import annotations

import json
import logging

from orderflow.adapters.event_bus import Delivery, unwrap_sqs_body
from orderflow.domain import commands
from orderflow.entrypoints import queue_consumer
from orderflow.service_layer import bootstrap, handlers

logger = logging.getLogger(__name__)

bus = None


def get_bus():
    """Le bus est construit au premier appel puis réutilisé par le conteneur."""
    global bus
    if bus is None:
        bus = bootstrap.bootstrap()
    return bus


def _response(status_code: int, body: dict) -> dict:
    return {"statusCode": status_code, "body": json.dumps(body)}


def intake_handler(event, context):
    try:
        data = json.loads(event.get("body") or "{}")
    except ValueError:
        return _response(400, {"error": "Request body must be a JSON object"})
    if not isinstance(data, dict):
        return _response(400, {"error": "Request body must be a JSON object"})

    try:
        order = get_bus().handle(commands.CreateOrder(
            customer_id=data.get("customerId"),
            product_id=data.get("productId"),
            quantity=data.get("quantity"),
            total_amount=data.get("totalAmount"),
        ))
    except handlers.InvalidOrder as e:
        return _response(400, {"error": str(e)})
    except handlers.OrderRejected as e:
        return _response(422, {"error": "Order flagged for review", "reason": e.reason})
    except Exception:
        logger.exception("Échec de la création de commande")
        return _response(500, {"error": "Internal server error"})

    return _response(201, {
        "orderId": order.order_id,
        "status": order.status.value,
        "message": "Order created successfully",
    })


def _handle_records(event, to_command) -> dict:
    failures = []
    for record in event.get("Records", []):
        payload, attributes = unwrap_sqs_body(record["body"], record.get("messageAttributes"))
        delivery = Delivery(
            payload=payload,
            attributes=attributes,
            handle=record["messageId"],
            receive_count=int(record.get("attributes", {}).get("ApproximateReceiveCount", 1)),
        )
        if not queue_consumer.process_delivery(get_bus(), to_command, delivery):
            failures.append({"itemIdentifier": record["messageId"]})
    return {"batchItemFailures": failures}


def inventory_handler(event, context):
    return _handle_records(event, queue_consumer.settlement_command)


def notification_handler(event, context):
    return _handle_records(event, queue_consumer.notification_command)
