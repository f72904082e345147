"""
Point d'entrée Flask.

L'API Flask est un thin adapter : elle se contente de
convertir les requêtes HTTP en commands, les envoie au
message bus, et convertit les résultats en réponses HTTP.

L'API ne contient aucune logique métier.
"""

from __future__ import annotations

import logging

from flask import Flask, jsonify, request

from orderflow import config
from orderflow.adapters.event_bus import InMemoryEventBus
from orderflow.domain import commands
from orderflow.entrypoints import queue_consumer
from orderflow.service_layer import bootstrap, handlers
from orderflow.views import views

logger = logging.getLogger(__name__)

app = Flask(__name__)
bus = bootstrap.bootstrap()

if config.get_embedded_workers() and isinstance(bus.dependencies["event_bus"], InMemoryEventBus):
    queue_consumer.start_embedded_workers(bus)


@app.route("/orders", methods=["POST"])
def create_order_endpoint():
    """
    POST /orders
    Body JSON : { customerId, productId, quantity, totalAmount }

    Enregistre la commande au statut PENDING. Le règlement du stock
    et la notification se font ensuite de manière asynchrone.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Request body must be a JSON object"}), 400

    cmd = commands.CreateOrder(
        customer_id=data.get("customerId"),
        product_id=data.get("productId"),
        quantity=data.get("quantity"),
        total_amount=data.get("totalAmount"),
    )
    try:
        order = bus.handle(cmd)
    except handlers.InvalidOrder as e:
        return jsonify({"error": str(e)}), 400
    except handlers.OrderRejected as e:
        return jsonify({"error": "Order flagged for review", "reason": e.reason}), 422
    except Exception:
        logger.exception("Échec de la création de commande")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "orderId": order.order_id,
        "status": order.status.value,
        "message": "Order created successfully",
    }), 201


@app.route("/orders/<order_id>", methods=["GET"])
def order_view_endpoint(order_id: str):
    """
    GET /orders/<order_id>

    Retourne la commande et son statut courant.
    """
    result = views.order(order_id, bus.store)
    if result is None:
        return jsonify({"error": "Order not found"}), 404
    return jsonify(result), 200
