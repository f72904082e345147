"""
Views (lecture).

Les views sont des fonctions de lecture pure : elles lisent
directement le store, sans passer par le message bus.

C'est par ici qu'on observe le résultat asynchrone d'une commande :
statut terminal, ou PENDING qui stagne si un worker est en retard.
"""

from __future__ import annotations

from orderflow.adapters.store import ORDERS, AbstractStore
from orderflow.domain import model


def order(order_id: str, store: AbstractStore) -> dict | None:
    """Retourne la commande au format de l'API, ou None si inconnue."""
    record = store.get(ORDERS, {"order_id": order_id})
    if record is None:
        return None
    found = model.Order.from_record(record)
    return {
        "orderId": found.order_id,
        "customerId": found.customer_id,
        "productId": found.product_id,
        "quantity": found.quantity,
        "totalAmount": float(found.total_amount),
        "status": found.status.value,
        "createdAt": found.created_at,
        "updatedAt": found.updated_at,
    }
