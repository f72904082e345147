"""
Events du domaine.

Les events représentent des faits qui se sont produits dans le système.
Ils sont immuables et nommés au passé (quelque chose s'est passé).

OrderCreated est le seul event publié sur le bus : il est copié
dans chaque queue abonnée, chaque consommateur possède sa propre copie.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any


class MalformedEvent(Exception):
    """Levée quand un message reçu ne peut pas être converti en event."""
    pass


class Event:
    """Classe de base pour tous les events du domaine."""
    pass


@dataclass(frozen=True)
class OrderCreated(Event):
    """Une commande a été enregistrée au statut PENDING."""

    EVENT_TYPE = "ORDER_CREATED"

    order_id: str
    customer_id: str
    product_id: str
    quantity: int
    total_amount: Decimal
    timestamp: str

    def to_message(self) -> dict[str, Any]:
        """Format de fil : objet JSON avec des clés en camelCase."""
        return {
            "orderId": self.order_id,
            "customerId": self.customer_id,
            "productId": self.product_id,
            "quantity": self.quantity,
            "totalAmount": float(self.total_amount),
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> OrderCreated:
        try:
            return cls(
                order_id=str(message["orderId"]),
                customer_id=str(message["customerId"]),
                product_id=str(message["productId"]),
                quantity=int(message["quantity"]),
                total_amount=Decimal(str(message["totalAmount"])),
                timestamp=str(message.get("timestamp", "")),
            )
        except (KeyError, TypeError, ValueError, InvalidOperation) as e:
            raise MalformedEvent(f"Message OrderCreated invalide : {message!r}") from e
