"""
Modèle de domaine pour le traitement des commandes.

Ce module contient les entités du domaine métier : la commande (Order),
son cycle de vie (OrderStatus) et l'article de stock (InventoryItem).

Le cycle de vie d'une commande est une petite machine à états :
    PENDING -> CONFIRMED
    PENDING -> FAILED_INSUFFICIENT_STOCK
Les deux états de droite sont terminaux.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any


class InvalidTransition(Exception):
    """Levée quand on tente une transition de statut non prévue."""
    pass


def now_iso() -> str:
    """Horodatage UTC au format ISO-8601, tel qu'il est stocké."""
    return datetime.now(timezone.utc).isoformat()


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    FAILED_INSUFFICIENT_STOCK = "FAILED_INSUFFICIENT_STOCK"

    @property
    def is_terminal(self) -> bool:
        return self is not OrderStatus.PENDING


TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset(
        {OrderStatus.CONFIRMED, OrderStatus.FAILED_INSUFFICIENT_STOCK}
    ),
    OrderStatus.CONFIRMED: frozenset(),
    OrderStatus.FAILED_INSUFFICIENT_STOCK: frozenset(),
}


def check_transition(current: OrderStatus, new: OrderStatus) -> None:
    """Vérifie qu'une transition est autorisée par la machine à états."""
    if new not in TRANSITIONS[current]:
        raise InvalidTransition(f"Transition interdite : {current.value} -> {new.value}")


@dataclass
class Order:
    """
    Entité représentant une tentative d'achat d'un client.

    L'identité est portée par order_id, générée une seule fois à la
    création et jamais réutilisée. created_at est immuable ;
    updated_at change à chaque transition de statut.
    """

    order_id: str
    customer_id: str
    product_id: str
    quantity: int
    total_amount: Decimal
    status: OrderStatus = OrderStatus.PENDING
    created_at: str = field(default_factory=now_iso)
    updated_at: str = ""

    def __post_init__(self) -> None:
        if not self.updated_at:
            self.updated_at = self.created_at

    @classmethod
    def create(
        cls,
        customer_id: str,
        product_id: str,
        quantity: int,
        total_amount: Decimal,
    ) -> Order:
        """Crée une nouvelle commande PENDING avec un identifiant neuf."""
        return cls(
            order_id=str(uuid.uuid4()),
            customer_id=customer_id,
            product_id=product_id,
            quantity=quantity,
            total_amount=total_amount,
        )

    def transition_to(self, status: OrderStatus, at: str | None = None) -> None:
        check_transition(self.status, status)
        self.status = status
        self.updated_at = at or now_iso()

    def to_record(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "customer_id": self.customer_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "total_amount": self.total_amount,
            "status": self.status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Order:
        return cls(
            order_id=record["order_id"],
            customer_id=record["customer_id"],
            product_id=record["product_id"],
            quantity=int(record["quantity"]),
            total_amount=Decimal(str(record["total_amount"])),
            status=OrderStatus(record["status"]),
            created_at=record["created_at"],
            updated_at=record.get("updated_at") or record["created_at"],
        )


@dataclass(frozen=True)
class InventoryItem:
    """
    Value Object représentant le stock disponible d'un produit.

    Le stock n'est jamais négatif ; il n'est modifié que par
    décrément conditionnel dans le store (voir handlers.settle_inventory).
    """

    product_id: str
    stock: int

    @classmethod
    def from_record(cls, product_id: str, record: dict[str, Any] | None) -> InventoryItem:
        """Un article absent du store est traité comme un stock nul."""
        if not record:
            return cls(product_id=product_id, stock=0)
        return cls(product_id=product_id, stock=int(record.get("stock", 0)))

    def can_fulfil(self, quantity: int) -> bool:
        return self.stock >= quantity
