"""
Commands du domaine.

Les commands représentent des intentions : quelque chose que
le système doit faire. Contrairement aux events (faits passés),
les commands sont des demandes qui peuvent échouer.

Les workers convertissent l'event OrderCreated reçu de leur queue
en une command qui leur est propre (SettleInventory, NotifyCustomer).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from orderflow.domain import events


class Command:
    """Classe de base pour toutes les commands."""
    pass


@dataclass(frozen=True)
class CreateOrder(Command):
    """
    Demande de création d'une commande.

    Les champs sont volontairement non typés strictement : ils arrivent
    tels quels du client et sont validés par le handler.
    """

    customer_id: Any
    product_id: Any
    quantity: Any
    total_amount: Any


@dataclass(frozen=True)
class SettleInventory(Command):
    """Demande de règlement du stock pour une commande enregistrée."""

    order_id: str
    product_id: str
    quantity: int

    @classmethod
    def from_event(cls, event: events.OrderCreated) -> SettleInventory:
        return cls(
            order_id=event.order_id,
            product_id=event.product_id,
            quantity=event.quantity,
        )


@dataclass(frozen=True)
class NotifyCustomer(Command):
    """Demande d'envoi de l'email de confirmation d'une commande."""

    order_id: str
    customer_id: str
    product_id: str
    quantity: int
    total_amount: Decimal

    @classmethod
    def from_event(cls, event: events.OrderCreated) -> NotifyCustomer:
        return cls(
            order_id=event.order_id,
            customer_id=event.customer_id,
            product_id=event.product_id,
            quantity=event.quantity,
            total_amount=event.total_amount,
        )
