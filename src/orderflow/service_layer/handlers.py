"""
Handlers pour les commands.

Les handlers sont les fonctions qui traitent les commands
transitant par le message bus :

- create_order : prise de commande (validation, Risk Gate,
  insertion idempotente, publication de OrderCreated)
- settle_inventory : règlement du stock, worker inventaire
- notify_customer : email de confirmation, worker notification

Règle de propagation : ConditionFailed et CompletionUnavailable sont
absorbés ici (statut terminal ou repli) ; toute autre erreur du store,
du bus ou du transport d'email remonte telle quelle.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from orderflow.adapters.store import (
    INVENTORY,
    ORDERS,
    AtLeast,
    ConditionFailed,
    Decrement,
    Equals,
    KeyNotExists,
)
from orderflow.domain import commands, events, model
from orderflow.domain.model import OrderStatus

if TYPE_CHECKING:
    from orderflow.adapters.email_content import EmailContent, EmailContentGenerator
    from orderflow.adapters.event_bus import AbstractEventBus
    from orderflow.adapters.notifications import AbstractNotifications
    from orderflow.adapters.risk_gate import RiskGate
    from orderflow.adapters.store import AbstractStore

logger = logging.getLogger(__name__)


# --- Exceptions ---


class InvalidOrder(Exception):
    """Levée quand la demande de commande est incomplète ou invalide."""
    pass


class OrderRejected(Exception):
    """Levée quand le Risk Gate signale la commande comme frauduleuse."""

    def __init__(self, reason: str):
        super().__init__(f"Commande signalée pour revue : {reason}")
        self.reason = reason


class DuplicateOrder(Exception):
    """Levée quand un record existe déjà pour l'order_id généré."""
    pass


class UnknownOrder(Exception):
    """Levée quand un event référence une commande absente du store."""
    pass


# --- Validation ---


def _is_missing(value: Any) -> bool:
    return value is None or value == "" or (not isinstance(value, str) and not value)


def validate(cmd: commands.CreateOrder) -> tuple[str, str, int, Decimal]:
    """
    Valide une demande de commande et retourne les champs normalisés.

    Les quatre champs sont obligatoires ; quantity et totalAmount
    ne peuvent pas valoir zéro, et totalAmount a au plus deux décimales
    (la colonne SQL est en Numeric(12, 2)).
    """
    fields = {
        "customerId": cmd.customer_id,
        "productId": cmd.product_id,
        "quantity": cmd.quantity,
        "totalAmount": cmd.total_amount,
    }
    missing = [name for name, value in fields.items() if _is_missing(value)]
    if missing:
        raise InvalidOrder(f"Missing required fields: {', '.join(missing)}")

    for name in ("customerId", "productId"):
        if not isinstance(fields[name], str) or not fields[name].strip():
            raise InvalidOrder(f"{name} must be a non-empty string")

    quantity = cmd.quantity
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidOrder("quantity must be a positive integer")

    total = cmd.total_amount
    if isinstance(total, bool) or not isinstance(total, (int, float, Decimal)):
        raise InvalidOrder("totalAmount must be a number")
    try:
        total_amount = Decimal(str(total))
    except InvalidOperation as e:
        raise InvalidOrder("totalAmount must be a number") from e
    if not total_amount.is_finite() or total_amount < 0:
        raise InvalidOrder("totalAmount must be a non-negative number")
    if total_amount.normalize().as_tuple().exponent < -2:
        raise InvalidOrder("totalAmount must have at most 2 decimal places")

    return cmd.customer_id.strip(), cmd.product_id.strip(), quantity, total_amount


# --- Command Handlers ---


def create_order(
    cmd: commands.CreateOrder,
    store: AbstractStore,
    event_bus: AbstractEventBus,
    risk_gate: RiskGate,
    order_topic: str,
) -> model.Order:
    """
    Enregistre une commande PENDING et publie OrderCreated.

    La responsabilité synchrone s'arrête à « enregistrée et publiée » :
    la commande est retournée avant qu'aucun worker ne l'ait traitée.
    Il n'y a pas de compensation : si la publication échoue après
    l'écriture, la commande reste PENDING.
    """
    customer_id, product_id, quantity, total_amount = validate(cmd)

    assessment = risk_gate.assess({
        "customerId": customer_id,
        "productId": product_id,
        "quantity": quantity,
        "totalAmount": float(total_amount),
    })
    if assessment.is_fraudulent:
        logger.warning(
            "Commande refusée par le Risk Gate (client %s) : %s",
            customer_id, assessment.reason,
        )
        raise OrderRejected(assessment.reason)

    order = model.Order.create(customer_id, product_id, quantity, total_amount)

    # Garde d'idempotence : ne jamais écraser un record existant.
    try:
        store.put(ORDERS, order.to_record(), condition=KeyNotExists())
    except ConditionFailed as e:
        raise DuplicateOrder(f"La commande {order.order_id} existe déjà") from e

    event = events.OrderCreated(
        order_id=order.order_id,
        customer_id=order.customer_id,
        product_id=order.product_id,
        quantity=order.quantity,
        total_amount=order.total_amount,
        timestamp=order.created_at,
    )
    try:
        event_bus.publish(
            order_topic,
            event.to_message(),
            {"eventType": events.OrderCreated.EVENT_TYPE},
        )
    except Exception:
        logger.error(
            "Commande %s enregistrée mais non publiée : elle restera PENDING",
            order.order_id,
        )
        raise

    logger.info("Commande %s créée (%s x%d)", order.order_id, product_id, quantity)
    return order


def settle_inventory(
    cmd: commands.SettleInventory,
    store: AbstractStore,
) -> OrderStatus:
    """
    Règle le stock d'une commande et écrit son statut terminal.

    1. Commande déjà terminale (relivraison) : rien à faire.
    2. Stock lu insuffisant : FAILED_INSUFFICIENT_STOCK, stock intact.
    3. Sinon décrément conditionnel, le prédicat stock >= quantité
       étant réévalué par le store au moment de l'écriture.
       Succès : CONFIRMED. Course perdue : FAILED_INSUFFICIENT_STOCK.

    Les deux issues négatives sont des résultats métier normaux :
    le message est acquitté, pas relivré.
    """
    record = store.get(ORDERS, {"order_id": cmd.order_id})
    if record is None:
        raise UnknownOrder(f"Commande inconnue : {cmd.order_id}")

    order = model.Order.from_record(record)
    if order.status.is_terminal:
        logger.info(
            "Commande %s déjà réglée (%s), relivraison ignorée",
            order.order_id, order.status.value,
        )
        return order.status

    item = model.InventoryItem.from_record(
        cmd.product_id, store.get(INVENTORY, {"product_id": cmd.product_id})
    )
    if not item.can_fulfil(cmd.quantity):
        logger.warning(
            "Stock insuffisant pour %s : disponible %d, demandé %d",
            cmd.product_id, item.stock, cmd.quantity,
        )
        return _finalize(store, order, OrderStatus.FAILED_INSUFFICIENT_STOCK)

    try:
        store.update(
            INVENTORY,
            {"product_id": cmd.product_id},
            {"stock": Decrement(cmd.quantity)},
            condition=AtLeast("stock", cmd.quantity),
        )
    except ConditionFailed:
        logger.warning(
            "Course perdue sur %s : stock pris par une commande concurrente", cmd.product_id
        )
        return _finalize(store, order, OrderStatus.FAILED_INSUFFICIENT_STOCK)

    logger.info("Stock de %s décrémenté de %d", cmd.product_id, cmd.quantity)
    return _finalize(store, order, OrderStatus.CONFIRMED)


def _finalize(store: AbstractStore, order: model.Order, status: OrderStatus) -> OrderStatus:
    """Écrit la transition PENDING -> status, conditionnée sur PENDING."""
    order.transition_to(status)
    try:
        store.update(
            ORDERS,
            {"order_id": order.order_id},
            {"status": order.status.value, "updated_at": order.updated_at},
            condition=Equals("status", OrderStatus.PENDING.value),
        )
    except ConditionFailed:
        current = store.get(ORDERS, {"order_id": order.order_id}) or {}
        logger.warning(
            "Commande %s déjà passée à %s par un autre traitement",
            order.order_id, current.get("status"),
        )
        return OrderStatus(current["status"]) if current.get("status") else status
    logger.info("Commande %s : %s", order.order_id, status.value)
    return status


def notify_customer(
    cmd: commands.NotifyCustomer,
    content_generator: EmailContentGenerator,
    notifications: AbstractNotifications,
    sender: str,
    recipient: str,
) -> EmailContent:
    """
    Envoie l'email de confirmation d'une commande.

    Le contenu a toujours une valeur (repli sur gabarit) ; seul un
    échec d'envoi remonte, pour que le message soit relivré.
    """
    content = content_generator.generate(
        cmd.order_id, cmd.product_id, cmd.quantity, cmd.total_amount
    )
    notifications.send(sender, recipient, content.subject, content.body)
    logger.info("Notification envoyée pour la commande %s : %s", cmd.order_id, content.subject)
    return content
