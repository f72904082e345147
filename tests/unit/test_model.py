"""
Tests unitaires du modèle de domaine.

Ces tests vérifient le comportement du modèle de domaine
en isolation complète, sans base de données ni I/O.
"""

from decimal import Decimal

import pytest

from orderflow.domain import events
from orderflow.domain.model import (
    InvalidTransition,
    InventoryItem,
    Order,
    OrderStatus,
    check_transition,
)


def créer_commande() -> Order:
    return Order.create("CUST-1", "P-1", 2, Decimal("100"))


class TestOrder:
    def test_une_nouvelle_commande_est_pending(self):
        order = créer_commande()
        assert order.status is OrderStatus.PENDING
        assert order.updated_at == order.created_at

    def test_chaque_commande_a_un_identifiant_neuf(self):
        assert créer_commande().order_id != créer_commande().order_id

    def test_transition_vers_confirmed(self):
        order = créer_commande()
        order.transition_to(OrderStatus.CONFIRMED, at="2026-01-01T00:00:00+00:00")
        assert order.status is OrderStatus.CONFIRMED
        assert order.updated_at == "2026-01-01T00:00:00+00:00"
        assert order.created_at != order.updated_at

    def test_record_conserve_les_champs(self):
        order = créer_commande()
        rechargée = Order.from_record(order.to_record())
        assert rechargée == order


class TestMachineÀÉtats:
    @pytest.mark.parametrize("terminal", [
        OrderStatus.CONFIRMED, OrderStatus.FAILED_INSUFFICIENT_STOCK,
    ])
    def test_aucune_transition_ne_quitte_un_état_terminal(self, terminal):
        assert terminal.is_terminal
        for status in OrderStatus:
            with pytest.raises(InvalidTransition):
                check_transition(terminal, status)

    def test_pending_vers_pending_est_interdit(self):
        with pytest.raises(InvalidTransition):
            check_transition(OrderStatus.PENDING, OrderStatus.PENDING)

    def test_transition_refusée_ne_modifie_pas_la_commande(self):
        order = créer_commande()
        order.transition_to(OrderStatus.FAILED_INSUFFICIENT_STOCK)
        with pytest.raises(InvalidTransition):
            order.transition_to(OrderStatus.CONFIRMED)
        assert order.status is OrderStatus.FAILED_INSUFFICIENT_STOCK


class TestInventoryItem:
    def test_article_absent_a_un_stock_nul(self):
        item = InventoryItem.from_record("P-9", None)
        assert item.stock == 0
        assert not item.can_fulfil(1)

    def test_peut_servir_si_stock_égal(self):
        assert InventoryItem("P-1", 2).can_fulfil(2)
        assert not InventoryItem("P-1", 2).can_fulfil(3)


class TestOrderCreated:
    def test_format_de_fil_en_camel_case(self):
        event = events.OrderCreated("o-1", "CUST-1", "P-1", 2, Decimal("100"), "t")
        assert event.to_message() == {
            "orderId": "o-1",
            "customerId": "CUST-1",
            "productId": "P-1",
            "quantity": 2,
            "totalAmount": 100.0,
            "timestamp": "t",
        }

    def test_message_incomplet_est_rejeté(self):
        with pytest.raises(events.MalformedEvent):
            events.OrderCreated.from_message({"orderId": "o-1"})

    def test_quantité_illisible_est_rejetée(self):
        with pytest.raises(events.MalformedEvent):
            events.OrderCreated.from_message({
                "orderId": "o-1", "customerId": "c", "productId": "p",
                "quantity": "deux", "totalAmount": 1,
            })
