"""
Génération du contenu de l'email de confirmation.

Le sujet et le corps sont demandés au service de complétion. Si
l'appel échoue, expire ou répond hors format, on retombe sur un
gabarit déterministe construit à partir des seuls champs de la
commande : ce repli est du formatage local et ne peut pas échouer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from orderflow.adapters.completions import AbstractCompletions, CompletionUnavailable

logger = logging.getLogger(__name__)

INSTRUCTIONS = (
    "You are a friendly e-commerce assistant. Write a short, warm order confirmation "
    'email. Respond ONLY with JSON: {"subject": "...", "body": "..."}. '
    "Keep body under 100 words."
)

TIMEOUT_SECONDS = 8.0


@dataclass(frozen=True)
class EmailContent:
    subject: str
    body: str


def fallback_content(order_id: str, product_id: str, quantity: int, total_amount: Decimal) -> EmailContent:
    return EmailContent(
        subject=f"Order Confirmation #{order_id}",
        body=(
            f"Thank you for your order! Your order for {quantity}x {product_id} "
            f"(${total_amount}) has been received and is being processed."
        ),
    )


class EmailContentGenerator:

    def __init__(self, completions: AbstractCompletions, timeout: float = TIMEOUT_SECONDS):
        self.completions = completions
        self.timeout = timeout

    def generate(
        self, order_id: str, product_id: str, quantity: int, total_amount: Decimal
    ) -> EmailContent:
        try:
            data = self.completions.complete_json(
                instructions=INSTRUCTIONS,
                prompt=(
                    f"Write confirmation email for: Order #{order_id}, Product: {product_id}, "
                    f"Quantity: {quantity}, Total: ${total_amount}"
                ),
                temperature=0.7,
                max_tokens=200,
                timeout=self.timeout,
            )
        except CompletionUnavailable as e:
            logger.warning("Génération d'email indisponible pour %s, gabarit utilisé : %s", order_id, e)
            return fallback_content(order_id, product_id, quantity, total_amount)

        subject, body = data.get("subject"), data.get("body")
        if not (isinstance(subject, str) and subject.strip() and isinstance(body, str) and body.strip()):
            logger.warning("Contenu généré hors format pour %s, gabarit utilisé", order_id)
            return fallback_content(order_id, product_id, quantity, total_amount)
        return EmailContent(subject=subject.strip(), body=body.strip())
