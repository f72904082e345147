"""
Risk Gate : contrôle anti-fraude consultatif.

Appelé de manière synchrone pendant la prise de commande. Le verdict
est délégué au service de complétion ; les seuils exacts (quantité,
montant, ratio montant/quantité anormaux) sont de sa responsabilité.

Politique d'échec : fail open. Si le service est indisponible, lent
ou répond hors format, la commande est acceptée. La disponibilité de
la prise de commande passe avant un signal seulement consultatif.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Optional

from orderflow.adapters.completions import AbstractCompletions, CompletionUnavailable

logger = logging.getLogger(__name__)

UNAVAILABLE_REASON = "fraud check unavailable"

INSTRUCTIONS = (
    "You are a fraud detection system. Analyze orders and respond ONLY with valid JSON: "
    '{"isFraudulent": boolean, "reason": "brief explanation", "riskScore": number (0-100)}. '
    "Flag as fraudulent if: quantity > 100, totalAmount > 10000, "
    "or amount/quantity ratio is abnormal."
)

# Doit rester nettement inférieur au budget de la requête de prise de commande.
TIMEOUT_SECONDS = 5.0


@dataclass(frozen=True)
class RiskAssessment:
    is_fraudulent: bool
    reason: str
    risk_score: Optional[int] = None


class RiskGate:

    def __init__(self, completions: AbstractCompletions, timeout: float = TIMEOUT_SECONDS):
        self.completions = completions
        self.timeout = timeout

    def assess(self, intent: dict[str, Any]) -> RiskAssessment:
        """
        Évalue une intention de commande (customerId, productId,
        quantity, totalAmount). Ne lève jamais d'exception métier.
        """
        try:
            verdict = self.completions.complete_json(
                instructions=INSTRUCTIONS,
                prompt=f"Analyze this order: {json.dumps(intent, default=str)}",
                temperature=0.1,
                max_tokens=100,
                timeout=self.timeout,
            )
            return self._parse(verdict)
        except CompletionUnavailable as e:
            logger.warning("Contrôle de fraude indisponible, fail open : %s", e)
            return RiskAssessment(is_fraudulent=False, reason=UNAVAILABLE_REASON)

    @staticmethod
    def _parse(verdict: dict[str, Any]) -> RiskAssessment:
        is_fraudulent = verdict.get("isFraudulent")
        if not isinstance(is_fraudulent, bool):
            raise CompletionUnavailable(f"Verdict de fraude hors format : {verdict!r}")
        score = verdict.get("riskScore")
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            score = None
        elif not math.isfinite(score):
            raise CompletionUnavailable(f"Score de risque hors format : {score!r}")
        return RiskAssessment(
            is_fraudulent=is_fraudulent,
            reason=str(verdict.get("reason") or ""),
            risk_score=int(score) if score is not None else None,
        )
