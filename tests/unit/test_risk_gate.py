"""
Tests du Risk Gate.

Le gate délègue le verdict au service de complétion et doit
laisser passer la commande dès que ce service fait défaut.
"""

import httpx
import pytest

from conftest import FakeCompletions
from orderflow.adapters.completions import HttpCompletions
from orderflow.adapters.risk_gate import UNAVAILABLE_REASON, RiskGate

INTENT = {"customerId": "CUST-1", "productId": "P-1", "quantity": 2, "totalAmount": 100.0}


def test_verdict_frauduleux_est_transmis():
    gate = RiskGate(FakeCompletions({"isFraudulent": True, "reason": "ratio anormal", "riskScore": 88}))

    assessment = gate.assess(INTENT)

    assert assessment.is_fraudulent
    assert assessment.reason == "ratio anormal"
    assert assessment.risk_score == 88


def test_verdict_sain():
    gate = RiskGate(FakeCompletions({"isFraudulent": False, "reason": "ok"}))

    assessment = gate.assess(INTENT)

    assert not assessment.is_fraudulent
    assert assessment.risk_score is None


def test_fail_open_si_service_indisponible():
    assessment = RiskGate(FakeCompletions(None)).assess(INTENT)

    assert not assessment.is_fraudulent
    assert assessment.reason == UNAVAILABLE_REASON


@pytest.mark.parametrize("verdict", [
    {},
    {"isFraudulent": "true"},
    {"isFraudulent": 1, "reason": "?"},
    {"reason": "pas de verdict"},
    {"isFraudulent": False, "reason": "ok", "riskScore": float("inf")},
    {"isFraudulent": True, "reason": "?", "riskScore": float("nan")},
])
def test_fail_open_si_verdict_hors_format(verdict):
    assessment = RiskGate(FakeCompletions(verdict)).assess(INTENT)

    assert not assessment.is_fraudulent
    assert assessment.reason == UNAVAILABLE_REASON


def test_paramètres_d_appel():
    completions = FakeCompletions({"isFraudulent": False})

    RiskGate(completions, timeout=2.5).assess(INTENT)

    [call] = completions.calls
    assert call["temperature"] == 0.1
    assert call["max_tokens"] == 100
    assert call["timeout"] == 2.5
    assert call["prompt"].startswith("Analyze this order: ")
    assert '"productId": "P-1"' in call["prompt"]


def test_fail_open_si_le_service_renvoie_un_score_infini():
    def handler(request):
        content = '{"isFraudulent": false, "reason": "ok", "riskScore": Infinity}'
        return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})

    client = httpx.Client(transport=httpx.MockTransport(handler), base_url="https://completions.test/v1")
    gate = RiskGate(HttpCompletions("https://completions.test/v1", "secret", "test-model", http_client=client))

    assessment = gate.assess(INTENT)

    assert not assessment.is_fraudulent
    assert assessment.reason == UNAVAILABLE_REASON
