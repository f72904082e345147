"""
Adapter pour le service externe de complétion de texte.

Le service est une API compatible OpenAI (chat completions) appelée
en HTTP avec un jeton Bearer. On lui demande toujours une réponse
JSON stricte ; une réponse illisible est traitée exactement comme
une panne de transport : CompletionUnavailable.
"""

from __future__ import annotations

import abc
import json
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class CompletionUnavailable(Exception):
    """Le service de complétion a échoué, expiré ou répondu hors format."""
    pass


def _reject_constant(name: str) -> Any:
    # NaN, Infinity et -Infinity ne sont pas du JSON strict
    raise ValueError(f"Constante JSON non standard : {name}")


class AbstractCompletions(abc.ABC):

    @abc.abstractmethod
    def complete_json(
        self,
        instructions: str,
        prompt: str,
        temperature: float,
        max_tokens: int,
        timeout: float,
    ) -> dict[str, Any]:
        raise NotImplementedError


class HttpCompletions(AbstractCompletions):
    """
    Client httpx vers /chat/completions.

    Le timeout est fixé à chaque appel : c'est l'appelant (Risk Gate,
    génération d'email) qui connaît son budget.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str,
        http_client: httpx.Client | None = None,
    ):
        self.model = model
        self.http_client = http_client or httpx.Client(
            base_url=base_url,
            headers={"Authorization": f"Bearer {api_key}"},
        )

    def complete_json(self, instructions, prompt, temperature, max_tokens, timeout):
        try:
            resp = self.http_client.post(
                "/chat/completions",
                json={
                    "model": self.model,
                    "messages": [
                        {"role": "system", "content": instructions},
                        {"role": "user", "content": prompt},
                    ],
                    "temperature": temperature,
                    "max_tokens": max_tokens,
                },
                timeout=timeout,
            )
            resp.raise_for_status()
            content = resp.json()["choices"][0]["message"]["content"]
            data = json.loads(content, parse_constant=_reject_constant)
        except httpx.HTTPError as e:
            raise CompletionUnavailable(f"Appel au service de complétion en échec : {e}") from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise CompletionUnavailable("Réponse du service de complétion illisible") from e

        if not isinstance(data, dict):
            raise CompletionUnavailable("La complétion n'est pas un objet JSON")
        return data
