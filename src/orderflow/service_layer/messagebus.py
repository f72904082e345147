"""
Message Bus.

Le message bus est le point central de dispatch des commands
vers leurs handlers respectifs.

Fonctionnement :
1. Une command entre dans le bus (depuis l'API ou depuis une queue)
2. Le bus trouve son unique handler
3. Le handler est exécuté avec ses dépendances injectées
4. Le résultat est retourné ; une erreur remonte à l'appelant

Les events du domaine ne sont pas traités en interne : OrderCreated
est publié sur le bus d'événements externe, et chaque worker le
reconvertit en command à la réception. Les erreurs ne sont donc
jamais avalées ici : c'est l'appelant (API ou consommateur de queue)
qui décide de la réponse HTTP ou de la relivraison.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable

from orderflow.adapters.store import AbstractStore
from orderflow.domain import commands

logger = logging.getLogger(__name__)


class MessageBus:
    """
    Message Bus avec injection de dépendances.

    Les dépendances (store, bus d'événements, Risk Gate, etc.) sont
    injectées à la construction et transmises automatiquement aux
    handlers par introspection de leurs signatures.
    """

    def __init__(
        self,
        store: AbstractStore,
        command_handlers: dict[type[commands.Command], Callable],
        dependencies: dict[str, Any] | None = None,
    ):
        self.store = store
        self.command_handlers = command_handlers
        self.dependencies = dependencies or {}

    def handle(self, command: commands.Command) -> Any:
        """Dispatch une command vers son unique handler et retourne son résultat."""
        if not isinstance(command, commands.Command):
            raise ValueError(f"Message de type inconnu : {type(command)}")
        handler = self.command_handlers.get(type(command))
        if handler is None:
            raise ValueError(f"Aucun handler pour la command {type(command)}")
        logger.debug("Traitement de la command %s", command)
        return self._call_handler(handler, command)

    def _call_handler(self, handler: Callable, command: commands.Command) -> Any:
        """
        Appelle un handler en injectant les dépendances nécessaires.

        Introspection : on lit la signature du handler pour déterminer
        quelles dépendances il attend. Le premier paramètre est toujours
        la command elle-même ; les suivants sont résolus par nom
        dans le dictionnaire de dépendances ou via self.store.
        """
        params = list(inspect.signature(handler).parameters)
        kwargs: dict[str, Any] = {}
        for name in params[1:]:
            if name == "store":
                kwargs[name] = self.store
            elif name in self.dependencies:
                kwargs[name] = self.dependencies[name]
            else:
                raise LookupError(f"Dépendance manquante pour {handler.__name__} : {name}")
        return handler(command, **kwargs)
