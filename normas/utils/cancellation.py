# normas/utils/cancellation.py
"""
Cancelamento cooperativo dos loops de crawl e embedder.

O token e checado no topo de cada janela/item/batch; o item em andamento
sempre termina antes do loop sair. SIGINT/SIGTERM apenas marcam o token.
"""
from __future__ import annotations

import logging
import signal
import threading

logger = logging.getLogger(__name__)


class CancellationToken:
    def __init__(self):
        self._event = threading.Event()
        self.reason = ""

    def cancel(self, reason: str = "cancelado"):
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Dorme ate `seconds` ou ate o cancelamento. True se cancelado."""
        return self._event.wait(timeout=seconds)


def install_signal_handlers(token: CancellationToken) -> CancellationToken:
    """Liga SIGINT/SIGTERM ao token. Chamar so na thread principal."""

    def _handler(signum, _frame):
        name = signal.Signals(signum).name
        logger.warning("%s recebido, encerrando apos o item atual...", name)
        token.cancel(name)

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)
    return token
