# tests/test_cancellation.py
"""
Testes para normas.utils.cancellation.
"""
from __future__ import annotations

import signal
import threading

from normas.utils.cancellation import CancellationToken, install_signal_handlers


class TestToken:
    def test_estado_inicial(self):
        token = CancellationToken()
        assert not token.cancelled
        assert token.reason == ""

    def test_cancel_guarda_primeiro_motivo(self):
        token = CancellationToken()
        token.cancel("SIGINT")
        token.cancel("SIGTERM")
        assert token.cancelled
        assert token.reason == "SIGINT"

    def test_wait_timeout(self):
        assert CancellationToken().wait(0.01) is False

    def test_wait_acorda_no_cancel(self):
        token = CancellationToken()
        threading.Timer(0.05, token.cancel).start()
        assert token.wait(5) is True


class TestSignals:
    def test_sigint_marca_token(self):
        old_int = signal.getsignal(signal.SIGINT)
        old_term = signal.getsignal(signal.SIGTERM)
        try:
            token = install_signal_handlers(CancellationToken())
            handler = signal.getsignal(signal.SIGTERM)
            handler(signal.SIGTERM, None)
            assert token.cancelled
            assert token.reason == "SIGTERM"
        finally:
            signal.signal(signal.SIGINT, old_int)
            signal.signal(signal.SIGTERM, old_term)
