# normas/utils/retry.py
"""
Retry com backoff exponencial para operacoes de rede.

Uso:
    from normas.utils.retry import retry_call

    data = retry_call(
        lambda: session.get(url, timeout=15),
        attempts=3,
        base_delay=1.0,
        retry_on=lambda e: isinstance(e, requests.ConnectionError),
        label=url,
    )

Cada tentativa falha com excecao; `retry_on(exc)` decide se a excecao e
re-tentavel. Excecoes nao re-tentaveis sobem imediatamente. Esgotadas as
tentativas, a ultima excecao sobe.
"""
from __future__ import annotations

import logging
import random
import time
from typing import Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float, max_delay: Optional[float] = None,
                  jitter: float = 0.0) -> float:
    """attempt 0-based: base * 2^attempt (+ jitter aleatorio), limitado a max_delay."""
    delay = base_delay * (2 ** attempt)
    if jitter:
        delay += random.uniform(0, jitter)
    if max_delay is not None:
        delay = min(delay, max_delay)
    return delay


def retry_call(
    fn: Callable[[], T],
    attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: Optional[float] = None,
    jitter: float = 0.0,
    retry_on: Callable[[BaseException], bool] = lambda e: True,
    delay_for: Optional[Callable[[BaseException, int], Optional[float]]] = None,
    label: str = "",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Executa fn() ate `attempts` vezes.

    Args:
        retry_on: predicado sobre a excecao; False -> sobe sem retry
        delay_for: override opcional do atraso (exc, attempt) -> segundos;
                   None cai no backoff exponencial padrao
        sleep: injetavel para testes
    """
    if attempts < 1:
        raise ValueError("attempts deve ser >= 1")

    for attempt in range(attempts):
        try:
            return fn()
        except Exception as e:
            if not retry_on(e) or attempt == attempts - 1:
                raise
            delay = delay_for(e, attempt) if delay_for else None
            if delay is None:
                delay = backoff_delay(attempt, base_delay, max_delay, jitter)
            logger.warning(
                "Tentativa %d/%d falhou%s: %s (retry em %.1fs)",
                attempt + 1, attempts, f" para {label}" if label else "", e, delay,
            )
            sleep(delay)
    raise RuntimeError("retry_call: loop terminou sem resultado")
