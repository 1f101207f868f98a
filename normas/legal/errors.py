# normas/legal/errors.py
"""
Taxonomia de erros do pipeline.

  - TransientFetchError: falha de rede (timeout, conexao recusada, sem resposta)
  - PermanentFetchError: 403/404/410, nunca re-tentado
  - HttpStatusError: outros status HTTP de erro (apos retries)
  - InvalidNormUrl: URL canonica fora do padrao (fatal para o item)
  - EmbeddingApiError: falha da API de embeddings/classificacao
  - CrawlAborted / EmbedderAborted: falha sistemica, encerra o run
"""
from __future__ import annotations

from typing import Optional


class FetchError(Exception):
    """Base para erros de download do site fonte."""

    def __init__(self, url: str, message: str, status: Optional[int] = None):
        super().__init__(f"{message} ({url})")
        self.url = url
        self.status = status


class TransientFetchError(FetchError):
    """Falha de rede: conta para o circuit breaker do crawl."""


class HttpStatusError(FetchError):
    """Resposta HTTP de erro: documento quebrado, crawl continua."""


class PermanentFetchError(HttpStatusError):
    """403/404/410: documento indisponivel, sem retry."""


class InvalidNormUrl(ValueError):
    """URL canonica nao casa com /{jurisdiccion}/{tipo}/{anio}/{numero}/{sitio_id}."""


class EmbeddingApiError(Exception):
    """Falha da API de embeddings (rate limit esgotado, resposta invalida, etc.)."""


class CrawlAborted(RuntimeError):
    """Muitas falhas de rede consecutivas durante o crawl."""


class EmbedderAborted(RuntimeError):
    """Muitos batches consecutivos sem nenhum embedding gravado."""
