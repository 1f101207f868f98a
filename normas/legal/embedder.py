# normas/legal/embedder.py
"""
Worker de embeddings: consome cola_embeddings e grava vetores pgvector.

Loop:
  1. fetch_pending_batch (prioridade ASC, criado ASC) ate EMBED_BATCH_SIZE
  2. itens com texto vazio -> mark_error, sem chamada a API
  3. resto em sub-lotes de MAX_ITEMS_API -> embeddings.create
     (429: ate 3 retries com backoff+jitter, max 30s; rede: ate 2 retries, 2s)
  4. vetor por indice -> save_embedding; vetor ausente ou falha do sub-lote
     -> mark_error nos itens afetados
  5. normas recem embebidas sao classificadas (CLASIFICAR, nao critico)

Fila vazia: dorme EMBED_POLL_INTERVAL_MS (ou sai, em --once).
EMBED_MAX_FALLOS batches seguidos sem nenhum sucesso -> EmbedderAborted.
"""
from __future__ import annotations

import logging
import random
import time
from typing import Dict, List, Optional, Sequence, Tuple

from normas.config import settings
from normas.legal import classifier
from normas.legal import embedding_queue
from normas.legal.errors import EmbedderAborted, EmbeddingApiError
from normas.legal.models import EntidadTipo, QueueItem
from normas.utils.cancellation import CancellationToken
from normas.utils.retry import retry_call

logger = logging.getLogger("embedder")

RATE_LIMIT_RETRIES = 3
NETWORK_RETRIES = 2
NETWORK_RETRY_DELAY_S = 2.0
MAX_RATE_LIMIT_DELAY_S = 30.0


def build_client():
    from openai import OpenAI

    return OpenAI(
        api_key=settings.EMBEDDINGS_API_KEY,
        base_url=settings.EMBEDDINGS_BASE_URL,
        timeout=settings.EMBEDDINGS_TIMEOUT_S,
        max_retries=0,
    )


def _retry_policy():
    """(retry_on, delay_for) com contadores separados para 429 e rede."""
    import openai

    counts = {"rate": 0, "net": 0}

    def retry_on(exc: BaseException) -> bool:
        if isinstance(exc, openai.RateLimitError):
            counts["rate"] += 1
            return counts["rate"] <= RATE_LIMIT_RETRIES
        if isinstance(exc, openai.APIConnectionError):
            counts["net"] += 1
            return counts["net"] <= NETWORK_RETRIES
        return False

    def delay_for(exc: BaseException, attempt: int) -> float:
        if isinstance(exc, openai.RateLimitError):
            return min(2 ** counts["rate"] + random.uniform(0, 0.5), MAX_RATE_LIMIT_DELAY_S)
        return NETWORK_RETRY_DELAY_S

    return retry_on, delay_for


class Embedder:
    """Processa a fila em batches ate esvaziar, cancelar ou abortar."""

    def __init__(
        self,
        client=None,
        token: Optional[CancellationToken] = None,
        queue=embedding_queue,
        classify: bool = settings.CLASIFICAR,
        batch_size: int = settings.EMBED_BATCH_SIZE,
        max_items_api: int = settings.MAX_ITEMS_API,
        delay_ms: int = settings.EMBED_DELAY_MS,
        poll_interval_ms: int = settings.EMBED_POLL_INTERVAL_MS,
        max_fallos: int = settings.EMBED_MAX_FALLOS,
        sleep=time.sleep,
    ):
        self.client = client or build_client()
        self.token = token or CancellationToken()
        self.queue = queue
        self.classify = classify
        self.batch_size = batch_size
        self.max_items_api = max(1, max_items_api)
        self.delay_s = delay_ms / 1000.0
        self.poll_s = poll_interval_ms / 1000.0
        self.max_fallos = max_fallos
        self._sleep = sleep
        self.consecutive_failures = 0
        self.stats: Dict[str, int] = {
            "batches": 0,
            "saved": 0,
            "errors": 0,
            "empty_text": 0,
            "classified": 0,
            "normas_completas": 0,
            "tokens": 0,
        }

    # ── API ──────────────────────────────────────────────────────────────────

    def embed_texts(self, texts: Sequence[str]) -> Tuple[List[Optional[List[float]]], int]:
        """
        Uma chamada embeddings.create (com retries).

        Returns:
            (vetores alinhados por indice de entrada, None onde faltar; tokens usados)
        """
        retry_on, delay_for = _retry_policy()

        def _call():
            return self.client.embeddings.create(
                model=settings.EMBEDDINGS_MODEL,
                input=list(texts),
                dimensions=settings.EMBEDDINGS_DIMENSIONS,
            )

        try:
            response = retry_call(
                _call,
                attempts=RATE_LIMIT_RETRIES + NETWORK_RETRIES + 1,
                retry_on=retry_on,
                delay_for=delay_for,
                label="embeddings",
                sleep=self._sleep,
            )
        except Exception as e:
            status = getattr(e, "status_code", None)
            raise EmbeddingApiError(f"{type(e).__name__} (status={status}): {e}") from e

        vectors: List[Optional[List[float]]] = [None] * len(texts)
        for d in sorted(response.data, key=lambda x: x.index):
            if 0 <= d.index < len(texts):
                vectors[d.index] = list(d.embedding)

        usage = getattr(response, "usage", None)
        tokens = int(getattr(usage, "total_tokens", 0) or 0) if usage else 0
        return vectors, tokens

    # ── Batch ────────────────────────────────────────────────────────────────

    def _mark_error(self, item: QueueItem, message: str):
        self.stats["errors"] += 1
        try:
            self.queue.mark_error(item.id, message)
        except Exception:
            logger.exception("Falha gravando erro do item cola=%s", item.id)

    def _classify_norma(self, item: QueueItem):
        try:
            cats = classifier.classify_text(self.client, item.texto or "")
            if cats:
                self.queue.save_categories(item.entidad_id, cats)
                self.stats["classified"] += 1
        except Exception as e:
            logger.warning("Clasificacion fallo para norma %s: %s", item.entidad_id, e)

    def _process_sub_batch(self, items: List[QueueItem]) -> int:
        """Retorna quantos itens foram salvos."""
        try:
            vectors, tokens = self.embed_texts([it.texto for it in items])
        except EmbeddingApiError as e:
            logger.error("Sub-lote de %d itens falhou: %s", len(items), e)
            for it in items:
                self._mark_error(it, str(e))
            return 0

        self.stats["tokens"] += tokens
        saved = 0
        for it, vector in zip(items, vectors):
            if vector is None:
                self._mark_error(it, "vetor ausente na resposta da API")
                continue
            if len(vector) != settings.EMBEDDINGS_DIMENSIONS:
                self._mark_error(it, f"dimensao {len(vector)} != {settings.EMBEDDINGS_DIMENSIONS}")
                continue

            try:
                advanced = self.queue.save_embedding(it, vector)
            except Exception as e:
                logger.error("Falha gravando vetor do item cola=%s: %s", it.id, e)
                self._mark_error(it, f"DB error: {e}")
                continue
            saved += 1
            self.stats["saved"] += 1
            if advanced:
                self.stats["normas_completas"] += 1

            if self.classify and it.entidad_tipo == EntidadTipo.NORMA.value:
                self._classify_norma(it)
        return saved

    def run_batch(self) -> Optional[int]:
        """
        Processa um batch.

        Returns:
            None se a fila estava vazia; senao o numero de itens salvos.
        """
        items = self.queue.fetch_pending_batch(self.batch_size, settings.MAX_TEXTO_CHARS)
        if not items:
            return None

        self.stats["batches"] += 1
        valid: List[QueueItem] = []
        for it in items:
            if not (it.texto or "").strip():
                self.stats["empty_text"] += 1
                self._mark_error(it, "texto vacio")
            else:
                valid.append(it)

        saved = 0
        for start in range(0, len(valid), self.max_items_api):
            saved += self._process_sub_batch(valid[start:start + self.max_items_api])

        logger.info(
            "Batch %d: %d itens, %d salvos, %d erros acumulados",
            self.stats["batches"], len(items), saved, self.stats["errors"],
        )
        return saved

    # ── Loop ─────────────────────────────────────────────────────────────────

    def run(self, run_once: bool = False) -> Dict[str, int]:
        """
        Loop principal. run_once: sai quando a fila esvaziar.

        Raises:
            EmbedderAborted: max_fallos batches seguidos sem nenhum sucesso
        """
        logger.info(
            "Embedder iniciado: modelo=%s dim=%d batch=%d",
            settings.EMBEDDINGS_MODEL, settings.EMBEDDINGS_DIMENSIONS, self.batch_size,
        )
        while not self.token.cancelled:
            saved = self.run_batch()

            if saved is None:
                if run_once:
                    logger.info("Fila vazia, saindo (--once)")
                    break
                logger.debug("Fila vazia, aguardando %.0fs", self.poll_s)
                self.token.wait(self.poll_s)
                continue

            if saved > 0:
                self.consecutive_failures = 0
            else:
                self.consecutive_failures += 1
                logger.warning(
                    "Batch sem sucessos (%d/%d)", self.consecutive_failures, self.max_fallos,
                )
                if self.consecutive_failures >= self.max_fallos:
                    raise EmbedderAborted(
                        f"{self.consecutive_failures} batches seguidos sem sucesso"
                    )

            if self.delay_s > 0:
                self.token.wait(self.delay_s)

        if self.token.cancelled:
            logger.info("Embedder cancelado: %s", self.token.reason)
        logger.info("Embedder stats: %s", self.stats)
        return self.stats


def run_embedder(token: Optional[CancellationToken] = None, run_once: bool = False, client=None) -> Dict[str, int]:
    return Embedder(client=client, token=token).run(run_once=run_once)
