# normas/legal/classifier.py
"""
Classificacao tematica de normas (area_tematica) via LLM.

O resumen da norma vai para um modelo de chat compativel com OpenAI, que
responde com 1 a 3 categorias de CATEGORIAS separadas por virgula. A resposta
e normalizada (acentos, espacos, sinonimos) e categorias desconhecidas sao
descartadas.

Usado em dois pontos:
  - embedder: apos salvar o embedding de uma norma (nao critico)
  - classify_pending: backfill das normas com resumen e sem area_tematica
"""
from __future__ import annotations

import logging
import re
import unicodedata
from typing import Dict, List, Optional

from normas.config import settings
from normas.utils.cancellation import CancellationToken
from normas.utils.retry import retry_call

logger = logging.getLogger(__name__)

MAX_CATEGORIAS = 3

CATEGORIAS = [
    "urbanismo",
    "medio_ambiente",
    "salud",
    "educacion",
    "tributos",
    "seguridad",
    "obras_publicas",
    "empleo",
    "municipal",
    "civil",
    "administrativo",
    "transporte",
    "vivienda",
    "agropecuario",
    "derechos_sociales",
    "presupuesto",
]

PROMPT_SISTEMA = (
    "Sos un clasificador de normas legales de la Provincia de Buenos Aires. "
    "Dado el resumen de una norma, respondé ÚNICAMENTE con 1 a 3 categorías de esta lista, "
    "separadas por coma, sin texto adicional: "
    + ", ".join(CATEGORIAS)
)

# Variantes frequentes que o modelo devolve -> categoria canonica
SINONIMOS: Dict[str, str] = {
    "impuestos": "tributos",
    "tributario": "tributos",
    "tributaria": "tributos",
    "fiscal": "tributos",
    "educativo": "educacion",
    "educacion_publica": "educacion",
    "sanidad": "salud",
    "salud_publica": "salud",
    "seguridad_publica": "seguridad",
    "obra_publica": "obras_publicas",
    "ambiente": "medio_ambiente",
    "medioambiente": "medio_ambiente",
    "ambiental": "medio_ambiente",
    "trabajo": "empleo",
    "laboral": "empleo",
    "empleo_publico": "empleo",
    "municipios": "municipal",
    "municipalidades": "municipal",
    "urbano": "urbanismo",
    "planeamiento_urbano": "urbanismo",
    "ordenamiento_territorial": "urbanismo",
    "derecho_civil": "civil",
    "presupuestario": "presupuesto",
    "transito": "transporte",
    "habitat": "vivienda",
    "agro": "agropecuario",
    "agricultura": "agropecuario",
    "ganaderia": "agropecuario",
    "derechos_humanos": "derechos_sociales",
    "desarrollo_social": "derechos_sociales",
    "administracion": "administrativo",
    "administracion_publica": "administrativo",
    "derecho_administrativo": "administrativo",
}

_CATEGORIAS_SET = frozenset(CATEGORIAS)
_RE_SEPARATORS = re.compile(r"[\s\-]+")
_RE_STRIP = re.compile(r"[^a-z0-9_]")


def normalize_category(raw: str) -> Optional[str]:
    """
    Normaliza uma categoria devolvida pelo modelo.

    Ex: "Obras Públicas" -> "obras_publicas"; "Impuestos" -> "tributos";
        "deportes" -> None
    """
    text = unicodedata.normalize("NFKD", raw or "")
    text = "".join(c for c in text if not unicodedata.combining(c)).lower().strip()
    text = _RE_SEPARATORS.sub("_", text)
    text = _RE_STRIP.sub("", text).strip("_")
    if not text:
        return None
    text = SINONIMOS.get(text, text)
    return text if text in _CATEGORIAS_SET else None


def parse_categories(response: str) -> List[str]:
    """Resposta do modelo -> ate 3 categorias validas, sem repeticao, na ordem."""
    result: List[str] = []
    for part in (response or "").split(","):
        cat = normalize_category(part)
        if cat and cat not in result:
            result.append(cat)
        if len(result) >= MAX_CATEGORIAS:
            break
    return result


# ── Cliente ──────────────────────────────────────────────────────────────────

def build_client():
    from openai import OpenAI

    return OpenAI(
        api_key=settings.EMBEDDINGS_API_KEY,
        base_url=settings.EMBEDDINGS_BASE_URL,
        timeout=settings.EMBEDDINGS_TIMEOUT_S,
        max_retries=0,
    )


def _is_rate_limit(exc: BaseException) -> bool:
    import openai

    return isinstance(exc, openai.RateLimitError)


def classify_text(
    client,
    resumen: str,
    model: str = settings.CLASSIFY_MODEL,
    max_chars: int = settings.CLASSIFY_MAX_CHARS,
    attempts: int = 1,
    rate_limit_wait_s: float = 5.0,
    sleep=None,
) -> List[str]:
    """
    Classifica um resumen. Retorna [] para resumen vazio (sem chamada).

    Com attempts > 1, respostas 429 sao re-tentadas esperando
    rate_limit_wait_s * n (n = tentativa), ate 30s.
    """
    texto = (resumen or "").strip()
    if not texto:
        return []

    def _call():
        resp = client.chat.completions.create(
            model=model,
            temperature=0,
            max_tokens=50,
            messages=[
                {"role": "system", "content": PROMPT_SISTEMA},
                {"role": "user", "content": texto[:max_chars]},
            ],
        )
        return resp.choices[0].message.content or ""

    kwargs = {}
    if sleep is not None:
        kwargs["sleep"] = sleep
    content = retry_call(
        _call,
        attempts=attempts,
        retry_on=_is_rate_limit,
        delay_for=lambda exc, attempt: min(rate_limit_wait_s * (attempt + 1), 30.0),
        label="clasificar",
        **kwargs,
    )
    return parse_categories(content)


# ── Backfill ─────────────────────────────────────────────────────────────────

def classify_pending(
    client=None,
    token: Optional[CancellationToken] = None,
    batch_size: int = 100,
    delay_ms: int = settings.CLASSIFY_DELAY_MS,
    limit: Optional[int] = None,
    queue=None,
) -> Dict[str, int]:
    """
    Classifica normas com resumen e sem area_tematica, em lotes.

    Normas que falham (ou sem categoria valida) ficam sem area_tematica e sao
    contadas em "errors"/"empty"; o backfill nao re-tenta na mesma execucao.

    Returns:
        {"total", "classified", "empty", "errors", "cancelled"}
    """
    if queue is None:
        from normas.legal import embedding_queue as queue
    client = client or build_client()
    token = token or CancellationToken()

    stats = {"total": queue.count_unclassified(), "classified": 0, "empty": 0, "errors": 0, "cancelled": 0}
    logger.info("Normas sin clasificar: %d", stats["total"])

    seen = set()
    processed = 0
    while not token.cancelled:
        batch = [n for n in queue.fetch_unclassified(batch_size) if n["id"] not in seen]
        if not batch:
            break

        for norma in batch:
            if token.cancelled:
                break
            if limit is not None and processed >= limit:
                return stats
            seen.add(norma["id"])
            processed += 1
            label = f"{norma['tipo']} {norma['numero']}/{norma['anio']}"
            try:
                cats = classify_text(client, norma["resumen"], attempts=6)
            except Exception as e:
                stats["errors"] += 1
                logger.warning("Erro classificando %s: %s", label, e)
                continue

            if cats:
                queue.save_categories(norma["id"], cats)
                stats["classified"] += 1
                logger.info("%s -> %s", label, ", ".join(cats))
            else:
                stats["empty"] += 1
                logger.info("%s -> sin categoria valida", label)

            if delay_ms > 0:
                token.wait(delay_ms / 1000.0)

    if token.cancelled:
        stats["cancelled"] = 1
    logger.info("Clasificacion terminada: %s", stats)
    return stats
