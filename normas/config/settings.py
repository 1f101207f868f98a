# normas/config/settings.py
"""
Configuracao centralizada via env vars.

Crawler:
  SCRAPER_BASE_URL, SCRAPER_DELAY_MS, SCRAPER_TIMEOUT_S,
  SCRAPER_MAX_CONSECUTIVE_ERRORS, SITE_PAGE_SIZE, SITE_MAX_PAGES, SITE_RESULT_CAP

Embedder (fail-closed: sem EMBEDDINGS_API_KEY o embedder nao inicia):
  EMBEDDINGS_API_KEY, EMBEDDINGS_BASE_URL, EMBEDDINGS_MODEL, EMBEDDINGS_DIMENSIONS,
  EMBED_BATCH_SIZE, EMBED_DELAY_MS, EMBED_POLL_INTERVAL, MAX_ITEMS_API,
  MAX_TEXTO_CHARS, EMBED_MAX_FALLOS, CLASIFICAR, CLASSIFY_MODEL, CLASSIFY_DELAY_MS

Banco: POSTGRES_CONNSTR, POSTGRES_MAX_CONN (pool em normas.db.connection).
"""
import os
import logging

logger = logging.getLogger(__name__)


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("settings: %s=%r invalido, usando default %d", name, raw, default)
        return default


# ─── Site fonte ────────────────────────────────────────────────────
SCRAPER_BASE_URL = os.environ.get("SCRAPER_BASE_URL", "https://normas.gba.gob.ar").rstrip("/")
SCRAPER_DELAY_MS = _int_env("SCRAPER_DELAY_MS", 500)
SCRAPER_TIMEOUT_S = _int_env("SCRAPER_TIMEOUT_S", 15)
SCRAPER_MAX_RETRIES = _int_env("SCRAPER_MAX_RETRIES", 3)
SCRAPER_MAX_CONSECUTIVE_ERRORS = _int_env("SCRAPER_MAX_CONSECUTIVE_ERRORS", 20)
SCRAPER_USER_AGENT = os.environ.get(
    "SCRAPER_USER_AGENT",
    "Mozilla/5.0 (compatible; normas-gba-scraper/1.0)",
)

# Constantes empiricas do site (ajustar se o site mudar)
SITE_PAGE_SIZE = _int_env("SITE_PAGE_SIZE", 10)
SITE_MAX_PAGES = _int_env("SITE_MAX_PAGES", 20)
SITE_RESULT_CAP = _int_env("SITE_RESULT_CAP", 200)

# ─── Postgres ──────────────────────────────────────────────────────
POSTGRES_CONNSTR = os.environ.get("POSTGRES_CONNSTR", "")
POSTGRES_MAX_CONN = _int_env("POSTGRES_MAX_CONN", 5)

# ─── Embeddings (API compativel com OpenAI) ───────────────────────
EMBEDDINGS_API_KEY = os.environ.get("EMBEDDINGS_API_KEY", "")
EMBEDDINGS_BASE_URL = os.environ.get("EMBEDDINGS_BASE_URL", "https://open.bigmodel.cn/api/paas/v4")
EMBEDDINGS_MODEL = os.environ.get("EMBEDDINGS_MODEL", "embedding-3")
EMBEDDINGS_DIMENSIONS = _int_env("EMBEDDINGS_DIMENSIONS", 1024)   # = vector(N) no schema
EMBEDDINGS_TIMEOUT_S = _int_env("EMBEDDINGS_TIMEOUT_S", 60)

EMBED_BATCH_SIZE = _int_env("EMBED_BATCH_SIZE", 50)
EMBED_DELAY_MS = _int_env("EMBED_DELAY_MS", 200)
EMBED_POLL_INTERVAL_MS = _int_env("EMBED_POLL_INTERVAL", 30000)
MAX_ITEMS_API = min(_int_env("MAX_ITEMS_API", 16), 64)           # hard cap da API
MAX_TEXTO_CHARS = _int_env("MAX_TEXTO_CHARS", 3000)              # ~750 tokens
EMBED_MAX_FALLOS = _int_env("EMBED_MAX_FALLOS", 5)

# ─── Classificacao tematica ───────────────────────────────────────
CLASIFICAR = os.environ.get("CLASIFICAR", "1") != "0"
CLASSIFY_MODEL = os.environ.get("CLASSIFY_MODEL", "glm-4-flash")
CLASSIFY_DELAY_MS = _int_env("CLASSIFY_DELAY_MS", 2000)
CLASSIFY_MAX_CHARS = _int_env("CLASSIFY_MAX_CHARS", 1000)


def validate_embedder_config() -> tuple:
    """
    Valida configuracao obrigatoria do embedder.
    Returns: (ok: bool, error_message: str)
    """
    if not EMBEDDINGS_API_KEY:
        msg = "EMBEDDINGS_API_KEY nao configurada, abortando"
        logger.error(msg)
        return False, msg
    if EMBEDDINGS_DIMENSIONS <= 0:
        msg = f"EMBEDDINGS_DIMENSIONS invalido: {EMBEDDINGS_DIMENSIONS}"
        logger.error(msg)
        return False, msg
    logger.info(
        "embedder config: model=%s dims=%d base_url=%s classificar=%s",
        EMBEDDINGS_MODEL, EMBEDDINGS_DIMENSIONS, EMBEDDINGS_BASE_URL, CLASIFICAR,
    )
    return True, ""
