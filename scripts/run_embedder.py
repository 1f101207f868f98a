#!/usr/bin/env python3
# scripts/run_embedder.py
"""
Worker de embeddings (cola_embeddings -> pgvector).

Uso:
  python scripts/run_embedder.py            # loop continuo (poll quando a fila esvazia)
  python scripts/run_embedder.py --once     # processa ate esvaziar e sai

Requer:
  POSTGRES_CONNSTR, EMBEDDINGS_API_KEY (env vars)
"""
from __future__ import annotations

import argparse
import logging
import os
import sys

# Garantir que raiz do projeto esta no path
_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _ROOT not in sys.path:
    sys.path.insert(0, _ROOT)

from normas.config.settings import validate_embedder_config
from normas.db.connection import close_pool, configure_pool
from normas.legal.embedder import run_embedder
from normas.legal.errors import EmbedderAborted
from normas.utils.cancellation import CancellationToken, install_signal_handlers

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("embedder")


def main() -> int:
    parser = argparse.ArgumentParser(description="Worker de embeddings de normas")
    parser.add_argument("--once", action="store_true", help="Sai quando a fila esvaziar")
    args = parser.parse_args()

    ok, msg = validate_embedder_config()
    if not ok:
        logger.error(msg)
        return 1

    token = install_signal_handlers(CancellationToken())
    configure_pool("normas-embedder")
    try:
        stats = run_embedder(token=token, run_once=args.once)
    except EmbedderAborted as e:
        logger.error("Embedder abortado: %s", e)
        return 1
    except Exception:
        logger.exception("Erro fatal no embedder")
        return 1
    finally:
        close_pool()

    logger.info("=== Embedder concluido: %d salvos, %d erros, %d tokens ===",
                stats["saved"], stats["errors"], stats["tokens"])
    return 0


if __name__ == "__main__":
    sys.exit(main())
