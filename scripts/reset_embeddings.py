#!/usr/bin/env python3
# scripts/reset_embeddings.py
"""
Limpa todos os embeddings e re-enfileira normas e artigos.

Usar ao trocar EMBEDDINGS_MODEL / EMBEDDINGS_DIMENSIONS (a coluna vector(N)
precisa de migracao propria se a dimensao mudar).

Uso:
  python scripts/reset_embeddings.py --yes
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

from normas.db.connection import close_pool, configure_pool
from normas.legal.embedding_queue import reset_embeddings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("reset_embeddings")


def main() -> int:
    parser = argparse.ArgumentParser(description="Reset de embeddings")
    parser.add_argument("--yes", action="store_true", help="Confirma o reset (obrigatorio)")
    args = parser.parse_args()

    if not args.yes:
        logger.error("Operacao destrutiva: apaga todos os vetores. Rode com --yes para confirmar.")
        return 1

    configure_pool("normas-reset")
    try:
        counts = reset_embeddings()
    except Exception:
        logger.exception("Erro no reset")
        return 1
    finally:
        close_pool()

    for key, value in counts.items():
        logger.info("  %-20s %d", key, value)
    logger.info("=== Reset concluido. Rode scripts/run_embedder.py para regenerar ===")
    return 0


if __name__ == "__main__":
    sys.exit(main())
