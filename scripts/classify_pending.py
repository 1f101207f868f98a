#!/usr/bin/env python3
# scripts/classify_pending.py
"""
Backfill de area_tematica: classifica normas com resumen e sem categorias.

Uso:
  python scripts/classify_pending.py
  python scripts/classify_pending.py --limit 200
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
from normas.legal.classifier import classify_pending
from normas.utils.cancellation import CancellationToken, install_signal_handlers

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("classify_pending")


def main() -> int:
    parser = argparse.ArgumentParser(description="Clasificacion tematica de normas pendientes")
    parser.add_argument("--limit", type=int, default=None, help="Max normas a classificar")
    parser.add_argument("--batch-size", type=int, default=100, help="Normas por consulta")
    args = parser.parse_args()

    ok, msg = validate_embedder_config()
    if not ok:
        logger.error(msg)
        return 1

    token = install_signal_handlers(CancellationToken())
    configure_pool("normas-classify")
    try:
        stats = classify_pending(token=token, batch_size=args.batch_size, limit=args.limit)
    except Exception:
        logger.exception("Erro fatal na clasificacion")
        return 1
    finally:
        close_pool()

    logger.info("=== %d clasificadas, %d sin categoria, %d errores ===",
                stats["classified"], stats["empty"], stats["errors"])
    return 0


if __name__ == "__main__":
    sys.exit(main())
