#!/usr/bin/env python3
# scripts/repair_articles.py
"""
Reparo de normas com texto actualizado mas sem artigos gravados
(ex: segmentacao falhou numa versao anterior do parser).

Uso:
  python scripts/repair_articles.py --tipo ley --desde-anio 2020
  python scripts/repair_articles.py --limit 50
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

from normas.config.norm_types import NORM_TYPE_CONFIGS
from normas.db.connection import close_pool, configure_pool
from normas.legal.crawl_runner import CrawlRunner
from normas.legal.errors import CrawlAborted
from normas.legal.site_client import SiteClient
from normas.utils.cancellation import CancellationToken, install_signal_handlers

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("repair_articles")


def main() -> int:
    parser = argparse.ArgumentParser(description="Reparo de artigos de normas")
    parser.add_argument("--tipo", choices=sorted(NORM_TYPE_CONFIGS), default=None)
    parser.add_argument("--desde-anio", type=int, default=None, help="Ano minimo")
    parser.add_argument("--limit", type=int, default=None, help="Max normas a reparar")
    args = parser.parse_args()

    token = install_signal_handlers(CancellationToken())
    client = SiteClient()
    runner = CrawlRunner(client, token=token)
    configure_pool("normas-repair")
    try:
        stats = runner.repair_articles(args.tipo, args.desde_anio, args.limit)
    except CrawlAborted as e:
        logger.error("Reparo abortado: %s", e)
        return 1
    except Exception:
        logger.exception("Erro fatal no reparo")
        return 1
    finally:
        client.close()
        close_pool()

    for err in stats["error_details"]:
        logger.warning("  %s: %s", err["ref"], err["error"])
    logger.info("=== Reparo concluido: %d/%d reparadas, %d sin texto, %d erros ===",
                stats["repaired"], stats["candidates"], stats["sin_texto"], stats["errors"])
    return 0


if __name__ == "__main__":
    sys.exit(main())
