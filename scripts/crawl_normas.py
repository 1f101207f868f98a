#!/usr/bin/env python3
# scripts/crawl_normas.py
"""
Crawl/backfill de normas do portal normas.gba.gob.ar.

Para cada tipo e janela mensal:
  1. Listing (probe + paginacao; janelas grandes sao subdivididas)
  2. Upsert minimo (descubierta)
  3. Detalhe + upsert de metadata (scrapeada)
  4. Texto actualizado (fallback PDF) -> artigos + cola de embeddings
  5. Relacoes normativas
  6. Gera relatorio

Uso:
  python scripts/crawl_normas.py --tipo ley --desde-fecha 2024-01 --hasta-fecha 2024-03
  python scripts/crawl_normas.py --solo-listing --max-paginas 2
  python scripts/crawl_normas.py                      # todos os tipos, 2000-01 ate hoje

Requer:
  POSTGRES_CONNSTR (env var)

Exit: 0 (concluido ou interrompido por SIGINT/SIGTERM), 1 (abortado).
"""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys

# Garantir que raiz do projeto esta no path
_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _ROOT not in sys.path:
    sys.path.insert(0, _ROOT)

from normas.config.norm_types import NORM_TYPE_CONFIGS, enabled_types
from normas.db.connection import close_pool, configure_pool
from normas.legal.crawl_runner import (
    CrawlOptions,
    CrawlRunner,
    current_year_month,
    generate_report_json,
    generate_report_md,
    parse_year_month,
)
from normas.legal.errors import CrawlAborted
from normas.legal.site_client import SiteClient
from normas.utils.cancellation import CancellationToken, install_signal_handlers

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("crawl_normas")


def _year_month(value: str) -> str:
    try:
        parse_year_month(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))
    return value


def write_reports(result: dict, output: str):
    os.makedirs(os.path.dirname(output) or ".", exist_ok=True)
    with open(output, "w", encoding="utf-8") as f:
        f.write(generate_report_md(result))
    json_path = os.path.splitext(output)[0] + ".json"
    with open(json_path, "w", encoding="utf-8") as f:
        json.dump(generate_report_json(result), f, ensure_ascii=False, indent=2)
    logger.info("Relatorios: %s, %s", output, json_path)


def main() -> int:
    parser = argparse.ArgumentParser(description="Crawl de normas.gba.gob.ar")
    parser.add_argument("--tipo", choices=sorted(NORM_TYPE_CONFIGS), default=None,
                        help="Processar apenas um tipo (default: todos habilitados)")
    parser.add_argument("--desde-fecha", type=_year_month, default="2000-01", help="YYYY-MM inicial")
    parser.add_argument("--hasta-fecha", type=_year_month, default=None, help="YYYY-MM final (default: mes atual)")
    parser.add_argument("--solo-listing", action="store_true", help="So listing + upsert minimo")
    parser.add_argument("--max-paginas", type=int, default=None, help="Max paginas por janela")
    parser.add_argument("--output", type=str, default="outputs/REPORT_CRAWL_NORMAS.md", help="Caminho do report")
    args = parser.parse_args()

    options = CrawlOptions(
        tipos=[args.tipo] if args.tipo else enabled_types(),
        desde=args.desde_fecha,
        hasta=args.hasta_fecha or current_year_month(),
        solo_listing=args.solo_listing,
        max_paginas=args.max_paginas,
    )
    logger.info("=== Crawl normas.gba.gob.ar iniciado ===")
    logger.info("tipos=%s, desde=%s, hasta=%s, solo_listing=%s, max_paginas=%s",
                ",".join(options.tipos), options.desde, options.hasta,
                options.solo_listing, options.max_paginas)

    token = install_signal_handlers(CancellationToken())
    client = SiteClient()
    runner = CrawlRunner(client, options, token)
    exit_code = 0
    configure_pool("normas-crawl")
    try:
        runner.run()
    except CrawlAborted as e:
        logger.error("Crawl abortado: %s", e)
        exit_code = 1
    except Exception:
        logger.exception("Erro fatal no crawl")
        exit_code = 1
    finally:
        client.close()
        close_pool()

    if runner.result:
        write_reports(runner.result, args.output)
        totals = generate_report_json(runner.result)["totals"]
        logger.info("=== Crawl concluido: %d processadas, %d alteradas, %d erros%s ===",
                    totals["processed"], totals["changed"], totals["errors"],
                    " (interrompido)" if runner.result.get("cancelled") else "")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
