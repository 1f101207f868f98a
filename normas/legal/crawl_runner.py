# normas/legal/crawl_runner.py
"""
Runner do crawl/backfill do portal normas.gba.gob.ar.

Pode ser chamado de:
  - scripts/crawl_normas.py (CLI)

Por (tipo, janela): probe (pagina 1, total de resultados) -> paginate
(paginas 2..min(teto do site, max_paginas, paginas do total)) -> subdivide
(total > teto de resultados: mes -> semanas ISO -> dias) -> done.

Por item: upsert_minimal -> detalhe -> upsert_detail -> texto actualizado
(fallback PDF do original) -> reconcile_text -> upsert_relations.

Falhas:
  - HTTP de erro / URL invalida / erro de banco: erro do item, crawl segue
  - falha de rede: contador consecutivo; >= limite -> CrawlAborted
  - sucesso zera o contador

Funcoes publicas:
  - month_windows(), subdivide_window()
  - CrawlRunner.run(): orquestra todos os tipos, retorna resultado em memoria
  - generate_report_md() / generate_report_json()
"""
from __future__ import annotations

import calendar
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from normas.config import settings
from normas.config.norm_types import enabled_types
from normas.legal import db_writer
from normas.legal.article_segmenter import parse_text_from_pdf, parse_updated_text
from normas.legal.errors import (
    CrawlAborted,
    FetchError,
    HttpStatusError,
    InvalidNormUrl,
    TransientFetchError,
)
from normas.legal.gba_parser import infer_identity, parse_detail_page, parse_listing_page
from normas.legal.models import DetailResult, ListingItem, ParsedArticle
from normas.legal.site_client import SiteClient
from normas.utils.cancellation import CancellationToken

logger = logging.getLogger("crawl_normas")

MONTH = "month"
WEEK = "week"
DAY = "day"

# Resultado de process_item
OUTCOME_LISTING = "listing"
OUTCOME_CHANGED = "changed"
OUTCOME_UNCHANGED = "unchanged"
OUTCOME_SIN_TEXTO = "sin_texto"


# ── Janelas ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Window:
    desde: date
    hasta: date
    granularity: str

    @property
    def label(self) -> str:
        if self.granularity == MONTH:
            return self.desde.strftime("%Y-%m")
        if self.granularity == DAY:
            return self.desde.isoformat()
        return f"{self.desde.isoformat()}..{self.hasta.isoformat()}"


def parse_year_month(value: str) -> Tuple[int, int]:
    """'2024-03' -> (2024, 3)."""
    try:
        anio, mes = (int(p) for p in value.split("-", 1))
    except ValueError as e:
        raise ValueError(f"Data invalida (esperado YYYY-MM): {value!r}") from e
    if not 1 <= mes <= 12:
        raise ValueError(f"Mes invalido: {value!r}")
    return anio, mes


def month_window(anio: int, mes: int) -> Window:
    last = calendar.monthrange(anio, mes)[1]
    return Window(date(anio, mes, 1), date(anio, mes, last), MONTH)


def month_windows(desde: str, hasta: str) -> List[Window]:
    """Janelas mensais de 'YYYY-MM' ate 'YYYY-MM' (inclusive), em ordem crescente."""
    anio, mes = parse_year_month(desde)
    hasta_anio, hasta_mes = parse_year_month(hasta)
    windows: List[Window] = []
    while (anio, mes) <= (hasta_anio, hasta_mes):
        windows.append(month_window(anio, mes))
        mes += 1
        if mes > 12:
            anio, mes = anio + 1, 1
    return windows


def week_windows(window: Window) -> List[Window]:
    """Semanas ISO (segunda..domingo) recortadas pela janela."""
    weeks: List[Window] = []
    start = window.desde
    while start <= window.hasta:
        sunday = start + timedelta(days=6 - start.weekday())
        end = min(sunday, window.hasta)
        weeks.append(Window(start, end, WEEK))
        start = end + timedelta(days=1)
    return weeks


def day_windows(window: Window) -> List[Window]:
    days = (window.hasta - window.desde).days
    return [Window(window.desde + timedelta(days=i), window.desde + timedelta(days=i), DAY)
            for i in range(days + 1)]


def subdivide_window(window: Window) -> List[Window]:
    """mes -> semanas, semana -> dias, dia -> [] (nao subdivide mais)."""
    if window.granularity == MONTH:
        return week_windows(window)
    if window.granularity == WEEK:
        return day_windows(window)
    return []


def current_year_month() -> str:
    today = date.today()
    return f"{today.year}-{today.month:02d}"


# ── Opcoes / estatisticas ────────────────────────────────────────────────────

@dataclass
class CrawlOptions:
    tipos: List[str] = field(default_factory=enabled_types)
    desde: str = "2000-01"
    hasta: str = field(default_factory=current_year_month)
    solo_listing: bool = False
    max_paginas: Optional[int] = None
    page_size: int = settings.SITE_PAGE_SIZE
    page_cap: int = settings.SITE_MAX_PAGES
    result_cap: int = settings.SITE_RESULT_CAP
    max_consecutive_errors: int = settings.SCRAPER_MAX_CONSECUTIVE_ERRORS


def _new_stats(tipo: str) -> dict:
    return {
        "tipo": tipo,
        "windows": 0,
        "pages": 0,
        "processed": 0,
        "changed": 0,
        "unchanged": 0,
        "sin_texto": 0,
        "listing_only": 0,
        "errors": 0,
        "skipped": 0,
        "truncated_windows": [],
        "error_details": [],
    }


# ── Runner ───────────────────────────────────────────────────────────────────

class CrawlRunner:
    """
    Controlador sequencial do crawl.

    Args:
        client: SiteClient (uma requisicao por vez, com delay proprio)
        options: CrawlOptions
        token: CancellationToken checado no topo de cada janela e antes de cada item
        writer: camada de persistencia (default: normas.legal.db_writer)
    """

    def __init__(
        self,
        client: SiteClient,
        options: Optional[CrawlOptions] = None,
        token: Optional[CancellationToken] = None,
        writer=db_writer,
    ):
        self.client = client
        self.options = options or CrawlOptions()
        self.token = token or CancellationToken()
        self.writer = writer
        self.consecutive_errors = 0
        self.result: dict = {}

    # ── breaker ──

    def _record_success(self):
        self.consecutive_errors = 0

    def _record_network_failure(self, err: Exception):
        self.consecutive_errors += 1
        limit = self.options.max_consecutive_errors
        logger.warning("Falha de rede (%d/%d consecutivas): %s", self.consecutive_errors, limit, err)
        if self.consecutive_errors >= limit:
            raise CrawlAborted(f"Abortando: {limit} falhas de rede consecutivas. Ultima: {err}")

    def _record_error(self, stats: dict, ref: str, err: Exception):
        stats["errors"] += 1
        stats["error_details"].append({"ref": ref, "error": f"{type(err).__name__}: {err}"})

    # ── item ──

    def _fetch_articles(self, detail: DetailResult) -> Tuple[Optional[bytes], List[ParsedArticle]]:
        """Texto actualizado (HTML); se zero artigos e houver original, PDF."""
        if detail.url_texto_actualizado:
            raw = self.client.fetch_document(detail.url_texto_actualizado)
            articles = parse_updated_text(raw.decode("utf-8", errors="replace"))
            if articles:
                return raw, articles
            logger.info("    texto actualizado sem artigos, tentando original")

        if detail.url_texto_original:
            raw = self.client.fetch_document(detail.url_texto_original)
            if raw[:5] == b"%PDF-" or detail.url_texto_original.lower().endswith(".pdf"):
                articles = parse_text_from_pdf(raw)
            else:
                articles = parse_updated_text(raw.decode("utf-8", errors="replace"))
            if articles:
                return raw, articles

        return None, []

    def process_item(self, item: ListingItem) -> str:
        """
        Processa uma norma do listing. Retorna o outcome
        ("listing" | "changed" | "unchanged" | "sin_texto").

        Levanta InvalidNormUrl, FetchError e erros de banco para o chamador.
        """
        norma_id, _estado = self.writer.upsert_minimal(item)
        if self.options.solo_listing:
            return OUTCOME_LISTING

        html = self.client.fetch_detail(item.url_canonica)
        detail = parse_detail_page(html, item.url_canonica)
        sitio_id = item.sitio_id or infer_identity(item.url_canonica).sitio_id
        self.writer.upsert_detail(sitio_id, detail)

        source, articles = self._fetch_articles(detail)
        if articles:
            result = self.writer.reconcile_text(norma_id, source, articles)
            outcome = result.status
            logger.info("    %s (%d artigos)", outcome, len(articles))
        else:
            outcome = OUTCOME_SIN_TEXTO
            logger.info("    sin texto")

        if detail.relaciones:
            self.writer.upsert_relations(norma_id, detail.relaciones)

        return outcome

    def _run_item(self, item: ListingItem, stats: dict):
        logger.info("  -> %s", (item.titulo or item.url_canonica)[:60])
        try:
            outcome = self.process_item(item)
        except InvalidNormUrl as e:
            logger.warning("    URL invalida: %s", e)
            self._record_error(stats, item.url_canonica, e)
        except HttpStatusError as e:
            logger.warning("    HTTP %s em %s", e.status, e.url)
            self._record_error(stats, item.url_canonica, e)
        except TransientFetchError as e:
            self._record_error(stats, item.url_canonica, e)
            self._record_network_failure(e)
        except Exception as e:
            logger.exception("    Erro em %s", item.url_canonica)
            self._record_error(stats, item.url_canonica, e)
        else:
            self._record_success()
            stats["processed"] += 1
            key = "listing_only" if outcome == OUTCOME_LISTING else outcome
            stats[key] += 1

    def _process_page(self, html: str, stats: dict) -> bool:
        """Processa os itens de uma pagina. False se cancelado no meio."""
        items = parse_listing_page(html)
        for i, item in enumerate(items):
            if self.token.cancelled:
                stats["skipped"] += len(items) - i
                return False
            self._run_item(item, stats)
        return True

    # ── janela ──

    def _fetch_listing(self, tipo: str, page: int, window: Window, stats: dict):
        try:
            listing = self.client.fetch_listing_page(tipo, page, window.desde, window.hasta)
        except TransientFetchError as e:
            self._record_error(stats, f"{tipo} {window.label} p{page}", e)
            self._record_network_failure(e)
            return None
        except FetchError as e:
            self._record_error(stats, f"{tipo} {window.label} p{page}", e)
            return None
        stats["pages"] += 1
        return listing

    def crawl_window(self, tipo: str, window: Window, stats: dict):
        if self.token.cancelled:
            return
        stats["windows"] += 1

        first = self._fetch_listing(tipo, 1, window, stats)
        if first is None:
            return
        total = first.total_resultados
        if total == 0:
            return

        opts = self.options
        if total > opts.result_cap:
            subs = subdivide_window(window)
            if subs:
                logger.info("  %s %s: %d resultados > %d, subdividindo em %d janelas",
                            tipo, window.label, total, opts.result_cap, len(subs))
                for sub in subs:
                    if self.token.cancelled:
                        return
                    self.crawl_window(tipo, sub, stats)
                return
            stats["truncated_windows"].append({"window": window.label, "total": total})
            logger.warning("  %s %s: %d resultados num unico dia, so %d recuperaveis",
                           tipo, window.label, total, opts.page_cap * opts.page_size)

        pages_from_total = math.ceil(total / opts.page_size)
        max_page = min(opts.page_cap, opts.max_paginas or opts.page_cap, pages_from_total)
        logger.info("  %s %s: %d normas, %d pagina(s)", tipo, window.label, total, max_page)

        if not self._process_page(first.html, stats):
            return
        for page in range(2, max_page + 1):
            if self.token.cancelled:
                return
            listing = self._fetch_listing(tipo, page, window, stats)
            if listing is None:
                continue
            if not self._process_page(listing.html, stats):
                return

    def crawl_tipo(self, tipo: str) -> dict:
        stats = _new_stats(tipo)
        logger.info("=== %s: %s -> %s ===", tipo.upper(), self.options.desde, self.options.hasta)
        for window in month_windows(self.options.desde, self.options.hasta):
            if self.token.cancelled:
                break
            self.crawl_window(tipo, window, stats)

        if not self.options.solo_listing and not self.token.cancelled:
            stats["relations_resolved"] = self.writer.resolve_pending_relations()
        logger.info("=== %s concluido: %d processadas, %d erros ===",
                    tipo.upper(), stats["processed"], stats["errors"])
        return stats

    def run(self) -> dict:
        """
        Processa todos os tipos configurados.

        Returns:
            {"all_stats": [...], "started_at", "finished_at", "cancelled", "aborted"}

        Raises:
            CrawlAborted: falha sistemica; self.result guarda o parcial
        """
        self.result = {
            "started_at": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "finished_at": None,
            "options": {
                "tipos": list(self.options.tipos),
                "desde": self.options.desde,
                "hasta": self.options.hasta,
                "solo_listing": self.options.solo_listing,
                "max_paginas": self.options.max_paginas,
            },
            "all_stats": [],
            "cancelled": False,
            "aborted": None,
        }
        try:
            for tipo in self.options.tipos:
                if self.token.cancelled:
                    break
                self.result["all_stats"].append(self.crawl_tipo(tipo))
        except CrawlAborted as e:
            self.result["aborted"] = str(e)
            raise
        finally:
            self.result["cancelled"] = self.token.cancelled
            self.result["finished_at"] = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        return self.result

    # ── reparo ──

    def repair_articles(
        self,
        tipo: Optional[str] = None,
        desde_anio: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> dict:
        """
        Re-baixa o texto de normas com url_texto_actualizado e zero artigos e
        substitui os artigos mesmo com hash igual.

        Returns:
            {"candidates", "repaired", "sin_texto", "errors", "skipped", "error_details"}
        """
        rows = self.writer.find_norms_without_articles(tipo, desde_anio, limit)
        stats = {"candidates": len(rows), "repaired": 0, "sin_texto": 0,
                 "errors": 0, "skipped": 0, "error_details": []}
        logger.info("Reparo: %d normas sem artigos", len(rows))

        for i, row in enumerate(rows):
            if self.token.cancelled:
                stats["skipped"] += len(rows) - i
                break
            label = f"{row['tipo']} {row['numero']}/{row['anio']}"
            detail = DetailResult(
                url_texto_actualizado=row["url_texto_actualizado"],
                url_texto_original=row["url_texto_original"],
            )
            try:
                source, articles = self._fetch_articles(detail)
                if not articles:
                    stats["sin_texto"] += 1
                    logger.info("  %s: sin texto", label)
                    continue
                self.writer.force_replace_articles(row["id"], source, articles)
            except TransientFetchError as e:
                self._record_error(stats, label, e)
                self._record_network_failure(e)
            except Exception as e:
                logger.warning("  %s: %s", label, e)
                self._record_error(stats, label, e)
            else:
                self._record_success()
                stats["repaired"] += 1
                logger.info("  %s: %d artigos", label, len(articles))
        return stats


# ── Relatorios ───────────────────────────────────────────────────────────────

_COUNT_KEYS = ("processed", "changed", "unchanged", "sin_texto", "listing_only", "errors", "skipped")


def _totals(all_stats: List[dict]) -> Dict[str, int]:
    return {k: sum(s.get(k, 0) for s in all_stats) for k in _COUNT_KEYS}


def generate_report_md(result: dict) -> str:
    """Gera relatorio Markdown e retorna como string."""
    all_stats = result.get("all_stats", [])
    lines = [
        "# Relatorio Crawl normas.gba.gob.ar",
        "",
        f"**Inicio**: {result.get('started_at')}  ",
        f"**Fim**: {result.get('finished_at')}",
        "",
    ]
    if result.get("aborted"):
        lines += [f"**ABORTADO**: {result['aborted']}", ""]
    elif result.get("cancelled"):
        lines += ["**Interrompido** pelo usuario (item em andamento concluido).", ""]

    lines += [
        "## Resumo por Tipo",
        "",
        "| Tipo | Janelas | Pags | Processadas | Alteradas | Sem mudanca | Sem texto | Erros |",
        "|------|--------:|-----:|------------:|----------:|------------:|----------:|------:|",
    ]
    for s in all_stats:
        lines.append(
            f"| {s['tipo']} | {s['windows']} | {s['pages']} | {s['processed']} | "
            f"{s['changed']} | {s['unchanged']} | {s['sin_texto']} | {s['errors']} |"
        )
    t = _totals(all_stats)
    lines.append(
        f"| **TOTAL** | | | **{t['processed']}** | **{t['changed']}** | "
        f"**{t['unchanged']}** | **{t['sin_texto']}** | **{t['errors']}** |"
    )

    truncated = [(s["tipo"], w) for s in all_stats for w in s.get("truncated_windows", [])]
    if truncated:
        lines += ["", "## Janelas truncadas", ""]
        for tipo, w in truncated:
            lines.append(f"- {tipo} {w['window']}: {w['total']} resultados")

    errors = [e for s in all_stats for e in s.get("error_details", [])]
    if errors:
        lines += ["", "## Erros", ""]
        for err in errors:
            lines.append(f"- **{err['ref']}**: {err['error']}")

    lines += ["", "---", "*Gerado automaticamente por `normas.legal.crawl_runner`*"]
    return "\n".join(lines) + "\n"


def generate_report_json(result: dict) -> dict:
    """JSON agregado com stats por tipo + totais."""
    all_stats = result.get("all_stats", [])
    return {
        "started_at": result.get("started_at"),
        "finished_at": result.get("finished_at"),
        "options": result.get("options", {}),
        "cancelled": result.get("cancelled", False),
        "aborted": result.get("aborted"),
        "totals": _totals(all_stats),
        "tipos": [
            {
                "tipo": s["tipo"],
                "windows": s["windows"],
                "pages": s["pages"],
                **{k: s.get(k, 0) for k in _COUNT_KEYS},
                "truncated_windows": s.get("truncated_windows", []),
                "relations_resolved": s.get("relations_resolved", 0),
                "error_count": len(s.get("error_details", [])),
            }
            for s in all_stats
        ],
    }
