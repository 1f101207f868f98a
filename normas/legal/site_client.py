# normas/legal/site_client.py
"""
Acesso HTTP ao portal normas.gba.gob.ar.

  - fetch(): GET com retry/backoff (403/404/410 nunca re-tentados) e delay fixo
    apos cada request (rate limit contra o site fonte)
  - build_listing_url(): URL de /resultados por tipo, pagina e janela de datas
  - parse_total_results(): total de resultados a partir do texto de paginacao
  - fetch_listing_page / fetch_detail / fetch_document

Erros sobem como TransientFetchError (rede), PermanentFetchError (403/404/410)
ou HttpStatusError (outros status apos retries).
"""
from __future__ import annotations

import logging
import math
import re
import time
from dataclasses import dataclass
from datetime import date
from typing import Callable, List, Optional, Tuple
from urllib.parse import urlencode, urljoin

import requests

from normas.config import settings
from normas.config.norm_types import get_config
from normas.legal.errors import (
    FetchError,
    HttpStatusError,
    PermanentFetchError,
    TransientFetchError,
)
from normas.utils.retry import retry_call

logger = logging.getLogger(__name__)

PERMANENT_STATUSES = frozenset({403, 404, 410})

# Nomes dos parametros da busca (mudam se o site mudar)
PARAM_RAW_TYPE = "q[terms][raw_type]"
PARAM_SORT = "q[sort]"
PARAM_DATE_FROM = "q[terms][publication_date_from]"
PARAM_DATE_TO = "q[terms][publication_date_to]"
SORT_VALUE = "by_publication_date_desc"

# Ordem importa: o primeiro padrao que casar vence
_TOTAL_PATTERNS = [
    re.compile(r"P[aá]gina\s+\d+\s+de\s+([\d.]+)\s+resultados", re.IGNORECASE),
    re.compile(r"(\d[\d.]*)\s+resultados", re.IGNORECASE),
    re.compile(r"de\s+([\d.]+)\s+resultado", re.IGNORECASE),
]

_HEADERS = {
    "User-Agent": settings.SCRAPER_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/pdf,*/*",
    "Accept-Language": "es-AR,es;q=0.9,en;q=0.5",
}


@dataclass
class ListingPage:
    html: str
    total_resultados: int
    total_paginas: int


def fmt_fecha(d: date) -> str:
    """date -> 'DD/MM/YYYY' (formato dos filtros do site)."""
    return d.strftime("%d/%m/%Y")


def parse_total_results(html: str) -> int:
    """Total de resultados do texto de paginacao. 0 se nenhum padrao casar."""
    for pattern in _TOTAL_PATTERNS:
        m = pattern.search(html or "")
        if m:
            return int(m.group(1).replace(".", ""))
    return 0


def total_pages(total: int, page_size: int = settings.SITE_PAGE_SIZE) -> int:
    return math.ceil(total / page_size) if total > 0 else 1


def build_listing_url(
    tipo: str,
    page: int = 1,
    desde: Optional[date] = None,
    hasta: Optional[date] = None,
    base_url: str = settings.SCRAPER_BASE_URL,
) -> str:
    """
    URL de /resultados para um tipo de norma.

    Ex: build_listing_url("ley", 2)
        → https://normas.gba.gob.ar/resultados?page=2&q%5Bterms%5D%5Braw_type%5D=Law&q%5Bsort%5D=by_publication_date_desc
    """
    cfg = get_config(tipo)
    params: List[Tuple[str, str]] = [
        ("page", str(page)),
        (PARAM_RAW_TYPE, cfg.raw_type),
        (PARAM_SORT, SORT_VALUE),
    ]
    if desde is not None:
        params.append((PARAM_DATE_FROM, fmt_fecha(desde)))
    if hasta is not None:
        params.append((PARAM_DATE_TO, fmt_fecha(hasta)))
    return f"{base_url}/resultados?{urlencode(params)}"


class SiteClient:
    """Cliente HTTP sequencial do portal (uma requisicao por vez)."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        base_url: str = settings.SCRAPER_BASE_URL,
        delay_ms: int = settings.SCRAPER_DELAY_MS,
        timeout_s: int = settings.SCRAPER_TIMEOUT_S,
        max_retries: int = settings.SCRAPER_MAX_RETRIES,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session = session or requests.Session()
        self.session.headers.update(_HEADERS)
        self.base_url = base_url.rstrip("/")
        self.delay_s = delay_ms / 1000.0
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self._sleep = sleep

    def absolute(self, path_or_url: str) -> str:
        return urljoin(self.base_url + "/", path_or_url)

    def _get_once(self, url: str) -> bytes:
        try:
            resp = self.session.get(url, timeout=self.timeout_s)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise TransientFetchError(url, f"falha de rede: {e}") from e
        except requests.RequestException as e:
            raise TransientFetchError(url, f"erro de request: {e}") from e

        if resp.status_code in PERMANENT_STATUSES:
            raise PermanentFetchError(url, f"HTTP {resp.status_code}", resp.status_code)
        if resp.status_code >= 400:
            raise HttpStatusError(url, f"HTTP {resp.status_code}", resp.status_code)
        return resp.content

    def fetch(self, path_or_url: str) -> bytes:
        """GET com retry (backoff 1s, 2s, ...). Aplica o delay fixo apos o request."""
        url = self.absolute(path_or_url)
        try:
            return retry_call(
                lambda: self._get_once(url),
                attempts=self.max_retries,
                base_delay=1.0,
                retry_on=lambda e: isinstance(e, FetchError) and not isinstance(e, PermanentFetchError),
                label=url,
                sleep=self._sleep,
            )
        finally:
            if self.delay_s > 0:
                self._sleep(self.delay_s)

    def fetch_text(self, path_or_url: str) -> Tuple[bytes, str]:
        raw = self.fetch(path_or_url)
        return raw, raw.decode("utf-8", errors="replace")

    def fetch_listing_page(
        self,
        tipo: str,
        page: int = 1,
        desde: Optional[date] = None,
        hasta: Optional[date] = None,
    ) -> ListingPage:
        url = build_listing_url(tipo, page, desde, hasta, base_url=self.base_url)
        _, html = self.fetch_text(url)
        total = parse_total_results(html)
        return ListingPage(html=html, total_resultados=total, total_paginas=total_pages(total))

    def fetch_detail(self, url_canonica: str) -> str:
        _, html = self.fetch_text(url_canonica)
        return html

    def fetch_document(self, url_documento: str) -> bytes:
        """Documento cru (HTML do texto actualizado ou PDF do original)."""
        return self.fetch(url_documento)

    def close(self):
        self.session.close()
