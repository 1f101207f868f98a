# normas/legal/gba_parser.py
"""
Parser das paginas do portal normas.gba.gob.ar.

Funcoes:
  - parse_listing_page: extrai resultados (h3 > a) de uma pagina de busca
  - parse_detail_page: metadata, links de documentos e relacoes normativas
  - parse_norm_url / infer_identity: identidade natural a partir da URL canonica
  - infer_relation_kind: tipo de relacao por palavra-chave

Nenhuma funcao de parse levanta excecao para HTML mal formado: devolvem
estruturas vazias/parciais. So infer_identity levanta InvalidNormUrl.
"""
from __future__ import annotations

import re
import logging
from typing import List, Optional

from normas.config.norm_types import tipo_from_url_slug
from normas.legal.errors import InvalidNormUrl
from normas.legal.models import (
    DetailResult,
    ListingItem,
    NormIdentity,
    ParsedRelation,
    TipoRelacion,
    UnresolvedRef,
    Vigencia,
)

logger = logging.getLogger(__name__)


# ── Padroes ──────────────────────────────────────────────────────────────────

# /ar-b/{tipo}/{anio}/{numero}/{sitio_id}
RE_NORM_URL = re.compile(r"/(ar-[a-z]+)/([\w-]+)/(\d{4})/(\d+)/(\d+)")

RE_DATE = re.compile(r"(\d{2}/\d{2}/\d{4})")
RE_DATETIME = re.compile(r"(\d{2}/\d{2}/\d{4}\s+\d{2}:\d{2})")
RE_ORGANISMO = re.compile(r"^(del|de la|de el)\s", re.IGNORECASE)

_ACCENT_MAP = str.maketrans("áéíóúÁÉÍÓÚ", "aeiouAEIOU")

# Ordem importa: prioridade deroga > modifica > reglamenta > complementa > prorroga > sustituye
_RELATION_KEYWORDS = [
    (("deroga",), TipoRelacion.DEROGA),
    (("modifica",), TipoRelacion.MODIFICA),
    (("reglamenta",), TipoRelacion.REGLAMENTA),
    (("complementa",), TipoRelacion.COMPLEMENTA),
    (("prorroga", "prórroga"), TipoRelacion.PRORROGA),
    (("sustituye",), TipoRelacion.SUSTITUYE),
]

# Prefixo (sem acento, minusculo) -> campo do DetailResult
_META_PREFIXES = {
    "fecha de promulgacion:": "fecha_promulgacion",
    "fecha de publicacion:": "fecha_publicacion",
    "numero de boletin oficial:": "boletin_oficial_nro",
    "tipo de publicacion:": "tipo_publicacion",
    "ultima actualizacion:": "ultima_actualizacion",
}


# ── Helpers ──────────────────────────────────────────────────────────────────

def _text(el) -> str:
    return " ".join(el.get_text().split()) if el is not None else ""


def _fold(text: str) -> str:
    return text.translate(_ACCENT_MAP).lower()


def extract_date(text: str) -> Optional[str]:
    m = RE_DATE.search(text or "")
    return m.group(1) if m else None


def extract_datetime(text: str) -> Optional[str]:
    m = RE_DATETIME.search(text or "")
    return " ".join(m.group(1).split()) if m else None


# ── Identidade ───────────────────────────────────────────────────────────────

def parse_norm_url(url: Optional[str]) -> Optional[NormIdentity]:
    """
    Identidade natural a partir da URL canonica (leniente).

    Ex: "/ar-b/ley/2026/15610/559753"
        → NormIdentity(tipo="ley", numero=15610, anio=2026, sitio_id=559753)

    Slug desconhecido e mantido com '-' trocado por '_'.
    """
    if not url:
        return None
    m = RE_NORM_URL.search(url)
    if not m:
        return None
    jurisdiccion, slug, anio, numero, sitio_id = m.groups()
    tipo = tipo_from_url_slug(slug) or slug.lower().replace("-", "_")
    return NormIdentity(
        tipo=tipo,
        numero=int(numero),
        anio=int(anio),
        sitio_id=int(sitio_id),
        jurisdiccion=jurisdiccion,
    )


def infer_identity(url: str) -> NormIdentity:
    """Como parse_norm_url, mas levanta InvalidNormUrl (fatal para o item)."""
    ident = parse_norm_url(url)
    if ident is None:
        raise InvalidNormUrl(f"URL invalida: {url}")
    return ident


def infer_relation_kind(text: str) -> TipoRelacion:
    """Palavra-chave no texto (ja em minusculas) da primeira celula. Sem match -> OTRA."""
    lowered = (text or "").lower()
    for keywords, kind in _RELATION_KEYWORDS:
        if any(k in lowered for k in keywords):
            return kind
    return TipoRelacion.OTRA


# ── Listing ──────────────────────────────────────────────────────────────────

def parse_listing_page(html: str) -> List[ListingItem]:
    """
    Extrai resultados de uma pagina /resultados.

    Cada resultado e um <h3><a>; o bloco e o .card-content mais proximo
    (ou a div mais proxima). Dentro do bloco: <blockquote> = resumen,
    1o <p> = fecha de publicacion, 2o <p> = ultima actualizacion.
    """
    from bs4 import BeautifulSoup

    soup = BeautifulSoup(html or "", "html.parser")
    items: List[ListingItem] = []

    for heading in soup.find_all("h3"):
        a = heading.find("a", href=True)
        if not a:
            continue

        container = (
            a.find_parent(class_="card-content")
            or a.find_parent("div")
            or heading.parent
        )
        blockquote = container.find("blockquote") if container else None
        parrafos = container.find_all("p") if container else []

        url = a["href"].strip()
        ident = parse_norm_url(url)
        items.append(ListingItem(
            titulo=_text(a),
            url_canonica=url,
            resumen=(_text(blockquote) or None) if blockquote else None,
            fecha_publicacion=extract_date(_text(parrafos[0])) if len(parrafos) > 0 else None,
            ultima_actualizacion=extract_datetime(_text(parrafos[1])) if len(parrafos) > 1 else None,
            tipo=ident.tipo if ident else None,
            numero=ident.numero if ident else None,
            anio=ident.anio if ident else None,
            sitio_id=ident.sitio_id if ident else None,
        ))

    return items


# ── Detalhe ──────────────────────────────────────────────────────────────────

def parse_detail_page(html: str, url_canonica: Optional[str] = None) -> DetailResult:
    """
    Extrai metadata e relacoes da pagina de detalhe de uma norma.

    Args:
        html: HTML da pagina de detalhe
        url_canonica: URL da norma (reservado para resolver links relativos)

    Returns:
        DetailResult; campos ausentes ficam None.
    """
    from bs4 import BeautifulSoup

    soup = BeautifulSoup(html or "", "html.parser")
    data = DetailResult()

    # Paragrafos de metadata ("Fecha de promulgación: 13/01/2026", ...)
    for p in soup.find_all("p"):
        text = _text(p)
        folded = _fold(text)
        for prefix, attr in _META_PREFIXES.items():
            if folded.startswith(prefix):
                value = text[len(prefix):].strip()
                if attr.startswith("fecha_"):
                    value = extract_date(value)
                elif attr == "ultima_actualizacion":
                    value = extract_datetime(value)
                setattr(data, attr, value or None)
                break
        else:
            if data.organismo is None and RE_ORGANISMO.match(text):
                data.organismo = text

    # Resumen / Observaciones: elemento seguinte ao <h5>
    for h5 in soup.find_all("h5"):
        title = _text(h5)
        nxt = h5.find_next_sibling()
        if nxt is None:
            continue
        if title == "Resumen":
            data.resumen = _text(nxt) or None
        elif title == "Observaciones":
            obs = _text(nxt)
            if obs and "sin observaciones" not in obs.lower():
                data.observaciones = obs

    # Links de documentos: primeiro match vence em cada categoria
    for a in soup.select('a[href*="/documentos/"]'):
        label = _text(a).lower()
        href = a["href"].strip()
        if "texto original" in label or href.lower().endswith(".pdf"):
            if data.url_texto_original is None:
                data.url_texto_original = href
        elif "texto actualizado" in label:
            if data.url_texto_actualizado is None:
                data.url_texto_actualizado = href
        elif "fundamentos" in label:
            if data.url_fundamentos is None:
                data.url_fundamentos = href

    data.relaciones = _parse_relations(soup)

    if data.observaciones and "derogad" in data.observaciones.lower():
        data.vigencia = Vigencia.DEROGADA

    return data


def _parse_relations(soup) -> List[ParsedRelation]:
    """Linhas de tabela com >= 2 celulas cuja 1a celula tem link para outra norma."""
    relaciones: List[ParsedRelation] = []
    for tr in soup.select("table tr"):
        cells = tr.find_all("td")
        if len(cells) < 2:
            continue
        link = cells[0].find("a", href=True)
        if not link:
            continue

        dest_url = link["href"].strip()
        dest = parse_norm_url(dest_url)
        if dest is None:
            logger.debug("relacao ignorada, URL sem identidade: %s", dest_url)
            continue

        relaciones.append(ParsedRelation(
            tipo_relacion=infer_relation_kind(_text(cells[0]).lower()),
            destino=UnresolvedRef(dest.natural_key),
            destino_url=dest_url,
            detalle=(_text(cells[2]) or None) if len(cells) > 2 else None,
        ))
    return relaciones
