# normas/legal/article_segmenter.py
"""
Segmentacao de artigos para textos de normas GBA.

Um unico scanner de dois estados (fora/dentro de artigo) sobre uma sequencia
de blocos de texto, usado tanto para o HTML do texto actualizado quanto para
as linhas do texto extraido do PDF original.

Regras:
  - Um bloco abre artigo quando o texto do marcador (o <strong>/<b> dentro
    dele, ou o proprio texto) casa com o padrao de rotulo e o texto do
    bloco NAO comeca com aspas (aspas = citacao de outro artigo).
  - Rotulo = prefixo casado sem separadores finais ("ARTÍCULO 1°.-" -> "ARTÍCULO 1").
  - Corpo = texto do bloco de abertura + blocos seguintes nao vazios, unidos por '\\n'.
  - Blocos antes do primeiro artigo (cabecalho/preambulo) sao descartados.

Lista vazia = "extracao falhou para esta fonte", nunca "norma sem artigos".
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Pattern

from normas.legal.models import ParsedArticle
from normas.legal.text_extractor import extract_pdf

logger = logging.getLogger(__name__)


# ── Padroes ──────────────────────────────────────────────────────────────────

# O separador final (.- : °) pode estar dentro ou fora do <strong>: opcional.
ARTICULO_REGEX = re.compile(
    r"^(ART[IÍ]CULO|ARTICULO)\s+\d+[°º]?\s*(BIS|TER|QUATER)?(\s*[.°\-:])?",
    re.IGNORECASE,
)

# Variante do PDF: aceita tambem "Art." / "Art" abreviado.
ARTICULO_REGEX_LOOSE = re.compile(
    r"^(ART[IÍ]CULO|ARTICULO|ART\.?)\s*\d+[°º]?\s*(BIS|TER|QUATER)?(\s*[.°\-:])?",
    re.IGNORECASE,
)

_QUOTE_START = re.compile(r"^[\"'“”‘’«]")
_LABEL_TRAILING = re.compile(r"[\s°º.\-:]+$")


@dataclass
class TextBlock:
    """Bloco de texto em ordem de documento; marker = texto enfatizado, se houver."""
    text: str
    marker: Optional[str] = None


def _label_for(block: TextBlock, pattern: Pattern) -> Optional[str]:
    """Rotulo do artigo aberto por este bloco, ou None se o bloco nao abre artigo."""
    if _QUOTE_START.match(block.text):
        return None
    for candidate in (block.marker, block.text):
        if not candidate:
            continue
        m = pattern.match(candidate)
        if m:
            return _LABEL_TRAILING.sub("", m.group(0)).strip()
    return None


def segment_blocks(blocks: Iterable[TextBlock], pattern: Pattern = ARTICULO_REGEX) -> List[ParsedArticle]:
    """Scanner puro: blocos ordenados -> artigos ordenados (orden 0..K-1)."""
    articles: List[ParsedArticle] = []
    current: Optional[ParsedArticle] = None

    for block in blocks:
        text = (block.text or "").strip()
        block = TextBlock(text=text, marker=(block.marker or "").strip() or None)

        label = _label_for(block, pattern)
        if label:
            if current is not None:
                articles.append(current)
            current = ParsedArticle(numero_articulo=label, texto=text, orden=len(articles))
            continue

        if current is not None and text:
            current.texto += "\n" + text

    if current is not None:
        articles.append(current)
    return articles


# ── HTML (texto actualizado) ─────────────────────────────────────────────────

def html_blocks(html: str) -> List[TextBlock]:
    """Elementos folha p/div em ordem de documento (div com p/div dentro e ignorada)."""
    from bs4 import BeautifulSoup

    soup = BeautifulSoup(html or "", "html.parser")
    blocks: List[TextBlock] = []
    for el in soup.find_all(["p", "div"]):
        if el.name == "div" and el.find(["p", "div"]) is not None:
            continue
        emph = el.find(["strong", "b"])
        blocks.append(TextBlock(
            text=el.get_text().strip(),
            marker=emph.get_text().strip() if emph else None,
        ))
    return blocks


def _squash(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def parse_updated_text(html: str) -> List[ParsedArticle]:
    """HTML do texto actualizado -> artigos."""
    blocks = [TextBlock(_squash(b.text), _squash(b.marker) if b.marker else None)
              for b in html_blocks(html)]
    articles = segment_blocks(blocks, ARTICULO_REGEX)
    if not articles:
        logger.info("Texto actualizado sem marcadores de artigo (%d blocos)", len(blocks))
    return articles


# ── PDF (texto original) ─────────────────────────────────────────────────────

def text_blocks(text: str) -> List[TextBlock]:
    return [TextBlock(line) for line in (text or "").splitlines()]


def parse_plain_text(text: str) -> List[ParsedArticle]:
    """Texto plano linha a linha com o padrao solto (aceita 'Art.')."""
    if not text or not text.strip():
        return []
    return segment_blocks(text_blocks(text), ARTICULO_REGEX_LOOSE)


def parse_text_from_pdf(pdf_bytes: bytes) -> List[ParsedArticle]:
    """PDF -> artigos. Falha de extracao ou texto em branco -> []."""
    try:
        result = extract_pdf(pdf_bytes)
    except Exception as e:
        logger.warning("Extracao de PDF falhou: %s", e)
        return []
    return parse_plain_text(result.text)
