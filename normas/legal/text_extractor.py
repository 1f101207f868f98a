# normas/legal/text_extractor.py
"""
Extracao de texto plano de PDFs de normas (copias do texto original).

PyMuPDF primeiro; se o texto vier vazio ou curto demais (PDF escaneado,
layout quebrado), tenta pdfplumber. Nunca levanta excecao por PDF invalido:
retorna ExtractionResult com text="" e extractor="none".
"""
from __future__ import annotations

import hashlib
import io
import logging
import re

from normas.legal.models import ExtractionResult

logger = logging.getLogger(__name__)

# Abaixo disso o texto do PyMuPDF e considerado suspeito
MIN_CHARS_PYMUPDF = 200


def sha256_bytes(data: bytes) -> str:
    """Hash do documento fonte (bytes crus, nao do texto normalizado)."""
    return hashlib.sha256(data or b"").hexdigest()


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8", errors="ignore")).hexdigest()


def _normalize_text(text: str) -> str:
    if not text:
        return ""
    text = text.replace("\u00a0", " ")
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\r\n|\r", "\n", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def _extract_pymupdf(pdf_bytes: bytes) -> str:
    import fitz
    with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
        parts = [page.get_text("text") or "" for page in doc]
    return _normalize_text("\n".join(parts))


def _extract_pdfplumber(pdf_bytes: bytes) -> str:
    import pdfplumber
    with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
        parts = [page.extract_text() or "" for page in pdf.pages]
    return _normalize_text("\n".join(parts))


def extract_pdf(pdf_bytes: bytes) -> ExtractionResult:
    """Extrai texto de PDF usando PyMuPDF com fallback para pdfplumber."""
    if not pdf_bytes:
        return ExtractionResult(text="", source_format="pdf", extractor="none")

    text = ""
    extractor = "pymupdf"
    try:
        text = _extract_pymupdf(pdf_bytes)
    except Exception as e:
        logger.warning("PyMuPDF falhou: %s", e)
        text = ""

    if len(text) < MIN_CHARS_PYMUPDF:
        try:
            fallback = _extract_pdfplumber(pdf_bytes)
            if len(fallback) > len(text):
                text = fallback
                extractor = "pdfplumber"
        except Exception as e:
            logger.warning("pdfplumber tambem falhou: %s", e)

    if not text:
        extractor = "none"

    return ExtractionResult(
        text=text,
        source_format="pdf",
        extractor=extractor,
        char_count=len(text),
        sha256=_sha256(text) if text else "",
    )
