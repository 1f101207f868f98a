# tests/test_article_segmenter.py
"""
Testes para normas.legal.article_segmenter (HTML do texto actualizado e PDF).
"""
from __future__ import annotations

import pytest

from normas.legal import article_segmenter
from normas.legal.article_segmenter import (
    TextBlock,
    parse_plain_text,
    parse_text_from_pdf,
    parse_updated_text,
    segment_blocks,
)
from normas.legal.models import ExtractionResult


def _fake_extract(text):
    def _extract(_pdf_bytes):
        return ExtractionResult(text=text, source_format="pdf", extractor="pymupdf", char_count=len(text))
    return _extract


# ── parse_updated_text ───────────────────────────────────────────────────────

class TestUpdatedText:
    def test_extrai_artigos(self, texto_actualizado_html):
        arts = parse_updated_text(texto_actualizado_html)
        assert len(arts) == 3
        assert arts[0].numero_articulo.upper().startswith("ARTÍCULO 1")
        assert "Sustitúyese el artículo 2°" in arts[0].texto
        assert arts[0].orden == 0

    def test_ordem_contigua(self, texto_actualizado_html):
        arts = parse_updated_text(texto_actualizado_html)
        assert [a.orden for a in arts] == [0, 1, 2]

    def test_corpo_inclui_continuacao(self, texto_actualizado_html):
        arts = parse_updated_text(texto_actualizado_html)
        assert arts[0].texto.endswith("Texto del artículo 1 continuado.")
        assert arts[1].numero_articulo == "ARTICULO 2"
        assert arts[2].numero_articulo == "ARTÍCULO 3"

    def test_ignora_cabecalho(self, texto_actualizado_html):
        arts = parse_updated_text(texto_actualizado_html)
        assert not any(a.numero_articulo.upper().startswith(("LEY", "EL SENADO")) for a in arts)
        assert "SENADO" not in arts[0].texto

    def test_citacao_entre_aspas_nao_abre_artigo(self):
        html = """
        <p><strong>ARTÍCULO 1°.-</strong> Sustitúyese el artículo 5 por el siguiente:</p>
        <p>"ARTÍCULO 5°.- Texto nuevo del artículo citado."</p>
        <p><strong>ARTÍCULO 2°.-</strong> Comuníquese.</p>
        """
        arts = parse_updated_text(html)
        assert [a.numero_articulo for a in arts] == ["ARTÍCULO 1", "ARTÍCULO 2"]
        assert "Texto nuevo del artículo citado" in arts[0].texto

    def test_bis(self):
        html = """
        <p><b>ARTÍCULO 4 BIS:</b> Incorpórase.</p>
        <p><b>ARTÍCULO 5.</b> De forma.</p>
        """
        arts = parse_updated_text(html)
        assert arts[0].numero_articulo == "ARTÍCULO 4 BIS"
        assert len(arts) == 2

    def test_div_folha(self):
        html = "<div><div>ARTICULO 1.- Uno.</div><div>ARTICULO 2.- Dos.</div></div>"
        arts = parse_updated_text(html)
        assert [a.texto for a in arts] == ["ARTICULO 1.- Uno.", "ARTICULO 2.- Dos."]

    def test_sem_artigos_retorna_vazio(self):
        assert parse_updated_text("<p>Fundamentos de la ley.</p>") == []
        assert parse_updated_text("") == []


# ── segment_blocks ───────────────────────────────────────────────────────────

class TestSegmentBlocks:
    def test_blocos_vazios_ignorados(self):
        blocks = [TextBlock("ARTICULO 1.- A"), TextBlock(""), TextBlock("  "), TextBlock("B")]
        arts = segment_blocks(blocks)
        assert len(arts) == 1
        assert arts[0].texto == "ARTICULO 1.- A\nB"

    def test_marker_casa_mesmo_com_texto_diferente(self):
        arts = segment_blocks([TextBlock("ARTÍCULO 1°.- Objeto", marker="ARTÍCULO 1°.-")])
        assert arts[0].numero_articulo == "ARTÍCULO 1"


# ── PDF ──────────────────────────────────────────────────────────────────────

class TestPdf:
    def test_extrai_artigos_do_pdf(self, monkeypatch):
        monkeypatch.setattr(article_segmenter, "extract_pdf", _fake_extract(
            "ARTÍCULO 1°.- El objeto de la presente ley.\nTexto adicional.\n"
            "ARTÍCULO 2°.- Derogase toda norma contraria."
        ))
        arts = parse_text_from_pdf(b"fake")
        assert len(arts) == 2
        assert arts[0].numero_articulo.upper().startswith("ARTÍCULO 1")
        assert "El objeto de la presente ley" in arts[0].texto
        assert "Texto adicional." in arts[0].texto
        assert arts[1].numero_articulo.upper().startswith("ARTÍCULO 2")

    def test_pdf_escaneado_retorna_vazio(self, monkeypatch):
        monkeypatch.setattr(article_segmenter, "extract_pdf", _fake_extract("   "))
        assert parse_text_from_pdf(b"fake") == []

    def test_erro_de_extracao_retorna_vazio(self, monkeypatch):
        def _boom(_pdf_bytes):
            raise RuntimeError("Invalid PDF")
        monkeypatch.setattr(article_segmenter, "extract_pdf", _boom)
        assert parse_text_from_pdf(b"bad") == []

    def test_formato_art_abreviado(self, monkeypatch):
        monkeypatch.setattr(article_segmenter, "extract_pdf", _fake_extract(
            "Art. 1° - Objeto.\nArt. 2° - Vigencia."
        ))
        arts = parse_text_from_pdf(b"fake")
        assert len(arts) == 2
        assert arts[0].numero_articulo == "Art. 1"

    def test_pdf_invalido_real(self):
        pytest.importorskip("fitz")
        assert parse_text_from_pdf(b"isto nao e um pdf") == []

    def test_plain_text_vazio(self):
        assert parse_plain_text("") == []
