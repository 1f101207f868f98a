# tests/test_site_client.py
"""
Testes para normas.legal.site_client (sem rede: sessao fake).
"""
from __future__ import annotations

from datetime import date
from urllib.parse import parse_qs, urlparse

import pytest
import requests

from normas.legal.errors import HttpStatusError, PermanentFetchError, TransientFetchError
from normas.legal.site_client import (
    SiteClient,
    build_listing_url,
    parse_total_results,
    total_pages,
)


class FakeResponse:
    def __init__(self, status_code=200, content=b""):
        self.status_code = status_code
        self.content = content


class FakeSession:
    """Devolve respostas (ou levanta excecoes) na ordem dada."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.headers = {}
        self.urls = []

    def get(self, url, timeout=None):
        self.urls.append(url)
        r = self.responses.pop(0)
        if isinstance(r, Exception):
            raise r
        return r

    def close(self):
        pass


def _client(*responses, **kwargs):
    sleeps = []
    session = FakeSession(*responses)
    client = SiteClient(session=session, base_url="https://normas.test", sleep=sleeps.append, **kwargs)
    return client, session, sleeps


# ── URLs / paginacao ─────────────────────────────────────────────────────────

class TestListingUrl:
    def test_params(self):
        url = build_listing_url("ley", 2, base_url="https://normas.test")
        parsed = urlparse(url)
        qs = parse_qs(parsed.query)
        assert parsed.path == "/resultados"
        assert qs["page"] == ["2"]
        assert qs["q[terms][raw_type]"] == ["Law"]
        assert qs["q[sort]"] == ["by_publication_date_desc"]
        assert "q[terms][publication_date_from]" not in qs

    def test_janela_de_datas(self):
        url = build_listing_url("decreto", 1, date(2024, 3, 1), date(2024, 3, 31), base_url="https://normas.test")
        qs = parse_qs(urlparse(url).query)
        assert qs["q[terms][publication_date_from]"] == ["01/03/2024"]
        assert qs["q[terms][publication_date_to]"] == ["31/03/2024"]

    def test_tipo_desconhecido(self):
        with pytest.raises(ValueError):
            build_listing_url("circular")


class TestTotals:
    @pytest.mark.parametrize("html,expected", [
        ("<p>Página 1 de 1.234 resultados</p>", 1234),
        ("<span>57 resultados</span>", 57),
        ("Mostrando 1 de 1 resultado", 1),
        ("<p>Sin coincidencias</p>", 0),
        ("", 0),
    ])
    def test_parse_total(self, html, expected):
        assert parse_total_results(html) == expected

    def test_total_pages(self):
        assert total_pages(0) == 1
        assert total_pages(10) == 1
        assert total_pages(11) == 2
        assert total_pages(200) == 20


# ── fetch ────────────────────────────────────────────────────────────────────

class TestFetch:
    def test_sucesso_aplica_delay(self):
        client, session, sleeps = _client(FakeResponse(200, b"ok"), delay_ms=500)
        assert client.fetch("/ar-b/ley/2024/1/2") == b"ok"
        assert session.urls == ["https://normas.test/ar-b/ley/2024/1/2"]
        assert sleeps == [0.5]

    def test_url_absoluta_mantida(self):
        client, session, _ = _client(FakeResponse(200, b"x"), delay_ms=0)
        client.fetch("https://otro.test/doc.pdf")
        assert session.urls == ["https://otro.test/doc.pdf"]

    @pytest.mark.parametrize("status", [403, 404, 410])
    def test_permanente_sem_retry(self, status):
        client, session, _ = _client(FakeResponse(status), FakeResponse(200), delay_ms=0)
        with pytest.raises(PermanentFetchError) as exc:
            client.fetch("/x")
        assert exc.value.status == status
        assert len(session.urls) == 1

    def test_rede_retry_com_backoff(self):
        client, session, sleeps = _client(
            requests.ConnectionError("reset"),
            requests.Timeout("timeout"),
            FakeResponse(200, b"ok"),
            delay_ms=0,
        )
        assert client.fetch("/x") == b"ok"
        assert len(session.urls) == 3
        assert sleeps == [1.0, 2.0]

    def test_rede_esgota_retries(self):
        client, session, _ = _client(*[requests.ConnectionError("down")] * 3, delay_ms=0)
        with pytest.raises(TransientFetchError):
            client.fetch("/x")
        assert len(session.urls) == 3

    def test_500_re_tentado_e_sobe_http_status(self):
        client, session, _ = _client(*[FakeResponse(500)] * 3, delay_ms=0)
        with pytest.raises(HttpStatusError) as exc:
            client.fetch("/x")
        assert not isinstance(exc.value, PermanentFetchError)
        assert exc.value.status == 500
        assert len(session.urls) == 3

    def test_delay_aplicado_mesmo_com_erro(self):
        client, _, sleeps = _client(FakeResponse(404), delay_ms=250)
        with pytest.raises(PermanentFetchError):
            client.fetch("/x")
        assert sleeps == [0.25]

    def test_listing_page(self):
        html = "<p>Página 1 de 35 resultados</p>".encode("utf-8")
        client, session, _ = _client(FakeResponse(200, html), delay_ms=0)
        page = client.fetch_listing_page("ley", 1, date(2024, 1, 1), date(2024, 1, 31))
        assert page.total_resultados == 35
        assert page.total_paginas == 4
        assert "raw_type" in session.urls[0]
