# tests/test_classifier.py
"""
Testes para normas.legal.classifier (normalizacao e backfill, sem API real).
"""
from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import openai
import pytest

from normas.legal import classifier
from normas.legal.classifier import (
    CATEGORIAS,
    PROMPT_SISTEMA,
    classify_pending,
    classify_text,
    normalize_category,
    parse_categories,
)
from normas.utils.cancellation import CancellationToken


def _rate_limit():
    req = httpx.Request("POST", "https://api.test/chat/completions")
    return openai.RateLimitError("rate limited", response=httpx.Response(429, request=req), body=None)


class FakeChat:
    def __init__(self, answers):
        self.answers = list(answers)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        answer = self.answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=answer))])


def _client(*answers):
    chat = FakeChat(answers)
    return SimpleNamespace(chat=SimpleNamespace(completions=chat)), chat


class FakeQueue:
    def __init__(self, normas):
        self.normas = normas
        self.saved = {}

    def count_unclassified(self):
        return len(self.normas)

    def fetch_unclassified(self, limit):
        return [n for n in self.normas if n["id"] not in self.saved][:limit]

    def save_categories(self, norma_id, cats):
        self.saved[norma_id] = cats


def _norma(i, resumen="CREA UN HOSPITAL"):
    return {"id": i, "tipo": "ley", "numero": i, "anio": 2024, "resumen": resumen}


# ── Normalizacao ─────────────────────────────────────────────────────────────

class TestNormalize:
    def test_lista_de_categorias(self):
        assert len(CATEGORIAS) == 16
        for cat in CATEGORIAS:
            assert cat in PROMPT_SISTEMA
            assert normalize_category(cat) == cat

    @pytest.mark.parametrize("raw,expected", [
        ("Obras Públicas", "obras_publicas"),
        ("  medio-ambiente ", "medio_ambiente"),
        ("EDUCACIÓN", "educacion"),
        ("Impuestos", "tributos"),
        ("laboral", "empleo"),
        ("Derechos Humanos", "derechos_sociales"),
        ("salud.", "salud"),
        ("Administración Pública", "administrativo"),
        ("cultura", None),
        ("deportes", None),
        ("", None),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_category(raw) == expected

    def test_parse_max_tres(self):
        assert parse_categories("salud, educacion, empleo, vivienda") == ["salud", "educacion", "empleo"]

    def test_parse_dedup_e_descarta_desconhecidas(self):
        assert parse_categories("Salud, sanidad, turismo, Civil") == ["salud", "civil"]

    def test_parse_vazio(self):
        assert parse_categories("") == []
        assert parse_categories(None) == []

    def test_urbanismo_civil_administrativo(self):
        assert parse_categories("Urbanismo, Civil, Administrativo") == ["urbanismo", "civil", "administrativo"]


# ── classify_text ────────────────────────────────────────────────────────────

class TestClassifyText:
    def test_chamada(self):
        client, chat = _client("Salud, Educación")
        assert classify_text(client, "CREA UN HOSPITAL ESCUELA") == ["salud", "educacion"]
        kwargs = chat.calls[0]
        assert kwargs["temperature"] == 0
        assert kwargs["max_tokens"] == 50
        assert kwargs["messages"][0]["content"] == PROMPT_SISTEMA

    def test_trunca_entrada(self):
        client, chat = _client("salud")
        classify_text(client, "x" * 5000, max_chars=1000)
        assert len(chat.calls[0]["messages"][1]["content"]) == 1000

    def test_resumen_vazio_sem_chamada(self):
        client, chat = _client()
        assert classify_text(client, "   ") == []
        assert chat.calls == []

    def test_429_re_tentado(self):
        sleeps = []
        client, chat = _client(_rate_limit(), _rate_limit(), "vivienda")
        assert classify_text(client, "PLAN DE VIVIENDAS", attempts=6, sleep=sleeps.append) == ["vivienda"]
        assert sleeps == [5.0, 10.0]

    def test_outros_erros_sobem(self):
        client, _ = _client(RuntimeError("500"), "salud")
        with pytest.raises(RuntimeError):
            classify_text(client, "X", attempts=6, sleep=lambda s: None)

    def test_resposta_nula(self):
        client = MagicMock()
        client.chat.completions.create.return_value = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=None))]
        )
        assert classify_text(client, "X") == []
        client.chat.completions.create.assert_called_once()


# ── Backfill ─────────────────────────────────────────────────────────────────

class TestClassifyPending:
    def test_classifica_todas(self):
        queue = FakeQueue([_norma(1), _norma(2), _norma(3)])
        client, _ = _client("salud", "deportes", RuntimeError("500"))
        stats = classify_pending(client, CancellationToken(), delay_ms=0, queue=queue)
        assert stats["total"] == 3
        assert stats["classified"] == 1
        assert stats["empty"] == 1
        assert stats["errors"] == 1
        assert queue.saved == {1: ["salud"]}

    def test_limite(self):
        queue = FakeQueue([_norma(i) for i in range(1, 6)])
        client, chat = _client(*["salud"] * 5)
        stats = classify_pending(client, CancellationToken(), delay_ms=0, limit=2, queue=queue)
        assert stats["classified"] == 2
        assert len(chat.calls) == 2

    def test_cancelado(self):
        token = CancellationToken()
        token.cancel()
        queue = FakeQueue([_norma(1)])
        client, chat = _client("salud")
        stats = classify_pending(client, token, delay_ms=0, queue=queue)
        assert chat.calls == []
        assert stats["cancelled"] == 1

    def test_delay_entre_chamadas(self, monkeypatch):
        waits = []
        token = CancellationToken()
        monkeypatch.setattr(token, "wait", lambda s: waits.append(s) or False)
        queue = FakeQueue([_norma(1), _norma(2)])
        client, _ = _client("salud", "empleo")
        classify_pending(client, token, delay_ms=2000, queue=queue)
        assert waits == [2.0, 2.0]

    def test_modelo_configurado(self):
        client, chat = _client("salud")
        classify_text(client, "X")
        assert chat.calls[0]["model"] == classifier.settings.CLASSIFY_MODEL
