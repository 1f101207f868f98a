# tests/conftest.py
"""
Fixtures compartilhadas: HTML de exemplo do portal e um Postgres fake em
memoria que entende os statements de db_writer e embedding_queue.

O fake e transacional: get_conn tira um snapshot do estado, commit confirma,
rollback restaura. Serve para testar atomicidade sem banco real.
"""
from __future__ import annotations

import copy
import os
import sys
from datetime import datetime

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from normas.legal import db_writer as W
from normas.legal import embedding_queue as Q


# ── HTML de exemplo ──────────────────────────────────────────────────────────

LISTING_HTML = """
<div>
  <h3><a href="/ar-b/ley/2026/15610/559753">Ley 15610</a></h3>
  <h6></h6>
  <h6>Resumen</h6>
  <blockquote>MODIFICA LA LEY 14.528 PROCEDIMIENTO DE ADOPCION.</blockquote>
  <p>Fecha de publicación: 13/01/2026</p>
  <p>Última actualizacion: 13/01/2026 09:01</p>
</div>
<div>
  <h3><a href="/ar-b/decreto/2025/123/456789">Decreto 123</a></h3>
  <h6></h6>
  <h6>Resumen</h6>
  <blockquote>REGLAMENTA LA LEY 15000.</blockquote>
  <p>Fecha de publicación: 01/12/2025</p>
  <p>Última actualizacion: 02/12/2025 10:00</p>
</div>
"""

DETALLE_HTML = """
<div>
  <h1>Ley 15610</h1>
  <p>Fecha de promulgación: 13/01/2026</p>
  <p>Fecha de publicación: 13/01/2026</p>
  <p>Número de Boletín Oficial: 30158</p>
  <p>Tipo de publicación: Integra</p>
  <h5>Resumen</h5>
  <p>MODIFICA LA LEY 14.528.</p>
  <h5>Observaciones</h5>
  <em>Sin observaciones.</em>
  <h5>Documentos</h5>
  <a href="/documentos/BeRez6Fj.pdf">Ver copia texto original</a>
  <a href="/documentos/VmeMWQTl.html">Ver texto actualizado</a>
  <a href="/documentos/0Ynzm3S7.html">Ver fundamentos</a>
  <table>
    <tr><th>Norma</th><th>Fecha</th><th>Resumen</th></tr>
    <tr>
      <td>Modifica a <a href="/ar-b/ley/2013/14528/11307">Ley 14528</a></td>
      <td>30/08/2013</td>
      <td>ESTABLECE EL PROCEDIMIENTO DE ADOPCION.</td>
    </tr>
  </table>
  <p>Última actualizacion: 13/01/2026 09:01</p>
</div>
"""

TEXTO_ACTUALIZADO_HTML = """
<body>
  <p><strong>LEY 15610</strong></p>
  <p><strong>EL SENADO Y CAMARA DE DIPUTADOS...</strong></p>
  <p><span><strong>ARTÍCULO 1°.-</strong> Sustitúyese el artículo 2°...</span></p>
  <p>Texto del artículo 1 continuado.</p>
  <p><span><strong>ARTICULO 2°.-</strong> Sustitúyese el artículo 6°...</span></p>
  <p>Texto del artículo 2 continuado.</p>
  <p><span><strong>ARTÍCULO 3º.-</strong> Incorpórase al Libro I...</span></p>
</body>
"""


def listing_html_for(items, total=None):
    """HTML de listing com N itens (dicts url/titulo) e texto de paginacao."""
    parts = []
    for it in items:
        parts.append(
            f'<div><h3><a href="{it["url"]}">{it.get("titulo", "Norma")}</a></h3>'
            f'<blockquote>{it.get("resumen", "RESUMEN")}</blockquote>'
            f'<p>Fecha de publicación: 01/01/2024</p>'
            f'<p>Última actualizacion: 01/01/2024 10:00</p></div>'
        )
    if total is not None:
        parts.append(f"<p>Página 1 de {total} resultados</p>")
    return "\n".join(parts)


@pytest.fixture
def listing_html():
    return LISTING_HTML


@pytest.fixture
def detalle_html():
    return DETALLE_HTML


@pytest.fixture
def texto_actualizado_html():
    return TEXTO_ACTUALIZADO_HTML


# ── Postgres fake ────────────────────────────────────────────────────────────

class FakeDb:
    def __init__(self):
        self.state = {
            "normas": {},
            "articulos": {},
            "cola": {},
            "relaciones": [],
            "historial": [],
            "seq": {"normas": 0, "articulos": 0, "cola": 0},
        }
        self.fail_on = {}     # sql -> numero da chamada que levanta
        self.calls = {}
        self.commits = 0
        self.rollbacks = 0

    # helpers de inspecao
    @property
    def normas(self):
        return self.state["normas"]

    @property
    def articulos(self):
        return self.state["articulos"]

    @property
    def cola(self):
        return self.state["cola"]

    @property
    def relaciones(self):
        return self.state["relaciones"]

    @property
    def historial(self):
        return self.state["historial"]

    def next_id(self, table):
        self.state["seq"][table] += 1
        return self.state["seq"][table]

    def add_norma(self, **fields):
        nid = self.next_id("normas")
        row = {
            "id": nid, "tipo": "ley", "numero": 1, "anio": 2024, "sitio_id": nid,
            "estado": "descubierta", "resumen": None, "texto_actualizado_hash": None,
            "embedding_resumen": None, "area_tematica": None,
        }
        row.update(fields)
        self.normas[nid] = row
        return nid

    def queue_for(self, entidad_tipo):
        return [c for c in self.cola.values() if c["entidad_tipo"] == entidad_tipo]

    def conn(self):
        return FakeConn(self)


class FakeConn:
    def __init__(self, db: FakeDb):
        self.db = db
        self.snapshot = copy.deepcopy(db.state)

    def cursor(self):
        return FakeCursor(self.db)

    def commit(self):
        self.db.commits += 1
        self.snapshot = copy.deepcopy(self.db.state)

    def rollback(self):
        self.db.rollbacks += 1
        self.db.state = copy.deepcopy(self.snapshot)


class FakeCursor:
    def __init__(self, db: FakeDb):
        self.db = db
        self._rows = []
        self.rowcount = -1

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def fetchone(self):
        return self._rows.pop(0) if self._rows else None

    def fetchall(self):
        rows, self._rows = self._rows, []
        return rows

    def _result(self, rows, rowcount=None):
        self._rows = list(rows)
        self.rowcount = len(self._rows) if rowcount is None else rowcount

    def execute(self, sql, params=()):
        db = self.db
        db.calls[sql] = db.calls.get(sql, 0) + 1
        if db.fail_on.get(sql) == db.calls[sql]:
            raise RuntimeError("falha simulada do banco")

        s = db.state
        now = datetime(2026, 1, 1)

        if sql == W.UPSERT_MINIMAL:
            (tipo, numero, anio, sitio_id, jur, url, resumen,
             fpub, ult, rango, nombre_codigo) = params
            existing = next((n for n in s["normas"].values() if n["sitio_id"] == sitio_id), None)
            if existing:
                if resumen is not None:
                    existing["resumen"] = resumen
                if ult is not None:
                    existing["ultima_actualizacion"] = ult
                row = existing
            else:
                nid = db.next_id("normas")
                row = {
                    "id": nid, "tipo": tipo, "numero": numero, "anio": anio,
                    "sitio_id": sitio_id, "jurisdiccion": jur, "url_canonica": url,
                    "resumen": resumen, "fecha_publicacion": fpub,
                    "ultima_actualizacion": ult, "rango_normativo": rango,
                    "nombre_codigo": nombre_codigo, "estado": "descubierta",
                    "texto_actualizado_hash": None, "embedding_resumen": None,
                    "area_tematica": None,
                }
                s["normas"][nid] = row
            self._result([(row["id"], row["estado"])])

        elif sql == W.UPDATE_DETAIL:
            sitio_id = params[-1]
            row = next((n for n in s["normas"].values() if n["sitio_id"] == sitio_id), None)
            if row is None:
                self._result([])
                return
            (row["url_texto_original"], row["url_texto_actualizado"], row["url_fundamentos"],
             row["fecha_promulgacion"]) = params[0:4]
            if params[4] is not None:
                row["fecha_publicacion"] = params[4]
            row["boletin_oficial_nro"], row["tipo_publicacion"] = params[5:7]
            if params[7] is not None:
                row["resumen"] = params[7]
            row["observaciones"], row["organismo"] = params[8:10]
            if params[10] is not None:
                row["ultima_actualizacion"] = params[10]
            row["vigencia"] = params[11]
            if row["estado"] == "descubierta":
                row["estado"] = "scrapeada"
            self._result([(row["id"],)])

        elif sql == W.SELECT_HASH_FOR_UPDATE:
            row = s["normas"].get(params[0])
            self._result([(row["texto_actualizado_hash"],)] if row else [])

        elif sql == W.INSERT_CHANGE:
            s["historial"].append({"norma_id": params[0], "hash_anterior": params[1], "hash_nuevo": params[2]})
            self._result([], 1)

        elif sql == W.UPDATE_TEXT:
            row = s["normas"][params[2]]
            row["texto_completo"], row["texto_actualizado_hash"] = params[0], params[1]
            row["estado"] = "texto_extraido"
            self._result([], 1)

        elif sql == W.DELETE_ARTICLES:
            ids = [i for i, a in s["articulos"].items() if a["norma_id"] == params[0]]
            for i in ids:
                del s["articulos"][i]
            self._result([], len(ids))

        elif sql == W.INSERT_ARTICLE:
            aid = db.next_id("articulos")
            s["articulos"][aid] = {
                "id": aid, "norma_id": params[0], "numero_articulo": params[1],
                "orden": params[2], "titulo": params[3], "texto": params[4], "embedding": None,
            }
            self._result([(aid,)])

        elif sql == W.ENQUEUE:
            key = (params[0], params[1], params[2])
            existing = s["cola"].get(key)
            if existing:
                existing.update(prioridad=params[3], procesado_at=None, intentos=0,
                                ultimo_error=None, creado_at=now)
            else:
                s["cola"][key] = {
                    "id": db.next_id("cola"), "entidad_tipo": params[0], "entidad_id": params[1],
                    "campo_embedding": params[2], "prioridad": params[3], "procesado_at": None,
                    "intentos": 0, "max_intentos": 3, "ultimo_error": None,
                    "creado_at": now,
                }
            self._result([], 1)

        elif sql == W.RESOLVE_NORMA:
            tipo, numero, anio = params
            row = next((n for n in s["normas"].values()
                        if (n["tipo"], n["numero"], n["anio"]) == (tipo, numero, anio)), None)
            self._result([(row["id"],)] if row else [])

        elif sql == W.INSERT_RELATION:
            origen, destino_id, dtipo, dnum, danio, kind, detalle = params
            key = (origen, dtipo, dnum, danio, kind)
            if any(r["key"] == key for r in s["relaciones"]):
                self._result([], 0)
                return
            s["relaciones"].append({"key": key, "norma_destino_id": destino_id, "detalle": detalle})
            self._result([], 1)

        elif sql == W.RESOLVE_PENDING_RELATIONS:
            count = 0
            for r in s["relaciones"]:
                if r["norma_destino_id"] is not None:
                    continue
                _, dtipo, dnum, danio, _ = r["key"]
                row = next((n for n in s["normas"].values()
                            if (n["tipo"], n["numero"], n["anio"]) == (dtipo, dnum, danio)), None)
                if row:
                    r["norma_destino_id"] = row["id"]
                    count += 1
            self._result([], count)

        elif sql.startswith(W.SELECT_WITHOUT_ARTICLES):
            with_articles = {a["norma_id"] for a in s["articulos"].values()}
            rows = [n for n in s["normas"].values()
                    if n.get("url_texto_actualizado") and n["id"] not in with_articles]
            self._result([
                (n["id"], n["tipo"], n["numero"], n["anio"], n["sitio_id"], n.get("url_canonica"),
                 n.get("url_texto_actualizado"), n.get("url_texto_original"))
                for n in rows
            ])

        elif sql == Q.SELECT_PENDING:
            pending = [c for c in s["cola"].values()
                       if c["procesado_at"] is None and c["intentos"] < c["max_intentos"]]
            pending.sort(key=lambda c: (c["prioridad"], c["creado_at"], c["id"]))
            rows = []
            for c in pending[:params[0]]:
                if c["entidad_tipo"] == "norma":
                    texto = s["normas"][c["entidad_id"]].get("resumen")
                else:
                    art = s["articulos"].get(c["entidad_id"])
                    texto = art["texto"] if art else None
                rows.append((c["id"], c["entidad_tipo"], c["entidad_id"], c["campo_embedding"],
                             c["prioridad"], c["intentos"], texto))
            self._result(rows)

        elif sql == Q.UPDATE_NORMA_VECTOR:
            s["normas"][params[1]]["embedding_resumen"] = params[0]
            self._result([], 1)

        elif sql == Q.UPDATE_ARTICULO_VECTOR:
            art = s["articulos"].get(params[1])
            if art is None:
                self._result([])
                return
            art["embedding"] = params[0]
            self._result([(art["norma_id"],)])

        elif sql in (Q.MARK_PROCESSED, Q.MARK_ERROR):
            cola_id = params[-1]
            item = next(c for c in s["cola"].values() if c["id"] == cola_id)
            if sql == Q.MARK_PROCESSED:
                item["procesado_at"] = now
                item["ultimo_error"] = None
            else:
                item["intentos"] += 1
                item["ultimo_error"] = params[0]
            self._result([], 1)

        elif sql == Q.ADVANCE_NORMA_STATE:
            norma = s["normas"].get(params[0])
            art_ids = {a["id"] for a in s["articulos"].values() if a["norma_id"] == params[0]}
            pending = any(c["entidad_tipo"] == "articulo" and c["entidad_id"] in art_ids
                          and c["procesado_at"] is None for c in s["cola"].values())
            if norma and norma["estado"] == "texto_extraido" and not pending:
                norma["estado"] = "embeddings_generados"
                self._result([], 1)
            else:
                self._result([], 0)

        elif sql == Q.UPDATE_CATEGORIES:
            s["normas"][params[1]]["area_tematica"] = params[0]
            self._result([], 1)

        else:
            raise NotImplementedError(f"SQL nao suportado pelo fake: {sql[:60]!r}")


@pytest.fixture
def fake_db(monkeypatch):
    """Substitui get_conn/release_conn de db_writer e embedding_queue."""
    db = FakeDb()
    for module in (W, Q):
        monkeypatch.setattr(module, "get_conn", db.conn)
        monkeypatch.setattr(module, "release_conn", lambda conn: None)
    return db
