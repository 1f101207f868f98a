# normas/legal/db_writer.py
"""
Escritor de normas no Postgres.

  - upsert_minimal: INSERT/UPDATE por sitio_id a partir do listing
  - upsert_detail: metadata da pagina de detalhe (sempre fresca)
  - reconcile_text: hash do documento fonte; se mudou, substitui artigos e
    re-enfileira embeddings numa unica transacao
  - upsert_relations / resolve_pending_relations: grafo de relacoes normativas
  - find_norms_without_articles / force_replace_articles: reparo

Cada funcao abre sua propria transacao: commit no sucesso, rollback + raise
em qualquer falha. Um leitor concorrente nunca ve o conjunto de artigos de
uma norma pela metade.
"""
from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Sequence, Tuple

from normas.config.norm_types import NORM_TYPE_CONFIGS, rango_for
from normas.db.connection import get_conn, release_conn
from normas.legal.errors import InvalidNormUrl
from normas.legal.gba_parser import infer_identity
from normas.legal.models import (
    DetailResult,
    EntidadTipo,
    ListingItem,
    ParsedArticle,
    ParsedRelation,
    ReconcileResult,
    ResolvedRef,
)
from normas.legal.text_extractor import sha256_bytes

logger = logging.getLogger(__name__)

# Prioridade na cola: menor = processado antes
PRIORIDAD_NORMA = 3
PRIORIDAD_ARTICULO = 5

CAMPO_NORMA = "embedding_resumen"
CAMPO_ARTICULO = "embedding"

# ── SQL statements ────────────────────────────────────────────────────────────

UPSERT_MINIMAL = """
INSERT INTO normas (
    tipo, numero, anio, sitio_id, jurisdiccion, url_canonica, resumen,
    fecha_publicacion, ultima_actualizacion, rango_normativo, nombre_codigo
) VALUES (
    %s, %s, %s, %s, %s, %s, %s,
    %s, %s, %s, %s
)
ON CONFLICT (sitio_id) DO UPDATE SET
    resumen              = COALESCE(EXCLUDED.resumen, normas.resumen),
    ultima_actualizacion = COALESCE(EXCLUDED.ultima_actualizacion, normas.ultima_actualizacion),
    updated_at           = now()
RETURNING id, estado
"""

UPDATE_DETAIL = """
UPDATE normas SET
    url_texto_original    = %s,
    url_texto_actualizado = %s,
    url_fundamentos       = %s,
    fecha_promulgacion    = %s,
    fecha_publicacion     = COALESCE(%s, fecha_publicacion),
    boletin_oficial_nro   = %s,
    tipo_publicacion      = %s,
    resumen               = COALESCE(%s, resumen),
    observaciones         = %s,
    organismo             = %s,
    ultima_actualizacion  = COALESCE(%s, ultima_actualizacion),
    vigencia              = %s,
    estado                = CASE WHEN estado = 'descubierta' THEN 'scrapeada' ELSE estado END,
    ultimo_scrape         = now(),
    updated_at            = now()
WHERE sitio_id = %s
RETURNING id
"""

SELECT_HASH_FOR_UPDATE = """
SELECT texto_actualizado_hash FROM normas WHERE id = %s FOR UPDATE
"""

INSERT_CHANGE = """
INSERT INTO historial_cambios (norma_id, hash_anterior, hash_nuevo)
VALUES (%s, %s, %s)
"""

UPDATE_TEXT = """
UPDATE normas SET
    texto_completo         = %s,
    texto_actualizado_hash = %s,
    estado                 = 'texto_extraido',
    ultimo_scrape          = now(),
    updated_at             = now()
WHERE id = %s
"""

DELETE_ARTICLES = """
DELETE FROM articulos WHERE norma_id = %s
"""

INSERT_ARTICLE = """
INSERT INTO articulos (norma_id, numero_articulo, orden, titulo, texto)
VALUES (%s, %s, %s, %s, %s)
RETURNING id
"""

ENQUEUE = """
INSERT INTO cola_embeddings (entidad_tipo, entidad_id, campo_embedding, prioridad)
VALUES (%s, %s, %s, %s)
ON CONFLICT (entidad_tipo, entidad_id, campo_embedding) DO UPDATE SET
    prioridad    = EXCLUDED.prioridad,
    procesado_at = NULL,
    intentos     = 0,
    ultimo_error = NULL,
    creado_at    = now()
"""

RESOLVE_NORMA = """
SELECT id FROM normas WHERE tipo = %s AND numero = %s AND anio = %s
"""

INSERT_RELATION = """
INSERT INTO relaciones_normativas (
    norma_origen_id, norma_destino_id, destino_tipo, destino_numero, destino_anio,
    tipo_relacion, detalle
) VALUES (
    %s, %s, %s, %s, %s,
    %s, %s
)
ON CONFLICT (norma_origen_id, destino_tipo, destino_numero, destino_anio, tipo_relacion)
DO NOTHING
"""

RESOLVE_PENDING_RELATIONS = """
UPDATE relaciones_normativas r
   SET norma_destino_id = n.id
  FROM normas n
 WHERE r.norma_destino_id IS NULL
   AND n.tipo = r.destino_tipo
   AND n.numero = r.destino_numero
   AND n.anio = r.destino_anio
"""

SELECT_WITHOUT_ARTICLES = """
SELECT n.id, n.tipo, n.numero, n.anio, n.sitio_id, n.url_canonica,
       n.url_texto_actualizado, n.url_texto_original
FROM normas n
WHERE n.url_texto_actualizado IS NOT NULL
  AND NOT EXISTS (SELECT 1 FROM articulos a WHERE a.norma_id = n.id)
"""


# ── Helpers ───────────────────────────────────────────────────────────────────

_RE_FECHA = re.compile(r"(\d{2})/(\d{2})/(\d{4})")
_RE_FECHA_HORA = re.compile(r"(\d{2})/(\d{2})/(\d{4})\s+(\d{2}):(\d{2})")


def parse_fecha(value: Optional[str]) -> Optional[str]:
    """'13/01/2026' -> '2026-01-13'."""
    m = _RE_FECHA.search(value or "")
    if not m:
        return None
    return f"{m.group(3)}-{m.group(2)}-{m.group(1)}"


def parse_fecha_hora(value: Optional[str]) -> Optional[str]:
    """'13/01/2026 09:01' -> '2026-01-13T09:01:00'."""
    m = _RE_FECHA_HORA.search(value or "")
    if not m:
        return None
    return f"{m.group(3)}-{m.group(2)}-{m.group(1)}T{m.group(4)}:{m.group(5)}:00"


def build_texto_completo(articles: Sequence[ParsedArticle]) -> str:
    return "\n\n".join(f"{a.numero_articulo}. {a.texto}" for a in articles)


def _enqueue(cur, entidad_tipo: str, entidad_id: int, campo: str, prioridad: int):
    cur.execute(ENQUEUE, (entidad_tipo, entidad_id, campo, prioridad))


# ── Normas ────────────────────────────────────────────────────────────────────

def upsert_minimal(item: ListingItem) -> Tuple[int, str]:
    """
    Insere ou atualiza a norma a partir do listing (chave: sitio_id).

    O UPDATE so toca resumen/ultima_actualizacion; nunca volta o estado.

    Returns:
        (norma_id, estado)

    Raises:
        InvalidNormUrl: URL canonica fora do padrao ou tipo nao registrado
    """
    ident = infer_identity(item.url_canonica)
    if ident.tipo not in NORM_TYPE_CONFIGS:
        raise InvalidNormUrl(f"Tipo de norma nao suportado '{ident.tipo}': {item.url_canonica}")
    rango, nombre_codigo = rango_for(ident.tipo, ident.numero)

    conn = get_conn()
    try:
        with conn.cursor() as cur:
            cur.execute(UPSERT_MINIMAL, (
                ident.tipo,
                ident.numero,
                ident.anio,
                ident.sitio_id,
                ident.jurisdiccion,
                item.url_canonica,
                item.resumen,
                parse_fecha(item.fecha_publicacion),
                parse_fecha_hora(item.ultima_actualizacion),
                rango,
                nombre_codigo,
            ))
            norma_id, estado = cur.fetchone()
        conn.commit()
        return norma_id, estado
    except Exception:
        conn.rollback()
        logger.exception("Erro no upsert_minimal de %s", item.url_canonica)
        raise
    finally:
        release_conn(conn)


def upsert_detail(sitio_id: int, detail: DetailResult) -> Optional[int]:
    """Grava metadata do detalhe e avanca descubierta -> scrapeada. Retorna norma_id."""
    conn = get_conn()
    try:
        with conn.cursor() as cur:
            cur.execute(UPDATE_DETAIL, (
                detail.url_texto_original,
                detail.url_texto_actualizado,
                detail.url_fundamentos,
                parse_fecha(detail.fecha_promulgacion),
                parse_fecha(detail.fecha_publicacion),
                detail.boletin_oficial_nro,
                detail.tipo_publicacion,
                detail.resumen,
                detail.observaciones,
                detail.organismo,
                parse_fecha_hora(detail.ultima_actualizacion),
                detail.vigencia.value,
                sitio_id,
            ))
            row = cur.fetchone()
        conn.commit()
        if row is None:
            logger.warning("upsert_detail: sitio_id=%s nao existe", sitio_id)
            return None
        return row[0]
    except Exception:
        conn.rollback()
        logger.exception("Erro no upsert_detail de sitio_id=%s", sitio_id)
        raise
    finally:
        release_conn(conn)


# ── Texto / artigos ───────────────────────────────────────────────────────────

def reconcile_text(
    norma_id: int,
    source_bytes: bytes,
    articles: List[ParsedArticle],
    force: bool = False,
) -> ReconcileResult:
    """
    Compara o SHA-256 do documento fonte com o hash gravado.

    Igual -> "unchanged", nada e escrito (a menos que force=True).
    Diferente -> numa transacao: historial_cambios (se havia hash anterior),
    texto_completo + hash + estado, DELETE/INSERT de articulos e upsert na
    cola (norma prioridade 3, cada artigo prioridade 5, com reset de
    intentos/procesado_at). Itens de artigos removidos ficam na cola e
    resolvem para texto vazio (erro ate max_intentos).
    """
    if not articles:
        raise ValueError(f"reconcile_text sem artigos (norma_id={norma_id})")

    hash_nuevo = sha256_bytes(source_bytes)

    conn = get_conn()
    try:
        with conn.cursor() as cur:
            cur.execute(SELECT_HASH_FOR_UPDATE, (norma_id,))
            row = cur.fetchone()
            if row is None:
                raise ValueError(f"norma_id={norma_id} nao existe")
            hash_anterior = row[0]

            if hash_anterior == hash_nuevo and not force:
                conn.commit()
                return ReconcileResult(
                    norma_id=norma_id,
                    changed=False,
                    hash_nuevo=hash_nuevo,
                    hash_anterior=hash_anterior,
                )

            if hash_anterior and hash_anterior != hash_nuevo:
                cur.execute(INSERT_CHANGE, (norma_id, hash_anterior, hash_nuevo))

            cur.execute(UPDATE_TEXT, (build_texto_completo(articles), hash_nuevo, norma_id))

            cur.execute(DELETE_ARTICLES, (norma_id,))

            article_ids = []
            for art in articles:
                cur.execute(INSERT_ARTICLE, (
                    norma_id,
                    art.numero_articulo,
                    art.orden,
                    art.titulo,
                    art.texto,
                ))
                article_ids.append(cur.fetchone()[0])

            _enqueue(cur, EntidadTipo.NORMA.value, norma_id, CAMPO_NORMA, PRIORIDAD_NORMA)
            for art_id in article_ids:
                _enqueue(cur, EntidadTipo.ARTICULO.value, art_id, CAMPO_ARTICULO, PRIORIDAD_ARTICULO)

        conn.commit()
        logger.info(
            "norma_id=%s: texto gravado (%d artigos, %d itens na cola)",
            norma_id, len(article_ids), len(article_ids) + 1,
        )
        return ReconcileResult(
            norma_id=norma_id,
            changed=True,
            hash_nuevo=hash_nuevo,
            hash_anterior=hash_anterior,
            articulos=len(article_ids),
            encolados=len(article_ids) + 1,
        )
    except Exception:
        conn.rollback()
        logger.exception("Erro no reconcile_text de norma_id=%s", norma_id)
        raise
    finally:
        release_conn(conn)


def force_replace_articles(
    norma_id: int,
    source_bytes: bytes,
    articles: List[ParsedArticle],
) -> ReconcileResult:
    """Substitui artigos mesmo com hash igual (script de reparo)."""
    return reconcile_text(norma_id, source_bytes, articles, force=True)


def find_norms_without_articles(
    tipo: Optional[str] = None,
    desde_anio: Optional[int] = None,
    limit: Optional[int] = None,
) -> List[Dict]:
    """Normas com url_texto_actualizado mas zero artigos gravados."""
    sql = SELECT_WITHOUT_ARTICLES
    params: list = []
    if tipo:
        sql += "  AND n.tipo = %s\n"
        params.append(tipo)
    if desde_anio:
        sql += "  AND n.anio >= %s\n"
        params.append(desde_anio)
    sql += "ORDER BY n.anio DESC, n.numero DESC\n"
    if limit:
        sql += "LIMIT %s\n"
        params.append(limit)

    cols = ("id", "tipo", "numero", "anio", "sitio_id", "url_canonica",
            "url_texto_actualizado", "url_texto_original")
    conn = get_conn()
    try:
        with conn.cursor() as cur:
            cur.execute(sql, tuple(params))
            rows = [dict(zip(cols, r)) for r in cur.fetchall()]
        conn.commit()
        return rows
    except Exception:
        conn.rollback()
        raise
    finally:
        release_conn(conn)


# ── Relacoes ──────────────────────────────────────────────────────────────────

def upsert_relations(norma_id: int, relations: List[ParsedRelation]) -> Dict[str, int]:
    """
    Grava relacoes; destino resolvido pela chave natural quando ja existe.

    Relacoes nao resolvidas ficam com norma_destino_id NULL (re-resolvidas
    por resolve_pending_relations). Duplicatas sao ignoradas.

    Returns:
        {"inserted": N, "resolved": N, "unresolved": N}
    """
    stats = {"inserted": 0, "resolved": 0, "unresolved": 0}
    if not relations:
        return stats

    conn = get_conn()
    try:
        with conn.cursor() as cur:
            for rel in relations:
                key = rel.destino_key
                cur.execute(RESOLVE_NORMA, (key.tipo, key.numero, key.anio))
                row = cur.fetchone()
                destino_id = row[0] if row else None
                if destino_id is not None:
                    rel.destino = ResolvedRef(norma_id=destino_id, key=key)
                    stats["resolved"] += 1
                else:
                    stats["unresolved"] += 1

                cur.execute(INSERT_RELATION, (
                    norma_id,
                    destino_id,
                    key.tipo,
                    key.numero,
                    key.anio,
                    rel.tipo_relacion.value,
                    rel.detalle,
                ))
                stats["inserted"] += max(cur.rowcount, 0)
        conn.commit()
        return stats
    except Exception:
        conn.rollback()
        logger.exception("Erro no upsert_relations de norma_id=%s", norma_id)
        raise
    finally:
        release_conn(conn)


def resolve_pending_relations() -> int:
    """Preenche norma_destino_id das relacoes cujo destino ja foi scrapeado."""
    conn = get_conn()
    try:
        with conn.cursor() as cur:
            cur.execute(RESOLVE_PENDING_RELATIONS)
            updated = cur.rowcount
        conn.commit()
        if updated:
            logger.info("%d relacoes pendentes resolvidas", updated)
        return updated
    except Exception:
        conn.rollback()
        raise
    finally:
        release_conn(conn)
