# normas/legal/embedding_queue.py
"""
Leitura/escrita da cola_embeddings.

  - fetch_pending_batch: itens pendentes (procesado_at NULL, intentos < max)
    por prioridade e idade, com o texto fonte ja resolvido e truncado
  - save_embedding: grava o vetor na entidade, marca processado e avanca a
    norma para embeddings_generados quando nao ha artigos pendentes
  - mark_error: intentos + 1, ultimo_error
  - save_categories / fetch_unclassified: area_tematica
  - reset_embeddings: limpa vetores e re-enfileira tudo (troca de modelo)
"""
from __future__ import annotations

import logging
from typing import Dict, List, Sequence

from normas.db.connection import get_conn, release_conn
from normas.legal.db_writer import (
    CAMPO_ARTICULO,
    CAMPO_NORMA,
    PRIORIDAD_ARTICULO,
    PRIORIDAD_NORMA,
)
from normas.legal.models import EntidadTipo, QueueItem

logger = logging.getLogger(__name__)

# ── SQL statements ────────────────────────────────────────────────────────────

SELECT_PENDING = """
SELECT ce.id, ce.entidad_tipo, ce.entidad_id, ce.campo_embedding, ce.prioridad, ce.intentos,
       CASE WHEN ce.entidad_tipo = 'norma' THEN n.resumen ELSE a.texto END AS texto
FROM cola_embeddings ce
LEFT JOIN normas n    ON ce.entidad_tipo = 'norma'    AND n.id = ce.entidad_id
LEFT JOIN articulos a ON ce.entidad_tipo = 'articulo' AND a.id = ce.entidad_id
WHERE ce.procesado_at IS NULL
  AND ce.intentos < ce.max_intentos
ORDER BY ce.prioridad ASC, ce.creado_at ASC
LIMIT %s
"""

UPDATE_NORMA_VECTOR = """
UPDATE normas SET embedding_resumen = %s::vector, embeddings_generados_at = now()
WHERE id = %s
"""

UPDATE_ARTICULO_VECTOR = """
UPDATE articulos SET embedding = %s::vector WHERE id = %s
RETURNING norma_id
"""

MARK_PROCESSED = """
UPDATE cola_embeddings SET procesado_at = now(), ultimo_error = NULL WHERE id = %s
"""

MARK_ERROR = """
UPDATE cola_embeddings SET intentos = intentos + 1, ultimo_error = %s WHERE id = %s
"""

ADVANCE_NORMA_STATE = """
UPDATE normas n SET estado = 'embeddings_generados', updated_at = now()
WHERE n.id = %s
  AND n.estado = 'texto_extraido'
  AND NOT EXISTS (
      SELECT 1
      FROM cola_embeddings ce
      JOIN articulos a ON ce.entidad_tipo = 'articulo' AND a.id = ce.entidad_id
      WHERE a.norma_id = n.id AND ce.procesado_at IS NULL
  )
"""

UPDATE_CATEGORIES = """
UPDATE normas SET area_tematica = %s, updated_at = now() WHERE id = %s
"""

_UNCLASSIFIED_WHERE = """
WHERE resumen IS NOT NULL
  AND resumen <> ''
  AND (area_tematica IS NULL OR cardinality(area_tematica) = 0)
"""

SELECT_UNCLASSIFIED = (
    "SELECT id, tipo, numero, anio, resumen FROM normas"
    + _UNCLASSIFIED_WHERE
    + "ORDER BY anio DESC, tipo LIMIT %s"
)

COUNT_UNCLASSIFIED = "SELECT COUNT(*) FROM normas" + _UNCLASSIFIED_WHERE

COUNT_PENDING = """
SELECT COUNT(*) FROM cola_embeddings WHERE procesado_at IS NULL AND intentos < max_intentos
"""

RESET_NORMAS = """
UPDATE normas SET
    embedding_resumen = NULL,
    embeddings_generados_at = NULL,
    estado = CASE WHEN estado = 'embeddings_generados' THEN 'texto_extraido' ELSE estado END
"""

RESET_ARTICULOS = """
UPDATE articulos SET embedding = NULL
"""

RESET_QUEUE = """
UPDATE cola_embeddings SET procesado_at = NULL, intentos = 0, ultimo_error = NULL
"""

REQUEUE_NORMAS = """
INSERT INTO cola_embeddings (entidad_tipo, entidad_id, campo_embedding, prioridad)
SELECT 'norma', id, %s, %s FROM normas WHERE resumen IS NOT NULL
ON CONFLICT (entidad_tipo, entidad_id, campo_embedding) DO NOTHING
"""

REQUEUE_ARTICULOS = """
INSERT INTO cola_embeddings (entidad_tipo, entidad_id, campo_embedding, prioridad)
SELECT 'articulo', id, %s, %s FROM articulos
ON CONFLICT (entidad_tipo, entidad_id, campo_embedding) DO NOTHING
"""

# (entidad_tipo, campo) aceitos; o nome da coluna nunca vem de input externo
_VECTOR_TARGETS = {
    (EntidadTipo.NORMA.value, CAMPO_NORMA): UPDATE_NORMA_VECTOR,
    (EntidadTipo.ARTICULO.value, CAMPO_ARTICULO): UPDATE_ARTICULO_VECTOR,
}


def to_vector_literal(vector: Sequence[float]) -> str:
    """[0.1, 0.2] -> '[0.1,0.2]' (formato de entrada do pgvector)."""
    return "[" + ",".join(repr(float(x)) for x in vector) + "]"


# ── Leitura ───────────────────────────────────────────────────────────────────

def fetch_pending_batch(limit: int, max_chars: int) -> List[QueueItem]:
    conn = get_conn()
    try:
        with conn.cursor() as cur:
            cur.execute(SELECT_PENDING, (limit,))
            rows = cur.fetchall()
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        release_conn(conn)

    items = []
    for cola_id, entidad_tipo, entidad_id, campo, prioridad, intentos, texto in rows:
        if texto and len(texto) > max_chars:
            texto = texto[:max_chars]
        items.append(QueueItem(
            id=cola_id,
            entidad_tipo=entidad_tipo,
            entidad_id=entidad_id,
            campo_embedding=campo,
            prioridad=prioridad,
            intentos=intentos,
            texto=texto,
        ))
    return items


def count_pending() -> int:
    return _scalar(COUNT_PENDING)


def _scalar(sql: str, params: tuple = ()) -> int:
    conn = get_conn()
    try:
        with conn.cursor() as cur:
            cur.execute(sql, params)
            value = cur.fetchone()[0]
        conn.commit()
        return int(value or 0)
    except Exception:
        conn.rollback()
        raise
    finally:
        release_conn(conn)


# ── Escrita ───────────────────────────────────────────────────────────────────

def save_embedding(item: QueueItem, vector: Sequence[float]) -> bool:
    """
    Grava o vetor e marca o item processado (uma transacao).

    Returns:
        True se a norma avancou para embeddings_generados.
    """
    sql = _VECTOR_TARGETS.get((item.entidad_tipo, item.campo_embedding))
    if sql is None:
        raise ValueError(f"Destino de embedding invalido: {item.entidad_tipo}.{item.campo_embedding}")

    conn = get_conn()
    try:
        with conn.cursor() as cur:
            cur.execute(sql, (to_vector_literal(vector), item.entidad_id))
            if item.entidad_tipo == EntidadTipo.ARTICULO.value:
                row = cur.fetchone()
                norma_id = row[0] if row else None
            else:
                norma_id = item.entidad_id
            cur.execute(MARK_PROCESSED, (item.id,))

            advanced = False
            if norma_id is not None:
                cur.execute(ADVANCE_NORMA_STATE, (norma_id,))
                advanced = cur.rowcount > 0
        conn.commit()
        return advanced
    except Exception:
        conn.rollback()
        raise
    finally:
        release_conn(conn)


def mark_error(cola_id: int, message: str):
    conn = get_conn()
    try:
        with conn.cursor() as cur:
            cur.execute(MARK_ERROR, ((message or "")[:1000], cola_id))
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        release_conn(conn)


def save_categories(norma_id: int, categorias: List[str]):
    conn = get_conn()
    try:
        with conn.cursor() as cur:
            cur.execute(UPDATE_CATEGORIES, (list(categorias), norma_id))
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        release_conn(conn)


def fetch_unclassified(limit: int) -> List[Dict]:
    """Normas com resumen e sem area_tematica."""
    cols = ("id", "tipo", "numero", "anio", "resumen")
    conn = get_conn()
    try:
        with conn.cursor() as cur:
            cur.execute(SELECT_UNCLASSIFIED, (limit,))
            rows = [dict(zip(cols, r)) for r in cur.fetchall()]
        conn.commit()
        return rows
    except Exception:
        conn.rollback()
        raise
    finally:
        release_conn(conn)


def count_unclassified() -> int:
    return _scalar(COUNT_UNCLASSIFIED)


def reset_embeddings() -> Dict[str, int]:
    """
    Limpa todos os vetores e re-enfileira normas (com resumen) e artigos.
    Usado ao trocar de modelo/dimensao de embedding.
    """
    conn = get_conn()
    try:
        counts = {}
        with conn.cursor() as cur:
            cur.execute(RESET_NORMAS)
            counts["normas"] = cur.rowcount
            cur.execute(RESET_ARTICULOS)
            counts["articulos"] = cur.rowcount
            cur.execute(RESET_QUEUE)
            counts["cola_reseteada"] = cur.rowcount
            cur.execute(REQUEUE_NORMAS, (CAMPO_NORMA, PRIORIDAD_NORMA))
            counts["normas_encoladas"] = cur.rowcount
            cur.execute(REQUEUE_ARTICULOS, (CAMPO_ARTICULO, PRIORIDAD_ARTICULO))
            counts["articulos_encolados"] = cur.rowcount
        conn.commit()
        logger.info("reset_embeddings: %s", counts)
        return counts
    except Exception:
        conn.rollback()
        logger.exception("Erro no reset_embeddings")
        raise
    finally:
        release_conn(conn)
