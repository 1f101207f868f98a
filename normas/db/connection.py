# normas/db/connection.py
"""
Pool Postgres compartilhado por db_writer e embedding_queue.

Cada processo (crawl, embedder, scripts de manutencao) abre um pool proprio e
se identifica via application_name, para separar as sessoes em
pg_stat_activity:

    configure_pool("normas-crawl")
    conn = get_conn()
    try:
        ...
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        release_conn(conn)

POSTGRES_CONNSTR e POSTGRES_MAX_CONN vem de normas.config.settings.
"""
from __future__ import annotations

import logging
import threading
from typing import Optional

from psycopg2 import pool as pg_pool

from normas.config import settings

logger = logging.getLogger(__name__)

DEFAULT_APPLICATION_NAME = "normas-gba"

_pool: Optional[pg_pool.SimpleConnectionPool] = None
_lock = threading.Lock()
_application_name = DEFAULT_APPLICATION_NAME
_max_conn: Optional[int] = None


def configure_pool(application_name: str, max_conn: Optional[int] = None):
    """Define o nome da sessao (e opcionalmente o tamanho) antes do primeiro get_conn."""
    global _application_name, _max_conn
    if _pool is not None:
        raise RuntimeError("Pool ja inicializado; chame configure_pool antes de get_conn")
    _application_name = application_name
    _max_conn = max_conn


def _init_pool() -> pg_pool.SimpleConnectionPool:
    global _pool
    if _pool is None:
        with _lock:
            if _pool is None:
                if not settings.POSTGRES_CONNSTR:
                    raise RuntimeError(
                        "POSTGRES_CONNSTR nao configurada. "
                        "Defina a env var antes de rodar os scripts."
                    )
                max_conn = _max_conn or settings.POSTGRES_MAX_CONN
                _pool = pg_pool.SimpleConnectionPool(
                    1, max_conn, settings.POSTGRES_CONNSTR,
                    application_name=_application_name,
                )
                logger.info("Postgres pool %s inicializado (max=%d)", _application_name, max_conn)
    return _pool


def get_conn():
    conn = _init_pool().getconn()
    conn.autocommit = False
    return conn


def release_conn(conn, close: bool = False):
    if _pool is not None and conn is not None:
        _pool.putconn(conn, close=close)


def close_pool():
    """Fecha as conexoes e volta a configuracao ao default."""
    global _pool, _application_name, _max_conn
    if _pool is not None:
        _pool.closeall()
        _pool = None
        logger.info("Postgres pool %s fechado", _application_name)
    _application_name = DEFAULT_APPLICATION_NAME
    _max_conn = None
