"""Registro de tipos de norma do portal normas.gba.gob.ar (slug, tipo no site, rango)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class NormTypeConfig:
    tipo: str               # slug interno (coluna normas.tipo)
    display_name: str
    url_slug: str           # segmento da URL canonica: /ar-b/{url_slug}/...
    raw_type: str           # valor de q[terms][raw_type] na busca do site
    rango_normativo: int    # 1=constitucion .. 6=ordenanza general
    enabled: bool


NORM_TYPE_CONFIGS: Dict[str, NormTypeConfig] = {
    "ley": NormTypeConfig(
        tipo="ley",
        display_name="Ley",
        url_slug="ley",
        raw_type="Law",
        rango_normativo=3,
        enabled=True,
    ),
    "decreto": NormTypeConfig(
        tipo="decreto",
        display_name="Decreto",
        url_slug="decreto",
        raw_type="Decree",
        rango_normativo=4,
        enabled=True,
    ),
    "decreto_ley": NormTypeConfig(
        tipo="decreto_ley",
        display_name="Decreto-Ley",
        url_slug="decreto-ley",
        raw_type="DecreeLaw",
        rango_normativo=3,
        enabled=True,
    ),
    "ordenanza_general": NormTypeConfig(
        tipo="ordenanza_general",
        display_name="Ordenanza General",
        url_slug="ordenanza-general",
        raw_type="GeneralOrdinance",
        rango_normativo=6,
        enabled=True,
    ),
    "resolucion": NormTypeConfig(
        tipo="resolucion",
        display_name="Resolucion",
        url_slug="resolucion",
        raw_type="Resolution",
        rango_normativo=5,
        enabled=True,
    ),
    "disposicion": NormTypeConfig(
        tipo="disposicion",
        display_name="Disposicion",
        url_slug="disposicion",
        raw_type="Disposition",
        rango_normativo=5,
        enabled=True,
    ),
    "resolucion_conjunta": NormTypeConfig(
        tipo="resolucion_conjunta",
        display_name="Resolucion Conjunta",
        url_slug="resolucion-conjunta",
        raw_type="JointResolution",
        rango_normativo=5,
        enabled=True,
    ),
}

_BY_URL_SLUG: Dict[str, NormTypeConfig] = {c.url_slug: c for c in NORM_TYPE_CONFIGS.values()}


def get_config(tipo: str) -> NormTypeConfig:
    """Return config for a norm type or raise ValueError."""
    cfg = NORM_TYPE_CONFIGS.get(tipo)
    if cfg is None:
        raise ValueError(f"Tipo de norma desconhecido: {tipo}")
    return cfg


def tipo_from_url_slug(url_slug: str) -> Optional[str]:
    """'decreto-ley' -> 'decreto_ley'. None se o slug nao e conhecido."""
    cfg = _BY_URL_SLUG.get(url_slug.lower())
    return cfg.tipo if cfg else None


def enabled_types() -> List[str]:
    return [c.tipo for c in NORM_TYPE_CONFIGS.values() if c.enabled]


# Codigos provinciais conhecidos: rango 2 (mesma lista de 002_jerarquia.sql)
RANGO_CODIGO = 2

KNOWN_CODES: Dict[Tuple[str, int], str] = {
    ("ley", 10397): "Código Fiscal",
    ("decreto_ley", 7425): "Código Procesal Civil y Comercial",
    ("ley", 12008): "Código Contencioso Administrativo",
    ("decreto_ley", 7616): "Código Rural",
    ("decreto_ley", 8031): "Código de Faltas",
    ("ley", 11922): "Código Procesal Penal",
    ("ley", 11653): "Código Procesal del Trabajo",
    ("decreto_ley", 6769): "Ley Orgánica de Municipalidades",
    ("ley", 5827): "Ley Orgánica del Poder Judicial",
    ("ley", 13482): "Ley Orgánica de la Policía Bonaerense",
}


def rango_for(tipo: str, numero: int) -> Tuple[int, Optional[str]]:
    """(rango_normativo, nombre_codigo) de uma norma."""
    nombre = KNOWN_CODES.get((tipo, numero))
    if nombre:
        return RANGO_CODIGO, nombre
    return get_config(tipo).rango_normativo, None
