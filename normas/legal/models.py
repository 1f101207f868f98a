# normas/legal/models.py
"""
Data models para o pipeline de normas GBA.
Dataclasses puras, sem dependencia de DB.

Nomes de campos seguem o vocabulario do site (espanhol): numero, anio,
sitio_id, fecha_publicacion, orden, etc.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union


class EstadoNorma(str, Enum):
    """Ciclo de vida de uma norma no pipeline."""
    DESCUBIERTA = "descubierta"
    SCRAPEADA = "scrapeada"
    TEXTO_EXTRAIDO = "texto_extraido"
    EMBEDDINGS_GENERADOS = "embeddings_generados"


class Vigencia(str, Enum):
    VIGENTE = "vigente"
    DEROGADA = "derogada"
    DESCONOCIDA = "desconocida"


class TipoRelacion(str, Enum):
    DEROGA = "deroga"
    MODIFICA = "modifica"
    REGLAMENTA = "reglamenta"
    COMPLEMENTA = "complementa"
    PRORROGA = "prorroga"
    SUSTITUYE = "sustituye"
    OTRA = "otra"


class EntidadTipo(str, Enum):
    NORMA = "norma"
    ARTICULO = "articulo"


@dataclass(frozen=True)
class NormIdentity:
    """Identidade natural extraida da URL canonica /ar-b/{tipo}/{anio}/{numero}/{sitio_id}."""
    tipo: str
    numero: int
    anio: int
    sitio_id: int
    jurisdiccion: str = "ar-b"

    @property
    def natural_key(self) -> "NaturalKey":
        return NaturalKey(self.tipo, self.numero, self.anio)


@dataclass(frozen=True)
class NaturalKey:
    """Chave natural (tipo, numero, anio) de uma norma."""
    tipo: str
    numero: int
    anio: int

    def __str__(self) -> str:
        return f"{self.tipo} {self.numero}/{self.anio}"


@dataclass
class ListingItem:
    """Um resultado extraido da pagina de listagem."""
    titulo: str
    url_canonica: str
    resumen: Optional[str] = None
    fecha_publicacion: Optional[str] = None       # 'DD/MM/YYYY'
    ultima_actualizacion: Optional[str] = None    # 'DD/MM/YYYY HH:MM'
    tipo: Optional[str] = None
    numero: Optional[int] = None
    anio: Optional[int] = None
    sitio_id: Optional[int] = None


@dataclass(frozen=True)
class ResolvedRef:
    """Destino de relacao ja resolvido para uma norma existente."""
    norma_id: int
    key: NaturalKey


@dataclass(frozen=True)
class UnresolvedRef:
    """Destino de relacao ainda sem norma no banco (re-resolvido em backfill)."""
    key: NaturalKey


DestinoRef = Union[ResolvedRef, UnresolvedRef]


@dataclass
class ParsedRelation:
    """Relacao normativa extraida da tabela da pagina de detalhe."""
    tipo_relacion: TipoRelacion
    destino: DestinoRef
    destino_url: str
    detalle: Optional[str] = None

    @property
    def destino_key(self) -> NaturalKey:
        return self.destino.key


@dataclass
class DetailResult:
    """Resultado do parse de uma pagina de detalhe."""
    url_texto_original: Optional[str] = None
    url_texto_actualizado: Optional[str] = None
    url_fundamentos: Optional[str] = None
    fecha_promulgacion: Optional[str] = None
    fecha_publicacion: Optional[str] = None
    boletin_oficial_nro: Optional[str] = None
    tipo_publicacion: Optional[str] = None
    resumen: Optional[str] = None
    observaciones: Optional[str] = None
    organismo: Optional[str] = None
    ultima_actualizacion: Optional[str] = None
    vigencia: Vigencia = Vigencia.DESCONOCIDA
    relaciones: List[ParsedRelation] = field(default_factory=list)


@dataclass
class ExtractionResult:
    """Texto plano extraido de um documento fonte (PDF)."""
    text: str
    source_format: str          # 'pdf'
    extractor: str              # 'pymupdf' | 'pdfplumber' | 'none'
    char_count: int = 0
    sha256: str = ""


@dataclass
class ParsedArticle:
    """Um artigo segmentado (label livre, nao assume numero inteiro)."""
    numero_articulo: str        # 'ARTÍCULO 1°', 'ARTICULO 5 BIS', 'Art. 3'
    texto: str
    orden: int                  # 0-based, contiguo por norma
    titulo: Optional[str] = None


@dataclass
class ReconcileResult:
    """Resultado de reconcile_text."""
    norma_id: int
    changed: bool
    hash_nuevo: str
    hash_anterior: Optional[str] = None
    articulos: int = 0
    encolados: int = 0

    @property
    def status(self) -> str:
        return "changed" if self.changed else "unchanged"


@dataclass
class QueueItem:
    """Item pendente da cola_embeddings, com o texto fonte ja resolvido."""
    id: int
    entidad_tipo: str
    entidad_id: int
    campo_embedding: str
    prioridad: int = 5
    intentos: int = 0
    texto: Optional[str] = None
