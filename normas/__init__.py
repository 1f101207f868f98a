"""
NORMAS GBA - Ingestao de legislacao da Provincia de Buenos Aires.

IMPORTANT: Este arquivo deve ser side-effect free.
NAO importar modulos pesados aqui (bs4, fitz, psycopg2, openai).
"""
__version__ = "1.0.0"
