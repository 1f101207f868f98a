"""Configuracao (env vars + registry de tipos de norma)."""
