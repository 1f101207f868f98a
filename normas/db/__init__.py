"""Acesso ao Postgres (pool + migrations)."""
