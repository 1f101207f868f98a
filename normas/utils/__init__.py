"""Utils genericos (retry, cancelamento). Side-effect free."""
