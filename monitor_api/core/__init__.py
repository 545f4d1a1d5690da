"""Núcleo compartido: dominio, validación, transporte y eventos."""
