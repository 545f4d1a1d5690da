"""Normalización de payloads crudos del dispositivo a ``Reading``.

La validación es tolerante: nunca rechaza un payload, completa defaults.
"""

from .normalizer import normalize, safe_float

__all__ = ["normalize", "safe_float"]
