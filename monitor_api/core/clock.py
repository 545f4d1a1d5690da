from __future__ import annotations

import time
from typing import Callable

# Reloj en epoch milisegundos. Los componentes lo reciben inyectado para
# poder controlar cooldowns y TTLs en tests.
Clock = Callable[[], int]


def now_ms() -> int:
    return int(time.time() * 1000)
