from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class AlertOut(BaseModel):
    id: Optional[int] = None
    severity: str
    title: str
    description: str
    key: str
    timestamp: int
    acknowledged: bool = False


class AckResult(BaseModel):
    id: int
    acknowledged: bool


class ClearResult(BaseModel):
    deleted: int


class ChartStatsOut(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None
    avg: Optional[float] = None
    count: int = 0


class ChartPoint(BaseModel):
    x: int
    y: float


class ChartDataOut(BaseModel):
    sensor: str
    timeRange: str
    values: List[float] = Field(default_factory=list)
    timestamps: List[int] = Field(default_factory=list)
    points: List[ChartPoint] = Field(default_factory=list)
    stats: ChartStatsOut
    isEmpty: bool


class ThresholdOut(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None


class ThresholdUpdate(BaseModel):
    # Campo ausente = no tocar; ``null`` explícito = quitar el límite.
    min: Optional[float] = None
    max: Optional[float] = None

    def changes(self) -> Dict[str, Optional[float]]:
        return {name: getattr(self, name) for name in ("min", "max") if name in self.model_fields_set}


class DeviceConfigIn(BaseModel):
    address: Optional[str] = Field(default=None, min_length=1)
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    interval_ms: Optional[int] = Field(default=None, ge=1)


class DeviceConfigOut(BaseModel):
    address: str
    port: int
    interval_ms: int
    url: str


class SettingIn(BaseModel):
    value: Any = None


class SettingOut(BaseModel):
    key: str
    value: Any = None
