from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Credentials(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    api_key: str = Field(default="", alias="apiKey")
    secret_key: str = Field(default="", alias="secretKey")
    passphrase: str = Field(default="", alias="passphrase")

    def missing_fields(self) -> list[str]:
        missing: list[str] = []
        for name, value in (
            ("apiKey", self.api_key),
            ("secretKey", self.secret_key),
            ("passphrase", self.passphrase),
        ):
            if not value.strip():
                missing.append(name)
        return missing


class SymbolRecord(BaseModel):
    # Fields the server omits stay None: a record is always replaced whole.
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    close: Optional[float] = None
    volume: Optional[float] = None
    timestamp: Optional[str] = None
    is_hammer: Optional[bool] = Field(default=None, alias="isHammer")


Snapshot = dict[str, SymbolRecord]


@dataclass(frozen=True)
class ChartPoint:
    open_time_ms: int
    close: Decimal
