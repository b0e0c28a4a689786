# server/schemas.py
# Purpose: Pydantic v2 models for process settings and the /_api response shapes.
# Notes:
# - Settings are validated once at startup; a bad PORT or HSTS flag fails fast.

from __future__ import annotations

import os
from typing import Dict, List, Mapping, Optional

from pydantic import BaseModel, Field


class ServerSettings(BaseModel):
    port: int = Field(default=3000, ge=1, le=65535)
    hsts_enabled: bool = False  # keep Strict-Transport-Security instead of disabling it

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServerSettings":
        env = os.environ if environ is None else environ
        data = {}
        port = (env.get("PORT") or "").strip()
        if port:
            data["port"] = port  # pydantic coerces / rejects
        hsts = (env.get("SECURITY_HSTS_ENABLED") or "").strip()
        if hsts:
            data["hsts_enabled"] = hsts.lower()  # true/false, yes/no, on/off, 1/0; anything else is rejected
        return cls(**data)


class AppInfo(BaseModel):
    headers: Dict[str, str]
    appStack: List[str]


class ErrorResponse(BaseModel):
    error: str
    code: int
    request_id: Optional[str] = None
