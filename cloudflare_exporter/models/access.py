from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class ServiceToken(BaseModel):
    """Cloudflare Access service token, as listed for an account."""

    id: str = ""
    name: str
    client_id: str = ""
    expires_at: datetime | None = None
