from __future__ import annotations

from typing import Optional
from pydantic import BaseModel


class ExportRequest(BaseModel):
    content: str
    title: Optional[str] = None
