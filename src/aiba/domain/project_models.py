from __future__ import annotations

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class ProjectUpsert(BaseModel):
    title: Optional[str] = Field(default=None, description="Feature or project title")
    full_prd: Optional[str] = None
    user_stories: Optional[str] = None
    impact_analysis: Optional[str] = None


class ProjectRecord(BaseModel):
    project_id: str
    title: str
    full_prd: str = ""
    user_stories: str = ""
    impact_analysis: str = ""
    created_at: datetime
    updated_at: datetime
