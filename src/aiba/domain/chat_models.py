from __future__ import annotations

from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


Role = Literal["user", "assistant"]


class Message(BaseModel):
    role: Role
    content: str


class ChatRequest(BaseModel):
    """Body of ``POST /chat``; field names follow the browser client."""

    model_config = ConfigDict(populate_by_name=True)

    messages: List[Message] = Field(default_factory=list)
    user_role: str = Field(default="Senior PM", alias="userRole")
    company_context: str = Field(default="", alias="companyContext")
    mode: Optional[str] = None
    project_id: Optional[str] = Field(default=None, alias="projectId")
    persist: bool = False


class ChatTurn(BaseModel):
    """A finished turn handed to the persistence service."""

    model_config = ConfigDict(populate_by_name=True)

    messages: List[Message] = Field(min_length=1)
    mode: Optional[str] = None
    project_id: Optional[str] = Field(default=None, alias="projectId")


class ChatLogEntry(BaseModel):
    entry_id: str
    role: Role
    content: str
    mode: Optional[str] = None
    project_id: Optional[str] = None
    created_at: str


class ErrorResponse(BaseModel):
    error: str
