from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel


class SessionEvent(BaseModel):
    timestamp: datetime
    message: str


class TransformSnapshot(BaseModel):
    scale: float
    rotation: List[int]
    selection: List[int]
    current_page: int


class SurfaceInfo(BaseModel):
    kind: str
    page_index: int
    status: str
    generation: int
    error: Optional[str] = None


class SessionSummary(BaseModel):
    id: str
    document_id: str
    page_count: int
    created_at: datetime
    updated_at: datetime
    transform: TransformSnapshot


class SessionDetail(SessionSummary):
    surfaces: List[SurfaceInfo]
    cache: Dict[str, int]
    events: List[SessionEvent]


class TransitionResult(BaseModel):
    transform: TransformSnapshot
    affected_pages: List[int]


class ScaleRequest(BaseModel):
    scale: float


class RotateRequest(BaseModel):
    delta: Literal[90, -90]


class SaveResult(BaseModel):
    document_id: str
    file_path: str


class ConfigMetadata(BaseModel):
    defaults: Dict[str, Any]
    environment: List[str]
    notes: Dict[str, str]
