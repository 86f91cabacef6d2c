"""
Pydantic models for the launcher control API.

Field names are camelCase on the wire.
"""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UpdateRequest(CamelModel):
    attempt_overwrite: bool = False


class FinalizeStashRequest(CamelModel):
    revert: bool = False


class StartRequest(CamelModel):
    force: bool = False


class UpdateResponse(CamelModel):
    status: str  # 'success', 'upToDate', 'needRetry', 'failed'
    message: str
    log_path: Optional[str] = None
    diff: Optional[str] = None
    stash_used: bool = False
    log_contents: Optional[str] = None


class SyncResponse(CamelModel):
    success: bool
    message: str


class SuccessResponse(CamelModel):
    success: bool = True


class StartResponse(CamelModel):
    url: str


class ServerStatusResponse(CamelModel):
    phase: str
    ready: bool
    running: bool
    pid: Optional[int] = None
    url: Optional[str] = None


class EventModel(CamelModel):
    seq: int
    kind: str  # 'log' or 'server-ready'
    payload: str


class EventsResponse(CamelModel):
    events: List[EventModel]
    last: int


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
