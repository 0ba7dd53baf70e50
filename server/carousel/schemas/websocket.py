from typing import Optional

from pydantic import BaseModel


class ExportStatusEvent(BaseModel):
    carousel_id: str
    type: str  # export_state, export_progress, export_ready, ...
    state: Optional[str] = None
    message: Optional[str] = None
    current: Optional[int] = None
    total: Optional[int] = None
    filenames: list[str] = []
    outcome: Optional[str] = None
    shared: list[str] = []
