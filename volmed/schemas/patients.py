# volmed/schemas/patients.py
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime


# ---------- Files ----------
class PatientFileOut(BaseModel):
    """One entry of a record's file listing."""

    filename: str = Field(description="Name of the file on disk")
    originalname: str = Field(description="Name the client uploaded the file under")
    path: str = Field(description="Public path the file is served from")
    size: int = Field(description="Size in bytes")


# ---------- Patients ----------
class PatientOut(BaseModel):
    id: int
    name: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    files: List[PatientFileOut] = Field(default_factory=list)

    class Config:
        from_attributes = True
