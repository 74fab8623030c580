# volmed/models/patient.py
from datetime import datetime
from typing import List, Optional

from sqlalchemy import Integer, String, Text, DateTime, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from volmed.db.session import Base


class Patient(Base):
    __tablename__ = "patients"

    # RecordId of the document store: allocated here, never reused
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    files: Mapped[List["PatientFile"]] = relationship(
        "PatientFile",
        back_populates="patient",
        cascade="all, delete-orphan",
        order_by="PatientFile.id",
    )
