from __future__ import annotations

from typing import Dict, Iterable, List

import logging
from sqlalchemy.orm import Session

from volmed.models.patient_file import PatientFile
from volmed.services.stored_file import StoredFile

logger = logging.getLogger("volmed")

_NAME_LIMIT = 255


def record_stored_files(db: Session, patient_id: int, files: Iterable[StoredFile]) -> List[PatientFile]:
    """Add one PatientFile row per stored file. The caller commits."""
    rows: List[PatientFile] = []
    for stored in files:
        row = PatientFile(
            patient_id=patient_id,
            stored_name=stored.stored_name,
            original_name=(stored.original_name or stored.stored_name)[:_NAME_LIMIT],
            content_type=stored.content_type,
            size_bytes=stored.size_bytes,
        )
        db.add(row)
        rows.append(row)
    if rows:
        logger.info({
            "function": "record_stored_files",
            "status": "added",
            "patient_id": patient_id,
            "files": len(rows),
        })
    return rows


def original_names(db: Session, patient_id: int) -> Dict[str, str]:
    """Map stored name -> client filename for a patient.

    When a stored name was recorded more than once (the file was removed and
    the name reused), the newest row wins.
    """
    rows = (
        db.query(PatientFile.stored_name, PatientFile.original_name)
        .filter(PatientFile.patient_id == patient_id)
        .order_by(PatientFile.id.asc())
        .all()
    )
    return {stored_name: original_name for stored_name, original_name in rows}


__all__ = ["record_stored_files", "original_names"]
