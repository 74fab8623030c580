# volmed/routes/patient_routes.py
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from volmed.db.session import get_db
from volmed.middleware.rate_limit import UPLOAD_RATE_LIMIT, limiter
from volmed.models.patient import Patient
from volmed.schemas.patients import PatientFileOut, PatientOut
from volmed.services.file_metadata import original_names, record_stored_files
from volmed.services.storage import DocumentStore, get_document_store
from volmed.services.storage_errors import RecordNotFound
from volmed.services.stored_file import IncomingFile, StoredFile, check_record_id

router = APIRouter(prefix="/api/patients", tags=["patients"])
logger = logging.getLogger("volmed")


async def _read_uploads(files: List[UploadFile], store: DocumentStore) -> List[IncomingFile]:
    incoming: List[IncomingFile] = []
    for upload in files:
        filename = upload.filename or "upload"
        # Starlette knows the spooled size; skip reading parts that would be rejected
        store.ingestor.check_file(filename, upload.content_type, getattr(upload, "size", None))
        data = await upload.read()
        incoming.append(IncomingFile(filename=filename, content_type=upload.content_type or "", data=data))
    return incoming


def _file_out(store: DocumentStore, record_id: int, stored: StoredFile, original: Optional[str] = None) -> PatientFileOut:
    return PatientFileOut(
        filename=stored.stored_name,
        originalname=original or stored.original_name,
        path=store.public_path(record_id, stored.stored_name),
        size=stored.size_bytes,
    )


def _file_listing(db: Session, store: DocumentStore, record_id: int) -> List[PatientFileOut]:
    names = original_names(db, record_id)
    return [_file_out(store, record_id, f, names.get(f.stored_name)) for f in store.list(record_id)]


def _patient_out(db: Session, store: DocumentStore, patient: Patient) -> PatientOut:
    return PatientOut(
        id=patient.id,
        name=patient.name,
        notes=patient.notes,
        created_at=patient.created_at,
        files=_file_listing(db, store, patient.id),
    )


@router.post("", response_model=PatientOut, status_code=status.HTTP_201_CREATED)
@limiter.limit(UPLOAD_RATE_LIMIT)
async def create_patient(
    request: Request,
    name: str = Form(..., min_length=1, max_length=255),
    notes: Optional[str] = Form(None),
    files: Optional[List[UploadFile]] = File(None),
    db: Session = Depends(get_db),
    store: DocumentStore = Depends(get_document_store),
):
    """Create a patient; attachments are staged until the new id is known."""
    incoming = await _read_uploads(files or [], store)
    staged = await run_in_threadpool(store.accept, None, incoming)

    committed: List[StoredFile] = []
    try:
        patient = Patient(name=name, notes=notes)
        db.add(patient)
        db.flush()
        committed = await run_in_threadpool(store.commit, patient.id, staged)
        record_stored_files(db, patient.id, committed)
        db.commit()
    except Exception:
        db.rollback()
        if committed:
            await run_in_threadpool(store.retract, committed[0].directory, committed)
        else:
            await run_in_threadpool(store.discard, staged)
        raise
    db.refresh(patient)

    logger.info({
        "function": "create_patient",
        "status": "created",
        "patient_id": patient.id,
        "files": len(committed),
    })
    return await run_in_threadpool(_patient_out, db, store, patient)


@router.get("/{patient_id}", response_model=PatientOut)
def get_patient(
    patient_id: int,
    db: Session = Depends(get_db),
    store: DocumentStore = Depends(get_document_store),
):
    check_record_id(patient_id)
    patient = db.get(Patient, patient_id)
    if patient is None:
        raise RecordNotFound(patient_id)
    return _patient_out(db, store, patient)


@router.post("/{patient_id}/upload", response_model=PatientFileOut)
@limiter.limit(UPLOAD_RATE_LIMIT)
async def upload_patient_file(
    request: Request,
    patient_id: int,
    file: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    store: DocumentStore = Depends(get_document_store),
):
    """Attach one file to an existing patient; name clashes get " (n)" suffixes."""
    check_record_id(patient_id)
    if file is None:
        raise HTTPException(status_code=400, detail="No file uploaded")
    if db.get(Patient, patient_id) is None:
        raise RecordNotFound(patient_id)

    incoming = await _read_uploads([file], store)
    stored = await run_in_threadpool(store.attach, patient_id, incoming[0])
    try:
        record_stored_files(db, patient_id, [stored])
        db.commit()
    except Exception:
        db.rollback()
        await run_in_threadpool(store.retract, patient_id, [stored])
        raise
    return _file_out(store, patient_id, stored)


@router.get("/{patient_id}/files", response_model=List[PatientFileOut])
def list_patient_files(
    patient_id: int,
    db: Session = Depends(get_db),
    store: DocumentStore = Depends(get_document_store),
):
    """Files in the patient's folder; an empty list when nothing was uploaded yet."""
    check_record_id(patient_id)
    return _file_listing(db, store, patient_id)
