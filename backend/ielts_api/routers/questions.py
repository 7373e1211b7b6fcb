from __future__ import annotations
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import InfrastructureError, NotFoundError, ValidationError
from ..extraction import process_uploaded_file, remove_stored_file
from ..generation import QuestionGenerator, get_generator
from ..models import QUESTION_DIFFICULTIES, SECTIONS, Question, UploadedFile, User
from ..responses import paginate, pagination_meta, success_response
from ..security import get_current_user, require_admin
from ..settings import settings
from ..validators import ensure_valid, validate_choice, violation


router = APIRouter(prefix="/questions", tags=["questions"])
logger = logging.getLogger(__name__)

PDF_MIMETYPE = "application/pdf"


def _serialize_file(record: UploadedFile) -> Dict[str, Any]:
    return {
        "id": record.id,
        "originalName": record.original_name,
        "filename": record.filename,
        "mimetype": record.mimetype,
        "size": record.size,
        "section": record.section,
        "status": record.status,
        "questionsExtracted": record.questions_extracted,
        "processingError": record.processing_error,
        "uploadedBy": record.uploaded_by,
        "createdAt": record.created_at,
        "updatedAt": record.updated_at,
    }


def _serialize_question(question: Question) -> Dict[str, Any]:
    return {
        "id": question.id,
        "title": question.title,
        "content": question.content,
        "section": question.section,
        "difficulty": question.difficulty,
        "options": question.options or [],
        "correctAnswer": question.correct_answer,
        "explanation": question.explanation,
        "sourceFileId": question.source_file_id,
        "sourceFilename": question.source_filename,
        "tags": question.tags or [],
        "createdAt": question.created_at,
    }


def _is_pdf(upload: UploadFile) -> bool:
    name = (upload.filename or "").lower()
    return upload.content_type == PDF_MIMETYPE or name.endswith(".pdf")


def _get_file_or_404(db: Session, file_id: str) -> UploadedFile:
    record = db.get(UploadedFile, file_id)
    if record is None:
        raise NotFoundError("File not found")
    return record


@router.post("/upload")
async def upload_file(
    background_tasks: BackgroundTasks,
    pdf: Optional[UploadFile] = File(default=None),
    section: str = Form(default="general"),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    generator: QuestionGenerator = Depends(get_generator),
):
    if pdf is None or not pdf.filename:
        raise ValidationError("No file uploaded", [violation("pdf", "pdf file is required", "required")])
    ensure_valid(validate_choice("section", section, SECTIONS))
    if not _is_pdf(pdf):
        raise ValidationError("Only PDF files are allowed", [violation("pdf", "file must be a PDF", "invalid_type")])
    max_bytes = settings.max_upload_mb * 1024 * 1024
    # One byte past the limit is enough to tell the file is too large
    content = await pdf.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise ValidationError(
            f"File exceeds the {settings.max_upload_mb} MB limit",
            [violation("pdf", f"file must be at most {settings.max_upload_mb} MB", "too_large")],
        )
    if not content:
        raise ValidationError("Uploaded file is empty", [violation("pdf", "file is empty", "empty")])

    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    stored_name = f"pdf-{uuid.uuid4().hex}.pdf"
    stored_path = upload_dir / stored_name
    try:
        stored_path.write_bytes(content)
    except OSError as exc:
        raise InfrastructureError("Could not store uploaded file") from exc

    record = UploadedFile(
        original_name=pdf.filename,
        filename=stored_name,
        mimetype=pdf.content_type or PDF_MIMETYPE,
        size=len(content),
        storage_path=str(stored_path),
        uploaded_by=admin.id,
        section=section.lower(),
    )
    try:
        db.add(record)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        remove_stored_file(str(stored_path))
        raise InfrastructureError("Could not save file record") from exc
    db.refresh(record)
    payload = _serialize_file(record)

    background_tasks.add_task(process_uploaded_file, record.id, generator)
    logger.info("Stored %s (%d bytes) as %s", record.original_name, record.size, stored_name)
    return success_response("File uploaded, processing started", {"file": payload}, 201)


@router.get("/files")
async def list_files(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    files = db.query(UploadedFile).order_by(UploadedFile.created_at.desc()).all()
    return success_response("Files retrieved", {"files": [_serialize_file(f) for f in files], "results": len(files)})


@router.delete("/files/{file_id}")
async def delete_file(file_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    record = _get_file_or_404(db, file_id)
    storage_path = record.storage_path
    try:
        removed = db.query(Question).filter(Question.source_file_id == record.id).delete()
        db.delete(record)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise InfrastructureError("Could not delete file") from exc
    remove_stored_file(storage_path)
    logger.info("Deleted file %s and %d questions", file_id, removed)
    return success_response("File deleted", {"id": file_id, "questionsRemoved": removed})


@router.get("/files/{file_id}/questions")
async def file_questions(file_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    record = _get_file_or_404(db, file_id)
    questions = (
        db.query(Question)
        .filter(Question.source_file_id == record.id)
        .order_by(Question.created_at.asc())
        .all()
    )
    return success_response(
        "Questions retrieved",
        {"file": _serialize_file(record), "questions": [_serialize_question(q) for q in questions]},
    )


@router.get("/questions")
async def list_questions(
    section: Optional[str] = None,
    difficulty: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    violations = []
    if section:
        violations += validate_choice("section", section, SECTIONS)
    if difficulty:
        violations += validate_choice("difficulty", difficulty, QUESTION_DIFFICULTIES)
    ensure_valid(violations)
    page, limit, offset = paginate(page, limit)
    query = db.query(Question).filter(Question.is_active.is_(True))
    if section:
        query = query.filter(Question.section == section.lower())
    if difficulty:
        query = query.filter(Question.difficulty == difficulty.lower())
    total = query.count()
    questions = query.order_by(Question.created_at.desc()).offset(offset).limit(limit).all()
    return success_response(
        "Questions retrieved",
        {"questions": [_serialize_question(q) for q in questions], "pagination": pagination_meta(page, limit, total)},
    )
