"""Text extraction for uploaded study material and the background question pass."""
from __future__ import annotations
import logging
from pathlib import Path

import pypdf
from pypdf.errors import PyPdfError
from sqlalchemy.exc import SQLAlchemyError

from .db import session_scope
from .errors import AppError
from .generation import QuestionGenerator
from .models import FileStatus, Question, UploadedFile

logger = logging.getLogger(__name__)


def extract_pdf_text(file_path: str) -> str:
    """Extract text from every page of a PDF, page-tagged."""
    text_parts = []
    try:
        with open(file_path, "rb") as file:
            reader = pypdf.PdfReader(file)
            for page_num, page in enumerate(reader.pages, 1):
                page_text = page.extract_text() or ""
                if page_text.strip():
                    text_parts.append(f"[Page {page_num}]\n{page_text}")
    except (OSError, PyPdfError) as e:
        raise ValueError(f"Error extracting text from PDF: {e}") from e
    return "\n\n".join(text_parts)


async def process_uploaded_file(file_id: str, generator: QuestionGenerator) -> None:
    """Background task: turn an uploaded PDF into Question rows and settle its status."""
    with session_scope() as db:
        record = db.get(UploadedFile, file_id)
        if record is None or record.status != FileStatus.processing.value:
            return
        try:
            text = extract_pdf_text(record.storage_path)
            if not text.strip():
                raise ValueError("No extractable text found in PDF")
            extracted = await generator.extract_questions(text, record.section)
            for item in extracted:
                db.add(Question(
                    title=item.title,
                    content=item.question,
                    section=record.section,
                    difficulty=item.difficulty,
                    options=item.options,
                    correct_answer=item.correctAnswer,
                    explanation=item.explanation,
                    source_file_id=record.id,
                    source_filename=record.filename,
                    tags=[record.section, "extracted"],
                ))
            record.mark_completed(len(extracted))
            db.commit()
            logger.info("Extracted %d questions from %s", len(extracted), record.original_name)
        except (ValueError, AppError, SQLAlchemyError) as exc:
            db.rollback()
            message = getattr(exc, "message", None) or str(exc)
            logger.warning("Processing %s failed: %s", file_id, message)
            record = db.get(UploadedFile, file_id)
            if record is not None and record.status == FileStatus.processing.value:
                record.mark_error(message)
                db.commit()


def remove_stored_file(path: str) -> None:
    try:
        Path(path).unlink()
    except FileNotFoundError:
        logger.warning("Stored file already missing: %s", path)
    except OSError as exc:
        logger.warning("Could not delete stored file %s: %s", path, exc)
