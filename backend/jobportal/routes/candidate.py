"""
Candidate API routes - taking an assessment.

Provides endpoints for:
- Listing assessments available through the candidate's applications
- Viewing an assessment without its answer key
- Starting an attempt, answering, uploading files, reporting violations
- Submitting the attempt and reading the result
"""

from typing import Any, List, Optional
from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel
from sqlalchemy.orm import Session

from jobportal import config
from jobportal.auth import AuthenticatedActor, require_candidate
from jobportal.database import get_db
from jobportal.errors import ValidationError
from jobportal.services import assessments as assessment_service
from jobportal.services import attempts as attempt_service

router = APIRouter(prefix="/api/candidate/assessments")


# ── Pydantic schemas ─────────────────────────────────────────

class StartRequest(BaseModel):
    assessment_id: str
    application_id: str
    job_id: Optional[str] = None


class AnswerRequest(BaseModel):
    attempt_id: str
    question_index: Any = None
    selected_answer: Any = None
    text_answer: Optional[str] = None
    time_spent: Any = 0


class ViolationRequest(BaseModel):
    attempt_id: str
    type: Optional[str] = None
    details: Any = None


class SubmitRequest(BaseModel):
    """Violations captured client-side are appended to the attempt's log."""
    attempt_id: str
    violations: Optional[List[Any]] = None


@router.get("/available")
def list_available_assessments(
    actor: AuthenticatedActor = Depends(require_candidate),
    db: Session = Depends(get_db)
):
    assessments = assessment_service.list_available_assessments(db, actor)
    return {"success": True, "assessments": assessments}


@router.post("/start")
def start_assessment(
    request: StartRequest,
    actor: AuthenticatedActor = Depends(require_candidate),
    db: Session = Depends(get_db)
):
    attempt = attempt_service.start_attempt(
        db, actor, request.assessment_id, request.job_id, request.application_id
    )
    return {"success": True, "attempt": attempt_service.serialize_attempt_summary(attempt)}


@router.post("/answer")
def submit_answer(
    request: AnswerRequest,
    actor: AuthenticatedActor = Depends(require_candidate),
    db: Session = Depends(get_db)
):
    answer = attempt_service.submit_answer(
        db, actor, request.attempt_id, request.question_index,
        selected_answer=request.selected_answer,
        text_answer=request.text_answer,
        time_spent=request.time_spent
    )
    attempt = answer.attempt
    return {
        "success": True,
        "answer": answer.to_dict(),
        "current_question": attempt.current_question
    }


@router.post("/upload-answer")
def upload_file_answer(
    attempt_id: str = Form(...),
    question_index: str = Form(...),
    time_spent: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    actor: AuthenticatedActor = Depends(require_candidate),
    db: Session = Depends(get_db)
):
    if file is None or not file.filename:
        raise ValidationError("No file uploaded")

    # One byte past the limit is enough for the size check to reject it
    content = file.file.read(config.MAX_UPLOAD_BYTES + 1)
    answer = attempt_service.upload_answer(
        db, actor, attempt_id, question_index,
        original_name=file.filename,
        mimetype=file.content_type,
        content=content,
        time_spent=time_spent
    )
    return {
        "success": True,
        "answer": answer.to_dict(),
        "uploaded_file": answer.uploaded_file,
        "current_question": answer.attempt.current_question
    }


@router.post("/violation")
def record_violation(
    request: ViolationRequest,
    actor: AuthenticatedActor = Depends(require_candidate),
    db: Session = Depends(get_db)
):
    violation = attempt_service.record_violation(
        db, actor, request.attempt_id, request.type, request.details
    )
    return {"success": True, "violation": violation.to_dict()}


@router.post("/submit")
def submit_assessment(
    request: SubmitRequest,
    actor: AuthenticatedActor = Depends(require_candidate),
    db: Session = Depends(get_db)
):
    result = attempt_service.submit_attempt(db, actor, request.attempt_id, request.violations)
    return {"success": True, "result": result}


@router.get("/result/application/{application_id}")
def get_result_by_application(
    application_id: str,
    actor: AuthenticatedActor = Depends(require_candidate),
    db: Session = Depends(get_db)
):
    attempt = attempt_service.get_candidate_result(db, actor, application_id=application_id)
    return {"success": True, "result": attempt_service.serialize_result(attempt)}


@router.get("/result/{attempt_id}")
def get_result(
    attempt_id: str,
    actor: AuthenticatedActor = Depends(require_candidate),
    db: Session = Depends(get_db)
):
    attempt = attempt_service.get_candidate_result(db, actor, attempt_id=attempt_id)
    return {"success": True, "result": attempt_service.serialize_result(attempt)}


@router.get("/{assessment_id}")
def get_assessment(
    assessment_id: str,
    actor: AuthenticatedActor = Depends(require_candidate),
    db: Session = Depends(get_db)
):
    """The assessment as a candidate sees it: no correct answers, no explanations."""
    assessment = assessment_service.get_assessment_for_candidate(db, assessment_id)
    return {
        "success": True,
        "assessment": assessment_service.serialize_assessment(assessment, include_answer_key=False)
    }
