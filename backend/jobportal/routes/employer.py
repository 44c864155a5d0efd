"""
Employer API routes - assessment authoring and result review.

Provides endpoints for:
- Creating, listing, viewing, updating and deleting owned assessments
- Listing completed attempts for an owned assessment
- Viewing a single attempt in full (answers, violations, answer key)
"""

import time
from typing import Any, List, Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from jobportal.auth import AuthenticatedActor, require_employer
from jobportal.database import get_db
from jobportal.services import assessments as assessment_service
from jobportal.services import attempts as attempt_service
from jobportal.logging_config import get_logger, log_with_context

router = APIRouter(prefix="/api/employer/assessments")
logger = get_logger("http")


# ── Pydantic schemas ─────────────────────────────────────────
# Field types are loose on purpose: the service layer validates and
# reports problems per question ("Question 2, Option B is required").

class QuestionPayload(BaseModel):
    question: Optional[str] = None
    type: Optional[str] = None
    options: Optional[List[Any]] = None
    correct_answer: Any = None
    marks: Any = None
    explanation: Optional[str] = None


class AssessmentRequest(BaseModel):
    """Schema for creating or replacing an assessment."""
    title: Optional[str] = None
    type: Optional[str] = None
    designation: Optional[str] = None
    description: Optional[str] = None
    instructions: Optional[str] = None
    timer: Any = None
    passing_percentage: Any = None
    questions: List[QuestionPayload] = Field(default_factory=list)


@router.post("", status_code=201)
def create_assessment(
    request: AssessmentRequest,
    actor: AuthenticatedActor = Depends(require_employer),
    db: Session = Depends(get_db)
):
    """Create a published assessment owned by the calling employer."""
    assessment = assessment_service.create_assessment(db, actor, request.model_dump())
    return {"success": True, "assessment": assessment_service.serialize_assessment(assessment)}


@router.get("")
def list_assessments(
    actor: AuthenticatedActor = Depends(require_employer),
    db: Session = Depends(get_db)
):
    """List the employer's assessments by serial number."""
    start_time = time.time()
    assessments = assessment_service.list_assessments(db, actor)

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO", "Listed {} assessments".format(len(assessments)),
                     context={"employer_id": actor.id},
                     extra_data={"duration_ms": round(duration_ms, 2)})

    return {
        "success": True,
        "assessments": [assessment_service.serialize_assessment(a) for a in assessments]
    }


@router.get("/attempts/{attempt_id}")
def get_attempt_details(
    attempt_id: str,
    actor: AuthenticatedActor = Depends(require_employer),
    db: Session = Depends(get_db)
):
    """Full attempt view; 403 when the attempt's assessment belongs to someone else."""
    attempt = attempt_service.get_attempt_for_employer(db, actor, attempt_id)
    return {"success": True, "attempt": attempt_service.serialize_attempt(attempt)}


@router.get("/{assessment_id}")
def get_assessment(
    assessment_id: str,
    actor: AuthenticatedActor = Depends(require_employer),
    db: Session = Depends(get_db)
):
    assessment = assessment_service.get_owned_assessment(db, actor, assessment_id)
    return {"success": True, "assessment": assessment_service.serialize_assessment(assessment)}


@router.put("/{assessment_id}")
def update_assessment(
    assessment_id: str,
    request: AssessmentRequest,
    actor: AuthenticatedActor = Depends(require_employer),
    db: Session = Depends(get_db)
):
    assessment = assessment_service.update_assessment(db, actor, assessment_id, request.model_dump())
    return {"success": True, "assessment": assessment_service.serialize_assessment(assessment)}


@router.delete("/{assessment_id}")
def delete_assessment(
    assessment_id: str,
    actor: AuthenticatedActor = Depends(require_employer),
    db: Session = Depends(get_db)
):
    assessment_service.delete_assessment(db, actor, assessment_id)
    return {"success": True, "message": "Assessment deleted successfully"}


@router.get("/{assessment_id}/results")
def get_assessment_results(
    assessment_id: str,
    actor: AuthenticatedActor = Depends(require_employer),
    db: Session = Depends(get_db)
):
    """Completed attempts for the assessment with candidate details, newest first."""
    assessment, attempts = attempt_service.list_assessment_results(db, actor, assessment_id)
    results = []
    for attempt in attempts:
        entry = attempt_service.serialize_result(attempt)
        entry["candidate"] = attempt_service.serialize_candidate(attempt)
        results.append(entry)

    return {
        "success": True,
        "assessment": assessment_service.serialize_assessment(assessment),
        "results": results
    }
