"""
Assessment Service - employer CRUD and candidate views of assessment definitions.

Implements:
1. Payload validation with question-level messages the UI shows verbatim
2. Normalization (trimmed text, no answer key on subjective/upload questions)
3. Per-employer serial numbers
4. Owner-scoped read, update and delete
5. Candidate-facing views with the answer key stripped
"""

import json
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from jobportal.auth import AuthenticatedActor
from jobportal.config import (
    DEFAULT_ASSESSMENT_TYPE, DEFAULT_TIMER_MINUTES, DEFAULT_PASSING_PERCENTAGE
)
from jobportal.errors import ValidationError, NotFoundError
from jobportal.models.application import Application, ASSESSMENT_AVAILABLE
from jobportal.models.assessment import (
    Assessment, AssessmentQuestion, QUESTION_KINDS, QUESTION_MCQ, STATUS_PUBLISHED
)
from jobportal.models.job import Job
from jobportal.services.scoring import coerce_int
from jobportal.logging_config import get_logger, log_with_context

logger = get_logger("assessments")

# Attempts to find a free serial number before giving up
SERIAL_RETRIES = 3


def _clean(value) -> str:
    return value.strip() if isinstance(value, str) else ""


def _option_letter(index: int) -> str:
    return chr(ord("A") + index) if index < 26 else str(index + 1)


def validate_payload(payload: dict) -> dict:
    """
    Validate an assessment payload and return its normalized form.

    Raises ValidationError naming the first offending field, e.g.
    "Question 2, Option C is required".
    """
    title = _clean(payload.get("title"))
    if not title:
        raise ValidationError("Assessment title is required")

    questions = payload.get("questions")
    if not isinstance(questions, list) or not questions:
        raise ValidationError("At least one question is required")

    timer = payload.get("timer")
    if timer in (None, ""):
        timer = DEFAULT_TIMER_MINUTES
    timer = coerce_int(timer)
    if timer is None or timer < 1:
        raise ValidationError("Timer must be at least 1 minute")

    passing = payload.get("passing_percentage")
    if passing in (None, ""):
        passing = DEFAULT_PASSING_PERCENTAGE
    if isinstance(passing, bool) or not isinstance(passing, (int, float)) or not 0 <= passing <= 100:
        raise ValidationError("Passing percentage must be between 0 and 100")

    normalized_questions = []
    for i, question in enumerate(questions):
        number = i + 1
        if not isinstance(question, dict):
            raise ValidationError(f"Question {number} text is required")

        text = _clean(question.get("question"))
        if not text:
            raise ValidationError(f"Question {number} text is required")

        kind = question.get("type") or QUESTION_MCQ
        if kind not in QUESTION_KINDS:
            raise ValidationError(f"Question {number} has an invalid type")

        options = []
        correct_answer = None
        if kind == QUESTION_MCQ:
            raw_options = question.get("options")
            if not isinstance(raw_options, list) or len(raw_options) < 2:
                raise ValidationError(f"Question {number} must have at least 2 options")
            for j, option in enumerate(raw_options):
                if not _clean(option):
                    raise ValidationError(f"Question {number}, Option {_option_letter(j)} is required")
            options = [_clean(o) for o in raw_options]

            correct_answer = coerce_int(question.get("correct_answer"))
            if correct_answer is None or not 0 <= correct_answer < len(options):
                raise ValidationError(f"Question {number} must have a valid correct answer selected")

        marks = question.get("marks")
        marks = 1 if marks is None else coerce_int(marks)
        if marks is None or marks < 1:
            raise ValidationError(f"Question {number} must have at least 1 mark")

        normalized_questions.append({
            "question": text,
            "type": kind,
            "options": options,
            "correct_answer": correct_answer,
            "marks": marks,
            "explanation": _clean(question.get("explanation")),
        })

    return {
        "title": title,
        "type": _clean(payload.get("type")) or DEFAULT_ASSESSMENT_TYPE,
        "designation": _clean(payload.get("designation")),
        "description": _clean(payload.get("description")),
        "instructions": _clean(payload.get("instructions")),
        "timer": timer,
        "passing_percentage": float(passing),
        "questions": normalized_questions,
    }


def _build_questions(questions: list) -> list:
    return [
        AssessmentQuestion(
            position=position,
            question=q["question"],
            type=q["type"],
            options=json.dumps(q["options"]),
            correct_answer=q["correct_answer"],
            marks=q["marks"],
            explanation=q["explanation"],
        )
        for position, q in enumerate(questions)
    ]


def _apply(assessment: Assessment, data: dict):
    assessment.title = data["title"]
    assessment.type = data["type"]
    assessment.designation = data["designation"]
    assessment.description = data["description"]
    assessment.instructions = data["instructions"]
    assessment.timer = data["timer"]
    assessment.passing_percentage = data["passing_percentage"]
    assessment.questions = _build_questions(data["questions"])
    assessment.total_questions = len(data["questions"])


def next_serial_number(db: Session, employer_id: str) -> int:
    last = db.query(func.max(Assessment.serial_number)).filter(
        Assessment.employer_id == employer_id
    ).scalar()
    return (last or 0) + 1


def create_assessment(db: Session, actor: AuthenticatedActor, payload: dict) -> Assessment:
    """
    Validate and persist a new published assessment for the employer.

    Two concurrent creates can compute the same serial number; the unique
    (employer_id, serial_number) constraint rejects the loser, which
    retries with a fresh number.
    """
    data = validate_payload(payload)

    for attempt_no in range(1, SERIAL_RETRIES + 1):
        assessment = Assessment(
            employer_id=actor.id,
            serial_number=next_serial_number(db, actor.id),
            status=STATUS_PUBLISHED,
        )
        _apply(assessment, data)
        db.add(assessment)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            log_with_context(logger, "WARNING",
                "Serial number collision, retrying ({}/{})".format(attempt_no, SERIAL_RETRIES),
                context={"employer_id": actor.id})
            continue
        db.refresh(assessment)
        log_with_context(logger, "INFO",
            "Assessment created: #{} '{}'".format(assessment.serial_number, assessment.title),
            context={"assessment_id": assessment.id, "employer_id": actor.id},
            extra_data={"total_questions": assessment.total_questions})
        return assessment

    raise RuntimeError("Could not allocate a serial number for the assessment")


def get_owned_assessment(db: Session, actor: AuthenticatedActor, assessment_id: str) -> Assessment:
    assessment = db.query(Assessment).filter(
        Assessment.id == assessment_id,
        Assessment.employer_id == actor.id
    ).first()
    if not assessment:
        raise NotFoundError("Assessment not found")
    return assessment


def update_assessment(db: Session, actor: AuthenticatedActor, assessment_id: str,
                      payload: dict) -> Assessment:
    data = validate_payload(payload)
    assessment = get_owned_assessment(db, actor, assessment_id)
    _apply(assessment, data)
    db.commit()
    db.refresh(assessment)
    log_with_context(logger, "INFO", "Assessment updated: '{}'".format(assessment.title),
                     context={"assessment_id": assessment.id, "employer_id": actor.id},
                     extra_data={"total_questions": assessment.total_questions})
    return assessment


def delete_assessment(db: Session, actor: AuthenticatedActor, assessment_id: str):
    assessment = get_owned_assessment(db, actor, assessment_id)
    db.delete(assessment)
    db.commit()
    log_with_context(logger, "INFO", "Assessment deleted",
                     context={"assessment_id": assessment_id, "employer_id": actor.id})


def list_assessments(db: Session, actor: AuthenticatedActor) -> list:
    return db.query(Assessment).filter(
        Assessment.employer_id == actor.id
    ).order_by(Assessment.serial_number.asc()).all()


def get_assessment_for_candidate(db: Session, assessment_id: str) -> Assessment:
    assessment = db.query(Assessment).filter(Assessment.id == assessment_id).first()
    if not assessment:
        raise NotFoundError("Assessment not found")
    return assessment


def list_available_assessments(db: Session, actor: AuthenticatedActor) -> list:
    """
    Assessments the candidate may take now: one per application whose
    assessment_status is "available" and whose job carries an assessment.
    """
    applications = db.query(Application).join(Job).filter(
        Application.candidate_id == actor.id,
        Application.assessment_status == ASSESSMENT_AVAILABLE,
        Job.assessment_id.isnot(None)
    ).all()

    available = []
    for application in applications:
        job = application.job
        assessment = db.query(Assessment).filter(Assessment.id == job.assessment_id).first()
        if not assessment:
            continue
        entry = serialize_assessment(assessment, include_answer_key=False)
        entry.update({
            "job_title": job.title,
            "job_id": job.id,
            "application_id": application.id,
        })
        available.append(entry)
    return available


def serialize_assessment(assessment: Assessment, include_answer_key: bool = True) -> dict:
    """Serialize an Assessment for API responses; candidates never see the answer key."""
    return {
        "id": assessment.id,
        "employer_id": assessment.employer_id,
        "serial_number": assessment.serial_number,
        "title": assessment.title,
        "type": assessment.type,
        "designation": assessment.designation,
        "description": assessment.description,
        "instructions": assessment.instructions,
        "timer": assessment.timer,
        "passing_percentage": assessment.passing_percentage,
        "status": assessment.status,
        "total_questions": assessment.total_questions,
        "total_marks": assessment.total_marks,
        "questions": [q.to_dict(include_answer_key=include_answer_key) for q in assessment.questions],
        "created_at": assessment.created_at.isoformat() if assessment.created_at else None,
        "updated_at": assessment.updated_at.isoformat() if assessment.updated_at else None,
    }
