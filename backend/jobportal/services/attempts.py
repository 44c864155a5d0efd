"""
Attempt Lifecycle Service - the state machine behind taking an assessment.

Transitions:
    (none) --start--> in_progress --submit--> completed | expired

While in_progress an attempt accepts answers, file answers and violation
reports. Submitting scores the stored answers against the question
snapshot taken at first start and marks the attempt expired when the
elapsed time exceeds the timer. Terminal attempts reject every mutation.

Expiry is detected lazily at submit time; there is no background sweep.
An attempt that is never submitted stays in_progress.
"""

import json
import time
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from jobportal.auth import AuthenticatedActor
from jobportal.errors import (
    ValidationError, NotFoundError, AuthorizationError, StateConflictError
)
from jobportal.models.application import (
    Application, ASSESSMENT_IN_PROGRESS, ASSESSMENT_COMPLETED
)
from jobportal.models.assessment import (
    Assessment, QUESTION_MCQ, QUESTION_SUBJECTIVE, QUESTION_UPLOAD
)
from jobportal.models.attempt import (
    AssessmentAttempt, AttemptAnswer, AttemptViolation,
    ATTEMPT_IN_PROGRESS, ATTEMPT_COMPLETED, ATTEMPT_EXPIRED
)
from jobportal.services import scoring, uploads
from jobportal.logging_config import get_logger, log_with_context

logger = get_logger("attempts")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_timestamp(value) -> Optional[datetime]:
    """
    Parse an ISO 8601 timestamp (or pass a datetime through) into a naive
    UTC datetime. Returns None if parsing fails.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value:
        ts_str = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            dt = datetime.fromisoformat(ts_str)
        except ValueError:
            log_with_context(logger, "WARNING", "Failed to parse timestamp: {}".format(value))
            return None
    else:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


# ── Lookups and guards ───────────────────────────────────────

def _find_attempt(db: Session, assessment_id: str, candidate_id: str,
                  application_id: str) -> Optional[AssessmentAttempt]:
    return db.query(AssessmentAttempt).filter(
        AssessmentAttempt.assessment_id == assessment_id,
        AssessmentAttempt.candidate_id == candidate_id,
        AssessmentAttempt.application_id == application_id
    ).first()


def get_own_attempt(db: Session, actor: AuthenticatedActor, attempt_id: str) -> AssessmentAttempt:
    attempt = db.query(AssessmentAttempt).filter(
        AssessmentAttempt.id == attempt_id,
        AssessmentAttempt.candidate_id == actor.id
    ).first()
    if not attempt:
        raise NotFoundError("Attempt not found")
    return attempt


def _reject_terminal(attempt: AssessmentAttempt):
    if attempt.status == ATTEMPT_COMPLETED:
        raise StateConflictError("Assessment already completed. Retakes are not allowed")
    if attempt.status == ATTEMPT_EXPIRED:
        raise StateConflictError("Assessment time expired. Retakes are not allowed")


def _require_in_progress(attempt: AssessmentAttempt):
    if attempt.status != ATTEMPT_IN_PROGRESS:
        raise StateConflictError("Assessment is not in progress")


def _question_at(attempt: AssessmentAttempt, question_index) -> tuple:
    index = scoring.coerce_int(question_index)
    questions = attempt.questions
    if index is None or not 0 <= index < len(questions):
        raise ValidationError("Invalid question index")
    return index, questions[index]


def _time_spent(value) -> int:
    seconds = scoring.coerce_int(value)
    return seconds if seconds and seconds > 0 else 0


def _snapshot(assessment: Assessment) -> str:
    return json.dumps([q.to_dict(include_answer_key=True) for q in assessment.questions])


def _upsert_answer(attempt: AssessmentAttempt, index: int, **fields) -> AttemptAnswer:
    """Overwrite the answer at index, or create it; one row per index."""
    answer = attempt.answers.get(index)
    if answer is None:
        answer = AttemptAnswer(question_index=index)
        attempt.answers[index] = answer
    for name in ("selected_answer", "text_answer", "file_name", "file_original_name",
                 "file_mimetype", "file_size", "file_path", "file_uploaded_at"):
        setattr(answer, name, fields.get(name))
    answer.time_spent = fields.get("time_spent", 0)
    answer.answered_at = _utcnow()
    attempt.current_question = max(attempt.current_question or 0, index + 1)
    return answer


def _details_text(details) -> Optional[str]:
    if details is None or isinstance(details, str):
        return details
    return json.dumps(details)


def _append_violation(attempt: AssessmentAttempt, violation_type: str,
                      details=None, timestamp: datetime = None) -> AttemptViolation:
    violation = AttemptViolation(
        sequence=len(attempt.violations),
        type=violation_type,
        details=details,
        timestamp=timestamp or _utcnow(),
    )
    attempt.violations.append(violation)
    return violation


# ── Transitions ──────────────────────────────────────────────

def start_attempt(db: Session, actor: AuthenticatedActor, assessment_id: str,
                  job_id: Optional[str], application_id: str) -> AssessmentAttempt:
    """
    Start (or restart) the candidate's attempt for an application.

    A fresh attempt snapshots the assessment's questions and total marks.
    Restarting an in_progress attempt keeps its snapshot and answers but
    resets the clock and the resume position.
    """
    application = db.query(Application).filter(
        Application.id == application_id,
        Application.candidate_id == actor.id
    ).first()
    if not application:
        raise NotFoundError("Application not found")

    attempt = _find_attempt(db, assessment_id, actor.id, application_id)
    if attempt:
        _reject_terminal(attempt)

    assessment = db.query(Assessment).filter(Assessment.id == assessment_id).first()
    if not assessment:
        raise NotFoundError("Assessment not found")

    if attempt is None:
        attempt = AssessmentAttempt(
            assessment_id=assessment.id,
            candidate_id=actor.id,
            job_id=job_id or application.job_id,
            application_id=application.id,
            total_marks=scoring.total_marks_for([q.to_dict() for q in assessment.questions]),
            timer=assessment.timer,
            passing_percentage=assessment.passing_percentage,
            questions_snapshot=_snapshot(assessment),
        )
        db.add(attempt)
        try:
            db.flush()
        except IntegrityError:
            # A concurrent start for the same triple won the insert
            db.rollback()
            log_with_context(logger, "WARNING", "Concurrent start detected, reusing attempt",
                             context={"assessment_id": assessment_id, "application_id": application_id})
            attempt = _find_attempt(db, assessment_id, actor.id, application_id)
            if attempt is None:
                raise
            _reject_terminal(attempt)
            application = db.query(Application).filter(Application.id == application_id).first()

    now = _utcnow()
    attempt.status = ATTEMPT_IN_PROGRESS
    attempt.start_time = now
    attempt.time_remaining = attempt.timer * 60
    attempt.terms_accepted = True
    attempt.terms_accepted_at = now
    attempt.current_question = 0

    application.assessment_status = ASSESSMENT_IN_PROGRESS
    application.assessment_attempt_id = attempt.id

    db.commit()
    db.refresh(attempt)

    log_with_context(logger, "INFO", "Attempt started",
                     context={"attempt_id": attempt.id, "assessment_id": assessment_id,
                              "candidate_id": actor.id, "application_id": application_id},
                     extra_data={"time_remaining": attempt.time_remaining,
                                 "total_marks": attempt.total_marks})
    return attempt


def submit_answer(db: Session, actor: AuthenticatedActor, attempt_id: str, question_index,
                  selected_answer=None, text_answer=None, time_spent=0) -> AttemptAnswer:
    """Store (or overwrite) the answer to an mcq or subjective question. No scoring."""
    requested = scoring.coerce_int(question_index)
    if requested is None or requested < 0:
        raise ValidationError("Invalid question index")

    attempt = get_own_attempt(db, actor, attempt_id)
    _require_in_progress(attempt)
    index, question = _question_at(attempt, question_index)
    kind = question.get("type") or QUESTION_MCQ

    if kind == QUESTION_MCQ:
        selected = scoring.coerce_int(selected_answer)
        if selected is None or not 0 <= selected < len(question.get("options") or []):
            raise ValidationError("Invalid answer option")
        answer = _upsert_answer(attempt, index, selected_answer=selected,
                                time_spent=_time_spent(time_spent))
    elif kind == QUESTION_SUBJECTIVE:
        if not isinstance(text_answer, str) or not text_answer.strip():
            raise ValidationError("Answer text is required")
        answer = _upsert_answer(attempt, index, text_answer=text_answer.strip(),
                                time_spent=_time_spent(time_spent))
    else:
        raise ValidationError("Upload questions must be answered with a file")

    db.commit()
    db.refresh(attempt)

    log_with_context(logger, "DEBUG", "Answer saved for question {}".format(index),
                     context={"attempt_id": attempt.id, "candidate_id": actor.id})
    return answer


def upload_answer(db: Session, actor: AuthenticatedActor, attempt_id: str, question_index,
                  original_name: str, mimetype: str, content: bytes,
                  time_spent=0) -> AttemptAnswer:
    """Store a file as the answer to an upload question."""
    uploads.check_upload_policy(mimetype, len(content))

    attempt = get_own_attempt(db, actor, attempt_id)
    _require_in_progress(attempt)
    index, question = _question_at(attempt, question_index)
    if question.get("type") != QUESTION_UPLOAD:
        raise ValidationError("Question is not an upload type")

    previous = attempt.answers.get(index)
    previous_path = previous.file_path if previous is not None else None

    stored = uploads.store_upload(content, original_name, mimetype)
    try:
        answer = _upsert_answer(
            attempt, index,
            file_name=stored["filename"],
            file_original_name=stored["original_name"],
            file_mimetype=stored["mimetype"],
            file_size=stored["size"],
            file_path=stored["path"],
            file_uploaded_at=stored["uploaded_at"],
            time_spent=_time_spent(time_spent),
        )
        db.commit()
    except Exception:
        db.rollback()
        uploads.discard_upload(stored["path"])
        raise

    if previous_path and previous_path != stored["path"]:
        uploads.discard_upload(previous_path)
    db.refresh(attempt)

    log_with_context(logger, "INFO", "File answer saved for question {}".format(index),
                     context={"attempt_id": attempt.id, "candidate_id": actor.id},
                     extra_data={"size": stored["size"], "mimetype": mimetype})
    return answer


def record_violation(db: Session, actor: AuthenticatedActor, attempt_id: str,
                     violation_type, details=None) -> AttemptViolation:
    """Append a proctoring event. Never changes the attempt's status."""
    if not isinstance(violation_type, str) or not violation_type.strip():
        raise ValidationError("Violation type is required")

    attempt = get_own_attempt(db, actor, attempt_id)
    _require_in_progress(attempt)

    violation = _append_violation(attempt, violation_type.strip(), _details_text(details))
    db.commit()

    log_with_context(logger, "WARNING", "Violation recorded: {}".format(violation.type),
                     context={"attempt_id": attempt.id, "candidate_id": actor.id},
                     extra_data={"total_violations": len(attempt.violations)})
    return violation


def submit_attempt(db: Session, actor: AuthenticatedActor, attempt_id: str,
                   violations: list = None) -> dict:
    """
    Finalize an attempt exactly once: score it, decide completed vs expired,
    append any client-side violations and push the outcome onto the
    linked application.
    """
    start_time = time.time()

    attempt = get_own_attempt(db, actor, attempt_id)
    if attempt.is_terminal:
        raise StateConflictError("Assessment already {}".format(attempt.status))
    _require_in_progress(attempt)

    answers = {index: answer.to_dict() for index, answer in attempt.answers.items()}
    summary = scoring.score_attempt(answers, attempt.questions, attempt.total_marks,
                                    attempt.passing_percentage, attempt_id=attempt.id)

    now = _utcnow()
    elapsed = (now - attempt.start_time).total_seconds() if attempt.start_time else 0
    is_expired = elapsed > attempt.timer * 60

    # Only the submit whose update still sees in_progress finalizes the attempt
    claimed = db.query(AssessmentAttempt).filter(
        AssessmentAttempt.id == attempt.id,
        AssessmentAttempt.status == ATTEMPT_IN_PROGRESS
    ).update({
        AssessmentAttempt.status: ATTEMPT_EXPIRED if is_expired else ATTEMPT_COMPLETED,
        AssessmentAttempt.end_time: now,
        AssessmentAttempt.score: summary["score"],
        AssessmentAttempt.percentage: summary["percentage"],
        AssessmentAttempt.result: summary["result"],
        AssessmentAttempt.updated_at: now,
    }, synchronize_session=False)
    if claimed == 0:
        db.rollback()
        db.refresh(attempt)
        log_with_context(logger, "WARNING", "Concurrent submit lost, attempt already finalized",
                         context={"attempt_id": attempt.id, "candidate_id": actor.id},
                         extra_data={"status": attempt.status})
        raise StateConflictError("Assessment already {}".format(attempt.status))
    db.refresh(attempt)

    seen = {(v.type, v.timestamp) for v in attempt.violations}
    for item in violations or []:
        if not isinstance(item, dict):
            continue
        violation_type = item.get("type")
        if not isinstance(violation_type, str) or not violation_type.strip():
            continue
        timestamp = parse_timestamp(item.get("timestamp")) or now
        key = (violation_type.strip(), timestamp)
        if key in seen:
            continue
        seen.add(key)
        _append_violation(attempt, key[0], _details_text(item.get("details")), timestamp)

    application = db.query(Application).filter(Application.id == attempt.application_id).first()
    if application:
        application.assessment_status = ASSESSMENT_COMPLETED
        application.assessment_attempt_id = attempt.id
        application.assessment_score = summary["score"]
        application.assessment_percentage = summary["percentage"]
        application.assessment_result = summary["result"]
    else:
        log_with_context(logger, "WARNING", "Linked application missing on submit",
                         context={"attempt_id": attempt.id, "application_id": attempt.application_id})

    db.commit()

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Attempt submitted: {} with {}/{} ({})".format(
            attempt.status, summary["score"], summary["total_marks"], summary["result"]),
        context={"attempt_id": attempt.id, "candidate_id": actor.id,
                 "assessment_id": attempt.assessment_id},
        extra_data={"duration_ms": round(duration_ms, 2),
                    "elapsed_seconds": round(elapsed, 2),
                    "violations": len(attempt.violations)})

    return dict(summary, status=attempt.status)


# ── Results ──────────────────────────────────────────────────

def count_correct(attempt: AssessmentAttempt) -> int:
    questions = attempt.questions
    return sum(
        1 for index, answer in attempt.answers.items()
        if 0 <= index < len(questions)
        and (questions[index].get("type") or QUESTION_MCQ) == QUESTION_MCQ
        and scoring.is_correct_choice(questions[index], answer.to_dict())
    )


def get_candidate_result(db: Session, actor: AuthenticatedActor, attempt_id: str = None,
                         application_id: str = None) -> AssessmentAttempt:
    """Completed attempt of the candidate, looked up by attempt or application id."""
    query = db.query(AssessmentAttempt).filter(
        AssessmentAttempt.candidate_id == actor.id,
        AssessmentAttempt.status == ATTEMPT_COMPLETED
    )
    if attempt_id is not None:
        query = query.filter(AssessmentAttempt.id == attempt_id)
    else:
        query = query.filter(AssessmentAttempt.application_id == application_id)
    attempt = query.first()
    if not attempt:
        raise NotFoundError("Result not found")
    return attempt


def list_assessment_results(db: Session, actor: AuthenticatedActor,
                            assessment_id: str) -> tuple:
    """The employer's assessment and its completed attempts, newest first."""
    assessment = db.query(Assessment).filter(
        Assessment.id == assessment_id,
        Assessment.employer_id == actor.id
    ).first()
    if not assessment:
        raise NotFoundError("Assessment not found")

    attempts = db.query(AssessmentAttempt).options(
        joinedload(AssessmentAttempt.candidate)
    ).filter(
        AssessmentAttempt.assessment_id == assessment_id,
        AssessmentAttempt.status == ATTEMPT_COMPLETED
    ).order_by(AssessmentAttempt.end_time.desc()).all()
    return assessment, attempts


def get_attempt_for_employer(db: Session, actor: AuthenticatedActor,
                             attempt_id: str) -> AssessmentAttempt:
    attempt = db.query(AssessmentAttempt).options(
        joinedload(AssessmentAttempt.candidate)
    ).filter(AssessmentAttempt.id == attempt_id).first()
    if not attempt:
        raise NotFoundError("Attempt not found")

    assessment = db.query(Assessment).filter(Assessment.id == attempt.assessment_id).first()
    if not assessment:
        raise NotFoundError("Assessment not found")
    if assessment.employer_id != actor.id:
        raise AuthorizationError("Unauthorized")
    return attempt


# ── Serializers ──────────────────────────────────────────────

def _iso(value):
    return value.isoformat() if value else None


def serialize_attempt_summary(attempt: AssessmentAttempt) -> dict:
    return {
        "id": attempt.id,
        "assessment_id": attempt.assessment_id,
        "application_id": attempt.application_id,
        "job_id": attempt.job_id,
        "status": attempt.status,
        "start_time": _iso(attempt.start_time),
        "time_remaining": attempt.time_remaining,
        "total_marks": attempt.total_marks,
        "current_question": attempt.current_question,
        "answered_questions": sorted(attempt.answers.keys()),
    }


def serialize_result(attempt: AssessmentAttempt) -> dict:
    return {
        "attempt_id": attempt.id,
        "status": attempt.status,
        "score": attempt.score,
        "total_marks": attempt.total_marks,
        "percentage": attempt.percentage,
        "result": attempt.result,
        "correct_answers": count_correct(attempt),
        "total_questions": len(attempt.questions),
        "end_time": _iso(attempt.end_time),
        "violations": [v.to_dict() for v in attempt.violations],
    }


def serialize_candidate(attempt: AssessmentAttempt) -> Optional[dict]:
    candidate = attempt.candidate
    if not candidate:
        return None
    return {
        "id": candidate.id,
        "name": candidate.name,
        "email": candidate.email,
        "phone": candidate.phone,
    }


def serialize_attempt(attempt: AssessmentAttempt) -> dict:
    """Full attempt view for the owning employer, answer key included."""
    data = serialize_attempt_summary(attempt)
    data.update(serialize_result(attempt))
    data.update({
        "id": attempt.id,
        "candidate": serialize_candidate(attempt),
        "end_time": _iso(attempt.end_time),
        "terms_accepted": attempt.terms_accepted,
        "terms_accepted_at": _iso(attempt.terms_accepted_at),
        "passing_percentage": attempt.passing_percentage,
        "timer": attempt.timer,
        "questions": attempt.questions,
        "answers": [attempt.answers[i].to_dict() for i in sorted(attempt.answers)],
    })
    return data
