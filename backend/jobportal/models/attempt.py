"""
Attempt models - one candidate's run through an assessment for one application.

AssessmentAttempt is the state machine record:
- in_progress: started, accepting answers and violations
- completed: submitted within the time limit and scored
- expired: submitted after the time limit and scored

Both terminal states are immutable. Answers are keyed by question index
(one row per index, overwritten on re-answer). Violations are an
append-only log.
"""

import uuid
import json
from datetime import datetime, timezone
from sqlalchemy import (
    Column, Text, Integer, Float, Boolean, DateTime, ForeignKey, String,
    Index, UniqueConstraint
)
from sqlalchemy.orm import relationship, attribute_keyed_dict
from jobportal.database import Base

ATTEMPT_IN_PROGRESS = "in_progress"
ATTEMPT_COMPLETED = "completed"
ATTEMPT_EXPIRED = "expired"
TERMINAL_STATUSES = (ATTEMPT_COMPLETED, ATTEMPT_EXPIRED)

RESULT_PASS = "pass"
RESULT_FAIL = "fail"


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


class AssessmentAttempt(Base):
    """
    SQLAlchemy model for the assessment_attempts table.

    (assessment_id, candidate_id, application_id) is unique so two
    concurrent starts cannot create two attempts. assessment_id carries no
    foreign key: attempts outlive a deleted assessment.

    questions_snapshot holds the questions, timer and passing percentage
    copied from the assessment at first start; answers are validated and
    scored against it so later edits to the assessment do not change the
    outcome of an attempt already under way.
    """
    __tablename__ = "assessment_attempts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique attempt identifier")
    assessment_id = Column(String(36), nullable=False,
                           doc="Assessment being taken")
    candidate_id = Column(String(36), ForeignKey("candidates.id"), nullable=False,
                          doc="Candidate taking the assessment")
    job_id = Column(String(36), nullable=True,
                    doc="Job the application belongs to")
    application_id = Column(String(36), ForeignKey("applications.id"), nullable=False,
                            doc="Application this attempt is linked to")
    status = Column(Text, nullable=False, default=ATTEMPT_IN_PROGRESS,
                    doc="in_progress | completed | expired")
    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)
    time_remaining = Column(Integer, nullable=False, default=0,
                            doc="Seconds allowed at start; advisory for the client timer")
    current_question = Column(Integer, nullable=False, default=0,
                              doc="Highest answered index + 1, used to resume")
    total_marks = Column(Integer, nullable=False, default=0,
                         doc="Sum of question marks, fixed at first start")
    timer = Column(Integer, nullable=False, default=30,
                   doc="Time limit in minutes, copied at first start")
    passing_percentage = Column(Float, nullable=False, default=60)
    questions_snapshot = Column(Text, nullable=False, default="[]",
                                doc="Questions as JSON, copied at first start")
    terms_accepted = Column(Boolean, nullable=False, default=False)
    terms_accepted_at = Column(DateTime, nullable=True)
    score = Column(Float, nullable=True)
    percentage = Column(Float, nullable=True)
    result = Column(Text, nullable=True,
                    doc="pass | fail")
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    candidate = relationship("Candidate")
    application = relationship("Application")
    answers = relationship(
        "AttemptAnswer",
        back_populates="attempt",
        collection_class=attribute_keyed_dict("question_index"),
        cascade="all, delete-orphan",
    )
    violations = relationship(
        "AttemptViolation",
        back_populates="attempt",
        order_by="AttemptViolation.sequence",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("assessment_id", "candidate_id", "application_id",
                         name="uq_attempts_assessment_candidate_application"),
        Index("ix_attempts_assessment_id", "assessment_id"),
        Index("ix_attempts_candidate_id", "candidate_id"),
        Index("ix_attempts_status", "status"),
    )

    @property
    def questions(self):
        """Parse the questions snapshot JSON string into a list of dicts."""
        if isinstance(self.questions_snapshot, list):
            return self.questions_snapshot
        try:
            return json.loads(self.questions_snapshot) if self.questions_snapshot else []
        except (json.JSONDecodeError, TypeError):
            return []

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    def __repr__(self):
        return f"<AssessmentAttempt(id={self.id}, candidate={self.candidate_id}, status='{self.status}')>"


class AttemptAnswer(Base):
    """SQLAlchemy model for the attempt_answers table (one row per question index)."""
    __tablename__ = "attempt_answers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    attempt_id = Column(String(36), ForeignKey("assessment_attempts.id", ondelete="CASCADE"),
                        nullable=False)
    question_index = Column(Integer, nullable=False)
    selected_answer = Column(Integer, nullable=True,
                             doc="Chosen option index (mcq)")
    text_answer = Column(Text, nullable=True,
                         doc="Free-text answer (subjective)")
    file_name = Column(Text, nullable=True,
                       doc="Stored file name (upload)")
    file_original_name = Column(Text, nullable=True)
    file_mimetype = Column(Text, nullable=True)
    file_size = Column(Integer, nullable=True)
    file_path = Column(Text, nullable=True,
                       doc="Storage reference of the uploaded file")
    file_uploaded_at = Column(DateTime, nullable=True)
    time_spent = Column(Integer, nullable=False, default=0,
                        doc="Seconds the candidate spent on the question")
    answered_at = Column(DateTime, default=_utcnow)

    attempt = relationship("AssessmentAttempt", back_populates="answers")

    __table_args__ = (
        UniqueConstraint("attempt_id", "question_index", name="uq_attempt_answers_index"),
    )

    @property
    def uploaded_file(self):
        if not self.file_name:
            return None
        return {
            "filename": self.file_name,
            "original_name": self.file_original_name,
            "mimetype": self.file_mimetype,
            "size": self.file_size,
            "path": self.file_path,
            "uploaded_at": self.file_uploaded_at.isoformat() if self.file_uploaded_at else None,
        }

    def to_dict(self):
        return {
            "question_index": self.question_index,
            "selected_answer": self.selected_answer,
            "text_answer": self.text_answer,
            "uploaded_file": self.uploaded_file,
            "time_spent": self.time_spent,
            "answered_at": self.answered_at.isoformat() if self.answered_at else None,
        }

    def __repr__(self):
        return f"<AttemptAnswer(attempt={self.attempt_id}, index={self.question_index})>"


class AttemptViolation(Base):
    """
    SQLAlchemy model for the attempt_violations table.

    Proctoring events reported by the client (tab_switch, copy_paste,
    right_click, window_blur). Informational only: recording one never
    changes the attempt's status.
    """
    __tablename__ = "attempt_violations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    attempt_id = Column(String(36), ForeignKey("assessment_attempts.id", ondelete="CASCADE"),
                        nullable=False, index=True)
    sequence = Column(Integer, nullable=False, default=0,
                      doc="Insertion order within the attempt")
    type = Column(Text, nullable=False)
    details = Column(Text, nullable=True)
    timestamp = Column(DateTime, nullable=False, default=_utcnow)

    attempt = relationship("AssessmentAttempt", back_populates="violations")

    def to_dict(self):
        return {
            "type": self.type,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "details": self.details,
        }

    def __repr__(self):
        return f"<AttemptViolation(attempt={self.attempt_id}, type='{self.type}')>"
