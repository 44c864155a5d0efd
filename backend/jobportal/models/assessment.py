"""
Assessment models - employer-authored quiz templates.

An Assessment owns an ordered list of AssessmentQuestion rows. Questions
are one of three kinds:
- mcq: options list plus the zero-based index of the correct option
- subjective: free-text answer, no options or answer key
- upload: file answer, no options or answer key
"""

import uuid
import json
from datetime import datetime, timezone
from sqlalchemy import (
    Column, Text, Integer, Float, DateTime, ForeignKey, String, UniqueConstraint
)
from sqlalchemy.orm import relationship
from jobportal.database import Base

QUESTION_MCQ = "mcq"
QUESTION_SUBJECTIVE = "subjective"
QUESTION_UPLOAD = "upload"
QUESTION_KINDS = (QUESTION_MCQ, QUESTION_SUBJECTIVE, QUESTION_UPLOAD)

STATUS_DRAFT = "draft"
STATUS_PUBLISHED = "published"


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Assessment(Base):
    """
    SQLAlchemy model for the assessments table.

    serial_number is a per-employer display ordinal, unique together with
    employer_id. total_questions is kept equal to len(questions) by the
    service layer on every create and update.
    """
    __tablename__ = "assessments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique assessment identifier")
    employer_id = Column(String(36), nullable=False,
                         doc="Employer who owns this assessment")
    serial_number = Column(Integer, nullable=False,
                           doc="Per-employer sequential number, starting at 1")
    title = Column(Text, nullable=False)
    type = Column(Text, nullable=False, default="Technical",
                  doc="Category tag (Technical, Aptitude, ...)")
    designation = Column(Text, nullable=False, default="",
                         doc="Role the assessment targets")
    description = Column(Text, nullable=False, default="")
    instructions = Column(Text, nullable=False, default="")
    timer = Column(Integer, nullable=False, default=30,
                   doc="Time limit in minutes")
    passing_percentage = Column(Float, nullable=False, default=60,
                                doc="Minimum percentage for a pass")
    status = Column(Text, nullable=False, default=STATUS_PUBLISHED,
                    doc="draft | published")
    total_questions = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    questions = relationship(
        "AssessmentQuestion",
        back_populates="assessment",
        order_by="AssessmentQuestion.position",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("employer_id", "serial_number", name="uq_assessments_employer_serial"),
    )

    @property
    def total_marks(self):
        return sum(q.marks or 1 for q in self.questions)

    def __repr__(self):
        return f"<Assessment(id={self.id}, serial={self.serial_number}, title='{self.title}')>"


class AssessmentQuestion(Base):
    """SQLAlchemy model for the assessment_questions table."""
    __tablename__ = "assessment_questions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    assessment_id = Column(String(36), ForeignKey("assessments.id", ondelete="CASCADE"),
                           nullable=False, index=True)
    position = Column(Integer, nullable=False,
                      doc="Zero-based order within the assessment")
    question = Column(Text, nullable=False,
                      doc="Question text")
    type = Column(Text, nullable=False, default=QUESTION_MCQ,
                  doc="mcq | subjective | upload")
    options = Column(Text, nullable=False, default="[]",
                     doc="Option strings as a JSON list (mcq only)")
    correct_answer = Column(Integer, nullable=True,
                            doc="Zero-based index of the correct option (mcq only)")
    marks = Column(Integer, nullable=False, default=1)
    explanation = Column(Text, nullable=False, default="")

    assessment = relationship("Assessment", back_populates="questions")

    @property
    def options_list(self):
        """Parse the options JSON string into a list."""
        if isinstance(self.options, list):
            return self.options
        try:
            return json.loads(self.options) if self.options else []
        except (json.JSONDecodeError, TypeError):
            return []

    def to_dict(self, include_answer_key=True):
        data = {
            "question": self.question,
            "type": self.type,
            "options": self.options_list,
            "marks": self.marks,
        }
        if include_answer_key:
            data["correct_answer"] = self.correct_answer
            data["explanation"] = self.explanation
        return data

    def __repr__(self):
        return f"<AssessmentQuestion(assessment={self.assessment_id}, position={self.position})>"
