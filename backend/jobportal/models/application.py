"""
Application model - a candidate's application to a job.

The application is owned by the wider portal. This service writes a
denormalized summary of the assessment outcome onto it so review screens
can show it without loading the attempt.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, Float, DateTime, ForeignKey, String, Index
from sqlalchemy.orm import relationship
from jobportal.database import Base

ASSESSMENT_PENDING = "pending"
ASSESSMENT_AVAILABLE = "available"
ASSESSMENT_IN_PROGRESS = "in_progress"
ASSESSMENT_COMPLETED = "completed"


class Application(Base):
    """
    SQLAlchemy model for the applications table.

    assessment_status moves pending → available (set by the employer's
    shortlisting flow) → in_progress (on start) → completed (on submit).
    """
    __tablename__ = "applications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique application identifier")
    job_id = Column(String(36), ForeignKey("jobs.id"), nullable=False,
                    doc="Job applied to")
    candidate_id = Column(String(36), ForeignKey("candidates.id"), nullable=False,
                          doc="Candidate who applied")
    assessment_status = Column(Text, nullable=False, default=ASSESSMENT_PENDING,
                               doc="pending | available | in_progress | completed")
    assessment_attempt_id = Column(String(36), nullable=True,
                                   doc="Attempt taken for this application")
    assessment_score = Column(Float, nullable=True,
                              doc="Marks scored in the assessment")
    assessment_percentage = Column(Float, nullable=True,
                                   doc="Percentage scored, 2 decimals")
    assessment_result = Column(Text, nullable=True,
                               doc="pass | fail")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc).replace(tzinfo=None),
                        doc="Timestamp when the candidate applied")

    job = relationship("Job", back_populates="applications")
    candidate = relationship("Candidate", back_populates="applications")

    __table_args__ = (
        Index("ix_applications_candidate_id", "candidate_id"),
        Index("ix_applications_assessment_status", "assessment_status"),
    )

    def __repr__(self):
        return f"<Application(id={self.id}, job={self.job_id}, status='{self.assessment_status}')>"
