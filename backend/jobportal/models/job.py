"""
Job model - a posting owned by an employer, optionally gated by an assessment.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, DateTime, String
from sqlalchemy.orm import relationship
from jobportal.database import Base


class Job(Base):
    """
    SQLAlchemy model for the jobs table.

    ``assessment_id`` is a plain reference (no foreign key): deleting an
    assessment must not be blocked by the jobs that used it.
    """
    __tablename__ = "jobs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique job identifier")
    employer_id = Column(String(36), nullable=False, index=True,
                         doc="Employer who posted the job")
    title = Column(Text, nullable=False,
                   doc="Job title shown to candidates")
    assessment_id = Column(String(36), nullable=True,
                           doc="Assessment candidates must take for this job")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc).replace(tzinfo=None),
                        doc="Timestamp when the job was posted")

    applications = relationship("Application", back_populates="job")

    def __repr__(self):
        return f"<Job(id={self.id}, title='{self.title}')>"
