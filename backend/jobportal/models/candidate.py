"""
Candidate model - job seekers who apply to jobs and take assessments.

Candidate profiles are managed by the wider portal; this service only
reads name and contact details for employer result views.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, DateTime, String
from sqlalchemy.orm import relationship
from jobportal.database import Base


class Candidate(Base):
    """SQLAlchemy model for the candidates table."""
    __tablename__ = "candidates"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique candidate identifier")
    name = Column(Text, nullable=False,
                  doc="Candidate's full name")
    email = Column(Text, nullable=True,
                   doc="Contact email")
    phone = Column(Text, nullable=True,
                   doc="Contact phone number")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc).replace(tzinfo=None),
                        doc="Timestamp when the candidate registered")

    applications = relationship("Application", back_populates="candidate")

    def __repr__(self):
        return f"<Candidate(id={self.id}, name='{self.name}')>"
