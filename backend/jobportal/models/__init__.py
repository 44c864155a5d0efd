from jobportal.models.candidate import Candidate
from jobportal.models.job import Job
from jobportal.models.application import Application
from jobportal.models.assessment import Assessment, AssessmentQuestion
from jobportal.models.attempt import AssessmentAttempt, AttemptAnswer, AttemptViolation

__all__ = [
    "Candidate", "Job", "Application", "Assessment", "AssessmentQuestion",
    "AssessmentAttempt", "AttemptAnswer", "AttemptViolation",
]
