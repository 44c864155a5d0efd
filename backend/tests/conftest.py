"""Shared fixtures: a throwaway SQLite database, an API client and portal rows."""

import os
import tempfile

_tmp_dir = tempfile.mkdtemp(prefix="jobportal-tests-")
os.environ["DATABASE_URL"] = "sqlite:///{}".format(os.path.join(_tmp_dir, "test.db"))
os.environ["UPLOAD_DIR"] = os.path.join(_tmp_dir, "uploads")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from jobportal.database import SessionLocal, create_tables, drop_tables  # noqa: E402
from jobportal.main import app  # noqa: E402
from jobportal.models import Application, Candidate, Job  # noqa: E402
from jobportal.models.application import ASSESSMENT_AVAILABLE  # noqa: E402

EMPLOYER_ID = "employer-1"
OTHER_EMPLOYER_ID = "employer-2"
CANDIDATE_ID = "candidate-1"

EMPLOYER_HEADERS = {"X-User-Id": EMPLOYER_ID, "X-User-Role": "employer"}
OTHER_EMPLOYER_HEADERS = {"X-User-Id": OTHER_EMPLOYER_ID, "X-User-Role": "employer"}
CANDIDATE_HEADERS = {"X-User-Id": CANDIDATE_ID, "X-User-Role": "candidate"}


def mcq_payload(**overrides):
    """Two mcq questions worth 1 and 2 marks, correct options 0 and 1."""
    payload = {
        "title": "  Python Basics  ",
        "type": "Technical",
        "designation": "Backend Developer",
        "description": "Core language questions",
        "instructions": "Answer every question",
        "timer": 10,
        "questions": [
            {
                "question": "Which keyword defines a function?",
                "type": "mcq",
                "options": ["def", "func", "lambda"],
                "correct_answer": 0,
                "marks": 1,
                "explanation": "def starts a function definition",
            },
            {
                "question": "What does len([1, 2]) return?",
                "type": "mcq",
                "options": ["1", "2", "3"],
                "correct_answer": 1,
                "marks": 2,
            },
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture(autouse=True)
def reset_database():
    drop_tables()
    create_tables()
    yield


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def create_assessment(client):
    def _create(payload=None, headers=EMPLOYER_HEADERS):
        resp = client.post("/api/employer/assessments", json=payload or mcq_payload(), headers=headers)
        assert resp.status_code == 201, resp.json()
        return resp.json()["assessment"]
    return _create


@pytest.fixture
def make_application(db):
    """Candidate + job + application with the assessment marked available."""
    def _make(assessment_id, candidate_id=CANDIDATE_ID, employer_id=EMPLOYER_ID,
              status=ASSESSMENT_AVAILABLE, job_title="Backend Developer"):
        if db.get(Candidate, candidate_id) is None:
            db.add(Candidate(id=candidate_id, name="Asha Rao",
                             email="asha@example.com", phone="9876543210"))
        job = Job(employer_id=employer_id, title=job_title, assessment_id=assessment_id)
        db.add(job)
        db.flush()
        application = Application(job_id=job.id, candidate_id=candidate_id,
                                  assessment_status=status)
        db.add(application)
        db.commit()
        return {"job_id": job.id, "application_id": application.id}
    return _make


@pytest.fixture
def started_attempt(client, create_assessment, make_application):
    """An mcq assessment with an in-progress attempt for the default candidate."""
    def _start(payload=None):
        assessment = create_assessment(payload)
        links = make_application(assessment["id"])
        resp = client.post("/api/candidate/assessments/start", json={
            "assessment_id": assessment["id"],
            "job_id": links["job_id"],
            "application_id": links["application_id"],
        }, headers=CANDIDATE_HEADERS)
        assert resp.status_code == 200, resp.json()
        return assessment, links, resp.json()["attempt"]
    return _start
