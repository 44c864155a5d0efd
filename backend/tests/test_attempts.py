"""API tests for the attempt lifecycle: start, answer, upload, violations, submit, results."""

import json
import os
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from jobportal import config
from jobportal.auth import ROLE_CANDIDATE, AuthenticatedActor
from jobportal.database import SessionLocal
from jobportal.errors import StateConflictError
from jobportal.models import Application, AssessmentAttempt, AttemptAnswer
from jobportal.services import attempts as attempt_service
from jobportal.services import scoring, uploads
from tests.conftest import (
    CANDIDATE_HEADERS, CANDIDATE_ID, EMPLOYER_HEADERS, OTHER_EMPLOYER_HEADERS, mcq_payload,
)

BASE = "/api/candidate/assessments"
CANDIDATE = AuthenticatedActor(id=CANDIDATE_ID, role=ROLE_CANDIDATE)


def answer(client, attempt_id, index, **fields):
    body = {"attempt_id": attempt_id, "question_index": index, "time_spent": 5}
    body.update(fields)
    return client.post(f"{BASE}/answer", json=body, headers=CANDIDATE_HEADERS)


def submit(client, attempt_id, violations=None):
    return client.post(f"{BASE}/submit", json={"attempt_id": attempt_id, "violations": violations},
                       headers=CANDIDATE_HEADERS)


def expire(db, attempt_id, minutes):
    attempt = db.get(AssessmentAttempt, attempt_id)
    attempt.start_time = attempt.start_time - timedelta(minutes=minutes)
    db.commit()


def mixed_payload():
    return mcq_payload(questions=[
        {"question": "Pick a", "options": ["a", "b"], "correct_answer": 0, "marks": 1},
        {"question": "Describe a decorator", "type": "subjective", "marks": 2},
        {"question": "Upload your solution", "type": "upload", "marks": 3},
    ])


# ── Start ────────────────────────────────────────────────────

def test_start_creates_attempt_and_links_application(started_attempt, db):
    _, links, attempt = started_attempt()

    assert attempt["status"] == "in_progress"
    assert attempt["time_remaining"] == 600
    assert attempt["total_marks"] == 3
    assert attempt["current_question"] == 0
    assert attempt["start_time"]

    application = db.get(Application, links["application_id"])
    assert application.assessment_status == "in_progress"
    assert application.assessment_attempt_id == attempt["id"]


def test_restart_reuses_attempt_and_resets_clock(client, started_attempt, db):
    assessment, links, attempt = started_attempt()
    answer(client, attempt["id"], 0, selected_answer=0)
    expire(db, attempt["id"], minutes=3)

    resp = client.post(f"{BASE}/start", json={
        "assessment_id": assessment["id"], "application_id": links["application_id"],
    }, headers=CANDIDATE_HEADERS)

    assert resp.status_code == 200
    restarted = resp.json()["attempt"]
    assert restarted["id"] == attempt["id"]
    assert restarted["current_question"] == 0
    assert restarted["answered_questions"] == [0]
    assert restarted["start_time"] > attempt["start_time"]
    db.expire_all()
    assert db.query(AssessmentAttempt).count() == 1


def test_start_requires_own_application(client, create_assessment, make_application):
    assessment = create_assessment()
    links = make_application(assessment["id"], candidate_id="someone-else")

    resp = client.post(f"{BASE}/start", json={
        "assessment_id": assessment["id"], "application_id": links["application_id"],
    }, headers=CANDIDATE_HEADERS)

    assert resp.status_code == 404
    assert resp.json()["message"] == "Application not found"


def test_start_unknown_assessment(client, make_application):
    links = make_application("missing-assessment")

    resp = client.post(f"{BASE}/start", json={
        "assessment_id": "missing-assessment", "application_id": links["application_id"],
    }, headers=CANDIDATE_HEADERS)

    assert resp.status_code == 404
    assert resp.json()["message"] == "Assessment not found"


def test_start_missing_fields_is_a_400(client):
    resp = client.post(f"{BASE}/start", json={"assessment_id": "x"}, headers=CANDIDATE_HEADERS)

    assert resp.status_code == 400
    assert resp.json()["success"] is False
    assert "application_id" in resp.json()["message"]


# ── Answers ──────────────────────────────────────────────────

def test_reanswer_overwrites_instead_of_duplicating(client, started_attempt, db):
    _, _, attempt = started_attempt()

    first = answer(client, attempt["id"], 1, selected_answer=0)
    second = answer(client, attempt["id"], 1, selected_answer=1)

    assert first.status_code == 200 and second.status_code == 200
    assert second.json()["current_question"] == 2
    rows = db.query(AttemptAnswer).filter(AttemptAnswer.attempt_id == attempt["id"]).all()
    assert len(rows) == 1
    assert rows[0].selected_answer == 1


def test_current_question_tracks_highest_index(client, started_attempt):
    _, _, attempt = started_attempt()

    answer(client, attempt["id"], 1, selected_answer=1)
    resp = answer(client, attempt["id"], 0, selected_answer=0)

    assert resp.json()["current_question"] == 2


def test_answer_validation(client, started_attempt):
    _, _, attempt = started_attempt()

    out_of_range = answer(client, attempt["id"], 5, selected_answer=0)
    negative = answer(client, attempt["id"], -1, selected_answer=0)
    bad_option = answer(client, attempt["id"], 0, selected_answer=3)
    no_option = answer(client, attempt["id"], 0)

    assert out_of_range.json()["message"] == "Invalid question index"
    assert negative.json()["message"] == "Invalid question index"
    assert bad_option.json()["message"] == "Invalid answer option"
    assert no_option.status_code == 400


def test_answer_by_kind(client, started_attempt):
    _, _, attempt = started_attempt(mixed_payload())

    blank_text = answer(client, attempt["id"], 1, text_answer="   ")
    text = answer(client, attempt["id"], 1, text_answer="  A wrapper  ")
    upload_via_answer = answer(client, attempt["id"], 2, text_answer="file?")

    assert blank_text.json()["message"] == "Answer text is required"
    assert text.status_code == 200
    assert text.json()["answer"]["text_answer"] == "A wrapper"
    assert upload_via_answer.json()["message"] == "Upload questions must be answered with a file"


def test_answer_to_foreign_attempt_is_not_found(client, started_attempt):
    _, _, attempt = started_attempt()
    stranger = {"X-User-Id": "candidate-2", "X-User-Role": "candidate"}

    resp = client.post(f"{BASE}/answer", json={
        "attempt_id": attempt["id"], "question_index": 0, "selected_answer": 0,
    }, headers=stranger)

    assert resp.status_code == 404
    assert resp.json()["message"] == "Attempt not found"


# ── Uploads ──────────────────────────────────────────────────

def upload(client, attempt_id, index, filename="solution.pdf", content=b"%PDF-1.4 demo",
           mimetype="application/pdf"):
    return client.post(
        f"{BASE}/upload-answer",
        data={"attempt_id": attempt_id, "question_index": str(index), "time_spent": "30"},
        files={"file": (filename, content, mimetype)},
        headers=CANDIDATE_HEADERS,
    )


def test_upload_stores_file_metadata(client, started_attempt):
    _, _, attempt = started_attempt(mixed_payload())

    resp = upload(client, attempt["id"], 2)

    assert resp.status_code == 200
    uploaded = resp.json()["uploaded_file"]
    assert uploaded["original_name"] == "solution.pdf"
    assert uploaded["mimetype"] == "application/pdf"
    assert uploaded["size"] == len(b"%PDF-1.4 demo")
    assert uploaded["filename"].endswith(".pdf")
    assert resp.json()["current_question"] == 3


def test_upload_policy(client, started_attempt, monkeypatch):
    _, _, attempt = started_attempt(mixed_payload())

    wrong_type = upload(client, attempt["id"], 2, filename="run.exe", mimetype="application/x-msdownload")
    wrong_question = upload(client, attempt["id"], 0)
    monkeypatch.setattr(config, "MAX_UPLOAD_BYTES", 4)
    too_big = upload(client, attempt["id"], 2)

    assert wrong_type.json()["message"] == "Invalid file type. Only PDF, DOC, DOCX, JPG, PNG are allowed"
    assert wrong_question.json()["message"] == "Question is not an upload type"
    assert too_big.status_code == 400
    assert too_big.json()["message"] == "File size too large. Maximum 10MB allowed"


def test_upload_without_file(client, started_attempt):
    _, _, attempt = started_attempt(mixed_payload())

    resp = client.post(f"{BASE}/upload-answer",
                       data={"attempt_id": attempt["id"], "question_index": "2"},
                       headers=CANDIDATE_HEADERS)

    assert resp.status_code == 400
    assert resp.json()["message"] == "No file uploaded"


def test_upload_one_byte_over_limit_is_rejected(client, started_attempt):
    _, _, attempt = started_attempt(mixed_payload())

    resp = upload(client, attempt["id"], 2, content=b"x" * (config.MAX_UPLOAD_BYTES + 1))

    assert resp.status_code == 400
    assert resp.json()["message"] == "File size too large. Maximum 10MB allowed"


def test_reupload_replaces_previous_file(client, started_attempt):
    _, _, attempt = started_attempt(mixed_payload())

    first = upload(client, attempt["id"], 2).json()["uploaded_file"]
    second = upload(client, attempt["id"], 2, filename="v2.png", content=b"\x89PNG",
                    mimetype="image/png").json()["uploaded_file"]

    assert not os.path.exists(first["path"])
    assert os.path.exists(second["path"])
    assert second["original_name"] == "v2.png"


def test_failed_commit_discards_stored_file(started_attempt, db, monkeypatch):
    _, _, attempt = started_attempt(mixed_payload())
    stored_paths = []
    real_store = uploads.store_upload

    def store_and_track(*args, **kwargs):
        stored = real_store(*args, **kwargs)
        stored_paths.append(stored["path"])
        return stored

    def failing_commit():
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(uploads, "store_upload", store_and_track)
    monkeypatch.setattr(db, "commit", failing_commit)

    with pytest.raises(OperationalError):
        attempt_service.upload_answer(db, CANDIDATE, attempt["id"], 2, original_name="a.pdf",
                                      mimetype="application/pdf", content=b"%PDF-1.4")

    assert len(stored_paths) == 1
    assert not os.path.exists(stored_paths[0])


# ── Violations ───────────────────────────────────────────────

def test_violations_append_without_changing_status(client, started_attempt, db):
    _, _, attempt = started_attempt()

    for kind in ("tab_switch", "copy_paste", "tab_switch"):
        resp = client.post(f"{BASE}/violation", json={
            "attempt_id": attempt["id"], "type": kind, "details": "detected",
        }, headers=CANDIDATE_HEADERS)
        assert resp.status_code == 200

    stored = db.get(AssessmentAttempt, attempt["id"])
    assert stored.status == "in_progress"
    assert [v.type for v in stored.violations] == ["tab_switch", "copy_paste", "tab_switch"]


def test_violation_requires_type(client, started_attempt):
    _, _, attempt = started_attempt()

    resp = client.post(f"{BASE}/violation", json={"attempt_id": attempt["id"]},
                       headers=CANDIDATE_HEADERS)

    assert resp.status_code == 400
    assert resp.json()["message"] == "Violation type is required"


def test_structured_violation_details_are_stored_as_json(client, started_attempt, db):
    _, _, attempt = started_attempt()
    client.post(f"{BASE}/violation", json={
        "attempt_id": attempt["id"], "type": "copy_paste", "details": {"question": 1, "chars": 42},
    }, headers=CANDIDATE_HEADERS)

    submit(client, attempt["id"], violations=[
        {"type": "tab_switch", "timestamp": "2026-01-05T10:00:00Z", "details": ["left", 3]},
    ])

    stored = db.get(AssessmentAttempt, attempt["id"])
    details = [v.details for v in stored.violations]
    assert json.loads(details[0]) == {"question": 1, "chars": 42}
    assert json.loads(details[1]) == ["left", 3]


def test_submit_appends_client_violations_once(client, started_attempt, db):
    _, _, attempt = started_attempt()
    client.post(f"{BASE}/violation", json={"attempt_id": attempt["id"], "type": "right_click"},
                headers=CANDIDATE_HEADERS)
    client_log = [
        {"type": "window_blur", "timestamp": "2026-01-05T10:00:00Z", "details": "left window"},
        {"type": "window_blur", "timestamp": "2026-01-05T10:00:00Z", "details": "left window"},
        {"type": "tab_switch", "timestamp": "2026-01-05T10:01:00Z"},
    ]

    resp = submit(client, attempt["id"], violations=client_log)

    assert resp.status_code == 200
    stored = db.get(AssessmentAttempt, attempt["id"])
    assert [v.type for v in stored.violations] == ["right_click", "window_blur", "tab_switch"]


# ── Submit and scenarios ─────────────────────────────────────

def test_scenario_partial_score_fails(client, started_attempt, db):
    _, links, attempt = started_attempt()
    answer(client, attempt["id"], 0, selected_answer=0)
    answer(client, attempt["id"], 1, selected_answer=0)

    resp = submit(client, attempt["id"])

    assert resp.status_code == 200
    result = resp.json()["result"]
    assert result["score"] == 1
    assert result["total_marks"] == 3
    assert result["percentage"] == 33.33
    assert result["result"] == "fail"
    assert result["correct_answers"] == 1
    assert result["total_questions"] == 2
    assert result["total_answered"] == 2
    assert result["unanswered"] == 0
    assert result["status"] == "completed"

    application = db.get(Application, links["application_id"])
    assert application.assessment_status == "completed"
    assert application.assessment_score == 1
    assert application.assessment_percentage == 33.33
    assert application.assessment_result == "fail"


def test_scenario_all_correct_passes(client, started_attempt):
    _, _, attempt = started_attempt()
    answer(client, attempt["id"], 0, selected_answer=0)
    answer(client, attempt["id"], 1, selected_answer=1)

    result = submit(client, attempt["id"]).json()["result"]

    assert result["score"] == 3
    assert result["percentage"] == 100.0
    assert result["result"] == "pass"


def test_scenario_late_submit_expires(client, started_attempt, db):
    _, _, attempt = started_attempt()
    expire(db, attempt["id"], minutes=11)

    result = submit(client, attempt["id"]).json()["result"]

    assert result["status"] == "expired"
    assert result["score"] == 0
    assert result["percentage"] == 0.0
    assert result["result"] == "fail"
    assert result["unanswered"] == 2


def test_scenario_double_submit_is_rejected(client, started_attempt, db):
    _, _, attempt = started_attempt()
    answer(client, attempt["id"], 0, selected_answer=0)
    first = submit(client, attempt["id"]).json()["result"]

    second = submit(client, attempt["id"])

    assert second.status_code == 400
    assert second.json() == {"success": False, "message": "Assessment already completed"}
    stored = db.get(AssessmentAttempt, attempt["id"])
    assert (stored.score, stored.percentage, stored.result) == (
        first["score"], first["percentage"], first["result"])


def test_racing_submits_finalize_once(client, started_attempt, db, monkeypatch):
    _, links, attempt = started_attempt()
    answer(client, attempt["id"], 0, selected_answer=0)
    real_score = scoring.score_attempt
    rival_started = []
    rival_results = []

    def score_while_rival_submits(*args, **kwargs):
        # Another tab submits after this request read the attempt as in_progress
        if not rival_started:
            rival_started.append(True)
            rival = SessionLocal()
            try:
                rival_results.append(attempt_service.submit_attempt(rival, CANDIDATE, attempt["id"]))
            finally:
                rival.close()
        return real_score(*args, **kwargs)

    monkeypatch.setattr(scoring, "score_attempt", score_while_rival_submits)

    with pytest.raises(StateConflictError) as excinfo:
        attempt_service.submit_attempt(db, CANDIDATE, attempt["id"])

    assert excinfo.value.message == "Assessment already completed"
    assert len(rival_results) == 1
    db.expire_all()
    stored = db.get(AssessmentAttempt, attempt["id"])
    assert stored.status == "completed"
    assert stored.score == rival_results[0]["score"]
    application = db.get(Application, links["application_id"])
    assert application.assessment_score == rival_results[0]["score"]


def test_terminal_attempt_rejects_every_mutation(client, started_attempt, db):
    assessment, links, attempt = started_attempt()
    submit(client, attempt["id"])
    before = db.get(AssessmentAttempt, attempt["id"])
    end_time = before.end_time

    restart = client.post(f"{BASE}/start", json={
        "assessment_id": assessment["id"], "application_id": links["application_id"],
    }, headers=CANDIDATE_HEADERS)
    late_answer = answer(client, attempt["id"], 0, selected_answer=0)
    late_violation = client.post(f"{BASE}/violation", json={
        "attempt_id": attempt["id"], "type": "tab_switch",
    }, headers=CANDIDATE_HEADERS)

    assert restart.status_code == 400
    assert restart.json()["message"] == "Assessment already completed. Retakes are not allowed"
    assert late_answer.json()["message"] == "Assessment is not in progress"
    assert late_violation.status_code == 400

    db.expire_all()
    after = db.get(AssessmentAttempt, attempt["id"])
    assert after.end_time == end_time
    assert after.answers == {}
    assert after.violations == []


def test_expired_attempt_cannot_be_restarted_or_resubmitted(client, started_attempt, db):
    assessment, links, attempt = started_attempt()
    expire(db, attempt["id"], minutes=30)
    submit(client, attempt["id"])

    restart = client.post(f"{BASE}/start", json={
        "assessment_id": assessment["id"], "application_id": links["application_id"],
    }, headers=CANDIDATE_HEADERS)
    resubmit = submit(client, attempt["id"])

    assert restart.json()["message"] == "Assessment time expired. Retakes are not allowed"
    assert resubmit.json()["message"] == "Assessment already expired"


def test_scoring_uses_snapshot_taken_at_start(client, started_attempt):
    assessment, _, attempt = started_attempt()
    answer(client, attempt["id"], 0, selected_answer=0)
    answer(client, attempt["id"], 1, selected_answer=1)
    edited = mcq_payload(questions=[
        {"question": "Rewritten", "options": ["a", "b"], "correct_answer": 1, "marks": 10},
    ])
    client.put(f"/api/employer/assessments/{assessment['id']}", json=edited, headers=EMPLOYER_HEADERS)

    result = submit(client, attempt["id"]).json()["result"]

    assert result["score"] == 3
    assert result["total_marks"] == 3
    assert result["total_questions"] == 2


def test_mixed_kinds_award_presence_credit(client, started_attempt):
    _, _, attempt = started_attempt(mixed_payload())
    answer(client, attempt["id"], 0, selected_answer=1)
    answer(client, attempt["id"], 1, text_answer="It wraps a function")
    upload(client, attempt["id"], 2)

    result = submit(client, attempt["id"]).json()["result"]

    assert result["score"] == 5
    assert result["percentage"] == 83.33
    assert result["correct_answers"] == 0
    assert result["result"] == "pass"


# ── Results ──────────────────────────────────────────────────

def test_candidate_result_lookups(client, started_attempt):
    _, links, attempt = started_attempt()
    pending = client.get(f"{BASE}/result/{attempt['id']}", headers=CANDIDATE_HEADERS)
    client.post(f"{BASE}/violation", json={"attempt_id": attempt["id"], "type": "tab_switch"},
                headers=CANDIDATE_HEADERS)
    answer(client, attempt["id"], 1, selected_answer=1)
    submit(client, attempt["id"])

    by_attempt = client.get(f"{BASE}/result/{attempt['id']}", headers=CANDIDATE_HEADERS)
    by_application = client.get(f"{BASE}/result/application/{links['application_id']}",
                                headers=CANDIDATE_HEADERS)

    assert pending.status_code == 404
    assert pending.json()["message"] == "Result not found"
    result = by_attempt.json()["result"]
    assert result["score"] == 2
    assert result["percentage"] == 66.67
    assert result["result"] == "pass"
    assert result["correct_answers"] == 1
    assert result["total_questions"] == 2
    assert [v["type"] for v in result["violations"]] == ["tab_switch"]
    assert by_application.json()["result"]["attempt_id"] == attempt["id"]


def test_employer_results_and_attempt_detail(client, started_attempt):
    assessment, _, attempt = started_attempt()
    answer(client, attempt["id"], 0, selected_answer=0)
    submit(client, attempt["id"])

    results = client.get(f"/api/employer/assessments/{assessment['id']}/results",
                         headers=EMPLOYER_HEADERS)
    detail = client.get(f"/api/employer/assessments/attempts/{attempt['id']}",
                        headers=EMPLOYER_HEADERS)
    foreign_results = client.get(f"/api/employer/assessments/{assessment['id']}/results",
                                 headers=OTHER_EMPLOYER_HEADERS)
    foreign_detail = client.get(f"/api/employer/assessments/attempts/{attempt['id']}",
                                headers=OTHER_EMPLOYER_HEADERS)

    assert results.status_code == 200
    rows = results.json()["results"]
    assert len(rows) == 1
    assert rows[0]["candidate"]["name"] == "Asha Rao"
    assert rows[0]["score"] == 1

    assert detail.status_code == 200
    body = detail.json()["attempt"]
    assert body["answers"][0]["selected_answer"] == 0
    assert body["questions"][0]["correct_answer"] == 0

    assert foreign_results.status_code == 404
    assert foreign_detail.status_code == 403
    assert foreign_detail.json()["message"] == "Unauthorized"


def test_attempt_detail_after_assessment_deleted(client, started_attempt):
    assessment, _, attempt = started_attempt()
    client.delete(f"/api/employer/assessments/{assessment['id']}", headers=EMPLOYER_HEADERS)

    resp = client.get(f"/api/employer/assessments/attempts/{attempt['id']}",
                      headers=EMPLOYER_HEADERS)

    assert resp.status_code == 404
