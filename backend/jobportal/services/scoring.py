"""
Scoring Service - computes marks, percentage and pass/fail for an attempt.

Pure functions over plain data: questions are the dicts stored in an
attempt's snapshot, answers map question index to a dict with
selected_answer / text_answer / uploaded_file. Nothing here touches the
database.

Marking rules per question kind:
1. mcq: full marks iff the selected option (coerced to int) is within the
   option bounds and equals the correct option (coerced to int)
2. subjective: full marks for any non-blank text (manual review happens
   downstream)
3. upload: full marks when a file is attached

percentage = score / total_marks * 100, rounded to 2 decimals (0 when
total_marks is 0). result is "pass" iff percentage >= passing percentage.
"""

import time
from jobportal.config import DEFAULT_PASSING_PERCENTAGE
from jobportal.models.assessment import QUESTION_MCQ, QUESTION_SUBJECTIVE, QUESTION_UPLOAD
from jobportal.models.attempt import RESULT_PASS, RESULT_FAIL
from jobportal.logging_config import get_logger, log_with_context

logger = get_logger("scoring")


def coerce_int(value):
    """
    Coerce a stored answer value to int.

    Accepts ints, integral floats and strings holding an integer. Returns
    None for anything else (including booleans) so callers can treat it as
    "no valid selection" without raising.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def question_marks(question: dict) -> int:
    """Marks a question is worth; unset or invalid marks count as 1."""
    marks = coerce_int(question.get("marks"))
    return marks if marks and marks > 0 else 1


def total_marks_for(questions: list) -> int:
    return sum(question_marks(q) for q in questions)


def is_correct_choice(question: dict, answer: dict) -> bool:
    """True when an mcq answer picks the correct, in-bounds option."""
    selected = coerce_int(answer.get("selected_answer"))
    correct = coerce_int(question.get("correct_answer"))
    options = question.get("options") or []
    if selected is None or correct is None:
        return False
    if not 0 <= selected < len(options):
        return False
    return selected == correct


def score_answer(question: dict, answer: dict) -> int:
    """Marks awarded for a single answer. Never raises on malformed input."""
    kind = question.get("type") or QUESTION_MCQ
    if kind == QUESTION_MCQ:
        return question_marks(question) if is_correct_choice(question, answer) else 0
    if kind == QUESTION_SUBJECTIVE:
        text = answer.get("text_answer")
        return question_marks(question) if isinstance(text, str) and text.strip() else 0
    if kind == QUESTION_UPLOAD:
        return question_marks(question) if answer.get("uploaded_file") else 0
    return 0


def compute_percentage(score, total_marks) -> float:
    if not total_marks:
        return 0.0
    return round(score / total_marks * 100, 2)


def decide_result(percentage, passing_percentage=DEFAULT_PASSING_PERCENTAGE) -> str:
    if passing_percentage is None:
        passing_percentage = DEFAULT_PASSING_PERCENTAGE
    return RESULT_PASS if percentage >= passing_percentage else RESULT_FAIL


def score_attempt(answers: dict, questions: list, total_marks: int,
                  passing_percentage=DEFAULT_PASSING_PERCENTAGE,
                  attempt_id: str = None) -> dict:
    """
    Score every stored answer against the question list.

    Args:
        answers: Mapping of question index -> answer dict
        questions: Ordered question dicts (type, options, correct_answer, marks)
        total_marks: Denominator for the percentage, fixed at attempt start
        passing_percentage: Pass threshold, 60 when unset
        attempt_id: Only used for log context

    Returns:
        Dict with score, total_marks, percentage, result, correct_answers,
        total_questions, total_answered and unanswered
    """
    start_time = time.time()

    score = 0
    correct_answers = 0
    total_answered = 0

    for index, answer in sorted(answers.items()):
        question_index = coerce_int(index)
        if question_index is None or not 0 <= question_index < len(questions):
            log_with_context(logger, "WARNING",
                "Skipping answer for unknown question index {}".format(index),
                context={"attempt_id": attempt_id})
            continue

        question = questions[question_index]
        total_answered += 1

        if (question.get("type") or QUESTION_MCQ) == QUESTION_MCQ:
            selected = coerce_int(answer.get("selected_answer"))
            if selected is None or not 0 <= selected < len(question.get("options") or []):
                log_with_context(logger, "WARNING",
                    "Invalid answer {!r} for question {}".format(answer.get("selected_answer"), question_index),
                    context={"attempt_id": attempt_id})
            elif is_correct_choice(question, answer):
                correct_answers += 1

        score += score_answer(question, answer)

    percentage = compute_percentage(score, total_marks)
    result = decide_result(percentage, passing_percentage)
    total_questions = len(questions)

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Score computed: {}/{} ({:.2f}%, {})".format(score, total_marks, percentage, result),
        context={"attempt_id": attempt_id},
        extra_data={
            "duration_ms": round(duration_ms, 2),
            "correct_answers": correct_answers,
            "total_answered": total_answered
        })

    return {
        "score": score,
        "total_marks": total_marks,
        "percentage": percentage,
        "result": result,
        "correct_answers": correct_answers,
        "total_questions": total_questions,
        "total_answered": total_answered,
        "unanswered": total_questions - total_answered,
    }
