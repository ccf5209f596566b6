from typing import Any, Dict, Iterable, Mapping


def _normalize(value: Any) -> Any:
    return value.strip().lower() if isinstance(value, str) else value


def answer_is_correct(question: Mapping[str, Any], answer: Any) -> bool:
    """
    Multiple-choice answers must match exactly; short answers are compared
    trimmed and case-insensitively. Other question types are never
    auto-scored.
    """
    correct = question.get("correct_answer")
    if correct is None or answer is None:
        return False
    question_type = question.get("question_type") or "multiple_choice"
    if question_type == "multiple_choice":
        return answer == correct
    if question_type == "short_answer":
        return isinstance(answer, str) and _normalize(answer) == _normalize(correct)
    return False


def score_quiz(questions: Iterable[Mapping[str, Any]], answers: Dict[str, Any]) -> float:
    """Sum the points of every correctly answered question."""
    score = 0.0
    for question in questions:
        if answer_is_correct(question, answers.get(str(question["id"]))):
            score += float(question.get("points") or 0)
    return score
