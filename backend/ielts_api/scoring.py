from __future__ import annotations
import math
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .generation import QUESTION_DIFFICULTIES as DIFFICULTIES
from .generation import READING_QUESTION_TYPES as QUESTION_TYPES

QUESTION_TYPE_LABELS: Dict[str, str] = {
    "detail": "detail-finding",
    "main_idea": "main idea identification",
    "inference": "inference making",
    "vocabulary": "vocabulary understanding",
    "reference": "reference tracking",
}


# ============================================================================
# READING
# ============================================================================

def band_score(percentage: float) -> int:
    """IELTS-style band in 1..9 from a percentage."""
    return max(1, min(9, math.floor(percentage / 10)))


def elapsed_minutes(start: datetime, end: datetime) -> int:
    return max(0, math.floor((end - start).total_seconds() / 60))


def grade_reading(questions: List[Dict[str, Any]], answers: List[Dict[str, Any]]) -> Tuple[List[Dict[str, Any]], int]:
    processed: List[Dict[str, Any]] = []
    correct = 0
    for index, (question, answer) in enumerate(zip(questions, answers), 1):
        selected = str(answer.get("selectedAnswer", "")).strip().upper()
        is_correct = selected == question["correctAnswer"]
        if is_correct:
            correct += 1
        processed.append({
            "questionNumber": index,
            "selectedAnswer": selected,
            "correctAnswer": question["correctAnswer"],
            "isCorrect": is_correct,
            "timeSpent": int(answer.get("timeSpent") or 0),
        })
    return processed, correct


def reading_performance(questions: List[Dict[str, Any]], graded: List[Dict[str, Any]]) -> Dict[str, Dict[str, Dict[str, int]]]:
    performance = {
        "difficultyBreakdown": {d: {"correct": 0, "total": 0} for d in DIFFICULTIES},
        "questionTypeBreakdown": {t: {"correct": 0, "total": 0} for t in QUESTION_TYPES},
    }
    for question, answer in zip(questions, graded):
        for key, value in (("difficultyBreakdown", question.get("difficulty")), ("questionTypeBreakdown", question.get("questionType"))):
            bucket = performance[key].get(value)
            if bucket is None:
                continue
            bucket["total"] += 1
            if answer["isCorrect"]:
                bucket["correct"] += 1
    return performance


def reading_feedback(percentage: float, performance: Dict[str, Dict[str, Dict[str, int]]]) -> Dict[str, Any]:
    strengths: List[str] = []
    weaknesses: List[str] = []
    recommendations: List[str] = []

    for difficulty, stats in performance["difficultyBreakdown"].items():
        if not stats["total"]:
            continue
        accuracy = stats["correct"] / stats["total"] * 100
        if accuracy >= 70:
            strengths.append(f"Strong performance on {difficulty} questions ({accuracy:.1f}%)")
        elif accuracy < 50:
            weaknesses.append(f"Need improvement on {difficulty} questions ({accuracy:.1f}%)")
            recommendations.append(f"Practice more {difficulty} level reading exercises")

    for qtype, stats in performance["questionTypeBreakdown"].items():
        if stats["total"] and stats["correct"] / stats["total"] * 100 < 50:
            label = QUESTION_TYPE_LABELS[qtype]
            weaknesses.append(f"Difficulty with {label} questions")
            recommendations.append(f"Focus on {label} practice exercises")

    if percentage < 60:
        recommendations.append("Increase daily reading practice with academic texts")
        recommendations.append("Work on time management during reading tests")

    if percentage >= 80:
        comment = "Excellent performance! You demonstrate strong reading comprehension skills."
    elif percentage >= 60:
        comment = "Good performance with room for improvement in specific areas."
    elif percentage >= 40:
        comment = "Adequate performance, but significant improvement needed for IELTS success."
    else:
        comment = "Needs substantial improvement. Focus on fundamental reading skills."

    return {
        "strengths": strengths,
        "weaknesses": weaknesses,
        "recommendations": recommendations,
        "overallComment": comment,
    }


def running_average(previous: float, count_before: int, value: float) -> float:
    """Mean after adding `value` to `count_before` samples averaging `previous`."""
    total = count_before + 1
    return round((previous * count_before + value) / total, 2)


# ============================================================================
# LISTENING
# ============================================================================

def listening_answer_correct(question: Dict[str, Any], answer: Any) -> bool:
    qtype = question.get("type")
    expected = question.get("correctAnswer")
    if answer is None:
        return False
    if qtype == "true_false":
        return str(answer).strip().lower() == str(expected).strip().lower()
    if qtype == "matching":
        if not isinstance(answer, list) or not isinstance(expected, list):
            return False
        return sorted(str(a) for a in answer) == sorted(str(e) for e in expected)
    return answer == expected


def grade_listening(questions: List[Dict[str, Any]], answers: List[Dict[str, Any]]) -> Tuple[List[Dict[str, Any]], int]:
    by_id: Dict[str, Any] = {}
    for a in answers:
        by_id.setdefault(str(a.get("questionId")), a.get("answer"))
    results: List[Dict[str, Any]] = []
    correct = 0
    for question in questions:
        user_answer: Optional[Any] = by_id.get(question["id"])
        is_correct = listening_answer_correct(question, user_answer)
        if is_correct:
            correct += 1
        results.append({
            "questionId": question["id"],
            "userAnswer": user_answer,
            "correctAnswer": question.get("correctAnswer"),
            "isCorrect": is_correct,
            "question": question.get("question"),
            "type": question.get("type"),
            "options": question.get("options", []),
            "explanation": question.get("explanation", ""),
        })
    return results, correct


def percentage_score(correct: int, total: int) -> int:
    return round(correct / total * 100) if total else 0
