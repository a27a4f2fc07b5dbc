import csv
import io
import re
from typing import Any, Iterable, List, Optional, Sequence, Tuple


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def score_answers(questions: Sequence[dict], answers: Sequence[Any]) -> List[int]:
    """One 0/1 entry per question.

    A non-integer answer or a question without an integer ``correct`` index
    scores 0.
    """
    scored = []
    for question, answer in zip(questions, answers):
        correct = question.get("correct") if isinstance(question, dict) else None
        if not _is_int(answer) or not _is_int(correct):
            scored.append(0)
        else:
            scored.append(1 if answer == correct else 0)
    return scored


def correct_count(reponses: Optional[Iterable[Any]]) -> int:
    return sum(1 for value in reponses or [] if value == 1 and not isinstance(value, bool))


def summarize(reponses: Optional[Sequence[Any]], show_score: bool) -> dict:
    if not show_score:
        return {}
    reponses = list(reponses or [])
    return {"correctCount": correct_count(reponses), "totalQuestions": len(reponses)}


def aggregate_results(question_count: int, submissions: Iterable[Sequence[Any]]) -> dict:
    counts = [0] * question_count
    total = 0
    for reponses in submissions:
        total += 1
        reponses = list(reponses or [])
        for i in range(min(question_count, len(reponses))):
            if reponses[i] == 1:
                counts[i] += 1
    return {"totalSubmissions": total, "correctCounts": counts}


def build_csv(
    title: str, num: Any, repertoire: str, rows: Iterable[Tuple[str, str, int, int]]
) -> str:
    out = io.StringIO()
    writer = csv.writer(out, delimiter=";", lineterminator="\n")
    writer.writerow(["quizz", "num", "repertoire"])
    writer.writerow([title, "" if num is None else num, repertoire or ""])
    writer.writerow(["prenom", "nom", "bonnes_reponses", "nombre_questions"])
    writer.writerows(rows)
    return out.getvalue()


def export_filename(card_id: str, num: Any, repertoire: Optional[str]) -> str:
    tag = str(num).strip() if num is not None else ""
    parts = ["quizz", tag or card_id, (repertoire or "").strip()]
    name = "_".join(p for p in parts if p)
    name = re.sub(r"[^A-Za-z0-9_-]+", "_", name)
    name = re.sub(r"_+", "_", name).strip("_")[:80]
    return f"{name or 'quizz'}.csv"
