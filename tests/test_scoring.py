from app.services import scoring
from app.services.quizzes import reindex, sanitize_quizz


def test_score_answers_example():
    questions = [{"correct": 1}, {"correct": 0}, {"correct": 2}]

    assert scoring.score_answers(questions, [1, 0, 0]) == [1, 1, 0]


def test_score_answers_rejects_non_integers():
    questions = [{"correct": 1}, {"correct": "1"}, {}, {"correct": True}, {"correct": 0}]

    assert scoring.score_answers(questions, ["1", 1, 0, True, False]) == [0, 0, 0, 0, 0]


def test_summarize_respects_visibility():
    assert scoring.summarize([1, 0, 1], True) == {"correctCount": 2, "totalQuestions": 3}
    assert scoring.summarize([1, 0, 1], False) == {}


def test_aggregate_results_pads_short_vectors():
    assert scoring.aggregate_results(3, [[1, 1, 0], [0, 1], [1, 1, 1]]) == {
        "totalSubmissions": 3,
        "correctCounts": [2, 3, 1],
    }


def test_build_csv_quotes_separators():
    body = scoring.build_csv("Quiz; part 1", 4, "algebra", [("anne", "DE LA; ROCHE", 1, 2)])

    assert body.splitlines() == [
        "quizz;num;repertoire",
        '"Quiz; part 1";4;algebra',
        "prenom;nom;bonnes_reponses;nombre_questions",
        'anne;"DE LA; ROCHE";1;2',
    ]


def test_export_filename():
    assert scoring.export_filename("abc", 3, "Alg bra") == "quizz_3_Alg_bra.csv"
    assert scoring.export_filename("abc", None, None) == "quizz_abc.csv"


def test_sanitize_quizz():
    raw = [{"id": "x", "question": 3, "options": ["a", 1, None], "correct": "1"}, "junk"]

    cleaned = reindex(sanitize_quizz(raw))

    assert cleaned == [
        {"id": "q1", "question": "", "image": "", "options": ["a", "1", ""], "correct": None},
        {"id": "q2", "question": "", "image": "", "options": [], "correct": None},
    ]
    assert sanitize_quizz("nope") is None
