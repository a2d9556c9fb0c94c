import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from langcenter import db
from langcenter.authoring import apply_test_fields
from langcenter.enrollment import enroll_student
from langcenter.errors import AssignmentClosed, AccessDenied, NotFoundError, ValidationError
from langcenter.grading import score_fill_blank, submit_assignment, regrade_assignment, can_grade
from langcenter.models import Question, StudentAnswer, Teacher, Test, TestAssignment


def _make_test(teacher):
    test = Test(teacher_id=teacher.id)
    apply_test_fields(test, {
        "title": "Unit 3 check",
        "duration": 30,
        "questions": [
            {
                "question_text": "Pick the past tense of 'go'",
                "question_type": "mcq",
                "score": 2,
                "options": [
                    {"option_text": "went", "is_correct": True},
                    {"option_text": "goed"},
                ],
            },
            {
                "question_text": "The capital of France is ___, the wall fell in ___",
                "question_type": "fill_blank",
                "score": 10,
                "correct_answers": "Paris|1989",
            },
            {
                "question_text": "Describe your hometown",
                "question_type": "constructed_response",
                "score": 5,
            },
        ],
    })
    db.session.add(test)
    db.session.commit()
    return test


def _assign(test, student):
    assignment = TestAssignment(test_id=test.id, student_id=student.id)
    db.session.add(assignment)
    db.session.commit()
    return assignment


def _answers(test, mcq=None, blanks="Paris|1989", essay="A quiet town"):
    mcq_q, blank_q, essay_q = test.questions
    correct = [o.id for o in mcq_q.options if o.is_correct]
    return [
        {"question_id": mcq_q.id, "selected_options": correct if mcq is None else mcq},
        {"question_id": blank_q.id, "answer_text": blanks},
        {"question_id": essay_q.id, "answer_text": essay},
    ]


# -------------------- SCORING --------------------

def test_fill_blank_partial_credit():
    question = Question(score=10, correct_answers=["Paris", "1991"])
    assert score_fill_blank(question, "Paris|1990") == (5, "1/2 correct")


def test_fill_blank_is_trimmed_and_case_insensitive():
    question = Question(score=4, correct_answers=["Paris", "1991"])
    assert score_fill_blank(question, "  paris | 1991 ") == (4, "2/2 correct")


def test_fill_blank_rounds_half_up():
    assert score_fill_blank(Question(score=5, correct_answers=["a", "b", "c"]), "a|x|x")[0] == 2
    assert score_fill_blank(Question(score=5, correct_answers=["a", "b"]), "a|x")[0] == 3


def test_fill_blank_without_correct_answers_scores_zero():
    assert score_fill_blank(Question(score=5, correct_answers=[]), "anything") == (0, "0/0 correct")


def test_mcq_requires_the_exact_option_set(client, teacher, student):
    test = _make_test(teacher)
    both = [o.id for o in test.questions[0].options]
    assignment = _assign(test, student)

    submit_assignment(assignment, _answers(test, mcq=both, blanks="x|y"))
    db.session.commit()

    mcq_answer = assignment.answers[0]
    assert mcq_answer.score == 0
    assert mcq_answer.feedback == "Incorrect"


# -------------------- SUBMISSION --------------------

def test_submit_scores_objective_questions(client, teacher, student):
    test = _make_test(teacher)
    assignment = _assign(test, student)

    total = submit_assignment(assignment, _answers(test))
    db.session.commit()

    assert total == 12
    assert assignment.score == 12
    assert assignment.status == 'completed'
    assert assignment.started_at is not None
    essay = assignment.answers[2]
    assert essay.score == 0
    assert essay.needs_review is True
    assert essay.feedback == "Awaiting teacher grading"


def test_submit_ignores_unknown_and_repeated_questions(client, teacher, student):
    test = _make_test(teacher)
    assignment = _assign(test, student)
    mcq_q = test.questions[0]
    wrong = [o.id for o in mcq_q.options if not o.is_correct]
    answers = _answers(test) + [
        {"question_id": mcq_q.id, "selected_options": wrong},
        {"question_id": 9999, "answer_text": "stray"},
    ]

    total = submit_assignment(assignment, answers)
    db.session.commit()

    assert total == 12
    assert len(assignment.answers) == 3


def test_second_submit_is_refused(client, teacher, student):
    test = _make_test(teacher)
    assignment = _assign(test, student)
    submit_assignment(assignment, _answers(test))
    db.session.commit()

    with pytest.raises(AssignmentClosed):
        submit_assignment(assignment, _answers(test))


def test_submit_loses_to_a_concurrent_completion(client, teacher, student):
    test = _make_test(teacher)
    assignment = _assign(test, student)
    assert assignment.completed_at is None

    # Another request completes the row after this session loaded it
    db.session.execute(
        text("UPDATE test_assignments SET completed_at = CURRENT_TIMESTAMP WHERE id = :id"),
        {"id": assignment.id},
    )

    with pytest.raises(AssignmentClosed):
        submit_assignment(assignment, _answers(test))
    assert StudentAnswer.query.filter_by(assignment_id=assignment.id).count() == 0


def test_submit_rejects_wrongly_typed_answers(client, teacher, student):
    test = _make_test(teacher)
    assignment = _assign(test, student)
    mcq_q, blank_q, _ = test.questions

    for bad in (
        {"question_id": blank_q.id, "answer_text": 1989},
        {"question_id": mcq_q.id, "selected_options": "12"},
        {"question_id": blank_q.id, "mapping_answers": "A-1"},
        "Paris",
    ):
        with pytest.raises(ValidationError):
            submit_assignment(assignment, [bad])

    db.session.expire_all()
    assert assignment.completed_at is None
    assert assignment.answers == []


def test_one_stored_answer_per_question(client, teacher, student):
    test = _make_test(teacher)
    assignment = _assign(test, student)
    question_id = test.questions[0].id
    db.session.add(StudentAnswer(assignment_id=assignment.id, question_id=question_id, score=0))
    db.session.add(StudentAnswer(assignment_id=assignment.id, question_id=question_id, score=0))

    with pytest.raises(IntegrityError):
        db.session.commit()
    db.session.rollback()


# -------------------- TEACHER GRADING --------------------

def test_regrade_sums_patched_answers(client, teacher, student):
    test = _make_test(teacher)
    assignment = _assign(test, student)
    submit_assignment(assignment, _answers(test))
    db.session.commit()
    essay = assignment.answers[2]

    score = regrade_assignment(
        teacher.id, assignment,
        per_answers=[{"answer_id": essay.id, "score": 4, "feedback": "Good detail"}],
        overall_comment="Nice work",
    )
    db.session.commit()

    assert score == 16
    assert assignment.score == 16
    assert assignment.teacher_comment == "Nice work"
    assert essay.needs_review is False
    assert essay.feedback == "Good detail"


def test_regrade_overall_score_overrides_sum(client, teacher, student):
    test = _make_test(teacher)
    assignment = _assign(test, student)
    submit_assignment(assignment, _answers(test))
    db.session.commit()

    assert regrade_assignment(teacher.id, assignment, overall_score=15) == 15
    assert assignment.score == 15


def test_regrade_rejects_foreign_answer(client, teacher, student):
    test = _make_test(teacher)
    assignment = _assign(test, student)
    submit_assignment(assignment, _answers(test))
    db.session.commit()

    with pytest.raises(NotFoundError):
        regrade_assignment(teacher.id, assignment, per_answers=[{"answer_id": 9999, "score": 1}])


def test_regrade_requires_submission(client, teacher, student):
    assignment = _assign(_make_test(teacher), student)
    with pytest.raises(AssignmentClosed):
        regrade_assignment(teacher.id, assignment, overall_score=5)


def test_unrelated_teacher_cannot_grade(client, teacher, student, make_account):
    outsider = make_account(Teacher, "Teacher Hoa", "hoa@center.test")
    test = _make_test(teacher)
    assignment = _assign(test, student)
    submit_assignment(assignment, _answers(test))
    db.session.commit()

    assert can_grade(outsider.id, assignment) is False
    with pytest.raises(AccessDenied):
        regrade_assignment(outsider.id, assignment, overall_score=1)


def test_class_teacher_can_grade_their_student(client, teacher, student, make_account, make_class):
    class_teacher = make_account(Teacher, "Teacher Hoa", "hoa@center.test")
    enroll_student(student, make_class(teacher=class_teacher))
    db.session.commit()
    test = _make_test(teacher)
    assignment = _assign(test, student)
    submit_assignment(assignment, _answers(test))
    db.session.commit()

    assert can_grade(class_teacher.id, assignment) is True
