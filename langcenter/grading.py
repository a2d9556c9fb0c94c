"""
Online test scoring and grading.

Objective question types (mcq, fill_blank) are scored on submission.
Constructed-response and mapping answers score zero and are flagged for
the teacher, who can later patch individual answer scores.
"""

import math
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import func

from langcenter.errors import AssignmentClosed, AccessDenied, NotFoundError, ValidationError
from langcenter.extensions import db
from langcenter.models import StudentAnswer, TestAssignment, Enrollment, SchoolClass
from langcenter.utils.helpers import parse_float


def _round_half_up(value):
    return int(math.floor(value + 0.5))


def score_mcq(question, selected_options):
    """Full credit iff the selected option set equals the correct option set."""
    if not selected_options:
        return 0, "No option selected"
    correct = {opt.id for opt in question.options if opt.is_correct}
    try:
        selected = {int(opt) for opt in selected_options}
    except (TypeError, ValueError):
        return 0, "Incorrect"
    if selected == correct:
        return question.score, "Correct"
    return 0, "Incorrect"


def score_fill_blank(question, answer_text):
    """
    Partial credit for fill-in-the-blank answers.

    ``answer_text`` holds one answer per blank separated by ``|``. Answers
    are compared by position, trimmed and case-insensitively; the credit is
    matches / blanks of the question score, rounded half up.
    """
    correct_answers = list(question.correct_answers or [])
    if not correct_answers:
        return 0, "0/0 correct"

    given = (answer_text or '').split('|')
    matches = sum(
        1 for expected, actual in zip(correct_answers, given)
        if str(expected).strip().lower() == actual.strip().lower()
    )
    score = _round_half_up(matches / len(correct_answers) * question.score)
    return score, f"{matches}/{len(correct_answers)} correct"


def _check_answer_shape(answer):
    """Reject answers whose fields have the wrong JSON type."""
    if not isinstance(answer, dict):
        raise ValidationError("Each answer must be an object")
    if answer.get('answer_text') is not None and not isinstance(answer['answer_text'], str):
        raise ValidationError("answer_text must be a string")
    if answer.get('selected_options') is not None and not isinstance(answer['selected_options'], list):
        raise ValidationError("selected_options must be a list")
    if answer.get('mapping_answers') is not None and not isinstance(answer['mapping_answers'], (dict, list)):
        raise ValidationError("mapping_answers must be an object or a list")


def score_answer(question, answer):
    """
    Score one submitted answer.

    Returns:
        tuple: (score, feedback, needs_review)
    """
    qtype = question.question_type
    if qtype == 'mcq':
        score, feedback = score_mcq(question, answer.get('selected_options'))
        return score, feedback, False
    if qtype == 'fill_blank':
        if not answer.get('answer_text'):
            return 0, "No answer", False
        score, feedback = score_fill_blank(question, answer.get('answer_text'))
        return score, feedback, False
    # constructed_response and mapping are graded by the teacher
    return 0, "Awaiting teacher grading", True


def submit_assignment(assignment, answers):
    """
    Score a submission and close the assignment.

    Answers for questions outside the test are ignored, as are repeated
    answers to the same question after the first.

    Raises:
        AssignmentClosed: the assignment was already submitted.

    Returns:
        float: the total score
    """
    if assignment.completed_at is not None:
        raise AssignmentClosed("Assignment already completed")
    if not isinstance(answers, list):
        raise ValidationError("answers must be a list")

    for answer in answers:
        _check_answer_shape(answer)

    # Claim the assignment with a conditional update so that only one of
    # two concurrent submissions can complete it
    now = datetime.now(timezone.utc)
    claimed = TestAssignment.query.filter(
        TestAssignment.id == assignment.id,
        TestAssignment.completed_at.is_(None),
    ).update(
        {
            TestAssignment.completed_at: now,
            TestAssignment.started_at: func.coalesce(TestAssignment.started_at, now),
        },
        synchronize_session=False,
    )
    if not claimed:
        raise AssignmentClosed("Assignment already completed")
    db.session.expire(assignment, ['completed_at', 'started_at'])

    questions = {q.id: q for q in assignment.test.questions}
    seen = set()
    total = 0

    for answer in answers:
        try:
            question_id = int(answer.get('question_id'))
        except (TypeError, ValueError):
            continue
        question = questions.get(question_id)
        if question is None or question_id in seen:
            continue
        seen.add(question_id)

        score, feedback, needs_review = score_answer(question, answer)
        total += score
        db.session.add(StudentAnswer(
            assignment_id=assignment.id,
            question_id=question_id,
            answer_text=answer.get('answer_text'),
            selected_options=answer.get('selected_options'),
            mapping_answers=answer.get('mapping_answers'),
            score=score,
            feedback=feedback,
            needs_review=needs_review,
        ))

    assignment.score = total
    db.session.flush()

    current_app.logger.info(
        f"Assignment {assignment.id} submitted by student {assignment.student_id}: score {total}"
    )
    return total


# -------------------- TEACHER GRADING --------------------

def teaches_student(teacher_id, student_id):
    """True when the teacher runs a class the student is enrolled in."""
    return db.session.query(Enrollment.id).join(
        SchoolClass, Enrollment.class_id == SchoolClass.id
    ).filter(
        Enrollment.student_id == student_id,
        SchoolClass.teacher_id == teacher_id,
    ).first() is not None


def can_grade(teacher_id, assignment):
    """A teacher may grade tests they wrote, or any test taken by their students."""
    if assignment.test.teacher_id == teacher_id:
        return True
    return teaches_student(teacher_id, assignment.student_id)


def regrade_assignment(teacher_id, assignment, per_answers=None, overall_score=None, overall_comment=None):
    """
    Apply teacher grading to a submitted assignment.

    Per-answer patches are applied first; the assignment total is then the
    sum of answer scores unless ``overall_score`` is given.

    Returns:
        float: the new assignment score
    """
    if not can_grade(teacher_id, assignment):
        raise AccessDenied("Forbidden")
    if assignment.completed_at is None:
        raise AssignmentClosed("Assignment has not been submitted yet")

    answers = {a.id: a for a in assignment.answers}
    for patch in per_answers or []:
        if not isinstance(patch, dict) or patch.get('answer_id') is None:
            continue
        try:
            answer = answers.get(int(patch['answer_id']))
        except (TypeError, ValueError):
            answer = None
        if answer is None:
            raise NotFoundError(f"Answer {patch['answer_id']} does not belong to this assignment")

        if patch.get('score') is not None:
            answer.score = parse_float(patch['score'], 'score', minimum=0)
            answer.needs_review = False
        if isinstance(patch.get('feedback'), str):
            answer.feedback = patch['feedback']

    db.session.flush()

    if overall_score is not None:
        final = parse_float(overall_score, 'overall_score', minimum=0)
    else:
        final = sum(a.score or 0 for a in assignment.answers)

    assignment.score = final
    if isinstance(overall_comment, str):
        assignment.teacher_comment = overall_comment
    db.session.flush()

    current_app.logger.info(f"Teacher {teacher_id} graded assignment {assignment.id}: score {final}")
    return final
