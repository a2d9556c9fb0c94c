"""
Building online tests from request bodies.

A test body carries its questions inline; options are kept for ``mcq``
questions and columns for ``mapping`` questions. Positions follow list
order starting at 1.
"""

from langcenter.errors import ValidationError, Conflict
from langcenter.extensions import db
from langcenter.models import Question, QuestionOption, MappingColumn, StudentAnswer, TestAssignment
from langcenter.utils.constants import QUESTION_TYPES
from langcenter.utils.helpers import parse_int, parse_float


def _clean_text(value):
    return value.strip() if isinstance(value, str) and value.strip() else None


def _correct_answers(raw):
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.split('|')
    if not isinstance(raw, list):
        raise ValidationError("correct_answers must be a list")
    return [str(item).strip() for item in raw]


def build_question(data, position):
    """Create (unsaved) a Question with its options or mapping columns."""
    if not isinstance(data, dict):
        raise ValidationError(f"Question {position} must be an object")

    text = _clean_text(data.get('question_text'))
    if not text:
        raise ValidationError(f"Question {position} has no question_text")

    qtype = data.get('question_type')
    if qtype not in QUESTION_TYPES:
        raise ValidationError(f"Question {position} has an unknown question_type")

    question = Question(
        question_text=text,
        question_type=qtype,
        position=position,
        score=parse_float(data.get('score', 1), 'score', minimum=0),
        fill_blank_content=_clean_text(data.get('fill_blank_content')),
        correct_answers=_correct_answers(data.get('correct_answers')),
    )

    if qtype == 'mcq':
        options = data.get('options') or []
        if len(options) < 2:
            raise ValidationError(f"Question {position} needs at least two options")
        for index, opt in enumerate(options, start=1):
            if not isinstance(opt, dict) or not _clean_text(opt.get('option_text')):
                raise ValidationError(f"Option {index} of question {position} has no option_text")
            question.options.append(QuestionOption(
                option_text=opt['option_text'].strip(),
                option_key=_clean_text(opt.get('option_key')),
                is_correct=bool(opt.get('is_correct')),
                position=index,
            ))
        if not any(o.is_correct for o in question.options):
            raise ValidationError(f"Question {position} has no correct option")

    elif qtype == 'fill_blank' and not question.correct_answers:
        raise ValidationError(f"Question {position} needs correct_answers")

    elif qtype == 'mapping':
        for index, col in enumerate(data.get('mapping_columns') or [], start=1):
            if not isinstance(col, dict) or col.get('column_type') not in ('left', 'right'):
                raise ValidationError(f"Mapping column {index} of question {position} needs column_type left or right")
            question.mapping_columns.append(MappingColumn(
                column_type=col['column_type'],
                item_text=str(col.get('item_text') or '').strip(),
                position=index,
            ))

    return question


def apply_test_fields(test, data):
    """
    Write the test header and replace its question set.

    ``total_questions`` and ``total_score`` default to what the questions add up to.
    """
    if 'title' in data:
        title = _clean_text(data['title'])
        if not title:
            raise ValidationError("title cannot be empty")
        test.title = title
    if 'description' in data:
        test.description = _clean_text(data['description'])
    if 'duration' in data:
        test.duration = parse_int(data['duration'], 'duration', minimum=1)
    if 'passing_score' in data:
        test.passing_score = None if data['passing_score'] is None else parse_float(
            data['passing_score'], 'passing_score', minimum=0
        )

    if 'questions' in data:
        raw = data['questions']
        if not isinstance(raw, list) or not raw:
            raise ValidationError("questions must be a non-empty list")
        questions = [build_question(q, i) for i, q in enumerate(raw, start=1)]
        test.questions = questions

    if data.get('total_questions') is not None:
        test.total_questions = parse_int(data['total_questions'], 'total_questions', minimum=1)
    elif 'questions' in data:
        test.total_questions = len(test.questions)

    if data.get('total_score') is not None:
        test.total_score = parse_float(data['total_score'], 'total_score', minimum=0)
    elif 'questions' in data:
        test.total_score = sum(q.score for q in test.questions)

    return test


def ensure_questions_editable(test):
    """Questions are frozen once any student has submitted answers."""
    answered = db.session.query(StudentAnswer.id).join(
        TestAssignment, StudentAnswer.assignment_id == TestAssignment.id
    ).filter(TestAssignment.test_id == test.id).first()
    if answered:
        raise Conflict("Test already has submitted answers; questions cannot be changed")
