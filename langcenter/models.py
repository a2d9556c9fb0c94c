"""
Database models for the language center.

All SQLAlchemy models are defined here with their relationships and the
small derived properties the routes rely on (reached_limit, status).
Times are stored as UTC in the database.
"""

from datetime import datetime, timezone

from werkzeug.security import generate_password_hash, check_password_hash

from langcenter.extensions import db
from langcenter.utils.constants import (
    ROLE_STUDENT, ROLE_TEACHER, ROLE_STAFF, ROLE_MANAGER, ROLE_CASHIER, UNPAID_METHOD,
)
from langcenter.utils.encryption import PIIEncryptedType
from langcenter.utils.helpers import format_utc_iso


def _utc_now():
    """Helper function for timezone-aware datetime defaults in SQLAlchemy models."""
    return datetime.now(timezone.utc)


class PasswordMixin:
    """Password hashing shared by every account kind."""

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        if not self.password_hash or not password:
            return False
        return check_password_hash(self.password_hash, password)


class AccountMixin(PasswordMixin):
    """
    Columns shared by the parallel staff-side account kinds.

    Staff, teachers, managers and cashiers have independent lifecycles and
    live in separate tables; ``role`` tags each class.
    """
    role = None

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    phone_number = db.Column(db.String(30), nullable=True)
    password_hash = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=_utc_now)
    updated_at = db.Column(db.DateTime, default=_utc_now, onupdate=_utc_now)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'phone_number': self.phone_number,
            'role': self.role,
            'created_at': format_utc_iso(self.created_at),
        }

    def __repr__(self):
        return f'<{type(self).__name__} {self.email}>'


# -------------------- ACCOUNTS --------------------

class Teacher(AccountMixin, db.Model):
    __tablename__ = 'teachers'
    role = ROLE_TEACHER

    classes = db.relationship('SchoolClass', backref='teacher', lazy=True)
    tests = db.relationship('Test', backref='teacher', lazy=True, cascade='all, delete-orphan')


class Staff(AccountMixin, db.Model):
    __tablename__ = 'staff'
    role = ROLE_STAFF

    payments = db.relationship('Payment', backref='staff', lazy=True)
    reminders = db.relationship('Reminder', backref='staff', lazy=True, cascade='all, delete-orphan',
                                foreign_keys='Reminder.staff_id')


class Manager(AccountMixin, db.Model):
    __tablename__ = 'managers'
    role = ROLE_MANAGER


class Cashier(AccountMixin, db.Model):
    __tablename__ = 'cashiers'
    role = ROLE_CASHIER

    reminders = db.relationship('Reminder', backref='cashier', lazy=True, cascade='all, delete-orphan',
                                foreign_keys='Reminder.cashier_id')


class Student(PasswordMixin, db.Model):
    __tablename__ = 'students'
    role = ROLE_STUDENT

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.Text, nullable=True)
    dob = db.Column(db.Date, nullable=True)
    address = db.Column(PIIEncryptedType(key_env_var='ENCRYPTION_KEY'), nullable=True)
    phone_number = db.Column(db.String(30), nullable=True)
    school = db.Column(db.String(200), nullable=True)
    platform_known = db.Column(db.String(100), nullable=True)
    note = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=_utc_now)
    updated_at = db.Column(db.DateTime, default=_utc_now, onupdate=_utc_now)

    enrollments = db.relationship('Enrollment', backref='student', lazy=True, cascade='all, delete-orphan')
    payments = db.relationship('Payment', backref='student', lazy=True, cascade='all, delete-orphan')
    exams = db.relationship('Exam', backref='student', lazy=True, cascade='all, delete-orphan',
                            order_by='Exam.created_at.desc()')
    reminders = db.relationship('Reminder', backref='student', lazy=True, cascade='all, delete-orphan')
    assignments = db.relationship('TestAssignment', backref='student', lazy=True, cascade='all, delete-orphan')

    def to_dict(self, include_enrollments=False):
        data = {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'dob': self.dob.isoformat() if self.dob else None,
            'address': self.address,
            'phone_number': self.phone_number,
            'school': self.school,
            'platform_known': self.platform_known,
            'note': self.note,
            'created_at': format_utc_iso(self.created_at),
        }
        if include_enrollments:
            data['enrollments'] = [e.to_dict(include_class=True) for e in self.enrollments]
        return data

    def __repr__(self):
        return f'<Student {self.email}>'


# -------------------- CLASSES AND ENROLLMENT --------------------

class SchoolClass(db.Model):
    __tablename__ = 'classes'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    level = db.Column(db.String(20), nullable=False)
    max_students = db.Column(db.Integer, nullable=False)
    teacher_id = db.Column(db.Integer, db.ForeignKey('teachers.id', ondelete='SET NULL'), nullable=True)
    # Per-student price; None means the class carries no ledger entry
    payment_amount = db.Column(db.Float, nullable=True)
    num_sessions = db.Column(db.Integer, nullable=False, default=24)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=_utc_now)
    updated_at = db.Column(db.DateTime, default=_utc_now, onupdate=_utc_now)

    enrollments = db.relationship('Enrollment', backref='school_class', lazy=True, cascade='all, delete-orphan')
    payments = db.relationship('Payment', backref='school_class', lazy=True, cascade='all, delete-orphan')
    session_logs = db.relationship('ClassSession', backref='school_class', lazy=True, cascade='all, delete-orphan',
                                   order_by='ClassSession.session_number')

    __table_args__ = (
        db.Index('ix_classes_name_active', 'name', 'is_active'),
        db.Index('ix_classes_teacher_id', 'teacher_id'),
    )

    @property
    def student_count(self):
        return Enrollment.query.filter_by(class_id=self.id).count()

    def to_dict(self, include_students=False):
        data = {
            'id': self.id,
            'name': self.name,
            'level': self.level,
            'max_students': self.max_students,
            'teacher_id': self.teacher_id,
            'teacher_name': self.teacher.name if self.teacher else None,
            'payment_amount': self.payment_amount,
            'num_sessions': self.num_sessions,
            'is_active': self.is_active,
            'student_count': self.student_count,
            'created_at': format_utc_iso(self.created_at),
        }
        if include_students:
            data['students'] = [
                {
                    'id': e.student.id,
                    'name': e.student.name,
                    'email': e.student.email,
                    'attendance': e.attendance,
                    'sessions_registered': e.sessions_registered,
                    'reached_limit': e.reached_limit,
                }
                for e in sorted(self.enrollments, key=lambda e: e.student.name.lower())
            ]
        return data

    def __repr__(self):
        return f'<SchoolClass {self.name} ({self.level})>'


class Enrollment(db.Model):
    """
    Link between a student and a class.

    ``attendance`` counts sessions attended; ``sessions_registered`` is the
    per-student entitlement, seeded from the class's num_sessions and
    adjustable through payment discounts. attendance > sessions_registered
    is allowed; ``reached_limit`` only flags it.
    """
    __tablename__ = 'enrollments'

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id', ondelete='CASCADE'), nullable=False)
    class_id = db.Column(db.Integer, db.ForeignKey('classes.id', ondelete='CASCADE'), nullable=False)
    attendance = db.Column(db.Integer, nullable=False, default=0)
    sessions_registered = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=_utc_now)

    __table_args__ = (
        db.UniqueConstraint('student_id', 'class_id', name='uq_enrollments_student_class'),
        db.Index('ix_enrollments_class_id', 'class_id'),
    )

    @property
    def reached_limit(self):
        return self.attendance >= self.sessions_registered

    def to_dict(self, include_class=False):
        data = {
            'id': self.id,
            'student_id': self.student_id,
            'class_id': self.class_id,
            'attendance': self.attendance,
            'sessions_registered': self.sessions_registered,
            'reached_limit': self.reached_limit,
        }
        if include_class:
            data['class_name'] = self.school_class.name
            data['level'] = self.school_class.level
        return data


class ClassSession(db.Model):
    """A finished class session, numbered per class, with the teacher's note."""
    __tablename__ = 'class_sessions'

    id = db.Column(db.Integer, primary_key=True)
    class_id = db.Column(db.Integer, db.ForeignKey('classes.id', ondelete='CASCADE'), nullable=False)
    session_number = db.Column(db.Integer, nullable=False)
    note = db.Column(db.Text, nullable=True)
    teacher_id = db.Column(db.Integer, db.ForeignKey('teachers.id', ondelete='SET NULL'), nullable=True)
    created_at = db.Column(db.DateTime, default=_utc_now)

    __table_args__ = (
        db.UniqueConstraint('class_id', 'session_number', name='uq_class_sessions_class_number'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'class_id': self.class_id,
            'session_number': self.session_number,
            'note': self.note,
            'created_at': format_utc_iso(self.created_at),
        }


# -------------------- LEDGER --------------------

class Payment(db.Model):
    """One ledger entry per (student, class) pair."""
    __tablename__ = 'payments'

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id', ondelete='CASCADE'), nullable=False)
    class_id = db.Column(db.Integer, db.ForeignKey('classes.id', ondelete='CASCADE'), nullable=False)
    amount = db.Column(db.Float, nullable=False)
    payment_method = db.Column(db.String(50), nullable=False, default=UNPAID_METHOD)
    have_paid = db.Column(db.Boolean, nullable=False, default=False)
    paid_at = db.Column(db.DateTime, nullable=True)
    discount_percentage = db.Column(db.Float, nullable=True)
    discount_reason = db.Column(db.Text, nullable=True)
    staff_id = db.Column(db.Integer, db.ForeignKey('staff.id', ondelete='SET NULL'), nullable=True)
    created_at = db.Column(db.DateTime, default=_utc_now)
    updated_at = db.Column(db.DateTime, default=_utc_now, onupdate=_utc_now)

    __table_args__ = (
        db.UniqueConstraint('student_id', 'class_id', name='uq_payments_student_class'),
        db.Index('ix_payments_class_id', 'class_id'),
        db.Index('ix_payments_have_paid', 'have_paid'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'student_id': self.student_id,
            'student_name': self.student.name if self.student else None,
            'class_id': self.class_id,
            'class_name': self.school_class.name if self.school_class else None,
            'amount': self.amount,
            'payment_method': self.payment_method,
            'have_paid': self.have_paid,
            'paid_at': format_utc_iso(self.paid_at),
            'discount_percentage': self.discount_percentage,
            'discount_reason': self.discount_reason,
            'staff_id': self.staff_id,
            'staff_name': self.staff.name if self.staff else None,
            'created_at': format_utc_iso(self.created_at),
        }


# -------------------- PLACEMENT --------------------

class LevelThreshold(db.Model):
    """Inclusive [min_score, max_score] band mapped to a level label."""
    __tablename__ = 'level_thresholds'

    id = db.Column(db.Integer, primary_key=True)
    level = db.Column(db.String(20), nullable=False)
    min_score = db.Column(db.Float, nullable=False)
    max_score = db.Column(db.Float, nullable=False)
    created_at = db.Column(db.DateTime, default=_utc_now)

    def contains(self, score):
        return self.min_score <= score <= self.max_score

    def to_dict(self):
        return {
            'id': self.id,
            'level': self.level,
            'min_score': self.min_score,
            'max_score': self.max_score,
        }


class Exam(db.Model):
    """Placement exam result. Immutable once created."""
    __tablename__ = 'exams'

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id', ondelete='CASCADE'), nullable=False)
    score = db.Column(db.Float, nullable=False)
    level_estimate = db.Column(db.String(20), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=_utc_now)

    def to_dict(self):
        return {
            'id': self.id,
            'student_id': self.student_id,
            'student_name': self.student.name if self.student else None,
            'score': self.score,
            'level_estimate': self.level_estimate,
            'notes': self.notes,
            'created_at': format_utc_iso(self.created_at),
        }


# -------------------- REMINDERS --------------------

class Reminder(db.Model):
    """Follow-up note about a student, owned by a staff member or a cashier."""
    __tablename__ = 'reminders'

    id = db.Column(db.Integer, primary_key=True)
    staff_id = db.Column(db.Integer, db.ForeignKey('staff.id', ondelete='CASCADE'), nullable=True)
    cashier_id = db.Column(db.Integer, db.ForeignKey('cashiers.id', ondelete='CASCADE'), nullable=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id', ondelete='CASCADE'), nullable=False)
    type = db.Column(db.String(50), nullable=False)
    platform = db.Column(db.String(50), nullable=False)
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=_utc_now)
    updated_at = db.Column(db.DateTime, default=_utc_now, onupdate=_utc_now)

    def to_dict(self):
        return {
            'id': self.id,
            'staff_id': self.staff_id,
            'cashier_id': self.cashier_id,
            'type': self.type,
            'platform': self.platform,
            'content': self.content,
            'student': {
                'id': self.student.id,
                'name': self.student.name,
                'email': self.student.email,
                'phone_number': self.student.phone_number,
            },
            'created_at': format_utc_iso(self.created_at),
        }


# -------------------- FEEDBACK --------------------

class Feedback(db.Model):
    """Bug report or suggestion sent in by any signed-in user."""
    __tablename__ = 'feedback'

    id = db.Column(db.Integer, primary_key=True)
    # Accounts live in separate tables, so the author is (role, id) without a FK
    user_id = db.Column(db.Integer, nullable=False)
    user_role = db.Column(db.String(20), nullable=False)
    type = db.Column(db.String(50), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    screenshot = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=_utc_now)

    __table_args__ = (
        db.Index('ix_feedback_created_at', 'created_at'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'user_role': self.user_role,
            'type': self.type,
            'title': self.title,
            'description': self.description,
            'screenshot': self.screenshot,
            'created_at': format_utc_iso(self.created_at),
        }


# -------------------- ONLINE TESTS --------------------

class Test(db.Model):
    __tablename__ = 'tests'
    __test__ = False  # keep pytest from collecting the model

    id = db.Column(db.Integer, primary_key=True)
    teacher_id = db.Column(db.Integer, db.ForeignKey('teachers.id', ondelete='CASCADE'), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    duration = db.Column(db.Integer, nullable=False)  # minutes
    total_questions = db.Column(db.Integer, nullable=False)
    total_score = db.Column(db.Float, nullable=False)
    passing_score = db.Column(db.Float, nullable=True)
    created_at = db.Column(db.DateTime, default=_utc_now)
    updated_at = db.Column(db.DateTime, default=_utc_now, onupdate=_utc_now)

    questions = db.relationship('Question', backref='test', lazy=True, cascade='all, delete-orphan',
                                order_by='Question.position')
    assignments = db.relationship('TestAssignment', backref='test', lazy=True, cascade='all, delete-orphan')

    @property
    def max_score(self):
        return sum(q.score for q in self.questions)

    def to_dict(self, include_questions=True, reveal_answers=True):
        data = {
            'id': self.id,
            'teacher_id': self.teacher_id,
            'title': self.title,
            'description': self.description,
            'duration': self.duration,
            'total_questions': self.total_questions,
            'total_score': self.total_score,
            'passing_score': self.passing_score,
            'assignment_count': len(self.assignments),
            'created_at': format_utc_iso(self.created_at),
        }
        if include_questions:
            data['questions'] = [q.to_dict(reveal_answers=reveal_answers) for q in self.questions]
        return data


class Question(db.Model):
    __tablename__ = 'questions'

    id = db.Column(db.Integer, primary_key=True)
    test_id = db.Column(db.Integer, db.ForeignKey('tests.id', ondelete='CASCADE'), nullable=False)
    question_text = db.Column(db.Text, nullable=False)
    question_type = db.Column(db.String(30), nullable=False)
    position = db.Column(db.Integer, nullable=False)
    score = db.Column(db.Float, nullable=False, default=1)
    fill_blank_content = db.Column(db.Text, nullable=True)
    correct_answers = db.Column(db.JSON, nullable=False, default=list)

    options = db.relationship('QuestionOption', backref='question', lazy=True, cascade='all, delete-orphan',
                              order_by='QuestionOption.position')
    mapping_columns = db.relationship('MappingColumn', backref='question', lazy=True, cascade='all, delete-orphan',
                                      order_by='MappingColumn.position')

    def to_dict(self, reveal_answers=True):
        data = {
            'id': self.id,
            'question_text': self.question_text,
            'question_type': self.question_type,
            'position': self.position,
            'score': self.score,
            'fill_blank_content': self.fill_blank_content,
            'options': [o.to_dict(reveal_answers=reveal_answers) for o in self.options],
            'mapping_columns': [c.to_dict() for c in self.mapping_columns],
        }
        if reveal_answers:
            data['correct_answers'] = list(self.correct_answers or [])
        return data


class QuestionOption(db.Model):
    __tablename__ = 'question_options'

    id = db.Column(db.Integer, primary_key=True)
    question_id = db.Column(db.Integer, db.ForeignKey('questions.id', ondelete='CASCADE'), nullable=False)
    option_text = db.Column(db.Text, nullable=False)
    option_key = db.Column(db.String(10), nullable=True)
    is_correct = db.Column(db.Boolean, nullable=False, default=False)
    position = db.Column(db.Integer, nullable=False)

    def to_dict(self, reveal_answers=True):
        data = {
            'id': self.id,
            'option_text': self.option_text,
            'option_key': self.option_key,
            'position': self.position,
        }
        if reveal_answers:
            data['is_correct'] = self.is_correct
        return data


class MappingColumn(db.Model):
    __tablename__ = 'mapping_columns'

    id = db.Column(db.Integer, primary_key=True)
    question_id = db.Column(db.Integer, db.ForeignKey('questions.id', ondelete='CASCADE'), nullable=False)
    column_type = db.Column(db.String(10), nullable=False)  # 'left' or 'right'
    item_text = db.Column(db.Text, nullable=False)
    position = db.Column(db.Integer, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'column_type': self.column_type,
            'item_text': self.item_text,
            'position': self.position,
        }


class TestAssignment(db.Model):
    """
    A test handed to one student.

    Lifecycle: assigned -> in_progress (first time the student opens it)
    -> completed (exactly once, on submission).
    """
    __tablename__ = 'test_assignments'
    __test__ = False

    id = db.Column(db.Integer, primary_key=True)
    test_id = db.Column(db.Integer, db.ForeignKey('tests.id', ondelete='CASCADE'), nullable=False)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id', ondelete='CASCADE'), nullable=False)
    due_date = db.Column(db.DateTime, nullable=True)
    assigned_at = db.Column(db.DateTime, default=_utc_now)
    started_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    score = db.Column(db.Float, nullable=True)
    teacher_comment = db.Column(db.Text, nullable=True)

    answers = db.relationship('StudentAnswer', backref='assignment', lazy=True, cascade='all, delete-orphan',
                              order_by='StudentAnswer.id')

    __table_args__ = (
        db.Index('ix_test_assignments_student_id', 'student_id'),
        db.Index('ix_test_assignments_test_id', 'test_id'),
    )

    @property
    def status(self):
        if self.completed_at:
            return 'completed'
        if self.started_at:
            return 'in_progress'
        return 'assigned'

    @property
    def needs_review(self):
        return any(a.needs_review for a in self.answers)

    def to_dict(self, include_test=False, include_answers=False):
        data = {
            'id': self.id,
            'test_id': self.test_id,
            'test_title': self.test.title if self.test else None,
            'student_id': self.student_id,
            'student_name': self.student.name if self.student else None,
            'status': self.status,
            'due_date': format_utc_iso(self.due_date),
            'assigned_at': format_utc_iso(self.assigned_at),
            'started_at': format_utc_iso(self.started_at),
            'completed_at': format_utc_iso(self.completed_at),
            'score': self.score,
            'teacher_comment': self.teacher_comment,
        }
        if include_test:
            data['test'] = self.test.to_dict(reveal_answers=False)
        if include_answers:
            data['answers'] = [a.to_dict() for a in self.answers]
            data['needs_review'] = self.needs_review
        return data


class StudentAnswer(db.Model):
    __tablename__ = 'student_answers'

    id = db.Column(db.Integer, primary_key=True)
    assignment_id = db.Column(db.Integer, db.ForeignKey('test_assignments.id', ondelete='CASCADE'), nullable=False)
    question_id = db.Column(db.Integer, db.ForeignKey('questions.id', ondelete='CASCADE'), nullable=False)
    answer_text = db.Column(db.Text, nullable=True)
    selected_options = db.Column(db.JSON, nullable=True)
    mapping_answers = db.Column(db.JSON, nullable=True)
    score = db.Column(db.Float, nullable=False, default=0)
    feedback = db.Column(db.Text, nullable=True)
    needs_review = db.Column(db.Boolean, nullable=False, default=False)

    question = db.relationship('Question')

    __table_args__ = (
        db.UniqueConstraint('assignment_id', 'question_id', name='uq_student_answers_assignment_question'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'question_id': self.question_id,
            'answer_text': self.answer_text,
            'selected_options': self.selected_options,
            'mapping_answers': self.mapping_answers,
            'score': self.score,
            'feedback': self.feedback,
            'needs_review': self.needs_review,
        }
