"""Add feedback table and one answer per question

Revision ID: 9b2d5f7e1c48
Revises: 4c7e1a9d2b30
Create Date: 2026-10-19 15:30:00.000000

Adds the feedback inbox and a unique (assignment_id, question_id) constraint
on student_answers so a submission cannot store two answers to one question.

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '9b2d5f7e1c48'
down_revision = '4c7e1a9d2b30'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'feedback',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('user_role', sa.String(length=20), nullable=False),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('screenshot', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_feedback_created_at', 'feedback', ['created_at'])

    with op.batch_alter_table('student_answers') as batch_op:
        batch_op.create_unique_constraint(
            'uq_student_answers_assignment_question', ['assignment_id', 'question_id']
        )


def downgrade():
    with op.batch_alter_table('student_answers') as batch_op:
        batch_op.drop_constraint('uq_student_answers_assignment_question', type_='unique')

    op.drop_index('ix_feedback_created_at', table_name='feedback')
    op.drop_table('feedback')
