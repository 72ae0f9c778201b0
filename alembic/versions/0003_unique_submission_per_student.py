"""one submission per quiz and student
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0003_unique_submission'
down_revision = '0002_add_unique_class_code'
branch_labels = None
depends_on = None

NAME = "uq_submission_quiz_student"


def upgrade():
    inspector = sa.inspect(op.get_bind())
    if any(c.get("name") == NAME for c in inspector.get_unique_constraints("submission")):
        return
    with op.batch_alter_table("submission") as batch_op:
        batch_op.create_unique_constraint(NAME, ["quiz_id", "student_id"])


def downgrade():
    with op.batch_alter_table("submission") as batch_op:
        batch_op.drop_constraint(NAME, type_="unique")
