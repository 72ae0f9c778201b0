"""add unique constraint for class code
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0002_add_unique_class_code'
down_revision = '0001_initial'
branch_labels = None
depends_on = None


def _has_constraint(table, name):
    inspector = sa.inspect(op.get_bind())
    return any(c.get("name") == name for c in inspector.get_unique_constraints(table))


def upgrade():
    # databases created from the current metadata already carry it
    if _has_constraint("class", "uq_class_code"):
        return
    with op.batch_alter_table("class") as batch_op:
        batch_op.create_unique_constraint("uq_class_code", ["code"])


def downgrade():
    with op.batch_alter_table("class") as batch_op:
        batch_op.drop_constraint("uq_class_code", type_="unique")
