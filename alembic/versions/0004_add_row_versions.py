"""version counters on quiz and submission
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0004_row_versions'
down_revision = '0003_unique_submission'
branch_labels = None
depends_on = None

TABLES = ("quiz", "submission")


def _has_column(table, name):
    inspector = sa.inspect(op.get_bind())
    return any(c["name"] == name for c in inspector.get_columns(table))


def upgrade():
    for table in TABLES:
        if _has_column(table, "version"):
            continue
        with op.batch_alter_table(table) as batch_op:
            batch_op.add_column(sa.Column("version", sa.Integer(), nullable=False, server_default="1"))


def downgrade():
    for table in TABLES:
        with op.batch_alter_table(table) as batch_op:
            batch_op.drop_column("version")
