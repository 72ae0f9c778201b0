"""initial create tables
"""
from alembic import op
from sqlmodel import SQLModel

import quizly.models  # noqa: F401

# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Use SQLModel metadata creation to ensure consistency
    SQLModel.metadata.create_all(op.get_bind())


def downgrade():
    SQLModel.metadata.drop_all(op.get_bind())
