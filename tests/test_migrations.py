from sqlalchemy import create_engine, inspect

from quizly.migrations import upgrade_head


def test_upgrade_head_creates_schema(monkeypatch, tmp_path):
    url = f"sqlite:///{tmp_path / 'migrated.db'}"
    monkeypatch.setenv('DATABASE_URL', url)

    upgrade_head()
    # running again is a no-op
    upgrade_head()

    engine = create_engine(url)
    try:
        insp = inspect(engine)
        tables = set(insp.get_table_names())
        assert {'user', 'class', 'quiz', 'question', 'submission', 'answer', 'alembic_version'} <= tables
        names = {c['name'] for c in insp.get_unique_constraints('submission')}
        assert 'uq_submission_quiz_student' in names
        assert 'version' in {c['name'] for c in insp.get_columns('quiz')}
    finally:
        engine.dispose()
