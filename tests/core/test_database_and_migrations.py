import pytest
from sqlalchemy import create_engine, inspect, text

from notification_core.core.database import get_db, session_scope
from notification_core.modules.users.models import User
from notification_core.models.registry import Base
from run_migrations import upgrade


def test_migrations_create_every_mapped_table(tmp_path):
    url = f"sqlite:///{tmp_path / 'migrated.db'}"

    upgrade(url, configure_logger=False)

    engine = create_engine(url)
    try:
        inspector = inspect(engine)
        tables = set(inspector.get_table_names())
        assert set(Base.metadata.tables) <= tables
        assert "alembic_version" in tables
        for name, table in Base.metadata.tables.items():
            migrated = {column["name"] for column in inspector.get_columns(name)}
            assert migrated == {column.name for column in table.columns}, name
    finally:
        engine.dispose()


def test_get_db_yields_a_closing_session():
    dependency = get_db()
    db = next(dependency)
    assert db.execute(text("SELECT 1")).scalar() == 1

    dependency.close()

    assert not db.in_transaction()


def test_session_scope_discards_work_on_error(session, session_factory):
    with pytest.raises(RuntimeError):
        with session_scope(session_factory) as db:
            db.add(User(username="ghost"))
            db.flush()
            raise RuntimeError("job crashed")

    session.expire_all()
    assert session.query(User).filter_by(username="ghost").count() == 0
