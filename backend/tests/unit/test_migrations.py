"""Tests for the Alembic migrations run by database.init_db."""

import pytest
from alembic import command
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, inspect

import models  # noqa: F401
from database import Base, alembic_config, enable_sqlite_foreign_keys, init_db


@pytest.fixture(name="file_engine")
def file_engine_fixture(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'finsight.db'}")
    enable_sqlite_foreign_keys(engine)
    yield engine
    engine.dispose()


def _head() -> str:
    return ScriptDirectory.from_config(alembic_config()).get_current_head()


def _current(engine) -> str | None:
    with engine.connect() as connection:
        return MigrationContext.configure(connection).get_current_revision()


class TestInitDb:
    def test_upgrade_creates_model_tables(self, file_engine):
        init_db(file_engine)

        inspector = inspect(file_engine)
        assert set(inspector.get_table_names()) == set(Base.metadata.tables) | {"alembic_version"}
        for name, table in Base.metadata.tables.items():
            columns = {c["name"] for c in inspector.get_columns(name)}
            assert columns == set(table.columns.keys()), name
        assert _current(file_engine) == _head()

    def test_indexes_match_models(self, file_engine):
        init_db(file_engine)

        inspector = inspect(file_engine)
        for name, table in Base.metadata.tables.items():
            migrated = {ix["name"]: bool(ix["unique"]) for ix in inspector.get_indexes(name)}
            declared = {ix.name: bool(ix.unique) for ix in table.indexes}
            assert migrated == declared, name

    def test_foreign_keys_cascade(self, file_engine):
        init_db(file_engine)

        fks = inspect(file_engine).get_foreign_keys("transactions")
        assert [(fk["referred_table"], fk["options"].get("ondelete")) for fk in fks] == [
            ("accounts", "CASCADE")
        ]

    def test_second_run_is_a_no_op(self, file_engine):
        init_db(file_engine)
        init_db(file_engine)
        assert _current(file_engine) == _head()

    def test_pre_migration_schema_is_stamped(self, file_engine):
        Base.metadata.create_all(bind=file_engine)

        init_db(file_engine)

        assert _current(file_engine) == _head()


def test_downgrade_to_base_drops_tables(file_engine):
    init_db(file_engine)

    cfg = alembic_config()
    with file_engine.begin() as connection:
        cfg.attributes["connection"] = connection
        command.downgrade(cfg, "base")

    assert inspect(file_engine).get_table_names() == ["alembic_version"]
    assert _current(file_engine) is None
