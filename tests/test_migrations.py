import importlib.util
from pathlib import Path

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect

from chatcore.db.base import Base
import chatcore.models  # noqa: F401

MIGRATION = Path(__file__).resolve().parents[1] / "alembic" / "versions" / "0001_init.py"


def load_migration():
    spec = importlib.util.spec_from_file_location("migration_0001_init", MIGRATION)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestInitialMigration:
    def test_upgrade_matches_models(self):
        engine = create_engine("sqlite://")
        migration = load_migration()
        with engine.begin() as conn:
            with Operations.context(MigrationContext.configure(conn)):
                migration.upgrade()
            insp = inspect(conn)
            assert set(insp.get_table_names()) == set(Base.metadata.tables)
            for name, table in Base.metadata.tables.items():
                assert {c["name"] for c in insp.get_columns(name)} == {c.name for c in table.columns}, name
            indexes = {i["name"] for i in insp.get_indexes("messages")}
            assert {"ix_messages_conversation_created", "ix_messages_sender_id"} <= indexes

    def test_downgrade_drops_everything(self):
        engine = create_engine("sqlite://")
        migration = load_migration()
        with engine.begin() as conn:
            with Operations.context(MigrationContext.configure(conn)):
                migration.upgrade()
                migration.downgrade()
            assert inspect(conn).get_table_names() == []
