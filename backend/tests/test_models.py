from app.db.base import Base
from app.db import models  # noqa: F401  ensure models are loaded


def test_metadata_contains_core_tables() -> None:
    table_names = set(Base.metadata.tables.keys())

    assert {"users", "user_data"}.issubset(table_names)


def test_user_data_keyed_by_user() -> None:
    table = Base.metadata.tables["user_data"]

    assert [column.name for column in table.primary_key.columns] == ["user_id"]
    assert {"state", "version", "updated_at"}.issubset(table.columns.keys())
    foreign_keys = {fk.target_fullname for fk in table.foreign_keys}
    assert foreign_keys == {"users.id"}
