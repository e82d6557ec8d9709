from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, text
from sqlalchemy.exc import IntegrityError

ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture()
def migrated_url(tmp_path):
    url = f"sqlite:///{tmp_path / 'migrated.db'}"
    cfg = Config()
    cfg.set_main_option("script_location", str(ROOT / "alembic"))
    cfg.set_main_option("sqlalchemy.url", url)
    command.upgrade(cfg, "head")
    yield url
    command.downgrade(cfg, "base")


def _index_sql(conn, name: str) -> str:
    return conn.execute(
        text("SELECT sql FROM sqlite_master WHERE type = 'index' AND name = :name"), {"name": name}
    ).scalar_one()


def _insert_appointment(conn, status: str) -> None:
    conn.execute(
        text(
            "INSERT INTO appointments (dentist_id, status, appointment_date, appointment_time, shift) "
            "VALUES (1, :status, '2026-10-20', '09:00:00', 'morning')"
        ),
        {"status": status},
    )


def test_live_indexes_are_partial(migrated_url):
    engine = create_engine(migrated_url)
    with engine.connect() as conn:
        assert "WHERE" in _index_sql(conn, "uq_appointments_live_slot")
        assert "WHERE" in _index_sql(conn, "uq_patients_live_phone")
    engine.dispose()


def test_canceled_appointment_frees_slot_after_upgrade(migrated_url):
    engine = create_engine(migrated_url)
    with engine.begin() as conn:
        _insert_appointment(conn, "canceled")
        _insert_appointment(conn, "confirmed")

    with pytest.raises(IntegrityError):
        with engine.begin() as conn:
            _insert_appointment(conn, "confirmed")
    engine.dispose()
