"""Unit tests for the user mapping."""

import uuid

from sqlalchemy.dialects import postgresql, sqlite

from src.kernel.models.user import User


def test_id_is_stored_as_hex_on_every_backend():
    id_type = User.__table__.c.id.type
    assert id_type.compile(dialect=postgresql.dialect()) == "CHAR(32)"
    assert id_type.compile(dialect=sqlite.dialect()) == "CHAR(32)"

    value = uuid.uuid4()
    bind = id_type.bind_processor(postgresql.dialect())
    assert bind(value) == value.hex
