from __future__ import annotations

import pytest

from ticketbooth import crud, database
from ticketbooth.errors import NotFound
from ticketbooth.storage import create_organizer, rotate_organizer_token


def test_organizer_token_lifecycle():
    organizer_id, first = create_organizer("Harbor Events")
    assert isinstance(first, str) and first

    with database.get_session() as session:
        assert crud.get_organizer_by_token(session, first).id == organizer_id

    rotated = rotate_organizer_token(organizer_id)
    assert rotated != first

    with database.get_session() as session:
        assert crud.get_organizer_by_token(session, first) is None
        assert crud.get_organizer_by_token(session, rotated).id == organizer_id


def test_rotate_unknown_organizer():
    with pytest.raises(NotFound):
        rotate_organizer_token("missing")
