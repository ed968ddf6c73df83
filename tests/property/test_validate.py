from hypothesis import given, settings, strategies as st

from ingest.validate import validate_events
from tests.mocks.events import event
from tests.strategies.events import play_event_strat


def test_undated_event_is_dropped():
    assert list(validate_events([event(played_at=None)])) == []


def test_now_playing_event_is_dropped():
    playing = event(played_at=None, now_playing=True)
    played = event(track="Cirrus", played_at=1733646660)

    assert list(validate_events([playing, played])) == [played]


def test_names_pass_through_unchanged():
    odd = event(track="", artist="  ", album="")
    assert list(validate_events([odd])) == [odd]


def test_validation_is_lazy():
    def events():
        yield event(played_at=1)
        raise AssertionError("consumed past the first event")

    assert next(validate_events(events())).played_at == 1


@settings(deadline=None)
@given(st.lists(play_event_strat()))
def test_only_dated_events_survive_in_order(events):
    valid = list(validate_events(events))

    assert all(e.played_at is not None and not e.now_playing for e in valid)
    assert valid == [e for e in events if e.played_at is not None and not e.now_playing]
