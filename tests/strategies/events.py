from hypothesis import strategies as st

from ingest.events import PlayEvent


@st.composite
def mbid_strat(draw):
    return str(draw(st.uuids()))


name_strat = st.text(alphabet=st.characters(codec="utf-8", exclude_categories=("Cs", "Cc")),
                     min_size=1, max_size=40)

malformed_id_strat = st.one_of(
    st.just("not-a-uuid"),
    st.just(""),
    st.text(alphabet="xyz-_ ", min_size=1, max_size=40),
)


@st.composite
def play_event_strat(draw, *, played=None, with_ids=None, artists=None):
    """PlayEvents with any mix of present, missing and malformed ids."""
    def maybe_id():
        if with_ids is False:
            return None
        options = [mbid_strat()] if with_ids else [st.none(), mbid_strat(), malformed_id_strat]
        return draw(st.one_of(*options))

    if played is None:
        played_at = draw(st.one_of(st.none(), st.integers(min_value=1_009_843_200, max_value=1_893_456_000)))
    elif played:
        played_at = draw(st.integers(min_value=1_009_843_200, max_value=1_893_456_000))
    else:
        played_at = None

    artist_name = draw(st.sampled_from(artists)) if artists else draw(name_strat)
    album_name = draw(st.one_of(st.none(), name_strat))

    return PlayEvent(
        track_name=draw(name_strat),
        track_id=maybe_id(),
        artist_name=artist_name,
        artist_id=maybe_id(),
        album_name=album_name,
        album_id=maybe_id() if album_name is not None else None,
        played_at=played_at,
        now_playing=played_at is None and draw(st.booleans()),
    )
