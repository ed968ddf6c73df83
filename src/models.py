from sqlalchemy import (
    Column, Integer, BigInteger, String, ForeignKey, DateTime,
    Index, CheckConstraint, text
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func


# Canonical MusicBrainz id: lower-case UUID.
MBID_REGEX = r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"

MBID_LENGTH = 36
NO_EXTERNAL_ID = text("external_id IS NULL")


def _external_id_checks(table: str) -> tuple[CheckConstraint, CheckConstraint]:
    """Storage-level format check for external ids, one flavour per dialect."""
    return (
        CheckConstraint(f"external_id IS NULL OR external_id ~ '{MBID_REGEX}'",
                        name=f"chk_{table}_external_id_format").ddl_if(dialect="postgresql"),
        CheckConstraint(f"external_id IS NULL OR (length(external_id) = {MBID_LENGTH} "
                        f"AND external_id NOT GLOB '*[^0-9a-f-]*' "
                        f"AND external_id GLOB '????????-????-????-????-????????????')",
                        name=f"chk_{table}_external_id_format_lite").ddl_if(dialect="sqlite"),
    )


Base = declarative_base()

class User(Base):
    __tablename__ = 'users'

    user_id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(256), unique=True, nullable=False)
    avatar_url = Column(String(2048))

    scrobbles = relationship("Scrobble", back_populates="user", cascade="all, delete-orphan")


class Artist(Base):
    __tablename__ = 'artists'

    artist_id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(String(MBID_LENGTH), unique=True)
    name = Column(String(512), nullable=False)
    name_key = Column(String(512), nullable=False)
    created_at = Column(DateTime, default=func.now())

    albums = relationship("Album", back_populates="artist")
    tracks = relationship("Track", back_populates="artist")

    __table_args__ = (
        Index('uq_artists_name_key', 'name_key', unique=True,
              postgresql_where=NO_EXTERNAL_ID, sqlite_where=NO_EXTERNAL_ID),
        Index('idx_artists_name', 'name'),
        *_external_id_checks('artists'),
    )

class Album(Base):
    __tablename__ = 'albums'

    album_id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(String(MBID_LENGTH), unique=True)
    name = Column(String(512), nullable=False)
    name_key = Column(String(512), nullable=False)
    artist_id = Column(Integer,
                       ForeignKey('artists.artist_id', onupdate='CASCADE'),
                       nullable=False)

    # Filled in later by enrichment.
    album_url = Column(String(2048))
    release_year = Column(Integer)

    created_at = Column(DateTime, default=func.now())

    artist = relationship("Artist", back_populates="albums")
    tracks = relationship("Track", back_populates="album")

    __table_args__ = (
        Index('uq_albums_name_key_artist', 'name_key', 'artist_id', unique=True,
              postgresql_where=NO_EXTERNAL_ID, sqlite_where=NO_EXTERNAL_ID),
        Index('idx_albums_artist_id', 'artist_id'),
        *_external_id_checks('albums'),
        CheckConstraint('release_year IS NULL OR release_year > 0', name='chk_albums_release_year_positive'),
    )

class Track(Base):
    __tablename__ = 'tracks'

    track_id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(String(MBID_LENGTH), unique=True)
    name = Column(String(512), nullable=False)
    name_key = Column(String(512), nullable=False)
    album_id = Column(Integer, ForeignKey('albums.album_id', onupdate='CASCADE'))
    artist_id = Column(Integer,
                       ForeignKey('artists.artist_id', onupdate='CASCADE'),
                       nullable=False)
    release_year = Column(Integer)
    created_at = Column(DateTime, default=func.now())

    album = relationship("Album", back_populates="tracks")
    artist = relationship("Artist", back_populates="tracks")
    scrobbles = relationship("Scrobble", back_populates="track")

    __table_args__ = (
        # NULLs never collide in a unique index, so singles get their own.
        Index('uq_tracks_name_key_album_artist', 'name_key', 'album_id', 'artist_id', unique=True,
              postgresql_where=text("external_id IS NULL AND album_id IS NOT NULL"),
              sqlite_where=text("external_id IS NULL AND album_id IS NOT NULL")),
        Index('uq_tracks_name_key_artist_single', 'name_key', 'artist_id', unique=True,
              postgresql_where=text("external_id IS NULL AND album_id IS NULL"),
              sqlite_where=text("external_id IS NULL AND album_id IS NULL")),
        Index('idx_tracks_album_id', 'album_id'),
        Index('idx_tracks_artist_id', 'artist_id'),
        *_external_id_checks('tracks'),
        CheckConstraint('release_year IS NULL OR release_year > 0', name='chk_tracks_release_year_positive'),
    )

class Scrobble(Base):
    __tablename__ = "scrobbles"

    scrobble_id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(256),
                      ForeignKey('users.username',
                                 onupdate='CASCADE',
                                 ondelete='CASCADE'),
                      nullable=False)
    track_id = Column(Integer,
                      ForeignKey('tracks.track_id',
                                 onupdate='CASCADE',
                                 ondelete='CASCADE'),
                      nullable=False)

    played_at = Column(DateTime(timezone=True), nullable=False)
    played_at_epoch = Column(BigInteger, nullable=False)
    year = Column(Integer, nullable=False)

    user = relationship("User", back_populates="scrobbles")
    track = relationship("Track", back_populates="scrobbles")

    __table_args__ = (
        Index('idx_scrobbles_username_year', 'username', 'year'),
        Index('idx_scrobbles_track_id', 'track_id'),
        Index('idx_scrobbles_played_at_epoch', 'played_at_epoch'),
        CheckConstraint('played_at_epoch >= 0', name='chk_scrobbles_epoch_positive'),
    )
