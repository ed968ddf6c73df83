"""
Record store: idempotent upserts for artists, albums and tracks, plain inserts for scrobbles.

Every write is committed on its own. A failing row is rolled back and reported as
`StoreWriteFailure` without touching rows written before it.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import func, select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models import Album, Artist, NO_EXTERNAL_ID, Scrobble, Track, User
from ingest.errors import StoreWriteFailure
from ingest.normalize import normalize_name

LOGGER = logging.getLogger(__name__)

TRACK_ON_ALBUM = text("external_id IS NULL AND album_id IS NOT NULL")
TRACK_SINGLE = text("external_id IS NULL AND album_id IS NULL")


def played_at_from_epoch(epoch: int) -> datetime:
    return datetime.fromtimestamp(epoch, tz=timezone.utc)


class RecordStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    def _insert(self, model):
        if self.session.get_bind().dialect.name == "sqlite":
            return sqlite_insert(model)
        return pg_insert(model)

    async def _write(self, kind: str, key, stmt) -> int | None:
        try:
            result = await self.session.execute(stmt)
            row_id = result.scalar_one_or_none()
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StoreWriteFailure(kind, key, str(e).splitlines()[0]) from e

        return row_id

    async def upsert_user(self, username: str, avatar_url: str | None = None) -> None:
        stmt = self._insert(User).values(username=username, avatar_url=avatar_url)
        if avatar_url is None:
            stmt = stmt.on_conflict_do_nothing(index_elements=["username"])
        else:
            stmt = stmt.on_conflict_do_update(index_elements=["username"],
                                              set_={"avatar_url": stmt.excluded.avatar_url})

        await self._write("user", username, stmt.returning(User.user_id))
        LOGGER.debug(f"User '{username}' ready.")

    async def upsert_artist(self, name: str, external_id: str | None = None) -> int:
        stmt = self._insert(Artist).values(name=name, name_key=normalize_name(name),
                                           external_id=external_id)
        if external_id is not None:
            stmt = stmt.on_conflict_do_update(
                index_elements=["external_id"],
                set_={"name": stmt.excluded.name, "name_key": stmt.excluded.name_key})
        else:
            stmt = stmt.on_conflict_do_update(
                index_elements=["name_key"], index_where=NO_EXTERNAL_ID,
                set_={"name": stmt.excluded.name})

        return await self._write("artist", external_id or name, stmt.returning(Artist.artist_id))

    async def upsert_album(self, name: str, external_id: str | None, artist_ref: int) -> int:
        stmt = self._insert(Album).values(name=name, name_key=normalize_name(name),
                                          external_id=external_id, artist_id=artist_ref)
        if external_id is not None:
            stmt = stmt.on_conflict_do_update(
                index_elements=["external_id"],
                set_={"name": stmt.excluded.name, "name_key": stmt.excluded.name_key})
        else:
            stmt = stmt.on_conflict_do_update(
                index_elements=["name_key", "artist_id"], index_where=NO_EXTERNAL_ID,
                set_={"name": stmt.excluded.name})

        return await self._write("album", external_id or name, stmt.returning(Album.album_id))

    async def upsert_track(self, name: str, external_id: str | None,
                           album_ref: int | None, artist_ref: int) -> int:
        stmt = self._insert(Track).values(name=name, name_key=normalize_name(name),
                                          external_id=external_id,
                                          album_id=album_ref, artist_id=artist_ref)
        if external_id is not None:
            stmt = stmt.on_conflict_do_update(
                index_elements=["external_id"],
                set_={"name": stmt.excluded.name, "name_key": stmt.excluded.name_key})
        elif album_ref is not None:
            stmt = stmt.on_conflict_do_update(
                index_elements=["name_key", "album_id", "artist_id"], index_where=TRACK_ON_ALBUM,
                set_={"name": stmt.excluded.name})
        else:
            stmt = stmt.on_conflict_do_update(
                index_elements=["name_key", "artist_id"], index_where=TRACK_SINGLE,
                set_={"name": stmt.excluded.name})

        return await self._write("track", external_id or name, stmt.returning(Track.track_id))

    async def insert_scrobble(self, username: str, track_ref: int, played_at_epoch: int) -> int:
        played_at = played_at_from_epoch(played_at_epoch)
        stmt = self._insert(Scrobble).values(
            username=username,
            track_id=track_ref,
            played_at=played_at,
            played_at_epoch=played_at_epoch,
            year=played_at.year,
        )

        return await self._write("scrobble", f"{track_ref}@{played_at_epoch}",
                                 stmt.returning(Scrobble.scrobble_id))

    async def scrobble_count(self, username: str, year: int | None = None) -> int:
        query = select(func.count(Scrobble.scrobble_id)).where(Scrobble.username == username)
        if year is not None:
            query = query.where(Scrobble.year == year)

        result = await self.session.execute(query)
        return result.scalar_one()
