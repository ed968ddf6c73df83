"""users, artists, albums, tracks and scrobbles

Revision ID: 001
Create Date: 2025-01-12 14:03:21.418920

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001'
down_revision = None
branch_labels = None
depends_on = None

MBID_CHECK = "external_id IS NULL OR external_id ~ '^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$'"


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('user_id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('username', sa.String(256), nullable=False, unique=True),
        sa.Column('avatar_url', sa.String(2048)),
    )

    op.create_table(
        'artists',
        sa.Column('artist_id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('external_id', sa.String(36), unique=True),
        sa.Column('name', sa.String(512), nullable=False),
        sa.Column('name_key', sa.String(512), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint(MBID_CHECK, name='chk_artists_external_id_format'),
    )
    op.create_index('uq_artists_name_key', 'artists', ['name_key'], unique=True,
                    postgresql_where=sa.text("external_id IS NULL"))
    op.create_index('idx_artists_name', 'artists', ['name'])

    op.create_table(
        'albums',
        sa.Column('album_id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('external_id', sa.String(36), unique=True),
        sa.Column('name', sa.String(512), nullable=False),
        sa.Column('name_key', sa.String(512), nullable=False),
        sa.Column('artist_id', sa.Integer(),
                  sa.ForeignKey('artists.artist_id', onupdate='CASCADE'), nullable=False),
        sa.Column('album_url', sa.String(2048)),
        sa.Column('release_year', sa.Integer()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint(MBID_CHECK, name='chk_albums_external_id_format'),
        sa.CheckConstraint('release_year IS NULL OR release_year > 0', name='chk_albums_release_year_positive'),
    )
    op.create_index('uq_albums_name_key_artist', 'albums', ['name_key', 'artist_id'], unique=True,
                    postgresql_where=sa.text("external_id IS NULL"))
    op.create_index('idx_albums_artist_id', 'albums', ['artist_id'])

    op.create_table(
        'tracks',
        sa.Column('track_id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('external_id', sa.String(36), unique=True),
        sa.Column('name', sa.String(512), nullable=False),
        sa.Column('name_key', sa.String(512), nullable=False),
        sa.Column('album_id', sa.Integer(), sa.ForeignKey('albums.album_id', onupdate='CASCADE')),
        sa.Column('artist_id', sa.Integer(),
                  sa.ForeignKey('artists.artist_id', onupdate='CASCADE'), nullable=False),
        sa.Column('release_year', sa.Integer()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint(MBID_CHECK, name='chk_tracks_external_id_format'),
        sa.CheckConstraint('release_year IS NULL OR release_year > 0', name='chk_tracks_release_year_positive'),
    )
    op.create_index('uq_tracks_name_key_album_artist', 'tracks', ['name_key', 'album_id', 'artist_id'],
                    unique=True,
                    postgresql_where=sa.text("external_id IS NULL AND album_id IS NOT NULL"))
    op.create_index('uq_tracks_name_key_artist_single', 'tracks', ['name_key', 'artist_id'],
                    unique=True,
                    postgresql_where=sa.text("external_id IS NULL AND album_id IS NULL"))
    op.create_index('idx_tracks_album_id', 'tracks', ['album_id'])
    op.create_index('idx_tracks_artist_id', 'tracks', ['artist_id'])

    op.create_table(
        'scrobbles',
        sa.Column('scrobble_id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('username', sa.String(256),
                  sa.ForeignKey('users.username', onupdate='CASCADE', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('track_id', sa.Integer(),
                  sa.ForeignKey('tracks.track_id', onupdate='CASCADE', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('played_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('played_at_epoch', sa.BigInteger(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.CheckConstraint('played_at_epoch >= 0', name='chk_scrobbles_epoch_positive'),
    )
    op.create_index('idx_scrobbles_username_year', 'scrobbles', ['username', 'year'])
    op.create_index('idx_scrobbles_track_id', 'scrobbles', ['track_id'])
    op.create_index('idx_scrobbles_played_at_epoch', 'scrobbles', ['played_at_epoch'])


def downgrade() -> None:
    op.drop_table('scrobbles')
    op.drop_table('tracks')
    op.drop_table('albums')
    op.drop_table('artists')
    op.drop_table('users')
