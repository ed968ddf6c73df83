"""Scrobble ingestion: Last.fm history to artists, albums, tracks and scrobbles."""
