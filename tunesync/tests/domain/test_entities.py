import pytest

from tunesync.domain.entities import (
    Playlist, PlaylistItem, Resolution, ResolutionStatus, Track, UnresolvedEntry,
)


class TestTrack:
    def test_search_query_is_artist_space_name(self):
        assert Track(artist="A", name="Song1").search_query == "A Song1"

    def test_search_query_with_missing_artist(self):
        assert Track(name="Song1").search_query == " Song1"

    def test_tracks_are_immutable(self):
        track = Track(persistent_id="id1")

        with pytest.raises(AttributeError):
            track.name = "changed"

    def test_playlist_item_is_a_track(self):
        item = PlaylistItem(persistent_id="id1", artist="A", name="Song1")

        assert isinstance(item, Track)
        assert item.search_query == "A Song1"


class TestPlaylist:
    def test_system_playlists(self):
        assert Playlist(name="Library", is_master=True).is_system
        assert Playlist(name="Music", distinguished_kind=4).is_system
        assert not Playlist(name="Mix").is_system


class TestResolution:
    def test_constructors(self):
        track = Track(persistent_id="id1")

        assert Resolution.hit(track, "x").found
        assert Resolution.miss(track).status is ResolutionStatus.NOT_FOUND
        failed = Resolution.failed(track, "boom")
        assert failed.status is ResolutionStatus.ERROR
        assert failed.error == "boom"
        assert not failed.found

    def test_unresolved_entry_kind(self):
        assert not UnresolvedEntry(track=Track(), phase="library", reason="not_found").is_playlist_item
        assert UnresolvedEntry(track=PlaylistItem(), phase="playlists", reason="not_found").is_playlist_item
