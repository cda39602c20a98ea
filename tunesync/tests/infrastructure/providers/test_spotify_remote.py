from unittest.mock import Mock, patch

import pytest
import requests
from spotipy.exceptions import SpotifyException

from tunesync.domain.entities import RemotePlaylist, RemoteUser
from tunesync.domain.errors import AuthError, PermanentFailure, RateLimited, TemporaryFailure
from tunesync.infrastructure.providers.spotify import SpotifyRemoteLibrary, translate_error


def _spotify_error(status, headers=None):
    return SpotifyException(status, -1, f"HTTP {status}", headers=headers)


class TestTranslateError:
    """Tests for mapping spotipy errors onto domain errors."""

    def test_rate_limited_uses_retry_after(self):
        error = translate_error(_spotify_error(429, {"Retry-After": "7"}), "search")

        assert isinstance(error, RateLimited)
        assert error.retry_after_ms == 7000
        assert error.status == 429

    def test_rate_limited_without_header(self):
        assert translate_error(_spotify_error(429), "search").retry_after_ms == 1000

    def test_server_error_is_temporary(self):
        error = translate_error(_spotify_error(503), "search")

        assert isinstance(error, TemporaryFailure)
        assert error.status == 503

    def test_client_error_is_permanent(self):
        assert isinstance(translate_error(_spotify_error(400), "create"), PermanentFailure)

    def test_network_error_is_temporary(self):
        error = translate_error(requests.exceptions.ConnectionError("reset"), "search")

        assert isinstance(error, TemporaryFailure)


class TestSpotifyRemoteLibrary:
    """Contract tests for the Spotify adapter."""

    def setup_method(self):
        """Set up test fixtures."""
        self.client = Mock()
        self.remote = SpotifyRemoteLibrary("test_access_token", client=self.client)

    def test_client_built_with_retries(self):
        with patch("tunesync.infrastructure.providers.spotify.spotipy.Spotify") as spotify:
            SpotifyRemoteLibrary("tok", requests_timeout=9, max_retries=4)

        spotify.assert_called_once_with(auth="tok", requests_timeout=9, retries=4,
                                        status_retries=4, backoff_factor=0.3)

    def test_authenticate(self):
        self.client.current_user.return_value = {"id": "user-1", "display_name": "Me"}

        assert self.remote.authenticate() == RemoteUser(id="user-1", display_name="Me")

    def test_authenticate_rejected(self):
        self.client.current_user.side_effect = _spotify_error(401)

        with pytest.raises(AuthError):
            self.remote.authenticate()

    def test_authenticate_without_profile(self):
        self.client.current_user.return_value = {}

        with pytest.raises(AuthError):
            self.remote.authenticate()

    def test_list_playlists_follows_pages(self):
        """Test that every page of the user's playlists is listed."""
        first = {"items": [{"id": "p1", "name": "One", "owner": {"id": "user-1"}}], "next": "url"}
        second = {"items": [{"id": "p2", "name": "Two"}], "next": None}
        self.client.current_user_playlists.return_value = first
        self.client.next.return_value = second

        playlists = self.remote.list_playlists("user-1")

        assert playlists == [
            RemotePlaylist(id="p1", name="One", owner_id="user-1"),
            RemotePlaylist(id="p2", name="Two"),
        ]
        self.client.next.assert_called_once_with(first)

    def test_list_playlists_first_page_only(self):
        self.client.current_user_playlists.return_value = {"items": [{"id": "p1", "name": "One"}], "next": "url"}

        playlists = self.remote.list_playlists("user-1", paginate=False)

        assert [p.id for p in playlists] == ["p1"]
        self.client.next.assert_not_called()

    def test_list_playlists_error(self):
        self.client.current_user_playlists.side_effect = _spotify_error(500)

        with pytest.raises(TemporaryFailure):
            self.remote.list_playlists("user-1")

    def test_unfollow_playlist(self):
        self.remote.unfollow_playlist("user-1", "p1")

        self.client.current_user_unfollow_playlist.assert_called_once_with("p1")

    def test_search_returns_ids(self):
        self.client.search.return_value = {"tracks": {"items": [{"id": "t1"}, {"id": "t2"}]}}

        assert self.remote.search("A Song1") == ["t1", "t2"]
        self.client.search.assert_called_once_with(q="A Song1", type="track", limit=1, market=None)

    def test_search_no_results(self):
        self.client.search.return_value = {"tracks": {"items": []}}

        assert self.remote.search("nothing here") == []

    def test_search_rate_limited(self):
        self.client.search.side_effect = _spotify_error(429, {"Retry-After": "2"})

        with pytest.raises(RateLimited):
            self.remote.search("A Song1")

    def test_add_tracks_to_library(self):
        self.remote.add_tracks_to_library(["t1", "t2"])

        self.client.current_user_saved_tracks_add.assert_called_once_with(tracks=["t1", "t2"])

    def test_add_tracks_to_library_limit(self):
        with pytest.raises(ValueError):
            self.remote.add_tracks_to_library(["t"] * 51)
        self.client.current_user_saved_tracks_add.assert_not_called()

    def test_add_tracks_to_library_empty(self):
        self.remote.add_tracks_to_library([])

        self.client.current_user_saved_tracks_add.assert_not_called()

    def test_create_playlist(self):
        self.client.user_playlist_create.return_value = {"id": "new", "name": "Mix", "owner": {"id": "user-1"}}

        playlist = self.remote.create_playlist("user-1", "Mix")

        assert playlist == RemotePlaylist(id="new", name="Mix", owner_id="user-1")
        self.client.user_playlist_create.assert_called_once_with("user-1", "Mix", public=False,
                                                                 collaborative=False)

    def test_create_playlist_error(self):
        self.client.user_playlist_create.side_effect = _spotify_error(403)

        with pytest.raises(PermanentFailure):
            self.remote.create_playlist("user-1", "Mix")

    @pytest.mark.parametrize("response", [None, {}, {"name": "Mix"}])
    def test_create_playlist_without_id(self, response):
        """Test that a response without a playlist id is a permanent failure."""
        self.client.user_playlist_create.return_value = response

        with pytest.raises(PermanentFailure):
            self.remote.create_playlist("user-1", "Mix")

    def test_add_tracks_to_playlist(self):
        self.remote.add_tracks_to_playlist("user-1", "p1", ["t1"])

        self.client.playlist_add_items.assert_called_once_with("p1", ["t1"])

    def test_add_tracks_to_playlist_limit(self):
        with pytest.raises(ValueError):
            self.remote.add_tracks_to_playlist("user-1", "p1", ["t"] * 101)
