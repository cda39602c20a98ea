import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence

import requests
import spotipy
from spotipy.exceptions import SpotifyException
from urllib3.exceptions import ReadTimeoutError

from tunesync.domain.entities import RemotePlaylist, RemoteUser
from tunesync.domain.errors import (
    AuthError, PermanentFailure, RateLimited, RemoteCallError, TemporaryFailure,
)
from tunesync.domain.ports import LIBRARY_BATCH_LIMIT, PLAYLIST_BATCH_LIMIT, RemoteLibrary

logger = logging.getLogger(__name__)

PLAYLIST_PAGE_SIZE = 50


def translate_error(error: Exception, operation: str) -> RemoteCallError:
    """Map a spotipy / transport error onto the domain error taxonomy.

    Args:
        error: The exception raised by spotipy or requests
        operation: Description of the operation being performed

    Returns:
        RateLimited for 429, TemporaryFailure for 5xx and network errors,
        PermanentFailure for everything else
    """
    if isinstance(error, SpotifyException):
        status = error.http_status
        message = f"{operation} failed with HTTP {status}: {error.msg}"
        if status == 429:
            headers = error.headers or {}
            try:
                retry_after = int(headers.get('Retry-After', 1))
            except (TypeError, ValueError):
                retry_after = 1
            return RateLimited(retry_after_ms=retry_after * 1000, message=message)
        if status is not None and int(status) >= 500:
            return TemporaryFailure(message, status=status)
        return PermanentFailure(message, status=status)
    if isinstance(error, (requests.exceptions.RequestException, ReadTimeoutError)):
        return TemporaryFailure(f"{operation} failed: {error}")
    return PermanentFailure(f"{operation} failed: {error}")


class SpotifyRemoteLibrary(RemoteLibrary):
    """Spotify implementation of the remote library port.

    Transient failures (429 and 5xx) are retried inside spotipy's urllib3
    session; whatever still fails is raised as a RemoteCallError.
    """

    def __init__(self,
                 access_token: str,
                 market: Optional[str] = None,
                 search_limit: int = 1,
                 requests_timeout: int = 15,
                 max_retries: int = 3,
                 client: Optional[spotipy.Spotify] = None):
        """Initialize Spotify remote library.

        Args:
            access_token: OAuth access token supplied by the user
            market: Optional market code used for catalog searches
            search_limit: Number of results requested per search
            requests_timeout: Per-request timeout in seconds
            max_retries: Retry budget for 429 and 5xx responses
            client: Preconfigured spotipy client, mainly for tests
        """
        self.market = market
        self.search_limit = search_limit
        self._client = client or spotipy.Spotify(
            auth=access_token,
            requests_timeout=requests_timeout,
            retries=max_retries,
            status_retries=max_retries,
            backoff_factor=0.3,
        )

    @contextmanager
    def _call(self, operation: str) -> Iterator[None]:
        try:
            yield
        except (SpotifyException, requests.exceptions.RequestException, ReadTimeoutError) as e:
            error = translate_error(e, operation)
            logger.debug(f"Spotify call failed: {error}")
            raise error from e

    def authenticate(self) -> RemoteUser:
        """Fetch the current user to prove the token works."""
        try:
            profile = self._client.current_user()
        except (SpotifyException, requests.exceptions.RequestException, ReadTimeoutError) as e:
            raise AuthError(str(translate_error(e, "current_user"))) from e

        if not profile or not profile.get('id'):
            raise AuthError("current_user returned no profile")
        return RemoteUser(id=profile['id'], display_name=profile.get('display_name'))

    def list_playlists(self, user_id: str, paginate: bool = True) -> List[RemotePlaylist]:
        """List playlists in the current user's library.

        Args:
            user_id: Current user id, used only for log context
            paginate: Follow ``next`` links; when False only the first page is returned

        Returns:
            List of playlists in listing order
        """
        playlists: List[RemotePlaylist] = []
        with self._call("list playlists"):
            page = self._client.current_user_playlists(limit=PLAYLIST_PAGE_SIZE)
            while page:
                for item in page.get('items') or []:
                    if item and item.get('id'):
                        playlists.append(self._to_playlist(item))
                if not paginate or not page.get('next'):
                    break
                page = self._client.next(page)

        logger.debug(f"Listed {len(playlists)} playlists for user {user_id}")
        return playlists

    def unfollow_playlist(self, user_id: str, playlist_id: str) -> None:
        with self._call(f"unfollow playlist {playlist_id}"):
            self._client.current_user_unfollow_playlist(playlist_id)

    def search(self, query: str, type: str = "track") -> List[str]:
        """Search the catalog and return result ids in Spotify's ranking order."""
        with self._call(f"search '{query}'"):
            results = self._client.search(q=query, type=type, limit=self.search_limit,
                                          market=self.market)

        container = (results or {}).get(f"{type}s") or {}
        return [item['id'] for item in container.get('items') or [] if item and item.get('id')]

    def add_tracks_to_library(self, ids: Sequence[str]) -> None:
        if len(ids) > LIBRARY_BATCH_LIMIT:
            raise ValueError(f"At most {LIBRARY_BATCH_LIMIT} tracks per library call, got {len(ids)}")
        if not ids:
            return
        with self._call("add tracks to library"):
            self._client.current_user_saved_tracks_add(tracks=list(ids))

    def create_playlist(self, user_id: str, name: str, public: bool = False) -> RemotePlaylist:
        with self._call(f"create playlist '{name}'"):
            result = self._client.user_playlist_create(user_id, name, public=public,
                                                       collaborative=False)
        result = result or {}
        if not result.get('id'):
            raise PermanentFailure(f"create playlist '{name}' returned no playlist id")
        logger.info(f"Created playlist {result.get('name', name)} ({result['id']})")
        return self._to_playlist(result, default_name=name)

    def add_tracks_to_playlist(self, user_id: str, playlist_id: str, ids: Sequence[str]) -> None:
        if len(ids) > PLAYLIST_BATCH_LIMIT:
            raise ValueError(f"At most {PLAYLIST_BATCH_LIMIT} tracks per playlist call, got {len(ids)}")
        if not ids:
            return
        with self._call(f"add tracks to playlist {playlist_id}"):
            self._client.playlist_add_items(playlist_id, list(ids))

    @staticmethod
    def _to_playlist(item: Dict[str, Any], default_name: str = "") -> RemotePlaylist:
        owner = item.get('owner') or {}
        return RemotePlaylist(
            id=item['id'],
            name=item.get('name') or default_name,
            owner_id=owner.get('id'),
        )
