import os
import sys

import pytest


def _ensure_project_root_on_sys_path() -> None:
    here = os.path.dirname(__file__)
    project_root = os.path.abspath(os.path.join(here, "..", ".."))
    if project_root not in sys.path:
        sys.path.insert(0, project_root)


_ensure_project_root_on_sys_path()


SAMPLE_LIBRARY_XML = """<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
\t<key>Major Version</key><integer>1</integer>
\t<key>Minor Version</key><integer>1</integer>
\t<key>Date</key><date>2020-05-01T12:00:00Z</date>
\t<key>Application Version</key><string>12.9.5.5</string>
\t<key>Show Content Ratings</key><true/>
\t<key>Music Folder</key><string>file:///Users/me/Music/iTunes/iTunes%20Media/</string>
\t<key>Library Persistent ID</key><string>ABCDEF0123456789</string>
\t<key>Tracks</key>
\t<dict>
\t\t<key>101</key>
\t\t<dict>
\t\t\t<key>Track ID</key><integer>101</integer>
\t\t\t<key>Name</key><string>Song1</string>
\t\t\t<key>Artist</key><string>A</string>
\t\t\t<key>Album</key><string>First Album</string>
\t\t\t<key>Genre</key><string>Rock</string>
\t\t\t<key>Kind</key><string>MPEG audio file</string>
\t\t\t<key>Total Time</key><integer>215000</integer>
\t\t\t<key>Year</key><integer>1999</integer>
\t\t\t<key>Track Number</key><integer>3</integer>
\t\t\t<key>Rating</key><integer>80</integer>
\t\t\t<key>Compilation</key><true/>
\t\t\t<key>Persistent ID</key><string>id1</string>
\t\t\t<key>Location</key><string>file:///Users/me/Music/Song1.mp3</string>
\t\t</dict>
\t\t<key>102</key>
\t\t<dict>
\t\t\t<key>Track ID</key><integer>102</integer>
\t\t\t<key>Name</key><string>Song2</string>
\t\t\t<key>Artist</key><string>B</string>
\t\t\t<key>Persistent ID</key><string>id2</string>
\t\t</dict>
\t</dict>
\t<key>Playlists</key>
\t<array>
\t\t<dict>
\t\t\t<key>Name</key><string>Library</string>
\t\t\t<key>Master</key><true/>
\t\t\t<key>Playlist ID</key><integer>1</integer>
\t\t\t<key>Playlist Persistent ID</key><string>PL0</string>
\t\t\t<key>Visible</key><false/>
\t\t\t<key>All Items</key><true/>
\t\t\t<key>Playlist Items</key>
\t\t\t<array>
\t\t\t\t<dict><key>Track ID</key><integer>101</integer></dict>
\t\t\t\t<dict><key>Track ID</key><integer>102</integer></dict>
\t\t\t</array>
\t\t</dict>
\t\t<dict>
\t\t\t<key>Name</key><string>Mix</string>
\t\t\t<key>Playlist ID</key><integer>2</integer>
\t\t\t<key>Playlist Persistent ID</key><string>PL1</string>
\t\t\t<key>Playlist Items</key>
\t\t\t<array>
\t\t\t\t<dict><key>Track ID</key><integer>101</integer></dict>
\t\t\t\t<dict><key>Track ID</key><integer>102</integer></dict>
\t\t\t</array>
\t\t</dict>
\t</array>
\t<key>Library Data</key><data>AAEC</data>
</dict>
</plist>
"""


@pytest.fixture
def sample_library_xml() -> str:
    """A small iTunes library export with two tracks and two playlists."""
    return SAMPLE_LIBRARY_XML


@pytest.fixture
def library_file(tmp_path, sample_library_xml):
    """Path of the sample library written to disk."""
    path = tmp_path / "Library.xml"
    path.write_text(sample_library_xml, encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def _clear_tunesync_env(monkeypatch):
    """Ensure TUNESYNC_* variables from the developer's shell or .env do not leak into tests."""
    for key in list(os.environ):
        if key.startswith("TUNESYNC_"):
            monkeypatch.delenv(key, raising=False)
