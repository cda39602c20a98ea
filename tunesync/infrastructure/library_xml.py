import base64
import logging
import os
import xml.etree.ElementTree as ET
from datetime import datetime
from typing import Any, BinaryIO, Dict, Iterator, List, Optional, Tuple, Union
from xml.parsers.expat import errors as expat_errors

from tunesync.domain.entities import Library, Playlist, PlaylistItem, Track
from tunesync.domain.errors import DecodeError, LibraryReadError, UnexpectedEndOfInput

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024

_NO_ELEMENTS = expat_errors.codes[expat_errors.XML_ERROR_NO_ELEMENTS]
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# document key -> (Track attribute, kind)
TRACK_FIELDS: Dict[str, Tuple[str, str]] = {
    "Persistent ID": ("persistent_id", "str"),
    "Artist": ("artist", "str"),
    "Name": ("name", "str"),
    "Track ID": ("track_id", "int"),
    "Album": ("album", "str"),
    "Album Artist": ("album_artist", "str"),
    "Genre": ("genre", "str"),
    "Total Time": ("total_time_ms", "int"),
    "Year": ("year", "int"),
    "Track Number": ("track_number", "int"),
    "Kind": ("kind", "str"),
    "Location": ("location", "str"),
}

PLAYLIST_FIELDS: Dict[str, Tuple[str, str]] = {
    "Name": ("name", "str"),
    "Playlist Persistent ID": ("persistent_id", "str"),
    "Master": ("is_master", "bool"),
    "Distinguished Kind": ("distinguished_kind", "int"),
    "Folder": ("is_folder", "bool"),
}

LIBRARY_FIELDS: Dict[str, Tuple[str, str]] = {
    "Major Version": ("major_version", "int"),
    "Minor Version": ("minor_version", "int"),
    "Application Version": ("application_version", "str"),
    "Music Folder": ("music_folder", "str"),
    "Library Persistent ID": ("library_persistent_id", "str"),
}

Source = Union[str, bytes, "os.PathLike[str]", BinaryIO]


def parse(source: Source) -> Library:
    """Parse a library document into a Library.

    Args:
        source: Path to the document or a binary file-like object

    Returns:
        Library built from the first top-level dict of the document

    Raises:
        UnexpectedEndOfInput: No top-level dict before the input ended
        DecodeError: Markup is malformed
        LibraryReadError: The document could not be read
    """
    if isinstance(source, (str, bytes, os.PathLike)):
        logger.info(f"Parsing library file: {os.fsdecode(source)}")
        try:
            with open(source, "rb") as stream:
                return parse_stream(stream)
        except OSError as e:
            raise LibraryReadError(f"Could not read library file {os.fsdecode(source)}: {e}") from e
    return parse_stream(source)


def parse_stream(stream: BinaryIO, chunk_size: int = READ_CHUNK_SIZE) -> Library:
    """Decode the first top-level dict found in the stream.

    Content after the end of that dict is never read into the decoder.
    """
    root: Optional[ET.Element] = None
    try:
        for event, elem in _iter_events(stream, chunk_size):
            if root is None:
                if event == "start" and elem.tag == "dict":
                    root = elem
            elif event == "end" and elem is root:
                break
        else:
            raise UnexpectedEndOfInput("Unexpected end of library file")
    except ET.ParseError as e:
        if root is None and e.code == _NO_ELEMENTS:
            raise UnexpectedEndOfInput("Unexpected end of library file") from e
        raise DecodeError(f"Malformed library document: {e}") from e

    library = build_library(decode_node(root))
    logger.info(f"Parsed library: {len(library.tracks)} tracks, {len(library.playlists)} playlists")
    return library


def _iter_events(stream: BinaryIO, chunk_size: int) -> Iterator[Tuple[str, ET.Element]]:
    parser = ET.XMLPullParser(events=("start", "end"))
    while True:
        try:
            data = stream.read(chunk_size)
        except OSError as e:
            raise LibraryReadError(f"Failed to read library stream: {e}") from e
        if not data:
            break
        parser.feed(data)
        yield from parser.read_events()
    parser.close()
    yield from parser.read_events()


def decode_node(elem: ET.Element) -> Any:
    """Convert a plist node into the matching Python value."""
    tag = elem.tag
    text = elem.text or ""

    if tag == "dict":
        children = list(elem)
        if len(children) % 2:
            raise DecodeError("dict node has a key without a value")
        result: Dict[str, Any] = {}
        for key_elem, value_elem in zip(children[::2], children[1::2]):
            if key_elem.tag != "key":
                raise DecodeError(f"expected key in dict, got <{key_elem.tag}>")
            result[key_elem.text or ""] = decode_node(value_elem)
        return result
    if tag == "array":
        return [decode_node(child) for child in elem]
    if tag in ("string", "key"):
        return text
    if tag == "true":
        return True
    if tag == "false":
        return False

    try:
        if tag == "integer":
            return int(text.strip())
        if tag == "real":
            return float(text.strip())
        if tag == "date":
            return datetime.strptime(text.strip(), _DATE_FORMAT)
        if tag == "data":
            return base64.b64decode("".join(text.split()))
    except ValueError as e:
        raise DecodeError(f"invalid <{tag}> value {text!r}: {e}") from e

    raise DecodeError(f"unknown node <{tag}>")


def build_library(raw: Dict[str, Any]) -> Library:
    """Map a decoded root dict onto the typed Library graph."""
    tracks = [_build_track(Track, entry) for entry in _records(raw.get("Tracks"), "Tracks")]

    by_track_id: Dict[int, Track] = {}
    if isinstance(raw.get("Tracks"), dict):
        for key, track in zip(raw["Tracks"].keys(), tracks):
            track_id = track.track_id if track.track_id is not None else _as_int(key)
            if track_id is not None:
                by_track_id[track_id] = track
    else:
        by_track_id = {t.track_id: t for t in tracks if t.track_id is not None}

    playlists = [
        _build_playlist(entry, by_track_id)
        for entry in _records(raw.get("Playlists"), "Playlists")
    ]

    return Library(
        tracks=tuple(tracks),
        playlists=tuple(playlists),
        **_map_fields(raw, LIBRARY_FIELDS),
    )


def _records(value: Any, section: str) -> List[Dict[str, Any]]:
    if value is None:
        return []
    if isinstance(value, dict):
        value = list(value.values())
    if not isinstance(value, list):
        raise DecodeError(f"{section} must be a dict or an array")
    records = []
    for entry in value:
        if not isinstance(entry, dict):
            raise DecodeError(f"{section} entries must be dicts")
        records.append(entry)
    return records


def _build_track(cls, raw: Dict[str, Any]):
    fields = _map_fields(raw, TRACK_FIELDS)
    if "name" not in fields and isinstance(raw.get("Title"), str):
        fields["name"] = raw["Title"]
    return cls(**fields)


def _build_playlist(raw: Dict[str, Any], by_track_id: Dict[int, Track]) -> Playlist:
    fields = _map_fields(raw, PLAYLIST_FIELDS)
    name = fields.pop("name", "")
    items: List[PlaylistItem] = []

    for entry in _records(raw.get("Playlist Items"), "Playlist Items"):
        item_fields = _map_fields(entry, TRACK_FIELDS)
        referenced = by_track_id.get(item_fields.get("track_id"))
        if referenced is not None:
            merged = {
                attr: getattr(referenced, attr)
                for attr, _ in TRACK_FIELDS.values()
                if getattr(referenced, attr) is not None
            }
            merged.update(item_fields)
            item_fields = merged
        if not item_fields.get("persistent_id"):
            logger.warning(
                f"Dropping item of playlist '{name}': track {item_fields.get('track_id')} not in library"
            )
            continue
        items.append(PlaylistItem(**item_fields))

    return Playlist(
        name=name,
        items=tuple(items),
        is_smart="Smart Info" in raw,
        **fields,
    )


def _map_fields(raw: Dict[str, Any], schema: Dict[str, Tuple[str, str]]) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    for key, (attr, kind) in schema.items():
        if key not in raw:
            continue
        value = raw[key]
        if kind == "int":
            value = _as_int(value)
        elif kind == "bool":
            value = bool(value)
        elif not isinstance(value, str):
            value = str(value)
        if value is not None:
            fields[attr] = value
    return fields


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        logger.debug(f"Ignoring non-integer value {value!r}")
        return None
