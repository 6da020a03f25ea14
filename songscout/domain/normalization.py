from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from .entities import Suggestion, Track


def _artist_names(raw: Mapping[str, Any]) -> List[str]:
    artists = raw.get("artists") or []
    return [a.get("name", "") for a in artists if a and a.get("name")]


def _album(raw: Mapping[str, Any]) -> Mapping[str, Any]:
    return raw.get("album") or {}


def first_image_url(album: Mapping[str, Any]) -> Optional[str]:
    images = album.get("images") or []
    if not images:
        return None
    return images[0].get("url") or None


def primary_artist_id(raw: Mapping[str, Any]) -> Optional[str]:
    """Return the id of the first-listed artist, or None if it cannot be resolved."""
    artists = (raw or {}).get("artists") or []
    if not artists or not artists[0]:
        return None
    return artists[0].get("id") or None


def normalize_track(raw: Mapping[str, Any]) -> Track:
    album = _album(raw)
    return Track(
        id=raw.get("id") or "",
        name=raw.get("name") or "",
        artists=tuple(_artist_names(raw)),
        album=album.get("name") or "",
        image_url=first_image_url(album),
        preview_url=raw.get("preview_url") or None,
    )


def normalize_track_detail(raw: Mapping[str, Any]) -> Track:
    """Normalize a single-track payload, keeping duration, release date and links."""
    album = _album(raw)
    external_urls: Optional[Dict[str, str]] = raw.get("external_urls") or None
    return Track(
        id=raw.get("id") or "",
        name=raw.get("name") or "",
        artists=tuple(_artist_names(raw)),
        album=album.get("name") or "",
        image_url=first_image_url(album),
        preview_url=raw.get("preview_url") or None,
        duration_ms=raw.get("duration_ms"),
        release_date=album.get("release_date") or None,
        external_urls=dict(external_urls) if external_urls else None,
    )


def normalize_suggestion(raw: Mapping[str, Any]) -> Suggestion:
    return Suggestion(
        id=raw.get("id") or "",
        name=raw.get("name") or "",
        artist=", ".join(_artist_names(raw)),
    )
