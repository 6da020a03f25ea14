import os
import sys
import pytest


def _ensure_project_root_on_sys_path() -> None:
    here = os.path.dirname(__file__)
    project_root = os.path.abspath(os.path.join(here, "..", ".."))
    if project_root not in sys.path:
        sys.path.insert(0, project_root)


_ensure_project_root_on_sys_path()


@pytest.fixture(autouse=True)
def _clear_songscout_env():
    """Ensure catalog credentials and tuning variables do not leak across tests.
    A developer .env may set these; clear before each test and restore afterwards
    so tests explicitly setting them remain deterministic.
    """
    keys = [
        'SPOTIFY_CLIENT_ID', 'SPOTIFY_CLIENT_SECRET', 'SPOTIFY_MARKET', 'PORT', 'HOST',
        'UPSTREAM_TIMEOUT', 'RECOMMEND_STRATEGY', 'LOG_LEVEL',
    ]
    backup = {k: os.environ.get(k) for k in keys}
    for k in keys:
        os.environ.pop(k, None)
    try:
        yield
    finally:
        for k, v in backup.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v


@pytest.fixture
def make_raw_track():
    """Factory for catalog track payloads shaped like the Spotify Web API."""

    def _make(track_id="t1", name="Song", artists=(("a1", "Artist"),), album="Album",
              images=("https://img/1.jpg",), preview_url="https://preview/1.mp3", **extra):
        raw = {
            "id": track_id,
            "name": name,
            "artists": [{"id": aid, "name": aname} for aid, aname in artists],
            "album": {
                "name": album,
                "images": [{"url": url, "height": 640, "width": 640} for url in images],
                "release_date": extra.pop("release_date", "1969-09-26"),
            },
            "preview_url": preview_url,
        }
        raw.update(extra)
        return raw

    return _make
