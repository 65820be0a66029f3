"""Shared pytest fixtures: a fake requests session and bible.com payloads."""

import json
from urllib.parse import urlencode

import pytest

from audio_bible_api import AudioBibleClient

BOOKS_URL = "https://books.test/json/bible"
CHAPTER_URL = "https://chapter.test/api/bible/chapter/3.1"


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, payload=None, status_code=200, reason="OK", content=None):
        self.status_code = status_code
        self.reason = reason
        if content is None:
            content = json.dumps(payload).encode("utf-8") if payload is not None else b""
        self.content = content

    @property
    def text(self):
        return self.content.decode("utf-8", errors="replace")

    def json(self):
        return json.loads(self.content)


class FakeSession:
    """Serves canned responses by URL and records every request made."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []
        self.closed = False

    def get(self, url, params=None, timeout=None):
        key = f"{url}?{urlencode(params)}" if params else url
        self.calls.append(key)
        if key not in self.routes:
            return FakeResponse({"error": "not found"}, status_code=404, reason="Not Found")
        return self.routes[key]

    def close(self):
        self.closed = True

    def count(self, url):
        return sum(1 for call in self.calls if call == url)


def chapter_key(translation_id, book, chapter):
    return f"{CHAPTER_URL}?{urlencode({'id': translation_id, 'reference': f'{book}.{chapter}'})}"


def chapter_payload(url, human):
    return {
        "audio": [{"download_urls": {"format_mp3_32k": url, "format_mp3_64k": url}}],
        "reference": {"human": human},
    }


BOOK_ITEMS = [
    {"usfm": "GEN", "human": "Genesis"},
    {"usfm": "EXO", "human": "Exodus"},
    {"usfm": "LEV", "human": "Leviticus"},
    {"usfm": "SNG", "human": "Song of Songs"},
]


@pytest.fixture
def session():
    routes = {
        f"{BOOKS_URL}/books/100": FakeResponse({"items": BOOK_ITEMS}),
        f"{BOOKS_URL}/books/100/LEV/chapters": FakeResponse({"items": [{}] * 27}),
        f"{BOOKS_URL}/books/100/SNG/chapters": FakeResponse({"items": [{}] * 8}),
        f"{BOOKS_URL}/versions/eng": FakeResponse(
            {
                "items": [
                    {"id": 100, "local_title": "New King James Version", "audio": True},
                    {"id": 1, "local_title": "King James Version", "audio": False},
                    {"id": 111, "local_title": "New International Version", "audio": True},
                ]
            }
        ),
    }
    for chapter in range(1, 4):
        routes[chapter_key(100, "LEV", chapter)] = FakeResponse(
            chapter_payload(f"//audio.test/lev/{chapter}.mp3", f"Leviticus {chapter}")
        )
        routes[f"https://audio.test/lev/{chapter}.mp3"] = FakeResponse(
            content=f"mp3-{chapter}".encode("ascii")
        )
    return FakeSession(routes)


@pytest.fixture
def client(session):
    return AudioBibleClient(
        session=session,
        books_url=BOOKS_URL,
        chapter_url=CHAPTER_URL,
        format_key="format_mp3_32k",
        timeout=None,
    )
