"""
Client for the bible.com JSON API used by the audio Bible downloader.

The endpoints were worked out by watching the network traffic of bible.com:

    {BOOKS_API_URL}/versions/{language}                 translations
    {BOOKS_API_URL}/books/{translation}                 books in canon order
    {BOOKS_API_URL}/books/{translation}/{book}/chapters chapters of one book
    {CHAPTER_API_URL}?id={translation}&reference={BOOK}.{chapter}
                                                        chapter audio metadata

Configuration is read from the environment (or a local .env file):
    AUDIO_BIBLE_BOOKS_URL, AUDIO_BIBLE_CHAPTER_URL, AUDIO_BIBLE_FORMAT_KEY,
    AUDIO_BIBLE_TIMEOUT, AUDIO_BIBLE_TRANSLATION_ID, AUDIO_BIBLE_OUTPUT_DIR
"""

import json
import os
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import requests
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# API Configuration
BOOKS_API_URL = os.getenv("AUDIO_BIBLE_BOOKS_URL", "https://www.bible.com/json/bible")
CHAPTER_API_URL = os.getenv(
    "AUDIO_BIBLE_CHAPTER_URL", "https://nodejs.bible.com/api/bible/chapter/3.1"
)
AUDIO_FORMAT_KEY = os.getenv("AUDIO_BIBLE_FORMAT_KEY", "format_mp3_32k")
_timeout = os.getenv("AUDIO_BIBLE_TIMEOUT", "")
API_TIMEOUT = float(_timeout) if _timeout else None  # None: wait as long as the socket does

# Download defaults
DEFAULT_TRANSLATION_ID = int(os.getenv("AUDIO_BIBLE_TRANSLATION_ID", "100"))
DEFAULT_LANGUAGE = "eng"
OUTPUT_DIR = Path(os.getenv("AUDIO_BIBLE_OUTPUT_DIR", "."))


def log(message: str, level: str = "INFO"):
    """Print a log message with timestamp. Warnings and errors go to stderr."""
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    stream = sys.stderr if level in ("WARNING", "ERROR") else sys.stdout
    print(f"[{timestamp}] [{level}] {message}", file=stream)


class AudioBibleError(Exception):
    """Base class for every failure that aborts a download run."""


class MalformedResponseError(AudioBibleError):
    """The API answered with a payload of an unexpected shape."""

    def __init__(self, payload, url: Optional[str] = None):
        self.payload = payload
        self.url = url
        if isinstance(payload, str):
            dumped = payload
        else:
            dumped = json.dumps(payload, indent=2, ensure_ascii=False)
        super().__init__("Unexpected response:\n" + dumped)


class NotFoundError(AudioBibleError):
    """A book code is not part of the translation's catalog."""

    def __init__(self, code: str, books: List["Book"]):
        self.code = code
        self.books = books
        super().__init__(f"Did not find book id: {code}")


class ChapterSpecError(AudioBibleError, ValueError):
    """The chapter expression given on the command line is unusable."""


class InvalidFormatError(ChapterSpecError):
    pass


class InvalidRangeError(ChapterSpecError):
    pass


class HttpStatusError(AudioBibleError):
    """A request came back with a status other than 200."""

    def __init__(self, status_code: int, reason: str, url: str, body: str = ""):
        self.status_code = status_code
        self.reason = reason
        self.url = url
        self.body = body
        super().__init__(f"{status_code} {reason}".strip())


class OutputWriteError(AudioBibleError):
    """Writing a downloaded file to the local filesystem failed."""

    def __init__(self, path: Path, error: OSError):
        self.path = path
        self.error = error
        super().__init__(f"Could not write {path}: {error}")


@dataclass(frozen=True)
class Translation:
    id: int
    title: str
    audio: bool


@dataclass(frozen=True)
class Book:
    code: str     # USFM code, e.g. "PSA"
    name: str     # Human name, e.g. "Psalms"
    ordinal: int  # 1-based position in the translation's canon


@dataclass(frozen=True)
class ResolvedBook:
    code: str
    name: str
    ordinal: int
    total_chapters: int


@dataclass(frozen=True)
class AudioAsset:
    url: str
    reference: Optional[str] = None  # e.g. "Psalm 25"


def normalize_audio_url(url: str) -> str:
    """Turn protocol-relative URLs (//host/path) into https URLs."""
    if url.startswith("//"):
        return "https:" + url
    return url


def require_items(data, url: Optional[str] = None) -> List:
    """Return the `items` list of a catalog response or fail loudly."""
    if not isinstance(data, dict) or not isinstance(data.get("items"), list):
        raise MalformedResponseError(data, url)
    return data["items"]


class AudioBibleClient:
    """
    Catalog resolver, audio locator and downloader for one run.

    The book list of each translation is fetched at most once per client and
    kept in memory until the client goes away.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        books_url: str = BOOKS_API_URL,
        chapter_url: str = CHAPTER_API_URL,
        format_key: str = AUDIO_FORMAT_KEY,
        timeout: Optional[float] = API_TIMEOUT,
    ):
        self.session = session if session is not None else requests.Session()
        self.books_url = books_url.rstrip("/")
        self.chapter_url = chapter_url
        self.format_key = format_key
        self.timeout = timeout
        self._book_cache: Dict[int, List[Book]] = {}

    def close(self):
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def _get(self, url: str, params: Optional[Dict] = None):
        response = self.session.get(url, params=params, timeout=self.timeout)
        if response.status_code != 200:
            raise HttpStatusError(
                response.status_code, response.reason or "", url, response.text
            )
        return response

    def get_json(self, url: str, params: Optional[Dict] = None):
        """GET a JSON document, failing on bad status or undecodable bodies."""
        response = self._get(url, params)
        try:
            return response.json()
        except ValueError:
            raise MalformedResponseError(response.text, url)

    # Catalog

    def list_translations(self, language: str = DEFAULT_LANGUAGE) -> List[Translation]:
        """Translations in `language` that have audio."""
        log("Fetching translations")
        url = f"{self.books_url}/versions/{language}"
        items = require_items(self.get_json(url), url)

        translations = []
        for item in items:
            if not isinstance(item, dict) or "id" not in item:
                raise MalformedResponseError(item, url)
            if not item.get("audio"):
                continue
            try:
                translation_id = int(item["id"])
            except (TypeError, ValueError):
                raise MalformedResponseError(item, url)
            translations.append(
                Translation(
                    id=translation_id,
                    title=item.get("local_title", ""),
                    audio=True,
                )
            )
        return translations

    def list_books(self, translation_id: int) -> List[Book]:
        """Books of a translation in canon order (memoized per translation)."""
        if translation_id in self._book_cache:
            return self._book_cache[translation_id]

        log("Fetching books")
        url = f"{self.books_url}/books/{translation_id}"
        data = self.get_json(url)
        items = require_items(data, url)

        books = []
        for index, item in enumerate(items, start=1):
            if (
                not isinstance(item, dict)
                or not isinstance(item.get("usfm"), str)
                or not isinstance(item.get("human"), str)
            ):
                raise MalformedResponseError(data, url)
            books.append(Book(code=item["usfm"], name=item["human"], ordinal=index))

        self._book_cache[translation_id] = books
        return books

    def count_chapters(self, translation_id: int, book_code: str) -> int:
        """Number of chapters of a book; a book without chapters is a bad catalog."""
        log(f"Fetching chapters for {book_code}")
        url = f"{self.books_url}/books/{translation_id}/{book_code}/chapters"
        data = self.get_json(url)
        items = require_items(data, url)
        if not items:
            raise MalformedResponseError(data, url)
        return len(items)

    def find_book(self, translation_id: int, book_code: str) -> Book:
        """Look up a book by code; prints the valid codes to stderr if missing."""
        code = book_code.upper()
        books = self.list_books(translation_id)
        for book in books:
            if book.code == code:
                return book

        print_books(books, file=sys.stderr)
        raise NotFoundError(code, books)

    def resolve_book(self, translation_id: int, book_code: str) -> ResolvedBook:
        """Name, canon position and chapter total of a book."""
        book = self.find_book(translation_id, book_code)
        total = self.count_chapters(translation_id, book.code)
        return ResolvedBook(
            code=book.code,
            name=book.name,
            ordinal=book.ordinal,
            total_chapters=total,
        )

    # Audio

    def resolve_audio(self, translation_id: int, book_code: str, chapter: int) -> AudioAsset:
        """Resolve the download URL of one chapter's audio."""
        book_code = book_code.upper()
        log(f"Fetching metadata for {book_code}.{chapter}")
        params = {"id": translation_id, "reference": f"{book_code}.{chapter}"}
        data = self.get_json(self.chapter_url, params)

        audio = data.get("audio") if isinstance(data, dict) else None
        if not isinstance(audio, list) or not audio or not isinstance(audio[0], dict):
            raise MalformedResponseError(data, self.chapter_url)

        download_urls = audio[0].get("download_urls")
        if not isinstance(download_urls, dict):
            raise MalformedResponseError(data, self.chapter_url)
        audio_url = download_urls.get(self.format_key)
        if not isinstance(audio_url, str) or not audio_url:
            raise MalformedResponseError(data, self.chapter_url)

        reference = data.get("reference")
        human = reference.get("human") if isinstance(reference, dict) else None

        return AudioAsset(
            url=normalize_audio_url(audio_url),
            reference=human or None,
        )

    def resolve_audio_url(self, translation_id: int, book_code: str, chapter: int) -> str:
        """Download URL of one chapter, see resolve_audio()."""
        return self.resolve_audio(translation_id, book_code, chapter).url

    def fetch_and_save(self, url: str, output_path: Path) -> int:
        """
        Download `url` into memory and write it to `output_path`.

        Returns the number of bytes written. A failed write leaves whatever
        the filesystem produced behind.
        """
        log(f"Downloading {url}")
        response = self._get(url)
        log(f"{response.status_code} {response.reason or ''}".strip())
        data = response.content

        output_path = Path(output_path)
        log(f"Writing to {output_path}")
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_bytes(data)
        except OSError as e:
            raise OutputWriteError(output_path, e)

        return len(data)


def print_books(books: List[Book], file=None):
    """Print one tab-separated code and name line per book."""
    for book in books:
        print(f"{book.code}:\t{book.name}", file=file or sys.stdout)


def print_translations(translations: List[Translation], file=None):
    """Print one tab-separated id and title line per translation."""
    for translation in translations:
        print(f"{translation.id}:\t{translation.title}", file=file or sys.stdout)
