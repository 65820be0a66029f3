#!/usr/bin/env python3
"""
Download audio Bible chapters from bible.com into local mp3 files.

Each book is saved into its own directory, one file per chapter:

    {output}/{Book_Name}/{Book_Name}-{CHAPTER}.mp3
    {output}/{NN}-{Book_Name}/...            (with -c, canonical numbering)

Usage:
    python download_audio_bible.py PSA                # all of Psalms
    python download_audio_bible.py -t 100 PSA 27-34   # Psalms 27 to 34
    python download_audio_bible.py -c GEN 1           # 01-Genesis/Genesis-01.mp3
    python download_audio_bible.py -i                 # translations with audio
    python download_audio_bible.py -l -t 111          # book codes of a translation

Requirements:
    pip install requests python-dotenv
"""

import argparse
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

try:
    import requests

    from audio_bible_api import (
        DEFAULT_LANGUAGE,
        DEFAULT_TRANSLATION_ID,
        OUTPUT_DIR,
        AudioAsset,
        AudioBibleClient,
        AudioBibleError,
        InvalidFormatError,
        InvalidRangeError,
        ResolvedBook,
        log,
        print_books,
        print_translations,
    )
except ImportError as e:
    print("Error: Required packages not installed.")
    print("Please run: pip install requests python-dotenv")
    print(f"Missing module: {e.name}")
    sys.exit(1)

CHAPTER_SPEC_RE = re.compile(r"^(\d+)(?:-(\d+))?$")

NAMING_SCHEMES = ("padded", "reference", "dirname")


@dataclass(frozen=True)
class ChapterRange:
    start: int
    end: int
    total: int

    def __iter__(self):
        return iter(range(self.start, self.end + 1))

    def __len__(self):
        return self.end - self.start + 1


def parse_chapter_range(spec: Optional[str], total_chapters: int) -> ChapterRange:
    """Parse a chapter expression like '3' or '27-34'.

    An empty expression selects the whole book. Chapters past the end of the
    book are not rejected here; the API answers for those.
    """
    if spec is None or not spec.strip():
        if total_chapters < 1:
            raise InvalidRangeError(f"No chapters to download (total: {total_chapters})")
        return ChapterRange(1, total_chapters, total_chapters)

    spec = spec.strip()
    match = CHAPTER_SPEC_RE.match(spec)
    if not match:
        raise InvalidFormatError("Chapter must be a number or a range (e.g. 3-5)")

    start = int(match.group(1))
    end = int(match.group(2)) if match.group(2) is not None else start

    if start < 1:
        raise InvalidRangeError(f"Chapters start at 1: {spec}")
    if match.group(2) is not None and end <= start:
        raise InvalidRangeError(f"Invalid range: {spec}")

    return ChapterRange(start, end, total_chapters)


def book_name_for_path(name: str) -> str:
    """Collapse whitespace runs to underscores, e.g. 'Song of Songs' -> 'Song_of_Songs'."""
    return re.sub(r"\s+", "_", name.strip())


def book_directory_name(book: ResolvedBook, canonical: bool = False) -> str:
    """Directory for a book, e.g. 'Song_of_Songs' or '02-Exodus' when canonical."""
    dirname = book_name_for_path(book.name)
    if canonical:
        dirname = f"{book.ordinal:02d}-{dirname}"
    return dirname


def chapter_filename(
    book: ResolvedBook,
    chapter: int,
    dirname: str,
    asset: Optional[AudioAsset] = None,
    naming: str = "padded",
) -> str:
    """File name of one chapter under the selected naming scheme.

    padded:    Psalms-007.mp3 (zero padded to the width of the chapter total)
    reference: Psalm_7.mp3    (the API's human reference, if it sent one)
    dirname:   19-Psalms_7.mp3
    """
    if naming not in NAMING_SCHEMES:
        raise ValueError(f"Unknown naming scheme: {naming}")

    if naming == "reference" and asset is not None and asset.reference:
        return book_name_for_path(asset.reference) + ".mp3"
    if naming == "dirname":
        return f"{Path(dirname).name}_{chapter}.mp3"

    width = len(str(book.total_chapters))
    return f"{book_name_for_path(book.name)}-{chapter:0{width}d}.mp3"


def download_chapters(
    client: AudioBibleClient,
    translation_id: int,
    book: ResolvedBook,
    chapters: ChapterRange,
    output_dir: Path = OUTPUT_DIR,
    canonical: bool = False,
    naming: str = "padded",
) -> List[Path]:
    """
    Download a range of chapters one after another.

    The first failure stops the run; files written before it stay on disk.

    Returns:
        Paths of the written files, in chapter order
    """
    dirname = book_directory_name(book, canonical)
    book_dir = Path(output_dir) / dirname
    log(f"Making directory {book_dir}")
    book_dir.mkdir(parents=True, exist_ok=True)

    log(f"Downloading chapters {chapters.start}-{chapters.end}")
    written = []
    for chapter in chapters:
        asset = client.resolve_audio(translation_id, book.code, chapter)
        output_path = book_dir / chapter_filename(book, chapter, dirname, asset, naming)
        client.fetch_and_save(asset.url, output_path)
        written.append(output_path)

    return written


def build_parser() -> argparse.ArgumentParser:
    """Command line options, see the module docstring for examples."""
    parser = argparse.ArgumentParser(
        description="Download audio Bible files from bible.com",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
If no chapters are specified, all of them will be downloaded.

Examples:
  python download_audio_bible.py -t100 PSA 27-34
  python download_audio_bible.py -c -o audio GEN
  python download_audio_bible.py -i --language spa
  python download_audio_bible.py -l -t 111
        """,
    )
    parser.add_argument(
        "book",
        nargs="?",
        help="Book id (e.g. GEN, PSA, MAT); see -l",
    )
    parser.add_argument(
        "chapters",
        nargs="?",
        help="Chapter or range of chapters (e.g. 3 or 3-5)",
    )
    parser.add_argument(
        "-t",
        "--translation",
        type=int,
        default=DEFAULT_TRANSLATION_ID,
        help=f"Use translation id (default: {DEFAULT_TRANSLATION_ID})",
    )
    listing = parser.add_mutually_exclusive_group()
    listing.add_argument(
        "-i",
        "--list-translations",
        action="store_true",
        help="List translation ids that have audio",
    )
    listing.add_argument(
        "-l",
        "--list-books",
        action="store_true",
        help="List book ids of the translation",
    )
    parser.add_argument(
        "--language",
        default=DEFAULT_LANGUAGE,
        help=f"Language of the translation list (default: {DEFAULT_LANGUAGE})",
    )
    parser.add_argument(
        "-c",
        "--canonical",
        action="store_true",
        help="Precede directory book names with their canonical number (e.g. 02-Exodus)",
    )
    parser.add_argument(
        "-o",
        "--output-dir",
        type=Path,
        default=OUTPUT_DIR,
        help=f"Directory to create the book directories in (default: {OUTPUT_DIR})",
    )
    parser.add_argument(
        "--naming",
        choices=NAMING_SCHEMES,
        default="padded",
        help="Chapter file naming scheme (default: padded)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Run the downloader and return the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.book and not (args.list_translations or args.list_books):
        parser.error("book id required")

    try:
        with AudioBibleClient() as client:
            if args.list_translations:
                print_translations(client.list_translations(args.language))
                return 0

            if args.list_books:
                print_books(client.list_books(args.translation))
                return 0

            book = client.resolve_book(args.translation, args.book)
            chapters = parse_chapter_range(args.chapters, book.total_chapters)

            written = download_chapters(
                client,
                args.translation,
                book,
                chapters,
                output_dir=args.output_dir,
                canonical=args.canonical,
                naming=args.naming,
            )
            log(f"It is finished: {len(written)} chapter(s) of {book.name}", "SUCCESS")
            return 0

    except (AudioBibleError, requests.exceptions.RequestException) as e:
        log(str(e), "ERROR")
        return 1
    except KeyboardInterrupt:
        log("Interrupted by user", "WARNING")
        return 1


if __name__ == "__main__":
    sys.exit(main())
