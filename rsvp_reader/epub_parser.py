import asyncio
import os
import re
import tempfile
from typing import Callable, List, NamedTuple, Optional, Union

import ebooklib
from bs4 import BeautifulSoup
from ebooklib import epub

from .exceptions import ContainerError, NoContentError, SectionLoadError
from .models import ChapterMark, ParsedDocument
from .utils import get_logger, normalize_whitespace, tokenize

logger = get_logger(__name__)

HEADING_TAGS = ("h1", "h2", "h3")
TITLE_CLASS_SELECTOR = '.chapter-title, .title, [class*="chapter"], [class*="heading"]'
SUBTITLE_CLASS_SELECTOR = '.subtitle, .chapter-subtitle, [class*="subtitle"]'

SHORT_TITLE_LENGTH = 15     # "1", "PART ONE": worth merging with a subtitle
MAX_LINE_LENGTH = 80        # Longer first lines are prose, not titles
MAX_TITLE_LENGTH = 100
SUBTITLE_LOOKAHEAD = 3      # Lines after a short first line checked for a subtitle

DIGITS_RE = re.compile(r"[0-9]+")

Container = Union[bytes, bytearray, str, os.PathLike]


class SectionMarkup:
    """
    Parsed view of one spine section: its text, lines and heading candidates.
    Title strategies only read from this object.
    """

    def __init__(self, soup: BeautifulSoup):
        self.soup = soup
        body = soup.body if soup.body is not None else soup
        self.text = body.get_text()
        self.headings = {tag: soup.find(tag) for tag in HEADING_TAGS}
        self.primary = self._find_primary()
        self.lines = [line.strip() for line in self.text.split("\n") if line.strip()]

    def _find_primary(self) -> str:
        for tag in HEADING_TAGS:
            heading = self.headings[tag]
            if heading is not None and heading.get_text():
                return heading.get_text().strip()
        title_el = self.soup.select_one(TITLE_CLASS_SELECTOR)
        if title_el is not None:
            return title_el.get_text().strip()
        return ""

    def heading_subtitle(self) -> str:
        """Next heading level after the primary one, else a subtitle-classed element."""
        h1, h2, h3 = (self.headings[tag] for tag in HEADING_TAGS)
        subtitle_el = None
        if h1 is not None and h2 is not None and h1.get_text().strip() == self.primary:
            subtitle_el = h2
        elif h2 is not None and h3 is not None and h2.get_text().strip() == self.primary:
            subtitle_el = h3
        if subtitle_el is None:
            subtitle_el = self.soup.select_one(SUBTITLE_CLASS_SELECTOR)
        if subtitle_el is None:
            return ""
        subtitle = subtitle_el.get_text().strip()
        return subtitle if _is_subtitle(subtitle) else ""

    def first_line(self) -> str:
        """First text line, if it looks like a title (short, no periods)."""
        if not self.lines:
            return ""
        line = self.lines[0]
        if len(line) < MAX_LINE_LENGTH and "." not in line:
            return line
        return ""

    def line_subtitle(self) -> str:
        for line in self.lines[1:1 + SUBTITLE_LOOKAHEAD]:
            if _is_subtitle(line) and not DIGITS_RE.fullmatch(line):
                return line
        return ""


def _is_subtitle(text: str) -> bool:
    return 2 < len(text) < MAX_LINE_LENGTH and not text.endswith(".")


def _is_short(text: str) -> bool:
    return 0 < len(text) < SHORT_TITLE_LENGTH


class TitleStrategy(NamedTuple):
    name: str
    applies: Callable[[SectionMarkup], bool]
    extract: Callable[[SectionMarkup], str]


# Ordered by confidence, first match wins
TITLE_STRATEGIES = [
    TitleStrategy(
        "heading+subtitle",
        lambda m: _is_short(m.primary) and bool(m.heading_subtitle()),
        lambda m: f"{m.primary} {m.heading_subtitle()}",
    ),
    TitleStrategy(
        "heading",
        lambda m: bool(m.primary),
        lambda m: m.primary,
    ),
    TitleStrategy(
        "first-line+subtitle",
        lambda m: _is_short(m.first_line()) and bool(m.line_subtitle()),
        lambda m: f"{m.first_line()} {m.line_subtitle()}",
    ),
    TitleStrategy(
        "first-line",
        lambda m: bool(m.first_line()),
        lambda m: m.first_line(),
    ),
]


def detect_chapter_title(markup: SectionMarkup) -> str:
    """
    Runs the title strategies in order and returns a normalized title,
    or "" when nothing usable was found.
    """
    for strategy in TITLE_STRATEGIES:
        if strategy.applies(markup):
            title = normalize_whitespace(strategy.extract(markup))
            logger.debug(f"Title strategy '{strategy.name}' matched: {title!r}")
            return title if 0 < len(title) < MAX_TITLE_LENGTH else ""
    return ""


class SectionResult(NamedTuple):
    index: int
    idref: str
    words: List[str]
    title: str = ""
    error: Optional[SectionLoadError] = None


class SectionTolerantReader(epub.EpubReader):
    """
    EpubReader that survives manifest entries whose file is missing from the
    archive. Such items are loaded with content=None and their paths are kept
    in `missing`; container.xml, the OPF and the NCX still fail hard.
    """

    def __init__(self, epub_file_name, options=None):
        super().__init__(epub_file_name, options)
        self.missing: List[str] = []
        self._loading_manifest = False

    def read_file(self, name):
        try:
            return super().read_file(name)
        except KeyError:
            if not self._loading_manifest:
                raise
            logger.warning(f"Manifest item missing from archive: {name}")
            self.missing.append(name)
            return None

    def _load_manifest(self):
        self._loading_manifest = True
        try:
            super()._load_manifest()
        finally:
            self._loading_manifest = False


def open_epub(path: str):
    """Reads an EPUB from disk. Returns (book, archive paths that were missing)."""
    reader = SectionTolerantReader(path, {"ignore_ncx": True})
    book = reader.load()
    reader.process()
    return book, reader.missing


class EpubParser:
    def __init__(self, container: Container):
        self.container = container
        self.book = None
        self.failures: List[SectionLoadError] = []
        self.missing_files: List[str] = []

    def load(self):
        """Opens the EPUB container from raw bytes or a path."""
        logger.info("Loading EPUB container...")
        try:
            if isinstance(self.container, (bytes, bytearray)):
                self.book, self.missing_files = self._read_bytes(bytes(self.container))
            else:
                self.book, self.missing_files = open_epub(os.fspath(self.container))
        except Exception as e:
            logger.error(f"Failed to load EPUB: {e}")
            raise ContainerError(f"Cannot open EPUB container: {e}") from e

    @staticmethod
    def _read_bytes(data: bytes):
        # ebooklib wants a path, so spool the bytes to disk first
        fd, path = tempfile.mkstemp(suffix=".epub")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            return open_epub(path)
        finally:
            os.unlink(path)

    def parse(self) -> ParsedDocument:
        """
        Walks the spine and folds every section into one flat word sequence.
        Sections that fail to load are skipped and recorded in self.failures.
        """
        if not self.book:
            self.load()

        metadata = self.get_metadata()
        cover_image = self.get_cover_image()

        spine = self._spine_ids()
        if not spine:
            logger.error("EPUB spine is empty, nothing to read.")
            raise NoContentError("EPUB declares no reading-order sections")

        logger.info(f"Extracting text from {len(spine)} sections...")

        words: List[str] = []
        chapters: List[ChapterMark] = []
        self.failures = []

        for index, idref in enumerate(spine):
            result = self._load_section(index, idref)

            if result.error:
                logger.warning(f"Skipping section: {result.error}")
                self.failures.append(result.error)
                continue

            if result.title and result.words:
                chapters.append(ChapterMark(title=result.title, word_index=len(words)))
                logger.debug(f"Chapter '{result.title}' starts at word {len(words)}")

            words.extend(result.words)

        logger.info(
            f"Extracted {len(words)} words, {len(chapters)} chapters "
            f"({len(self.failures)} sections skipped)."
        )

        return ParsedDocument(
            title=metadata["title"],
            author=metadata["author"],
            cover_image=cover_image,
            words=tuple(words),
            chapters=tuple(chapters),
        )

    def _spine_ids(self) -> List[str]:
        ids = []
        for entry in self.book.spine or []:
            # Read books hold (idref, linear) pairs; built ones may hold items
            if isinstance(entry, (list, tuple)):
                entry = entry[0]
            if isinstance(entry, epub.EpubItem):
                entry = entry.get_id()
            ids.append(entry)
        return ids

    def _load_section(self, index: int, idref: str) -> SectionResult:
        try:
            item = self.book.get_item_with_id(idref)
            if item is None:
                raise LookupError("spine entry points to a missing manifest item")
            if item.content is None:
                raise LookupError(f"file {item.get_name()} is missing from the archive")
            soup = BeautifulSoup(item.get_content(), "html.parser")
            markup = SectionMarkup(soup)
        except Exception as e:
            return SectionResult(index, idref, [], error=SectionLoadError(index, idref, str(e)))

        section_words = tokenize(markup.text)
        title = detect_chapter_title(markup) if section_words else ""
        logger.debug(f"Section {index} ({idref}): {len(section_words)} words")
        return SectionResult(index, idref, section_words, title=title)

    def get_metadata(self) -> dict:
        """
        Extracts metadata (Author, Title) from the EPUB.
        Title falls back to 'Untitled', author to None.
        """
        if not self.book:
            self.load()

        def get_dc(name):
            try:
                items = self.book.get_metadata('DC', name)
                if items and items[0][0]:
                    return items[0][0].strip() or None
            except Exception as e:
                logger.debug(f"Could not read DC:{name}: {e}")
            return None

        return {
            "title": get_dc('title') or "Untitled",
            "author": get_dc('creator'),
        }

    def get_cover_image(self) -> Optional[bytes]:
        """Cover image bytes, or None. A broken cover never fails extraction."""
        try:
            for item in self.book.get_items_of_type(ebooklib.ITEM_COVER):
                return item.get_content() or None

            for _, attrs in self.book.get_metadata('OPF', 'cover'):
                item = self.book.get_item_with_id((attrs or {}).get('content'))
                if item is not None:
                    return item.get_content() or None

            for item in self.book.get_items_of_type(ebooklib.ITEM_IMAGE):
                if 'cover-image' in (getattr(item, 'properties', None) or []):
                    return item.get_content() or None
        except Exception as e:
            logger.warning(f"Cover image not available: {e}")
        return None


def extract(container: Container) -> ParsedDocument:
    """Parses an EPUB container into a ParsedDocument."""
    return EpubParser(container).parse()


async def extract_async(container: Container) -> ParsedDocument:
    """Runs extract() in a worker thread so the event loop stays responsive."""
    return await asyncio.to_thread(extract, container)
