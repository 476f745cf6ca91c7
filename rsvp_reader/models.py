import bisect
from dataclasses import dataclass, field
from typing import Optional, Tuple


@dataclass(frozen=True)
class ChapterMark:
    """
    A detected chapter boundary.
    The chapter owns words [word_index, next chapter's word_index).
    """
    title: str          # 1-99 chars, whitespace normalized
    word_index: int     # Index of the first word of the chapter

    def __repr__(self):
        return f"<ChapterMark '{self.title}' @ {self.word_index}>"


@dataclass(frozen=True)
class ParsedDocument:
    """
    Flat, globally indexed word sequence of a book plus its chapter index.
    Built once by the EPUB parser and shared read-only afterwards.
    """
    title: str
    words: Tuple[str, ...]
    chapters: Tuple[ChapterMark, ...] = ()
    author: Optional[str] = None
    cover_image: Optional[bytes] = field(default=None, repr=False)

    @property
    def word_count(self) -> int:
        return len(self.words)

    def locate_chapter(self, index: int) -> Optional[ChapterMark]:
        """Returns the last chapter starting at or before index."""
        if not self.chapters:
            return None
        starts = [c.word_index for c in self.chapters]
        pos = bisect.bisect_right(starts, index) - 1
        # Words before the first detected heading belong to no chapter
        return self.chapters[pos] if pos >= 0 else None


@dataclass(frozen=True)
class ProgressCheckpoint:
    """Snapshot of the reading position handed to the progress sink."""
    word_index: int
    words_per_minute: int


@dataclass
class PlaybackState:
    word_index: int = 0
    words_per_minute: int = 300
    running: bool = False
