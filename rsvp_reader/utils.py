import logging
import re
import sys
from typing import List

WHITESPACE_RE = re.compile(r"\s+")


def setup_logging(level=logging.INFO):
    """Configures the root logger with a standard format."""
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] %(levelname)s - %(name)s - %(message)s",
        datefmt="%H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


def get_logger(name: str):
    return logging.getLogger(name)


def normalize_whitespace(text: str) -> str:
    """Collapses every whitespace run to a single space and trims."""
    return WHITESPACE_RE.sub(" ", text).strip()


def tokenize(text: str) -> List[str]:
    """Splits text into display words. Empty tokens are dropped."""
    normalized = normalize_whitespace(text)
    return [word for word in normalized.split(" ") if word]


def format_time(seconds: float) -> str:
    """
    Human readable duration, e.g. '42s', '3m 5s', '1h 2m'.
    Seconds are only shown below one hour.
    """
    if seconds < 60:
        return f"{round(seconds)}s"
    mins = int(seconds // 60)
    secs = round(seconds % 60)
    if secs == 60:
        mins, secs = mins + 1, 0
    if mins < 60:
        return f"{mins}m {secs}s" if secs > 0 else f"{mins}m"
    hours, remaining_mins = divmod(mins, 60)
    return f"{hours}h {remaining_mins}m" if remaining_mins > 0 else f"{hours}h"


def estimate_reading_time(words_remaining: int, wpm: int) -> str:
    if words_remaining <= 0:
        return "0s"
    return format_time(words_remaining * 60 / wpm)


def sanitize(s: str) -> str:
    # Allow alphanumeric, space, dash, underscore, dots, commas, parens
    allowed = set(" -_.,()")
    return "".join(c for c in s if c.isalnum() or c in allowed).strip()
