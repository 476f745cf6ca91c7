from typing import NamedTuple


class FocalSplit(NamedTuple):
    before: str
    focal: str
    after: str


def focal_index(word: str) -> int:
    """
    Optimal Recognition Point of a word: the character the eye should land on.
    Sits roughly 30% into the word, biased to the left for short words.
    """
    length = len(word)
    if length <= 1:
        return 0
    if length <= 5:
        return 1
    if length <= 9:
        return 2
    if length <= 13:
        return 3
    return int(length * 0.3)


def split_word(word: str) -> FocalSplit:
    """
    Splits a word around its focal character for highlighting.
    before + focal + after always rebuilds the word.
    """
    index = focal_index(word)
    return FocalSplit(
        before=word[:index],
        focal=word[index:index + 1],
        after=word[index + 1:],
    )
