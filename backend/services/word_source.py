"""
Word library — supplies the word group for each round.

File format (CSV, optional header row):
    groupId,word1,word2,word3,...
Every word of a group is a candidate for the correct (civilian) word; one is drawn
at random each round and the rest become the undercover pool.
"""
import logging
import random
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel

from config import settings
from models.game import WordSelection

logger = logging.getLogger(__name__)

_BUNDLED_WORDS = Path(__file__).with_name("words.txt")

# Used when the library is missing or empty so a room can still start.
_FALLBACK_GROUP = WordSelection(group_index=0, correct="Apple", wrong=["Pear", "Peach"])
_UNKNOWN_WORD = "???"


class WordGroup(BaseModel):
    id: int
    words: List[str]


def parse_word_library(text: str) -> List[WordGroup]:
    """Parse CSV text; rows without an integer id or with fewer than two words are skipped."""
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if lines and "groupid" in lines[0].lower():
        lines = lines[1:]

    groups: List[WordGroup] = []
    for line in lines:
        parts = [p.strip() for p in line.split(",") if p.strip()]
        if len(parts) < 3:
            continue
        try:
            group_id = int(parts[0])
        except ValueError:
            continue
        groups.append(WordGroup(id=group_id, words=parts[1:]))
    return groups


class WordSource:
    def __init__(self, groups: Optional[List[WordGroup]] = None, path: Optional[str] = None):
        self._groups = groups
        self._path = Path(path) if path else None

    @property
    def groups(self) -> List[WordGroup]:
        if self._groups is None:
            path = self._path or (Path(settings.words_file) if settings.words_file else _BUNDLED_WORDS)
            try:
                self._groups = parse_word_library(path.read_text(encoding="utf-8"))
            except OSError as exc:
                logger.error("Could not read word library %s: %s", path, exc)
                self._groups = []
            logger.info("Loaded %d word groups from %s", len(self._groups), path)
        return self._groups

    def select_group(self, used_ids: List[int], rng: random.Random) -> WordSelection:
        """Pick a group not in used_ids (any group once all are used) and draw the correct word."""
        groups = self.groups
        if not groups:
            logger.warning("Word library is empty, using fallback group")
            return _FALLBACK_GROUP.model_copy(deep=True)

        available = [g for g in groups if g.id not in used_ids]
        pool = available or groups
        selected = rng.choice(pool)

        words = list(selected.words)
        rng.shuffle(words)
        return WordSelection(group_index=selected.id, correct=words[0], wrong=words[1:])

    def undercover_words(
        self, wrong: List[str], count: int, distinct: bool, rng: random.Random
    ) -> List[str]:
        """One word per undercover seat: a single shared word, or cycle through a shuffled pool."""
        if count <= 0:
            return []
        if not wrong:
            return [_UNKNOWN_WORD] * count
        if not distinct:
            return [rng.choice(wrong)] * count
        pool = list(wrong)
        rng.shuffle(pool)
        return [pool[i % len(pool)] for i in range(count)]


_word_source: Optional[WordSource] = None


def get_word_source() -> WordSource:
    """Lazy singleton: the library file is read on first use."""
    global _word_source
    if _word_source is None:
        _word_source = WordSource()
    return _word_source
