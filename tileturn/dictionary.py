from __future__ import annotations
import asyncio
import logging
from pathlib import Path
from typing import Dict, Iterable, Optional, Set

from .config import get_settings
from .errors import DictionaryUnavailable

logger = logging.getLogger(__name__)

# Small built-in word list so a game can be played without any files.
# Real deployments point TILETURN_DICTIONARY_DIR at <name>.txt word lists.
DEMO_WORDS = {
    'AA', 'AD', 'AE', 'AG', 'AS', 'AT', 'DA', 'DE', 'DO', 'ED', 'ES', 'ET',
    'EX', 'GO', 'OD', 'OE', 'OS', 'OX', 'SO', 'TA', 'TO', 'XI',
    'ACE', 'ACT', 'ADS', 'AGE', 'ATE', 'CAT', 'COD', 'COG', 'COT', 'DOE',
    'DOG', 'DOT', 'EAT', 'GOD', 'SAT', 'SEA', 'SET', 'TEA', 'TOE', 'TOG',
    'CATS', 'COAT', 'DOGS', 'GOAT', 'TOAD', 'DATE', 'GATE', 'CODE', 'SEAT',
    'TOAST', 'COAST', 'DOTES', 'CODES', 'GATES', 'STAGE', 'TEASE',
}

BUILTIN = {'Demo': DEMO_WORDS}


class DictionaryService:
    def __init__(self, name: str, words: Iterable[str]):
        self.name = name
        self._words: Set[str] = {w.strip().upper() for w in words if w.strip()}

    def has_word(self, word: str) -> bool:
        if not word:
            return False
        return word.upper() in self._words

    def __len__(self) -> int:
        return len(self._words)


_cache: Dict[str, DictionaryService] = {}


def _read_word_list(path: Path) -> list[str]:
    with path.open(encoding='utf-8') as f:
        return f.read().split()


async def load_dictionary(name: Optional[str]) -> DictionaryService:
    """Resolve a dictionary by name. A game without one gets
    DictionaryUnavailable, which challenge handling treats as 'no oracle'."""
    if not name:
        raise DictionaryUnavailable("Game has no dictionary")
    if name in _cache:
        return _cache[name]

    if name in BUILTIN:
        service = DictionaryService(name, BUILTIN[name])
    else:
        directory = get_settings().dictionary_dir
        path = Path(directory) / f"{name}.txt" if directory else None
        if path is None or not path.is_file():
            raise DictionaryUnavailable(f"No such dictionary {name!r}")
        words = await asyncio.to_thread(_read_word_list, path)
        service = DictionaryService(name, words)
        logger.info("Loaded dictionary %s (%d words)", name, len(service))

    _cache[name] = service
    return service
