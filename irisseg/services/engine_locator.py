"""Detection engine discovery.

The engine ships as a single executable artifact whose location depends on
how the application was deployed: next to the build output while developing,
inside the packaged resources in production. The locator walks an ordered
list of candidates and returns the first that exists.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

from ..config.settings import Config
from ..core.exceptions import EngineNotFoundError

logger = logging.getLogger(__name__)


class EngineLocator:
    """Ordered search list for the detection engine."""

    def __init__(self, candidates: Sequence[Union[str, Path]]):
        self._candidates: List[Path] = [Path(c) for c in candidates]

    @classmethod
    def from_config(cls, config: Config) -> "EngineLocator":
        """Build the search list for the configured environment.

        Production looks in the packaged resources first; development looks
        in the build tree first. The other group is kept as fallback.
        """
        dev = [Path(config.engine_base_dir) / c for c in config.engine_candidates_dev]
        prod = [Path(config.engine_resources_dir) / c for c in config.engine_candidates_prod]
        ordered = prod + dev if config.is_production else dev + prod
        return cls(_dedupe(ordered))

    @property
    def candidates(self) -> List[Path]:
        return list(self._candidates)

    def find(self) -> Optional[Path]:
        for candidate in self._candidates:
            exists = candidate.is_file()
            logger.debug(f"  {'found' if exists else 'missing'}: {candidate}")
            if exists:
                return candidate.resolve()
        return None

    def locate(self) -> Path:
        """Return the first existing candidate.

        Raises:
            EngineNotFoundError: If no candidate exists
        """
        found = self.find()
        if found is None:
            checked = [str(c) for c in self._candidates]
            logger.error(f"Detection engine not found; checked {len(checked)} locations")
            raise EngineNotFoundError(checked)
        logger.debug(f"Detection engine located at {found}")
        return found


def _dedupe(paths: Iterable[Path]) -> List[Path]:
    seen = set()
    unique = []
    for path in paths:
        key = str(path.resolve()) if path.is_absolute() else str(path)
        if key not in seen:
            seen.add(key)
            unique.append(path)
    return unique
