"""Client-local favorites list.

Favorites live in one JSON file per storage key inside a state directory.
Reads never fail: a missing, unreadable or corrupt file is an empty list.
Writes are best effort; last write wins.
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence

from pydantic import AliasChoices, BaseModel, Field, ValidationError

from backend.dataset import SELF_CODE, pair_key

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = Path(os.getenv("ENTHEOGEN_STATE_DIR", Path.home() / ".entheogen"))


class FavoriteEntry(BaseModel):
    """One saved pair; ``d1``/``d2`` are accepted from older saved lists."""

    id: str
    drug1: str = Field(validation_alias=AliasChoices("drug1", "d1"))
    drug2: str = Field(validation_alias=AliasChoices("drug2", "d2"))
    code: str


def _parse_entries(payload: Any) -> List[FavoriteEntry]:
    if not isinstance(payload, list):
        raise ValueError("favorites payload must be a list")
    entries: List[FavoriteEntry] = []
    seen = set()
    for raw in payload:
        try:
            entry = FavoriteEntry.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Skipping malformed favorite entry %r: %s", raw, exc)
            continue
        if entry.id in seen:
            continue
        seen.add(entry.id)
        entries.append(entry)
    return entries


class FavoritesStore:
    """Keyed read/write of the favorites list."""

    def __init__(
        self,
        state_dir: Optional[str | Path] = None,
        key: str = "entheogen_favorites",
        legacy_keys: Sequence[str] = (),
    ) -> None:
        self.state_dir = Path(state_dir) if state_dir is not None else DEFAULT_STATE_DIR
        self.key = key
        self.legacy_keys = tuple(legacy_keys)

    def path_for(self, key: str) -> Path:
        return self.state_dir / f"{key}.json"

    @property
    def path(self) -> Path:
        return self.path_for(self.key)

    def load(self) -> List[FavoriteEntry]:
        for key in (self.key, *self.legacy_keys):
            path = self.path_for(key)
            if not path.exists():
                continue
            try:
                with open(path, "r", encoding="utf-8") as fh:
                    payload = json.load(fh)
                return _parse_entries(payload)
            except (OSError, ValueError) as exc:
                logger.warning("Failed to read favorites from %s: %s", path, exc)
                return []
        return []

    def save(self, entries: Iterable[FavoriteEntry]) -> None:
        payload = [entry.model_dump() for entry in entries]
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2)
        except OSError as exc:
            logger.warning("Failed to save favorites to %s: %s", self.path, exc)


def is_favorite(entries: Iterable[FavoriteEntry], a_id: str, b_id: str) -> bool:
    key = pair_key(a_id, b_id)
    return any(entry.id == key for entry in entries)


def remove_favorite(entries: Iterable[FavoriteEntry], favorite_id: str) -> List[FavoriteEntry]:
    return [entry for entry in entries if entry.id != favorite_id]


def toggle_favorite(
    entries: Iterable[FavoriteEntry], a_id: str, b_id: str, code: str
) -> List[FavoriteEntry]:
    """Add the pair when absent, remove it when present.

    Self-pairs are never saved; the list comes back unchanged.
    """

    current = list(entries)
    if a_id == b_id or code == SELF_CODE:
        return current
    key = pair_key(a_id, b_id)
    if any(entry.id == key for entry in current):
        return remove_favorite(current, key)
    return current + [FavoriteEntry(id=key, drug1=a_id, drug2=b_id, code=code)]
