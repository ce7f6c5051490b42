"""Curated substance catalogue, risk legend and interaction table.

A dataset is immutable once built.  Pair entries are stored under a canonical
key (the two ids sorted and joined with ``PAIR_SEPARATOR``) so the table is
symmetric by construction: there is exactly one slot for ``(a, b)`` and
``(b, a)``.

All integrity checks run when the dataset is constructed.  A table entry that
references a code missing from the legend, a duplicated pair, or an unknown
confidence level means the data files are broken; those raise immediately
instead of surfacing on individual lookups.
"""
from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd
import yaml

logger = logging.getLogger(__name__)

PAIR_SEPARATOR = "|"
SELF_CODE = "SELF"
UNKNOWN_CODE = "UNKNOWN"
RESERVED_CODES = (SELF_CODE, UNKNOWN_CODE)
CONFIDENCE_LEVELS = ("low", "medium", "high", "n/a")

SUBSTANCES_FILE = "substances.csv"
LEGEND_FILE = "legend.yaml"
INTERACTIONS_FILE = "interactions.csv"
SPECIAL_NOTES_FILE = "special_notes.yaml"


class DatasetError(Exception):
    """Raised when the curated data violates an integrity rule."""


class UnknownCodeError(DatasetError):
    """A classification code is not part of the legend."""

    def __init__(self, code: str):
        super().__init__(f"Unknown classification code: {code!r}")
        self.code = code


class IncompleteActionMapping(DatasetError):
    """A legend severity rank has no guidance sentence."""

    def __init__(self, ranks: Iterable[int]):
        self.ranks = sorted(set(ranks))
        super().__init__(f"No action guidance for severity rank(s): {self.ranks}")


def pair_key(a: str, b: str) -> str:
    """Return the order-independent key for the pair ``(a, b)``."""

    first, second = sorted((str(a), str(b)))
    return f"{first}{PAIR_SEPARATOR}{second}"


@dataclass(frozen=True)
class Substance:
    id: str
    name: str
    cls: str
    mechanism_tag: str = ""
    notes: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "name": self.name,
            "class": self.cls,
            "mechanismTag": self.mechanism_tag,
            "notes": self.notes,
        }


@dataclass(frozen=True)
class RiskClassification:
    code: str
    label: str
    severity_rank: int
    description: str
    symbol: str = ""
    color: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "label": self.label,
            "severityRank": self.severity_rank,
            "description": self.description,
            "symbol": self.symbol,
            "color": self.color,
        }


@dataclass(frozen=True)
class PairEvidence:
    code: str
    summary: str
    confidence: str
    sources: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "code": self.code,
            "summary": self.summary,
            "confidence": self.confidence,
            "sources": self.sources,
        }


def _strip_accents(value: str) -> str:
    """Return ``value`` lower-cased with accents removed."""

    if not value:
        return ""
    normalised = unicodedata.normalize("NFKD", value)
    without_accents = normalised.encode("ascii", "ignore").decode("ascii")
    return without_accents.lower()


def _normalise_token(value: str) -> str:
    """Collapse accents, punctuation and whitespace so ``"rape"`` finds ``"Rapé"``."""

    collapsed = re.sub(r"[\W_]+", " ", _strip_accents(value))
    return collapsed.strip()


class InteractionDataset:
    """Read-only view over one curated source set."""

    def __init__(
        self,
        substances: Iterable[Substance],
        legend: Iterable[RiskClassification],
        interactions: Iterable[Tuple[str, str, PairEvidence]],
        special_notes: Iterable[Tuple[str, str, str]] = (),
        *,
        name: str = "inline",
    ) -> None:
        self.name = name
        self._substances: Tuple[Substance, ...] = tuple(substances)
        self._by_id: Dict[str, Substance] = {}
        for substance in self._substances:
            if substance.id in self._by_id:
                raise DatasetError(f"Duplicate substance id: {substance.id!r}")
            if not substance.id or PAIR_SEPARATOR in substance.id:
                raise DatasetError(f"Invalid substance id: {substance.id!r}")
            self._by_id[substance.id] = substance

        legend_by_code: Dict[str, RiskClassification] = {}
        for entry in legend:
            if entry.code in legend_by_code:
                raise DatasetError(f"Duplicate legend code: {entry.code!r}")
            legend_by_code[entry.code] = entry
        missing_reserved = [code for code in RESERVED_CODES if code not in legend_by_code]
        if missing_reserved:
            raise DatasetError(f"Legend is missing reserved code(s): {missing_reserved}")
        self._legend = MappingProxyType(legend_by_code)

        self._table = MappingProxyType(self._index_pairs(interactions, kind="interaction"))
        for key, evidence in self._table.items():
            self.classification(evidence.code)
            if evidence.code in RESERVED_CODES:
                raise DatasetError(f"Pair {key!r} uses reserved code {evidence.code!r}")
            if evidence.confidence not in CONFIDENCE_LEVELS:
                raise DatasetError(
                    f"Pair {key!r} has unsupported confidence {evidence.confidence!r}"
                )

        self._notes = MappingProxyType(self._index_pairs(special_notes, kind="special note"))

        self._search_index = [
            (
                position,
                substance,
                tuple(
                    _normalise_token(text)
                    for text in (substance.id, substance.name, substance.cls, substance.mechanism_tag)
                ),
            )
            for position, substance in enumerate(self._substances)
        ]

    def _index_pairs(self, rows: Iterable[Tuple[str, str, Any]], *, kind: str) -> Dict[str, Any]:
        indexed: Dict[str, Any] = {}
        for a_id, b_id, value in rows:
            for ident in (a_id, b_id):
                if ident not in self._by_id:
                    raise DatasetError(f"{kind.capitalize()} references unknown substance {ident!r}")
            if a_id == b_id:
                raise DatasetError(f"{kind.capitalize()} pairs {a_id!r} with itself")
            key = pair_key(a_id, b_id)
            if key in indexed:
                raise DatasetError(f"Duplicate {kind} for pair {key!r}")
            indexed[key] = value
        return indexed

    @property
    def legend(self) -> Mapping[str, RiskClassification]:
        return self._legend

    @property
    def interaction_count(self) -> int:
        return len(self._table)

    @property
    def special_note_count(self) -> int:
        return len(self._notes)

    def list_substances(self) -> List[Substance]:
        return list(self._substances)

    def find_substance(self, substance_id: str) -> Optional[Substance]:
        return self._by_id.get(substance_id)

    def classification(self, code: str) -> RiskClassification:
        try:
            return self._legend[code]
        except KeyError:
            raise UnknownCodeError(code) from None

    def legend_entries(self) -> List[RiskClassification]:
        """Legend sorted from the self-pair sentinel up to the most dangerous code."""

        return sorted(self._legend.values(), key=lambda entry: (entry.severity_rank, entry.code))

    def raw_entry(self, a_id: str, b_id: str) -> Optional[PairEvidence]:
        return self._table.get(pair_key(a_id, b_id))

    def special_note(self, a_id: str, b_id: str) -> Optional[str]:
        return self._notes.get(pair_key(a_id, b_id))

    def search_substances(self, query: Optional[str], limit: int = 20) -> List[Substance]:
        """Rank substances whose id, name, class or mechanism contains ``query``.

        Exact matches sort before prefix matches, which sort before plain
        substring matches; name hits beat class hits at the same level.  Ties
        keep catalogue order.
        """

        needle = _normalise_token(query or "")
        if not needle:
            return self.list_substances()[:limit]

        ranked: List[Tuple[Tuple[int, int, int], Substance]] = []
        for position, substance, fields in self._search_index:
            best: Optional[Tuple[int, int, int]] = None
            for field_priority, text in enumerate(fields):
                if not text:
                    continue
                if text == needle:
                    rank = (0, field_priority, position)
                elif text.startswith(needle):
                    rank = (1, field_priority, position)
                elif needle in text:
                    rank = (2, field_priority, position)
                else:
                    continue
                if best is None or rank < best:
                    best = rank
            if best is not None:
                ranked.append((best, substance))

        ranked.sort(key=lambda item: item[0])
        return [substance for _, substance in ranked[:limit]]


def _clean(value: Any) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    return str(value).strip()


def _read_csv(path: Path) -> pd.DataFrame:
    if not path.exists():
        raise FileNotFoundError(f"Missing data file: {path}")
    return pd.read_csv(path, dtype=str, keep_default_na=False)


def _read_yaml(path: Path) -> Any:
    if not path.exists():
        raise FileNotFoundError(f"Missing data file: {path}")
    with open(path, "r", encoding="utf-8") as fh:
        return yaml.safe_load(fh)


def load_substances(path: Path) -> List[Substance]:
    frame = _read_csv(path)
    substances = []
    for row in frame.to_dict(orient="records"):
        substance_id = _clean(row.get("id"))
        if not substance_id:
            continue
        substances.append(
            Substance(
                id=substance_id,
                name=_clean(row.get("name")) or substance_id,
                cls=_clean(row.get("class")),
                mechanism_tag=_clean(row.get("mechanism_tag")),
                notes=_clean(row.get("notes")),
            )
        )
    return substances


def load_legend(path: Path) -> List[RiskClassification]:
    content = _read_yaml(path) or {}
    if not isinstance(content, dict):
        raise DatasetError(f"{path.name} must map codes to legend entries")
    entries = []
    for code, raw in content.items():
        if not isinstance(raw, dict):
            raise DatasetError(f"Legend entry {code!r} must be a mapping")
        try:
            rank = int(raw["severity_rank"])
        except (KeyError, TypeError, ValueError) as exc:
            raise DatasetError(f"Legend entry {code!r} needs an integer severity_rank") from exc
        entries.append(
            RiskClassification(
                code=str(code),
                label=_clean(raw.get("label")) or str(code),
                severity_rank=rank,
                description=_clean(raw.get("description")),
                symbol=_clean(raw.get("symbol")),
                color=_clean(raw.get("color")),
            )
        )
    return entries


def load_interactions(path: Path) -> List[Tuple[str, str, PairEvidence]]:
    frame = _read_csv(path)
    rows = []
    for row in frame.to_dict(orient="records"):
        a_id = _clean(row.get("a"))
        b_id = _clean(row.get("b"))
        if not a_id or not b_id:
            continue
        evidence = PairEvidence(
            code=_clean(row.get("code")),
            summary=_clean(row.get("summary")),
            confidence=_clean(row.get("confidence")).lower(),
            sources=_clean(row.get("sources")),
        )
        rows.append((a_id, b_id, evidence))
    return rows


def load_special_notes(path: Path) -> List[Tuple[str, str, str]]:
    if not path.exists():
        return []
    content = _read_yaml(path) or []
    if not isinstance(content, list):
        raise DatasetError(f"{path.name} must contain a list of notes")
    notes = []
    for entry in content:
        if not isinstance(entry, dict):
            continue
        note = _clean(entry.get("note"))
        if note:
            notes.append((_clean(entry.get("a")), _clean(entry.get("b")), note))
    return notes


def load_dataset(data_dir: str | Path) -> InteractionDataset:
    """Build an :class:`InteractionDataset` from the files in ``data_dir``."""

    directory = Path(data_dir)
    dataset = InteractionDataset(
        load_substances(directory / SUBSTANCES_FILE),
        load_legend(directory / LEGEND_FILE),
        load_interactions(directory / INTERACTIONS_FILE),
        load_special_notes(directory / SPECIAL_NOTES_FILE),
        name=directory.name,
    )
    logger.info(
        "Loaded dataset %s: %s substances, %s legend codes, %s interactions, %s special notes",
        dataset.name,
        len(dataset.list_substances()),
        len(dataset.legend),
        dataset.interaction_count,
        dataset.special_note_count,
    )
    return dataset


__all__ = [
    "CONFIDENCE_LEVELS",
    "DatasetError",
    "IncompleteActionMapping",
    "InteractionDataset",
    "PAIR_SEPARATOR",
    "PairEvidence",
    "RiskClassification",
    "SELF_CODE",
    "Substance",
    "UNKNOWN_CODE",
    "UnknownCodeError",
    "load_dataset",
    "pair_key",
]
