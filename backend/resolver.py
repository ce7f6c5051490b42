"""Pair resolution with deterministic fallbacks and rule-based readouts.

Every function here is pure: inputs come in as arguments, a fresh value comes
out, and nothing is cached between calls.  The resolver never raises for an
unmapped pair; absence of data is the ``UNKNOWN`` classification.
"""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from backend.dataset import (
    SELF_CODE,
    UNKNOWN_CODE,
    IncompleteActionMapping,
    InteractionDataset,
    PairEvidence,
    RiskClassification,
    Substance,
    pair_key,
)

SOURCE_GAP = "source-gap"

SELF_EVIDENCE = PairEvidence(
    code=SELF_CODE,
    summary="Same entity selected; this is not an interaction pair.",
    confidence="n/a",
    sources="n/a",
)

UNKNOWN_EVIDENCE = PairEvidence(
    code=UNKNOWN_CODE,
    summary="No explicit interaction classification in the current source set.",
    confidence="low",
    sources=SOURCE_GAP,
)

# Guidance escalates with severity rank; -1 and 0 are the SELF/UNKNOWN sentinels.
ACTIONS_BY_RANK: Mapping[int, str] = MappingProxyType({
    -1: "Same entity selected; no combination to assess.",
    0: "Unknown interaction; treat with default caution and avoid combining without expert guidance.",
    1: "Low risk in source context; standard harm-reduction precautions still apply.",
    2: "Low acute risk; expect altered or blunted effects and adjust expectations.",
    3: "Use caution; avoid unless supervised and monitor closely.",
    4: "High risk; generally avoid this combination.",
    5: "Avoid; seek urgent medical help if already combined.",
})


def action_for(severity_rank: int, actions: Mapping[int, str] = ACTIONS_BY_RANK) -> str:
    """Return the guidance sentence for ``severity_rank``."""

    try:
        return actions[severity_rank]
    except KeyError:
        raise IncompleteActionMapping([severity_rank]) from None


def check_action_mapping(
    legend: Iterable[RiskClassification], actions: Mapping[int, str] = ACTIONS_BY_RANK
) -> None:
    """Fail fast when a legend severity rank has no (or an empty) action sentence."""

    missing = [
        entry.severity_rank
        for entry in legend
        if not str(actions.get(entry.severity_rank, "")).strip()
    ]
    if missing:
        raise IncompleteActionMapping(missing)


def resolve(dataset: InteractionDataset, a_id: str, b_id: str) -> PairEvidence:
    if a_id == b_id:
        return SELF_EVIDENCE
    entry = dataset.raw_entry(a_id, b_id)
    if entry is None:
        return UNKNOWN_EVIDENCE
    return entry


def special_note(dataset: InteractionDataset, a_id: str, b_id: str) -> Optional[str]:
    if a_id == b_id:
        return None
    return dataset.special_note(a_id, b_id)


def render_readout(
    evidence: PairEvidence,
    legend_entry: RiskClassification,
    special_note: Optional[str] = None,
    *,
    pair: Optional[Tuple[str, str]] = None,
    actions: Mapping[int, str] = ACTIONS_BY_RANK,
) -> str:
    """Assemble the Markdown evidence readout for one resolved pair.

    ``pair`` holds display names; when given, the readout opens with a heading
    naming both substances.
    """

    lines: List[str] = []
    if pair:
        lines += [f"## {pair[0]} + {pair[1]}", ""]

    lines += [
        "### Classification",
        f"**{legend_entry.label}** (`{legend_entry.code}`)",
        "",
        legend_entry.description,
        "",
        "### Evidence summary",
        evidence.summary,
        "",
        "### Recommended action",
        action_for(legend_entry.severity_rank, actions),
        "",
    ]

    if special_note:
        lines += ["### Consensus note", special_note.strip(), ""]

    lines += [
        "### Evidence quality",
        f"- Confidence: {evidence.confidence}",
        f"- Sources: {evidence.sources}",
    ]
    return "\n".join(lines)


def render_profile(substance_id: str, substance: Optional[Substance] = None) -> str:
    """Catalogue-only profile used when no generated summary is available."""

    if substance is None:
        return "\n".join([
            f"## {substance_id}",
            "",
            "This substance is not in the current catalogue; no curated profile is available.",
        ])
    lines = [f"## {substance.name}", "", f"- Class: {substance.cls or 'unspecified'}"]
    if substance.mechanism_tag:
        lines.append(f"- Mechanism: {substance.mechanism_tag}")
    if substance.notes:
        lines += ["", substance.notes]
    return "\n".join(lines)


@dataclass(frozen=True)
class InteractionLookup:
    """Everything a caller needs to display one resolved pair."""

    key: str
    a: str
    b: str
    evidence: PairEvidence
    classification: RiskClassification
    action: str
    special_note: Optional[str] = None

    @property
    def is_self_pair(self) -> bool:
        return self.evidence.code == SELF_CODE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "a": self.a,
            "b": self.b,
            "evidence": self.evidence.to_dict(),
            "classification": self.classification.to_dict(),
            "action": self.action,
            "specialNote": self.special_note,
        }


class InteractionResolver:
    """Resolver bound to one dataset.

    Branded variants share this class and differ only in the dataset they
    inject.  Construction verifies that every legend rank has guidance.
    """

    def __init__(self, dataset: InteractionDataset, actions: Mapping[int, str] = ACTIONS_BY_RANK):
        check_action_mapping(dataset.legend.values(), actions)
        self.dataset = dataset
        self._actions = actions

    def resolve(self, a_id: str, b_id: str) -> PairEvidence:
        return resolve(self.dataset, a_id, b_id)

    def special_note(self, a_id: str, b_id: str) -> Optional[str]:
        return special_note(self.dataset, a_id, b_id)

    def classification(self, code: str) -> RiskClassification:
        return self.dataset.classification(code)

    def action_for(self, severity_rank: int) -> str:
        return action_for(severity_rank, self._actions)

    def lookup(self, a_id: str, b_id: str) -> InteractionLookup:
        evidence = self.resolve(a_id, b_id)
        legend_entry = self.classification(evidence.code)
        return InteractionLookup(
            key=pair_key(a_id, b_id),
            a=a_id,
            b=b_id,
            evidence=evidence,
            classification=legend_entry,
            action=self.action_for(legend_entry.severity_rank),
            special_note=self.special_note(a_id, b_id),
        )

    def display_name(self, substance_id: str) -> str:
        substance = self.dataset.find_substance(substance_id)
        return substance.name if substance else substance_id

    def profile(self, substance_id: str) -> str:
        return render_profile(substance_id, self.dataset.find_substance(substance_id))

    def readout(self, a_id: str, b_id: str, *, with_heading: bool = True) -> str:
        found = self.lookup(a_id, b_id)
        pair = (self.display_name(a_id), self.display_name(b_id)) if with_heading else None
        return render_readout(
            found.evidence,
            found.classification,
            found.special_note,
            pair=pair,
            actions=self._actions,
        )


__all__ = [
    "ACTIONS_BY_RANK",
    "InteractionLookup",
    "InteractionResolver",
    "SELF_EVIDENCE",
    "SOURCE_GAP",
    "UNKNOWN_EVIDENCE",
    "action_for",
    "check_action_mapping",
    "pair_key",
    "render_profile",
    "render_readout",
    "resolve",
    "special_note",
]
