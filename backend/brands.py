"""Branded variants of the interaction guide.

Both brands run the same resolver; a profile only chooses the dataset, the
display strings and where favorites are kept.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Optional, Tuple

ROOT_DIR = Path(__file__).resolve().parents[1]
DEFAULT_DATA_DIR = ROOT_DIR / "data" / "ceremonial"


@dataclass(frozen=True)
class BrandProfile:
    key: str
    title: str
    tagline: str
    data_dir: Path
    favorites_key: str
    legacy_favorites_keys: Tuple[str, ...] = ()


BRANDS: Dict[str, BrandProfile] = {
    "entheogen": BrandProfile(
        key="entheogen",
        title="EntheoGen",
        tagline="Ceremonial Safety Guide",
        data_dir=DEFAULT_DATA_DIR,
        favorites_key="entheogen_favorites",
        legacy_favorites_keys=("seshguard_favorites",),
    ),
    "seshguard": BrandProfile(
        key="seshguard",
        title="SeshGuard",
        tagline="Combination Risk Checker",
        data_dir=DEFAULT_DATA_DIR,
        favorites_key="seshguard_favorites",
    ),
}

DEFAULT_BRAND = "entheogen"


def get_brand(key: Optional[str] = None) -> BrandProfile:
    """Return the profile named by ``key`` or ``ENTHEOGEN_BRAND``.

    ``ENTHEOGEN_DATA_DIR`` replaces the profile's dataset directory when set.
    """

    name = (key or os.getenv("ENTHEOGEN_BRAND") or DEFAULT_BRAND).strip().lower()
    try:
        profile = BRANDS[name]
    except KeyError:
        raise ValueError(
            f"Unknown brand {name!r}; expected one of {sorted(BRANDS)}"
        ) from None

    override = os.getenv("ENTHEOGEN_DATA_DIR")
    if override:
        profile = replace(profile, data_dir=Path(override))
    return profile
