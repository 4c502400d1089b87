"""
Channel resolution from FCS TEXT keywords.

Turns the $PnN (name) and $PnS (description) keywords of an FCS header into
a clean Name/Desc table and into unique column names for the event matrix.

Biological Context:
    Panel descriptions are typed by hand at the instrument and are messy:
    - Mass cytometry descriptions often embed the isotope ("CD3_170Er",
      "141Pr_CD45"), which differs between panels and breaks matching of the
      same marker across experiments.
    - Bead channels carry an "_EQ" suffix (EQ four-element calibration beads).
    - Two detectors may carry the same description.

Engineering Design:
    - Suspect isotope tokens are a fixed, immutable table compiled once.
    - Token stripping only happens when at least two descriptions match, so a
      single marker that happens to contain a token is never rewritten.
    - Column naming prefers the description and falls back to the raw name;
      collisions are disambiguated with the raw name.

Examples:
    >>> from cytoabundance.io.channels import remove_mass_from_desc
    >>> remove_mass_from_desc(["CD3_89Y_Dead", "CD19_113In"])
    ['CD3_Dead', 'CD19']
    >>> remove_mass_from_desc(["CD3_89Y"])
    ['CD3_89Y']
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from typing import Mapping, Optional, Sequence

import pandas as pd

__all__ = [
    'MASS_SUSPECT_VALUES',
    'MassRemovalError',
    'normalize_keywords',
    'get_keyword',
    'remove_mass_from_desc',
    'remove_eq_from_desc',
    'resolve_channels',
    'exprs_column_names',
]

logger = logging.getLogger(__name__)


# Isotope labels, in both "<mass><element>" and "<element><mass>" order.
MASS_SUSPECT_VALUES: tuple[str, ...] = (
    "89Y",   "Y89",   "113In", "In113", "115In", "In115", "141Pr", "Pr141",
    "142Nd", "Nd142", "143Nd", "Nd143", "144Nd", "Nd144", "145Nd", "Nd145",
    "146Nd", "Nd146", "147Sm", "Sm147", "148Nd", "Nd148", "148Sm", "Sm148",
    "149Sm", "Sm149", "150Nd", "Nd150", "151Eu", "Eu151", "152Sm", "Sm152",
    "153Eu", "Eu153", "154Sm", "Sm154", "155Gd", "Gd155", "156Gd", "Gd156",
    "157Gd", "Gd157", "158Gd", "Gd158", "159Tb", "Tb159", "160Gd", "Gd160",
    "161Dy", "Dy161", "162Dy", "Dy162", "163Dy", "Dy163", "164Dy", "Dy164",
    "165Ho", "Ho165", "166Er", "Er166", "167Er", "Er167", "168Er", "Er168",
    "169Tm", "Tm169", "170Er", "Er170", "171Yb", "Yb171", "172Yb", "Yb172",
    "173Yb", "Yb173", "174Yb", "Yb174", "175Lu", "Lu175", "176Yb", "Yb176",
    "209Bi", "Bi209",
)

_MASS_ALTERNATION = "(?:" + "|".join(re.escape(v) for v in MASS_SUSPECT_VALUES) + ")"
_MASS_RE = re.compile(_MASS_ALTERNATION)
_MASS_INFIX_RE = re.compile(f"_{_MASS_ALTERNATION}_")
_MASS_PREFIX_RE = re.compile(f"{_MASS_ALTERNATION}_")
_MASS_SUFFIX_RE = re.compile(f"_{_MASS_ALTERNATION}")

_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]")


class MassRemovalError(ValueError):
    """Raised when isotope tokens cannot be stripped from channel descriptions."""
    pass


def normalize_keywords(meta: Mapping) -> dict[str, str]:
    """
    Normalize FCS TEXT keywords: upper-case, stripped keys and string values.

    FCS keywords are case-insensitive. Parser bookkeeping entries (keys that
    start with "__") are dropped.
    """
    normalized = {}
    for key, value in meta.items():
        key = str(key).strip()
        if key.startswith("__"):
            continue
        normalized[key.upper()] = "" if value is None else str(value).strip()
    return normalized


def get_keyword(header: Mapping[str, str], key: str, default: Optional[str] = None) -> Optional[str]:
    """Look up a keyword with or without its leading "$"."""
    key = key.upper().lstrip("$")
    for candidate in (f"${key}", key):
        if candidate in header:
            return header[candidate]
    return default


def _is_mass_suspect(desc: str) -> bool:
    return bool(_MASS_RE.search(desc)) and "_" in desc


def remove_mass_from_desc(descs: Sequence[str]) -> list[str]:
    """
    Strip isotope tokens from channel descriptions.

    A description is suspect when it contains one of MASS_SUSPECT_VALUES and an
    underscore. Stripping is attempted only when at least two descriptions are
    suspect; otherwise the list is returned unchanged.

    Args:
        descs: Cleaned channel descriptions (non-alphanumerics already "_").

    Returns:
        Descriptions with isotope tokens removed.

    Raises:
        MassRemovalError: If two or more descriptions are still suspect after
            stripping.
    """
    descs = list(descs)
    suspect = [_is_mass_suspect(d) for d in descs]
    if sum(suspect) < 2:
        return descs

    for i, is_suspect in enumerate(suspect):
        if not is_suspect:
            continue
        desc = _MASS_INFIX_RE.sub("_", descs[i])
        desc = _MASS_PREFIX_RE.sub("", desc)
        desc = _MASS_SUFFIX_RE.sub("", desc)
        descs[i] = desc

    remaining = [d for d in descs if _is_mass_suspect(d)]
    if len(remaining) >= 2:
        raise MassRemovalError(
            f"failed to remove masses from channel descriptions: {remaining}"
        )

    logger.debug(f"Removed isotope tokens from {sum(suspect)} channel descriptions")
    return descs


def remove_eq_from_desc(descs: Sequence[str]) -> list[str]:
    """Remove the "_EQ" calibration bead suffix from descriptions."""
    return [d.replace("_EQ", "") for d in descs]


def resolve_channels(header: Mapping) -> pd.DataFrame:
    """
    Build the Name/Desc channel table from FCS TEXT keywords.

    Args:
        header: TEXT segment keywords ($PAR, $PnN, $PnS, ...), any key case.

    Returns:
        DataFrame with one row per parameter and columns Name and Desc.
        Desc is "" when $PnS is absent, has non-alphanumerics replaced by "_",
        isotope tokens removed (when unambiguous) and "_EQ" stripped.

    Raises:
        ValueError: If $PAR is missing or not an integer.
        MassRemovalError: If isotope stripping does not converge.
    """
    header = normalize_keywords(header)

    n_parameters = get_keyword(header, "PAR")
    if n_parameters is None:
        raise ValueError("FCS header has no $PAR keyword")
    try:
        n_parameters = int(n_parameters)
    except ValueError as e:
        raise ValueError(f"Invalid $PAR value: {n_parameters!r}") from e

    names = []
    descs = []
    for i in range(1, n_parameters + 1):
        name = get_keyword(header, f"P{i}N")
        if not name:
            logger.warning(f"Parameter {i} has no $P{i}N keyword, using 'P{i}'")
            name = f"P{i}"
        names.append(name)
        descs.append(get_keyword(header, f"P{i}S", default="") or "")

    descs = [_NON_ALNUM_RE.sub("_", d) for d in descs]
    descs = remove_mass_from_desc(descs)
    descs = remove_eq_from_desc(descs)

    return pd.DataFrame({"Name": names, "Desc": descs})


def exprs_column_names(names: Sequence[str], descs: Sequence[Optional[str]]) -> list[str]:
    """
    Choose event-matrix column names.

    The description is used when present; empty or missing descriptions fall
    back to the raw name. Every channel whose display name collides with
    another one is renamed to "<Name>_<display>". If that still clashes with
    an earlier column, the parameter position is appended ("<column>_<n>").

    Examples:
        >>> exprs_column_names(["FL1-A", "FL2-A", "FSC-A"], ["CD3", "CD3", ""])
        ['FL1-A_CD3', 'FL2-A_CD3', 'FSC-A']
    """
    if len(names) != len(descs):
        raise ValueError(f"Got {len(names)} names but {len(descs)} descriptions")

    display = [
        desc if isinstance(desc, str) and desc != "" else name
        for name, desc in zip(names, descs)
    ]
    counts = Counter(display)
    columns = [
        f"{name}_{label}" if counts[label] > 1 else label
        for name, label in zip(names, display)
    ]

    # A prefixed name can still clash with another display name; later
    # duplicates get their 1-based parameter position appended.
    taken = set(columns)
    used = set()
    for i, column in enumerate(columns):
        if column in used:
            candidate = f"{column}_{i + 1}"
            while candidate in taken or candidate in used:
                candidate = f"{candidate}_{i + 1}"
            columns[i] = candidate
        used.add(columns[i])
    return columns
