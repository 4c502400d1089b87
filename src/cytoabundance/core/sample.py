"""
Cytometry sample container and instrument classification.

A Sample is the in-memory form of one FCS file after import: the event
matrix with resolved column names, the original parameter names and cleaned
descriptions, and the instrument that produced it.

Biological Context:
    Flow and mass cytometry files share the FCS container but differ in what
    the channels mean:
    - Flow cytometry records forward/side scatter (FSC/SSC) plus fluorescence
      detectors, and needs spillover compensation.
    - Mass cytometry (CyTOF) records isotope masses (e.g. Nd142Di) and uses the
      iridium DNA intercalator (Ir191/Ir193) to identify cells.

    Downstream preprocessing depends on which one we are looking at, so the
    instrument is resolved once at import and carried with the sample.

Examples:
    >>> from cytoabundance.core.sample import classify_instrument
    >>> classify_instrument(["FSC-A", "SSC-A", "FL1-A"])
    <InstrumentSource.FLOW: 'flow_cytometry'>
    >>> classify_instrument(["Ir191Di", "Ir193Di", "Nd142Di"])
    <InstrumentSource.MASS: 'mass_cytometry'>
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Optional, Sequence

import pandas as pd

if TYPE_CHECKING:
    from cytoabundance.config import PreprocessConfig

__all__ = [
    'InstrumentSource',
    'InstrumentIdentificationError',
    'Sample',
    'is_sample',
    'classify_instrument',
    'calculate_fcs_digest',
]

SAMPLE_FIELDS = ("exprs", "parameter_name", "parameter_desc", "source")


class InstrumentIdentificationError(ValueError):
    """Raised when an FCS file cannot be assigned to exactly one instrument type."""
    pass


class InstrumentSource(str, Enum):
    """
    Instrument that produced a sample.

    Each variant carries its own preprocessing: mass cytometry gets an arcsinh
    transform of the mass channels, flow cytometry gets a logicle transform of
    the fluorescence channels.
    """
    FLOW = "flow_cytometry"
    MASS = "mass_cytometry"

    def preprocess(
        self,
        sample: Sample,
        cofactor: float = 5.0,
        config: Optional[PreprocessConfig] = None,
    ) -> Sample:
        """Apply this instrument's standard transformation to a sample."""
        from cytoabundance.stats.preprocessing import ArcsinhTransform, LogicleTransform

        if self is InstrumentSource.MASS:
            transform = ArcsinhTransform(cofactor=cofactor)
        else:
            logicle_m = config.logicle_m if config is not None else 4.5
            transform = LogicleTransform(m=logicle_m)
        return transform.apply(sample)


@dataclass(frozen=True)
class Sample:
    """
    Imported cytometry sample.

    Attributes:
        exprs: Event matrix (rows = events, columns = resolved channel names).
            Column names are unique.
        parameter_name: Raw $PnN names, one per parameter.
        parameter_desc: Cleaned $PnS descriptions, one per parameter ("" if absent).
        source: Instrument that produced the file.
        keywords: Raw TEXT segment keywords (upper-cased keys).
    """
    exprs: pd.DataFrame
    parameter_name: list[str]
    parameter_desc: list[str]
    source: InstrumentSource
    keywords: dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if len(self.parameter_name) != len(self.parameter_desc):
            raise ValueError(
                f"parameter_name ({len(self.parameter_name)}) and parameter_desc "
                f"({len(self.parameter_desc)}) must have the same length"
            )
        if self.exprs.shape[1] != len(self.parameter_name):
            raise ValueError(
                f"exprs has {self.exprs.shape[1]} columns but "
                f"{len(self.parameter_name)} parameters were given"
            )
        if not self.exprs.columns.is_unique:
            duplicated = self.exprs.columns[self.exprs.columns.duplicated()].tolist()
            raise ValueError(f"exprs column names must be unique, duplicated: {duplicated}")

    @property
    def n_events(self) -> int:
        return self.exprs.shape[0]

    @property
    def n_parameters(self) -> int:
        return len(self.parameter_name)

    def with_exprs(self, exprs: pd.DataFrame) -> Sample:
        """Return a new sample with the event matrix replaced."""
        return replace(self, exprs=exprs)

    def parameter_range(self, index: int) -> Optional[float]:
        """$PnR for the 0-based parameter index, or None if not recorded."""
        value = self.keywords.get(f"$P{index + 1}R")
        if value is None:
            return None
        try:
            return float(value)
        except ValueError:
            return None

    def __repr__(self) -> str:
        return (
            f"Sample(source={self.source.value}, n_events={self.n_events}, "
            f"n_parameters={self.n_parameters})"
        )


def is_sample(obj: Any) -> bool:
    """
    Test whether an object looks like an imported sample.

    Accepts Sample instances as well as plain mappings carrying every field
    produced by import (exprs, parameter_name, parameter_desc, source).
    """
    if isinstance(obj, Sample):
        return True
    if not isinstance(obj, Mapping):
        return False
    return all(key in obj for key in SAMPLE_FIELDS)


def _contains_any(names: Iterable[str], token: str) -> bool:
    return any(token in name for name in names)


def classify_instrument(parameter_names: Sequence[str]) -> InstrumentSource:
    """
    Identify the instrument from the $PnN channel names.

    Flow cytometry requires both a forward-scatter (FSC) and a side-scatter
    (SSC) channel. Mass cytometry requires both iridium intercalator channels
    (Ir191 and Ir193). Exactly one of the two must match.

    Args:
        parameter_names: Raw channel names from the FCS header.

    Returns:
        The matching InstrumentSource.

    Raises:
        InstrumentIdentificationError: If both or neither instrument signature matches.
    """
    names = [str(name) for name in parameter_names]

    is_flow = _contains_any(names, "FSC") and _contains_any(names, "SSC")
    is_mass = _contains_any(names, "Ir191") and _contains_any(names, "Ir193")

    if is_flow and is_mass:
        raise InstrumentIdentificationError(
            "FCS file source identified as both flow and mass cytometry"
        )
    if not is_flow and not is_mass:
        raise InstrumentIdentificationError("cannot identify FCS file source")

    return InstrumentSource.FLOW if is_flow else InstrumentSource.MASS


def calculate_fcs_digest(
    sample: Sample | Mapping | Sequence[str],
    parameter_name: Optional[Sequence[str]] = None,
) -> str:
    """
    Digest of a panel's parameter descriptions and names.

    Two files acquired with the same panel produce the same digest, which
    makes it cheap to check that a batch of samples can be analyzed together.

    Args:
        sample: A Sample (or sample-like mapping), or a list of parameter
            descriptions when ``parameter_name`` is given.
        parameter_name: Explicit parameter names. When omitted, names and
            descriptions are taken from ``sample``.

    Returns:
        Hex md5 digest.

    Raises:
        TypeError: If ``parameter_name`` is omitted and ``sample`` is not a sample.
    """
    if parameter_name is None:
        if not is_sample(sample):
            raise TypeError("Expecting a cytometry sample")
        if isinstance(sample, Sample):
            parameter_desc = list(sample.parameter_desc)
            parameter_name = list(sample.parameter_name)
        else:
            parameter_desc = list(sample["parameter_desc"])
            parameter_name = list(sample["parameter_name"])
    else:
        parameter_desc = list(sample)

    payload = json.dumps(
        {"desc": [str(d) for d in parameter_desc], "name": [str(n) for n in parameter_name]},
        sort_keys=True,
    )
    return hashlib.md5(payload.encode("utf-8")).hexdigest()
