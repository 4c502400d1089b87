"""
FCS file import.

Reads Flow Cytometry Standard files (2.0, 3.0, 3.1) into Sample objects:

    1. TEXT segment -> keywords -> Name/Desc channel table (io.channels)
    2. DATA segment -> event matrix
    3. Optional linearization of log-amplified integer parameters ($PnE)
    4. Instrument classification (flow vs mass)
    5. Spillover compensation when the header carries a spillover matrix

Examples:
    >>> from cytoabundance.io.fcs import import_fcs_file, import_fcs_channels
    >>> channels = import_fcs_channels("sample_01.fcs")
    >>> sample = import_fcs_file("sample_01.fcs")
    >>> sample.source
    <InstrumentSource.MASS: 'mass_cytometry'>
"""

from __future__ import annotations

import logging
import warnings
from pathlib import Path
from typing import Mapping, Optional, Union

import numpy as np
import pandas as pd
from fcsparser import parse

from cytoabundance.core.sample import Sample, classify_instrument
from cytoabundance.io.channels import (
    exprs_column_names,
    get_keyword,
    normalize_keywords,
    resolve_channels,
)
from cytoabundance.stats.preprocessing import CompensationTransform

__all__ = [
    'SPILLOVER_KEYWORDS',
    'read_fcs_header',
    'import_fcs_channels',
    'import_fcs_file',
    'parse_spillover',
    'find_spillover',
    'linearize_events',
]

logger = logging.getLogger(__name__)

SPILLOVER_KEYWORDS = ("$SPILLOVER", "SPILLOVER", "$SPILL", "SPILL")


def _check_path(path: Union[str, Path]) -> Path:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"FCS file not found: {path}")
    if path.suffix.lower() not in (".fcs", ".lmd"):
        logger.warning(f"File extension {path.suffix} is not typical for FCS files")
    return path


def read_fcs_header(path: Union[str, Path]) -> dict[str, str]:
    """
    Read the TEXT segment keywords of an FCS file.

    Returns:
        Keywords with upper-cased keys and string values.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    path = _check_path(path)
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        meta = parse(str(path), meta_data_only=True, reformat_meta=False)
    return normalize_keywords(meta)


def import_fcs_channels(path: Union[str, Path]) -> pd.DataFrame:
    """
    Import channel names and descriptions ($PnN / $PnS) of an FCS file.

    Returns:
        DataFrame with columns Name and Desc (see resolve_channels()).
    """
    return resolve_channels(read_fcs_header(path))


def parse_spillover(value: str) -> tuple[list[str], np.ndarray]:
    """
    Parse a $SPILLOVER keyword.

    Format: "n,<channel 1>,...,<channel n>,<v11>,<v12>,...,<vnn>" (row-major).

    Returns:
        (channel names, n x n spillover matrix)

    Raises:
        ValueError: If the keyword is malformed.
    """
    parts = [p.strip() for p in str(value).split(",")]
    try:
        n = int(parts[0])
    except (ValueError, IndexError) as e:
        raise ValueError(f"Invalid spillover keyword: {value!r}") from e

    if n <= 0 or len(parts) != 1 + n + n * n:
        raise ValueError(
            f"Spillover keyword declares {n} channels but has {len(parts) - 1} entries"
        )

    channels = parts[1:1 + n]
    try:
        values = [float(v) for v in parts[1 + n:]]
    except ValueError as e:
        raise ValueError(f"Non-numeric spillover value in {value!r}") from e

    return channels, np.array(values, dtype=np.float64).reshape(n, n)


def find_spillover(header: Mapping[str, str]) -> Optional[tuple[list[str], np.ndarray]]:
    """Spillover channels and matrix from a header, or None if absent."""
    for key in SPILLOVER_KEYWORDS:
        value = header.get(key)
        if value:
            return parse_spillover(value)
    return None


def linearize_events(events: np.ndarray, header: Mapping[str, str]) -> np.ndarray:
    """
    Undo log amplification of integer parameters.

    For a parameter with $PnE = "f1,f2" and f1 > 0, channel values x in
    [0, $PnR) map to f2 * 10 ** (f1 * x / $PnR), with f2 = 0 read as 1.
    Floating-point data ($DATATYPE F or D) is already linear.
    """
    datatype = (get_keyword(header, "DATATYPE") or "").upper()
    if datatype in ("F", "D"):
        return events

    events = events.astype(np.float64, copy=True)
    for i in range(events.shape[1]):
        amplification = get_keyword(header, f"P{i + 1}E")
        if not amplification:
            continue
        try:
            decades, offset = (float(v) for v in amplification.split(",")[:2])
        except ValueError:
            logger.warning(f"Ignoring malformed $P{i + 1}E value: {amplification!r}")
            continue
        if decades <= 0:
            continue

        value_range = float(get_keyword(header, f"P{i + 1}R") or 0)
        if value_range <= 0:
            logger.warning(f"Parameter {i + 1} is log-amplified but has no $P{i + 1}R")
            continue
        if offset == 0:
            offset = 1.0
        events[:, i] = offset * 10 ** (decades * events[:, i] / value_range)

    return events


def import_fcs_file(
    path: Union[str, Path],
    linearize: bool = True,
    compensate: bool = True,
) -> Sample:
    """
    Import an FCS file as a Sample.

    Column names come from the cleaned descriptions, falling back to the raw
    channel names (see exprs_column_names()). When the header carries a
    spillover matrix and ``compensate`` is set, compensation is applied before
    the sample is returned.

    Args:
        path: FCS file.
        linearize: Undo log amplification of integer parameters.
        compensate: Apply the header spillover matrix when present.

    Returns:
        Sample with events, parameter names/descriptions, source and keywords.

    Raises:
        FileNotFoundError: If the file does not exist.
        InstrumentIdentificationError: If the instrument cannot be identified.
        MassRemovalError: If isotope tokens cannot be stripped from descriptions.
        ValueError: If the header and the data disagree on the parameter count.
    """
    path = _check_path(path)
    logger.info(f"Loading FCS file: {path}")

    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        meta, data = parse(str(path), reformat_meta=False, channel_naming="$PnN")

    header = normalize_keywords(meta)
    channels = resolve_channels(header)
    names = channels["Name"].tolist()
    descs = channels["Desc"].tolist()

    events = np.asarray(data.to_numpy() if isinstance(data, pd.DataFrame) else data)
    if events.ndim != 2 or events.shape[1] != len(names):
        raise ValueError(
            f"{path}: header declares {len(names)} parameters, data has shape {events.shape}"
        )
    if linearize:
        events = linearize_events(events, header)

    source = classify_instrument(names)

    exprs = pd.DataFrame(events, columns=exprs_column_names(names, descs))
    sample = Sample(
        exprs=exprs,
        parameter_name=names,
        parameter_desc=descs,
        source=source,
        keywords=header,
    )

    spillover = find_spillover(header) if compensate else None
    if spillover is not None:
        spill_channels, spill_matrix = spillover
        sample = CompensationTransform(spill_matrix, spill_channels).apply(sample)

    logger.info(
        f"Loaded {sample.n_events} events with {sample.n_parameters} parameters "
        f"({source.value})"
    )
    return sample
