"""
Per-instrument preprocessing of cytometry samples.

Transformations:
    - CompensationTransform: undo spillover between detectors (flow)
    - ArcsinhTransform: arcsinh(x / cofactor) on mass channels (CyTOF)
    - LogicleTransform: logicle (biexponential) on fluorescence channels (flow)

``preprocess()`` dispatches on the sample's InstrumentSource; the instrument
type decides the transformation, not the caller.

References:
    Parks, Roederer, Moore (2006) Cytometry A 69:541-551 (logicle)
    Bendall et al. (2011) Science 332:687-696 (arcsinh, cofactor 5 for CyTOF)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Mapping, Optional, Sequence

import numpy as np
from flowutils import transforms as flow_transforms

from cytoabundance.core.sample import InstrumentSource, Sample, is_sample
from cytoabundance.core.transform import Transform

if TYPE_CHECKING:
    from cytoabundance.config import PreprocessConfig

__all__ = [
    'MASS_CHANNEL_PATTERN',
    'LogicleParams',
    'CompensationTransform',
    'ArcsinhTransform',
    'LogicleTransform',
    'mass_channel_indices',
    'fluorescence_channel_indices',
    'estimate_logicle_params',
    'preprocess',
]

logger = logging.getLogger(__name__)

# Isotope channels: "Nd142Di", "(Ir191)Di", "Pt195Dd"
MASS_CHANNEL_PATTERN = re.compile(r"^\(?[A-Z][a-z]?\d{2,3}\)?D[id]$")

_NON_FLUORESCENCE_TOKENS = ("FSC", "SSC", "TIME")


def mass_channel_indices(parameter_names: Sequence[str]) -> list[int]:
    """Positions of isotope (mass) channels among the $PnN names."""
    return [i for i, name in enumerate(parameter_names) if MASS_CHANNEL_PATTERN.match(name)]


def fluorescence_channel_indices(parameter_names: Sequence[str]) -> list[int]:
    """Positions of fluorescence channels: everything except scatter and time."""
    return [
        i for i, name in enumerate(parameter_names)
        if not any(token in name.upper() for token in _NON_FLUORESCENCE_TOKENS)
    ]


@dataclass(frozen=True)
class LogicleParams:
    """Logicle parameters for one channel (T, W, M, A in Parks et al. notation)."""
    t: float
    w: float
    m: float = 4.5
    a: float = 0.0


def estimate_logicle_params(
    values: np.ndarray,
    top_of_scale: Optional[float] = None,
    m: float = 4.5,
    quantile: float = 0.05,
) -> LogicleParams:
    """
    Estimate logicle parameters for a single channel.

    T is the instrument range ($PnR) when known, otherwise the data maximum.
    W is derived from the low quantile of the negative values so the linear
    region covers the compensation spread around zero:

        W = (M - log10(T / |r|)) / 2

    and clipped to [0, M/2). Channels without negative values get W = 0.

    Args:
        values: Channel intensities.
        top_of_scale: Instrument range for the channel ($PnR).
        m: Decades of the logarithmic region.
        quantile: Quantile of the negative values used for r.

    Returns:
        LogicleParams for the channel.
    """
    if m <= 0:
        raise ValueError(f"m must be positive, got {m}")

    values = np.asarray(values, dtype=np.float64)
    t = top_of_scale if top_of_scale is not None and top_of_scale > 0 else float(np.max(values, initial=0.0))
    t = max(t, 1.0)

    negative = values[values < 0]
    if negative.size > 0:
        r = abs(float(np.quantile(negative, quantile))) + np.finfo(float).eps
        w = (m - np.log10(t / r)) / 2
    else:
        w = 0.0

    w = float(np.clip(w, 0.0, m / 2 - 0.01))
    return LogicleParams(t=t, w=w, m=m, a=0.0)


def parse_spillover_channels(
    spillover_channels: Sequence[str],
    parameter_names: Sequence[str],
) -> list[int]:
    """Map spillover channel names to parameter positions."""
    positions = {name: i for i, name in enumerate(parameter_names)}
    missing = [name for name in spillover_channels if name not in positions]
    if missing:
        raise ValueError(f"Spillover channels not found in sample parameters: {missing}")
    return [positions[name] for name in spillover_channels]


class CompensationTransform(Transform):
    """
    Spillover compensation.

    The spillover matrix S maps true signal to observed signal
    (observed = true @ S), so compensated events are observed @ inv(S).
    Only the channels listed in the spillover matrix are touched.
    """

    def __init__(self, spillover: np.ndarray, channels: Sequence[str]):
        spillover = np.asarray(spillover, dtype=np.float64)
        if spillover.ndim != 2 or spillover.shape[0] != spillover.shape[1]:
            raise ValueError(f"Spillover matrix must be square, got shape {spillover.shape}")
        if spillover.shape[0] != len(channels):
            raise ValueError(
                f"Spillover matrix size ({spillover.shape[0]}) must match "
                f"number of channels ({len(channels)})"
            )
        super().__init__(name="CompensationTransform", params={"channels": list(channels)})
        self.spillover = spillover
        self.channels = list(channels)

    def apply(self, sample: Sample) -> Sample:
        errors = self.validate(sample)
        if errors:
            raise ValueError("Validation failed:\n" + "\n".join(f"  - {e}" for e in errors))

        indices = parse_spillover_channels(self.channels, sample.parameter_name)

        try:
            inverse = np.linalg.inv(self.spillover)
        except np.linalg.LinAlgError as e:
            raise np.linalg.LinAlgError(f"Cannot invert spillover matrix: {e}") from e

        exprs = sample.exprs.astype(np.float64)
        observed = exprs.iloc[:, indices].to_numpy(dtype=np.float64)
        exprs.iloc[:, indices] = observed @ inverse

        logger.info(f"Applied compensation to {len(indices)} channels, {sample.n_events} events")
        return sample.with_exprs(exprs)


class ArcsinhTransform(Transform):
    """arcsinh(x / cofactor) on the isotope channels of a mass cytometry sample."""

    def __init__(self, cofactor: float = 5.0):
        if cofactor <= 0:
            raise ValueError(f"Cofactor must be positive, got {cofactor}")
        super().__init__(name="ArcsinhTransform", params={"cofactor": cofactor})
        self.cofactor = cofactor

    def apply(self, sample: Sample) -> Sample:
        errors = self.validate(sample)
        if errors:
            raise ValueError("Validation failed:\n" + "\n".join(f"  - {e}" for e in errors))

        indices = mass_channel_indices(sample.parameter_name)
        if not indices:
            logger.warning("No mass channels found, sample left untransformed")
            return sample

        exprs = sample.exprs.astype(np.float64)
        values = exprs.iloc[:, indices].to_numpy(dtype=np.float64)
        exprs.iloc[:, indices] = np.arcsinh(values / self.cofactor)
        return sample.with_exprs(exprs)


class LogicleTransform(Transform):
    """
    Logicle transform of the fluorescence channels of a flow cytometry sample.

    Parameters are estimated per channel with estimate_logicle_params(); scatter
    and time channels stay linear.
    """

    def __init__(self, m: float = 4.5, params: Optional[Mapping[str, LogicleParams]] = None):
        super().__init__(name="LogicleTransform", params={"m": m})
        self.m = m
        self.channel_params = dict(params) if params else {}

    def apply(self, sample: Sample) -> Sample:
        errors = self.validate(sample)
        if errors:
            raise ValueError("Validation failed:\n" + "\n".join(f"  - {e}" for e in errors))

        indices = fluorescence_channel_indices(sample.parameter_name)
        if not indices:
            logger.warning("No fluorescence channels found, sample left untransformed")
            return sample

        exprs = sample.exprs.astype(np.float64)
        for idx in indices:
            name = sample.parameter_name[idx]
            values = exprs.iloc[:, idx].to_numpy(dtype=np.float64)
            params = self.channel_params.get(name) or estimate_logicle_params(
                values, top_of_scale=sample.parameter_range(idx), m=self.m
            )
            transformed = flow_transforms.logicle(
                values.reshape(-1, 1),
                [0],
                t=params.t,
                m=params.m,
                w=params.w,
                a=params.a,
            )
            exprs.iloc[:, idx] = np.asarray(transformed).reshape(-1)
            logger.debug(f"Logicle {name}: T={params.t:.1f}, W={params.w:.2f}, M={params.m:.1f}")

        return sample.with_exprs(exprs)


def _as_sample(sample) -> Sample:
    if isinstance(sample, Sample):
        return sample
    try:
        source = InstrumentSource(sample["source"])
    except ValueError as e:
        raise ValueError("unknown sample source") from e
    return Sample(
        exprs=sample["exprs"],
        parameter_name=list(sample["parameter_name"]),
        parameter_desc=list(sample["parameter_desc"]),
        source=source,
        keywords=dict(sample.get("keywords", {})),
    )


def preprocess(
    sample,
    cofactor: float = 5.0,
    config: Optional[PreprocessConfig] = None,
) -> Sample:
    """
    Apply the instrument-specific transformation to a sample.

    Args:
        sample: A Sample, or a sample-like mapping (see is_sample()).
        cofactor: arcsinh cofactor for mass cytometry. Ignored for flow.
        config: Optional preprocessing configuration; its cofactor wins over
            the ``cofactor`` argument.

    Returns:
        New, transformed Sample.

    Raises:
        TypeError: If ``sample`` is not a sample.
        ValueError: If the sample source is not a known instrument.
    """
    if not is_sample(sample):
        raise TypeError("Expecting a cytometry sample")
    sample = _as_sample(sample)

    if config is not None:
        cofactor = config.cofactor

    logger.info(f"Preprocessing {sample.source.value} sample ({sample.n_events} events)")
    return sample.source.preprocess(sample, cofactor=cofactor, config=config)
