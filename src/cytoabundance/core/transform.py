"""
Base transformation framework for immutable sample operations.

Every preprocessing step (compensation, arcsinh, logicle) is a Transform: it
takes a Sample and returns a new Sample, leaving the input untouched.

Biological Context:
    Raw cytometry intensities go through a short, order-sensitive chain:
    1. Compensation (undo spillover between detectors)
    2. Variance-stabilizing transformation (arcsinh for CyTOF, logicle for flow)

    Each step must be:
    - Reproducible (same input -> same output)
    - Auditable (parameters recorded)
    - Non-destructive (the raw sample stays available)

Examples:
    >>> from cytoabundance.core.transform import Transform
    >>>
    >>> class Scale(Transform):
    ...     def __init__(self, factor: float = 2.0):
    ...         super().__init__(name="Scale", params={"factor": factor})
    ...         self.factor = factor
    ...
    ...     def apply(self, sample):
    ...         return sample.with_exprs(sample.exprs * self.factor)
    >>>
    >>> scaled = Scale(3.0).apply(sample)
    >>> # sample is unchanged
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from cytoabundance.core.sample import Sample

__all__ = ['Transform']


class Transform(ABC):
    """
    Abstract base class for all sample transformations.

    Attributes:
        name: Human-readable transformation name (e.g., "ArcsinhTransform")
        params: Parameters used for this transformation
        timestamp: When this transform instance was created
    """

    def __init__(self, name: str, params: dict[str, Any]) -> None:
        self.name = name
        self.params = params
        self.timestamp = datetime.now()

    @abstractmethod
    def apply(self, sample: Sample) -> Sample:
        """
        Execute transformation and return a new sample.

        Must never modify the input sample or its event matrix.

        Raises:
            ValueError: If the transformation cannot be applied (see validate()).
        """
        pass

    def validate(self, sample: Sample) -> list[str]:
        """
        Check preconditions before applying the transformation.

        Subclasses should override and call super().validate() first.

        Returns:
            List of error messages (empty list = valid).
        """
        errors: list[str] = []

        if sample.exprs.size == 0:
            errors.append("Cannot process sample without events")

        return errors

    def __repr__(self) -> str:
        params_str = ", ".join(f"{k}={v}" for k, v in self.params.items())
        return f"{self.name}({params_str})"
