"""
Variable identities.

Every dataset defines two closed enumerations: the variables stored on disk
and the variables computed from them.  A request names either kind, wrapped
as ``Raw(member)`` or ``Derived(member)``.  Readers that sit on top of other
readers nest the tags, e.g. ``Raw(Derived(x))`` asks the outer layer for a
value that the inner layer computes.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from models.errors import UnknownVariableError


@dataclass(frozen=True)
class Raw:
    variable: Any

    @property
    def name(self) -> str:
        return variable_name(self.variable)

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Derived:
    variable: Any

    @property
    def name(self) -> str:
        return variable_name(self.variable)

    def __str__(self) -> str:
        return self.name


VariableOrDerived = Union[Raw, Derived]


def variable_name(variable: Any) -> str:
    if isinstance(variable, (Raw, Derived)):
        return variable.name
    if isinstance(variable, Enum):
        return str(variable.value)
    return str(variable)


def innermost(variable: Any) -> Any:
    """Strip all Raw/Derived tags and return the enum member."""
    while isinstance(variable, (Raw, Derived)):
        variable = variable.variable
    return variable


def requires_offset_correction_for_mixing(variable: Any) -> bool:
    """True for accumulated quantities (snow depth, soil moisture) that must be delta coded when mixed."""
    return bool(getattr(innermost(variable), "requires_offset_correction_for_mixing", False))


def is_elevation_correctable(variable: Any) -> bool:
    return bool(getattr(innermost(variable), "is_elevation_correctable", False))


def resolve_variable(name: str, raw: type[Enum], derived: type[Enum] | None = None) -> VariableOrDerived:
    """Look up a request name, stored variables first."""
    try:
        return Raw(raw(name))
    except ValueError:
        pass
    if derived is not None:
        try:
            return Derived(derived(name))
        except ValueError:
            pass
    raise UnknownVariableError(f"Unknown variable '{name}' for {raw.__name__}")


# ── Bias-correction policy ───────────────────────────────────────────────────


@dataclass(frozen=True)
class BiasCorrectionType:
    """
    How a variable is pulled toward the reference climatology.

    relative: value * reference / model, optionally capped at ``maximum``
    absolute: value + reference - model, optionally clamped to ``limits``
    """

    kind: str
    maximum: float | None = None
    limits: tuple[float, float] | None = None

    @classmethod
    def relative_change(cls, maximum: float | None = None) -> BiasCorrectionType:
        return cls("relative", maximum=maximum)

    @classmethod
    def absolute_change(cls, bounds: tuple[float, float] | None = None) -> BiasCorrectionType:
        return cls("absolute", limits=bounds)

    @property
    def is_relative(self) -> bool:
        return self.kind == "relative"

    @property
    def bounds(self) -> tuple[float, float] | None:
        if self.is_relative:
            return None if self.maximum is None else (0.0, self.maximum)
        return self.limits
