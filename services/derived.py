"""
Derived-variable computation graph.

Each dataset declares a ``RuleTable``: for every member of its derived
enumeration, the variables it depends on and a pure function that turns
those inputs into the result.  Dependencies are either stored variables
(``Raw``) or other derived variables of the same table (``Derived``).

Evaluating a derived variable is two-phase, mirroring the stored reads:

  prefetch  recursively prefetch every dependency, so all storage I/O of a
            request is in flight before anything blocks
  get       prefetch the dependencies, then get each one and compute

Tables are checked when built: every derived member must have a rule and
the dependency graph must be acyclic.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Sequence

import numpy as np

from models.domain import Domain
from models.timerange import TimeSettings
from models.units import DataAndUnit, SiUnit
from models.variable import Derived, Raw, VariableOrDerived, resolve_variable
from services.reader import GenericReader, locate
from utils.storage_client import Storage

logger = logging.getLogger("gridmix.derived")

Dependencies = tuple[VariableOrDerived, ...]


@dataclass(frozen=True)
class RuleContext:
    """What a rule may know about the request besides its inputs."""

    variable: Any
    time: TimeSettings
    domain: Domain
    lat: float
    lon: float
    model_elevation: float
    target_elevation: float

    @property
    def dt_seconds(self) -> int:
        return self.time.dt_seconds


@dataclass(frozen=True)
class Rule:
    dependencies: Dependencies | Callable[[Domain], Dependencies]
    compute: Callable[..., Any]
    unit: SiUnit | None = None

    def dependencies_for(self, domain: Domain) -> Dependencies:
        if callable(self.dependencies):
            return tuple(self.dependencies(domain))
        return self.dependencies

    def evaluate(self, ctx: RuleContext, inputs: Sequence[DataAndUnit]) -> DataAndUnit:
        result = self.compute(ctx, *inputs)
        if isinstance(result, DataAndUnit):
            return result
        if self.unit is None:
            raise TypeError(f"Rule for {ctx.variable} returned an array but declares no unit")
        return DataAndUnit(np.asarray(result, dtype=np.float64), self.unit)


class RuleTable:
    """Registry of rules for one derived enumeration."""

    def __init__(self, derived: type[Enum]) -> None:
        self.derived = derived
        self._rules: dict[Any, Rule] = {}

    def register(self, *variables: Any, deps=(), unit: SiUnit | None = None):
        """Decorator: ``fn(ctx, *inputs)`` computes every listed variable."""

        def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
            for variable in variables:
                if variable in self._rules:
                    raise ValueError(f"Duplicate rule for {self.derived.__name__}.{variable.name}")
                self._rules[variable] = Rule(deps if callable(deps) else tuple(deps), fn, unit)
            return fn

        return decorator

    def alias(self, variable: Any, target: VariableOrDerived) -> None:
        """``variable`` is another name for ``target``."""
        self.register(variable, deps=(target,))(lambda ctx, value: value)

    def __getitem__(self, variable: Any) -> Rule:
        try:
            return self._rules[variable]
        except KeyError:
            raise KeyError(f"No rule for {self.derived.__name__}.{variable}") from None

    def __contains__(self, variable: Any) -> bool:
        return variable in self._rules

    def validate(self, domains: Iterable[Domain] = ()) -> None:
        """Every member has a rule and no derived variable depends on itself."""
        missing = [m.name for m in self.derived if m not in self._rules]
        if missing:
            raise ValueError(f"{self.derived.__name__}: no rule for {', '.join(missing)}")

        domains = list(domains)

        def edges(member: Any) -> set[Any]:
            rule = self._rules[member]
            if callable(rule.dependencies):
                deps = [d for domain in domains for d in rule.dependencies_for(domain)]
            else:
                deps = list(rule.dependencies)
            return {d.variable for d in deps if isinstance(d, Derived) and isinstance(d.variable, self.derived)}

        visiting: set[Any] = set()
        done: set[Any] = set()

        def visit(member: Any, path: list[str]) -> None:
            if member in done:
                return
            if member in visiting:
                raise ValueError(f"{self.derived.__name__}: dependency cycle {' -> '.join(path + [member.name])}")
            visiting.add(member)
            for dep in edges(member):
                visit(dep, path + [member.name])
            visiting.discard(member)
            done.add(member)

        for member in self.derived:
            visit(member, [])


class DerivedReader:
    """
    Adds a rule table on top of a reader.

    ``Raw(x)`` is forwarded to the wrapped reader as ``x``; ``Derived(x)`` is
    computed here.  The wrapped reader may itself be a ``DerivedReader`` or a
    bias corrector, which is how layered catalogues are built.
    """

    rules: RuleTable
    raw: type[Enum]
    derived: type[Enum]

    def __init__(self, reader: Any) -> None:
        self.reader = reader

    @classmethod
    async def create(
        cls,
        storage: Storage,
        domain: Domain,
        lat: float,
        lon: float,
        elevation: float | None = None,
        mode: str = "land",
    ) -> DerivedReader | None:
        """Reader over a plain storage reader; None when the domain does not cover the point."""
        location = await locate(storage, domain, lat, lon, elevation, mode)
        if location is None:
            return None
        return cls(GenericReader(storage, location))

    @classmethod
    def resolve(cls, name: str) -> VariableOrDerived:
        return resolve_variable(name, cls.raw, cls.derived)

    # ── Accessors ─────────────────────────────────────────────────────────────

    @property
    def domain(self) -> Domain:
        return self.reader.domain

    @property
    def location(self):
        return self.reader.location

    @property
    def model_lat(self) -> float:
        return self.reader.model_lat

    @property
    def model_lon(self) -> float:
        return self.reader.model_lon

    @property
    def model_elevation(self) -> float:
        return self.reader.model_elevation

    @property
    def target_elevation(self) -> float:
        return self.reader.target_elevation

    @property
    def model_dt_seconds(self) -> int:
        return self.reader.model_dt_seconds

    # ── Two-phase reads ──────────────────────────────────────────────────────

    def _context(self, variable: Any, time: TimeSettings) -> RuleContext:
        return RuleContext(
            variable=variable,
            time=time,
            domain=self.domain,
            lat=self.model_lat,
            lon=self.model_lon,
            model_elevation=self.model_elevation,
            target_elevation=self.target_elevation,
        )

    async def prefetch(self, variable: VariableOrDerived, time: TimeSettings) -> None:
        if isinstance(variable, Raw):
            await self.reader.prefetch(variable.variable, time)
            return
        for dep in self.rules[variable.variable].dependencies_for(self.domain):
            await self.prefetch(dep, time)

    async def prefetch_many(self, variables: Iterable[VariableOrDerived], time: TimeSettings) -> None:
        for variable in variables:
            await self.prefetch(variable, time)

    async def get(self, variable: VariableOrDerived, time: TimeSettings) -> DataAndUnit:
        if isinstance(variable, Raw):
            return await self.reader.get(variable.variable, time)
        rule = self.rules[variable.variable]
        deps = rule.dependencies_for(self.domain)
        for dep in deps:
            await self.prefetch(dep, time)
        inputs = await asyncio.gather(*(self.get(dep, time) for dep in deps))
        result = rule.evaluate(self._context(variable.variable, time), inputs)
        if len(result) != len(time):
            raise ValueError(f"{variable}: rule produced {len(result)} samples for {len(time)} timestamps")
        return result
