"""
Error hierarchy for point-series reads.

Everything raised on purpose by the readers, the mixer and the bias
corrector derives from ``GridmixError`` so the request layer can tell a
data problem from a programming error.  Errors are never retried here;
retries live in the storage client.
"""
from __future__ import annotations

from typing import Sequence


class GridmixError(RuntimeError):
    """Base class for all data-path failures."""


class NotFoundError(GridmixError):
    """A dataset, variable or grid cell has no data in storage."""


class StorageIOError(GridmixError):
    """Storage could not be read (network, timeout, malformed payload)."""


class MissingReferenceWeightsError(GridmixError):
    """No reference weight dataset is usable for the location."""

    def __init__(self, variable: str, tried: Sequence[str]) -> None:
        self.variable = variable
        self.tried = list(tried)
        super().__init__(
            f"No usable reference weights for {variable} "
            f"(tried: {', '.join(self.tried) or 'none'})"
        )


class IncompleteCoverageError(GridmixError):
    """
    Samples are still missing after every mixed source was consulted.

    Recoverable: ``partial`` holds the blended series so callers that can
    live with gaps may use it anyway.
    """

    def __init__(self, variable: str, missing: Sequence[int], partial=None) -> None:
        self.variable = variable
        self.missing = list(missing)
        self.partial = partial
        super().__init__(
            f"{variable}: {len(self.missing)} sample(s) not covered by any source"
        )


class UnknownVariableError(GridmixError, ValueError):
    """A variable name is not part of the dataset's catalogue."""
