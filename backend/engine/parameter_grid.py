"""
Parameter grid expansion for the walk-forward search.
"""
from __future__ import annotations

import itertools
import math
from dataclasses import dataclass
from typing import Dict, Iterator, List, Mapping, Sequence, Tuple

from engine.errors import CombinationCapExceededError, ParameterRangeError

MAX_PARAMETER_COMBINATIONS = 20000


def build_range_values(minimum: float, maximum: float, step: float) -> List[float]:
    """
    Discretize [minimum, maximum] by step, endpoints included.

    Values are rounded to 6 decimals; maximum is appended when the step does
    not land on it exactly.
    """
    if maximum < minimum:
        raise ParameterRangeError(
            f"Invalid parameter range: max ({maximum}) must be >= min ({minimum})."
        )
    if step <= 0:
        raise ParameterRangeError(
            f"Invalid parameter step size ({step}). Step must be positive."
        )

    total_steps = int(math.floor((maximum - minimum) / step))
    values = [round(minimum + i * step, 6) for i in range(total_steps + 1)]

    rounded_max = round(maximum, 6)
    if rounded_max not in values:
        values.append(rounded_max)
    return values


@dataclass(frozen=True)
class ParameterGrid:
    """Cartesian product of discretized ranges, enumerated lazily."""

    names: Tuple[str, ...]
    values: Tuple[Tuple[float, ...], ...]

    @property
    def count(self) -> int:
        return math.prod(len(v) for v in self.values)

    def __len__(self) -> int:
        return self.count

    def __iter__(self) -> Iterator[Dict[str, float]]:
        # product() varies the last name fastest: depth-first over names
        # in mapping order. Each combination is a fresh dict.
        for combo in itertools.product(*self.values):
            yield dict(zip(self.names, combo))


def build_parameter_grid(
    parameter_ranges: Mapping[str, Sequence[float]],
    max_combinations: int = MAX_PARAMETER_COMBINATIONS,
) -> ParameterGrid:
    """
    Validate ranges and build the grid.

    No ranges yields a grid with exactly one empty combination (the
    unscaled baseline scenario).
    """
    names: List[str] = []
    values: List[Tuple[float, ...]] = []
    for name, bounds in (parameter_ranges or {}).items():
        minimum, maximum, step = (float(b) for b in bounds)
        names.append(str(name))
        values.append(tuple(build_range_values(minimum, maximum, step)))

    grid = ParameterGrid(names=tuple(names), values=tuple(values))
    if grid.count > max_combinations:
        raise CombinationCapExceededError(grid.count, max_combinations)
    return grid
