# matrix.py
from __future__ import annotations

from itertools import product
from typing import Any, Dict, List, Mapping, Sequence

from .errors import ConfigurationError
from .model import JobInstance, MatrixSpec

SCALAR_TYPES = (str, int, float, bool)


def _check_scalar(axis: str, value: Any, job: str | None) -> None:
    if not isinstance(value, SCALAR_TYPES):
        raise ConfigurationError(
            f"matrix value for '{axis}' must be a string, number or boolean, got {type(value).__name__}",
            job=job,
            axis=axis,
        )


def _agrees(combo: Mapping[str, Any], entry: Mapping[str, Any], keys: List[str]) -> bool:
    return all(k in combo and combo[k] == entry[k] for k in keys)


def _unique(values: Sequence[Any]) -> List[Any]:
    out: List[Any] = []
    for value in values:
        if value not in out:
            out.append(value)
    return out


def expand(spec: MatrixSpec, *, job: str | None = None) -> List[JobInstance]:
    """
    Expand a matrix into concrete job instances.

    - base axes: Cartesian product in declaration order (first axis slowest);
      axes with no values are ignored
    - exclude: drops base combinations agreeing on every key of the entry
    - include: merged into every base combination agreeing on the entry's
      base-axis keys (all of them if the entry names none), otherwise
      appended as a standalone instance

    No axes and no includes -> a single, empty instance.
    """
    base_axes = [k for k, values in spec.axes.items() if len(values) > 0]
    for axis in base_axes:
        for value in spec.axes[axis]:
            _check_scalar(axis, value, job)

    # a repeated value would yield identical instances; first occurrence wins
    axis_values = {a: _unique(spec.axes[a]) for a in base_axes}
    combos: List[Dict[str, Any]] = [
        dict(zip(base_axes, values))
        for values in product(*(axis_values[a] for a in base_axes))
    ]

    for entry in spec.exclude:
        unknown = [k for k in entry if k not in base_axes]
        if unknown:
            raise ConfigurationError(
                f"matrix exclude refers to unknown axes {unknown}",
                job=job,
                known=base_axes,
            )
        combos = [c for c in combos if not _agrees(c, entry, list(entry))]

    base_count = len(combos)
    standalone: List[Dict[str, Any]] = []

    for entry in spec.include:
        for axis, value in entry.items():
            _check_scalar(axis, value, job)

        match_keys = [k for k in entry if k in base_axes]
        if base_axes:
            matches = [c for c in combos[:base_count] if _agrees(c, entry, match_keys)]
        else:
            matches = []

        if not matches:
            if dict(entry) not in standalone:
                standalone.append(dict(entry))
            continue

        for combo in matches:
            for axis, value in entry.items():
                if axis in combo and combo[axis] != value:
                    raise ConfigurationError(
                        f"matrix include would redefine '{axis}' "
                        f"({combo[axis]!r} -> {value!r}) on an existing combination",
                        job=job,
                        combination=JobInstance.of(combo).label,
                    )
                combo[axis] = value

    # an unparameterized job turns into the include list when one is given
    if not base_axes and standalone:
        combos = []

    return [JobInstance.of(c) for c in combos + standalone]
