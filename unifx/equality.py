"""
UnifX Equality - Change Detection Helpers
=========================================

Two notions of "the same value" are used throughout the engine:

`is_same(a, b)` is the cheap check that drives memoization and
distinct-until-changed notifications. Primitives (numbers, strings, bytes,
booleans, None, enum members, numpy scalars) compare by value; everything else
compares by identity. Because state is never mutated in place, identity is
sufficient for composite values: a new object means a new value.

`deep_equal(a, b)` is the structural check used when verifying that a replay
reproduced a state. It walks mappings, sequences, sets and dataclasses and
compares numpy arrays element-wise.
"""

import dataclasses
import math
from collections.abc import Mapping, Set
from enum import Enum
from typing import Any

import numpy as np

PRIMITIVE_TYPES = (type(None), bool, int, float, complex, str, bytes, Enum)


def is_primitive(value: Any) -> bool:
    """Return True if value is compared by value rather than by reference."""
    return isinstance(value, PRIMITIVE_TYPES) or isinstance(value, np.generic)


def is_same(a: Any, b: Any) -> bool:
    """Reference equality for composite values, value equality for primitives."""
    if a is b:
        return True
    if not (is_primitive(a) and is_primitive(b)):
        return False
    if type(a) is not type(b) and isinstance(a, bool) != isinstance(b, bool):
        # True == 1 but a flag flipping to a count is a change
        return False
    try:
        if a == b:
            return True
        # NaN is never equal to itself but should not look like a change
        return _is_nan(a) and _is_nan(b)
    except (TypeError, ValueError):
        return False


def _is_nan(value: Any) -> bool:
    try:
        return isinstance(value, (float, np.floating)) and math.isnan(value)
    except TypeError:
        return False


def deep_equal(a: Any, b: Any) -> bool:
    """Structural equality, aware of numpy arrays and dataclasses."""
    if a is b:
        return True

    if isinstance(a, np.ndarray) or isinstance(b, np.ndarray):
        if type(a) != type(b):
            return False
        return a.shape == b.shape and np.array_equal(a, b)

    if isinstance(a, Mapping) and isinstance(b, Mapping):
        if len(a) != len(b):
            return False
        for key in a:
            if key not in b or not deep_equal(a[key], b[key]):
                return False
        return True

    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        if type(a) != type(b) or len(a) != len(b):
            return False
        return all(deep_equal(x, y) for x, y in zip(a, b))

    if isinstance(a, Set) and isinstance(b, Set):
        return a == b

    if dataclasses.is_dataclass(a) and dataclasses.is_dataclass(b):
        if type(a) != type(b):
            return False
        return all(
            deep_equal(getattr(a, f.name), getattr(b, f.name))
            for f in dataclasses.fields(a)
        )

    if is_primitive(a) and is_primitive(b):
        return is_same(a, b)

    try:
        return bool(a == b)
    except (TypeError, ValueError):
        return False


__all__ = ["is_primitive", "is_same", "deep_equal"]
