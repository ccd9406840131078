# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
"""Deep update of nested config dictionaries.

Used to layer an instance section of the replication config over the
``__any__`` defaults.
"""
from __future__ import annotations

from collections.abc import Mapping


def deep_merge(x, y):
    if x is None:
        return y
    if y is None:
        return x
    if isinstance(x, Mapping) != isinstance(y, Mapping):
        raise TypeError(
            f"deep_merge failed due to type mismatch '{x}' (type: {type(x)}) vs. '{y}'"
            f" (type: {type(y)})"
        )

    if isinstance(x, Mapping):
        return _deep_merge_dict(x, y)
    # scalars and lists get replaced as a whole
    return y


def _deep_merge_dict(x: Mapping, y: Mapping):
    z = dict(x)
    for key in x:
        if key in y:
            z[key] = deep_merge(x[key], y[key])
    z.update({key: value for key, value in y.items() if key not in z})
    return z
