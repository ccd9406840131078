# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
from __future__ import annotations

from pydiverse.replication.errors import DisposedError


class Disposable:
    """Mixin for objects holding external resources (engines, connections)

    After :py:meth:`dispose` was called, any attribute access raises
    :py:class:`DisposedError`.
    """

    def __getattribute__(self, name):
        try:
            object.__getattribute__(self, "_Disposable__disposed")
            obj_type = object.__getattribute__(self, "__class__")
            raise DisposedError(f"Object of type {obj_type} has already been disposed.")
        except AttributeError:
            pass

        return object.__getattribute__(self, name)

    def __setattr__(self, key, value):
        try:
            object.__getattribute__(self, "_Disposable__disposed")
            obj_type = object.__getattribute__(self, "__class__")
            raise DisposedError(f"Object of type {obj_type} has already been disposed.")
        except AttributeError:
            pass

        return object.__setattr__(self, key, value)

    def dispose(self):
        object.__setattr__(self, "_Disposable__disposed", True)
