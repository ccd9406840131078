# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
from .deep_merge import deep_merge
from .disposable import Disposable
from .import_ import import_object, load_object, requires
from .naming import lock_node_name, normalize_name

__all__ = [
    "deep_merge",
    "Disposable",
    "requires",
    "import_object",
    "load_object",
    "normalize_name",
    "lock_node_name",
]
