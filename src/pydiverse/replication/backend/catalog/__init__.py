# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause

from .base import BaseCatalog
from .dict import DictCatalog
from .sql import SQLCatalog

__all__ = [
    "BaseCatalog",
    "DictCatalog",
    "SQLCatalog",
]
