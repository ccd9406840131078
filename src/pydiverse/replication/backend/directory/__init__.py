# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause

from .base import DirectoryReconciler
from .filesystem import FsspecDirectoryReconciler

__all__ = [
    "DirectoryReconciler",
    "FsspecDirectoryReconciler",
]
