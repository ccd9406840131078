# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause

from .context import BaseContext, ConfigContext
from .trace_hook import (
    EventKind,
    MultiTraceHook,
    PrintTraceHook,
    RecordingTraceHook,
    TraceEvent,
    TraceHook,
)

__all__ = [
    "BaseContext",
    "ConfigContext",
    "EventKind",
    "TraceEvent",
    "TraceHook",
    "PrintTraceHook",
    "RecordingTraceHook",
    "MultiTraceHook",
]
