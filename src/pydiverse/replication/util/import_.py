# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
from __future__ import annotations

import builtins
import importlib
from typing import Any

from pydiverse.replication.errors import ConfigError


def requires(requirements: Any | list, exception: BaseException | type[BaseException]):
    """Class decorator for handling optional imports.

    If any of the requirements are falsy, this decorator prevents the class
    from being instantiated and any class attributes from being accessed,
    and raises the provided exception instead.
    """

    if not isinstance(requirements, (list, tuple)):
        requirements = (requirements,)

    def decorator(cls):
        if all(requirements):
            return cls

        # Modify class to raise exception
        class RaiserMeta(type):
            def __getattribute__(self, x):
                if x in ["__class__", "__doc__", "__name__", "__qualname__"]:
                    return getattr(cls, x)
                raise exception

        def raiser(*args, **kwargs):
            raise exception

        __name = str(cls.__name__)
        __bases = ()
        __dict = {
            "__metaclass__": RaiserMeta,
            "__wrapped__": cls,
            "__new__": raiser,
        }

        return RaiserMeta(__name, __bases, __dict)

    return decorator


def import_object(import_path: str):
    """Loads a class given an import path

    >>> # An import statement like this
    >>> from pydiverse.replication.backend.catalog import DictCatalog
    >>> # can be expressed as follows:
    >>> import_object("pydiverse.replication.backend.catalog.DictCatalog")
    """

    parts = [part for part in import_path.split(".") if part]
    module, n = None, 0

    while n < len(parts):
        try:
            module = importlib.import_module(".".join(parts[: n + 1]))
            n = n + 1
        except ImportError:
            break

    obj = module or builtins
    for part in parts[n:]:
        obj = getattr(obj, part)

    return obj


def load_object(config_dict: dict):
    """Instantiates the backend described by a config section

    ``class`` holds the import path of the backend (tests may pass the class
    object itself), ``args`` its arguments. Backends that need more than
    keyword arguments (e.g. a kazoo client or nested backends) define a
    ``_init_conf_`` classmethod that receives the ``args`` dict instead.
    ::

        # SQLCatalog("sqlite:///catalog.db")
        load_object({
            "class": "pydiverse.replication.backend.catalog.SQLCatalog",
            "args": {"url": "sqlite:///catalog.db"},
        })
    """

    if not isinstance(config_dict, dict) or "class" not in config_dict:
        raise ConfigError(
            f"Backend config section requires a 'class' attribute: {config_dict}"
        )
    cls = config_dict["class"]
    if isinstance(cls, str):
        try:
            cls = import_object(cls)
        except AttributeError as e:
            raise ConfigError(f"Can't import '{config_dict['class']}'") from e

    args = config_dict.get("args") or {}
    if not isinstance(args, dict):
        raise ConfigError(
            f"Invalid type for args section: {type(args)}\n"
            f"config section: {config_dict}"
        )

    init_conf = getattr(cls, "_init_conf_", None)
    if init_conf is not None:
        return init_conf(args)
    return cls(**args)
