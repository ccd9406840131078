# Copyright (c) QuantCo and pydiverse contributors 2025-2025
# SPDX-License-Identifier: BSD-3-Clause
from __future__ import annotations

import copy
import itertools
import os
import re
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from box import Box

from pydiverse.replication.errors import ConfigError
from pydiverse.replication.util.deep_merge import deep_merge

if TYPE_CHECKING:
    from pydiverse.replication.context import ConfigContext


# noinspection PyPep8Naming
class cached_class_property:
    def __init__(self, func):
        self.func = func

    def __get__(self, instance, cls):
        if not hasattr(self, "cache"):
            self.cache = self.func(cls)
        return self.cache


_DEFAULTS = {
    "allow_data_copy": False,
    "optimistic_copy_root": None,
    "directory_reconciler": {
        "class": "pydiverse.replication.backend.directory.FsspecDirectoryReconciler",
    },
    "destination_builder": {
        "class": "pydiverse.replication.core.policy.DefaultDestinationBuilder",
    },
    "conflict_policy": {
        "class": "pydiverse.replication.core.policy.LoggingConflictPolicy",
    },
    "lock_manager": {
        "class": "pydiverse.replication.backend.lock.ThreadLockManager",
    },
    "trace_hook": {
        "class": "pydiverse.replication.context.trace_hook.PrintTraceHook",
    },
    "attrs": {},
}


class ReplicationConfig:
    """
    This class represents a replication config file.

    :param path: Path to the config file to load.

    Attributes
    ----------
    default : ReplicationConfig
        The default config file.

        If the environment variable :envvar:`REPLICATION_CONFIG` is set, then
        this file will be used as the config file. Otherwise, it searches for a
        file called ``replication.yaml`` or ``replication.yml`` in:

        * The current working directory
        * Any parent directories of the working directory
        * The user folder

    Example
    -------
    ::

        name: warehouse_replication
        instances:
          __any__:
            allow_data_copy: true
            source:
              name: prod
              fs_root: hdfs://prod-nn:8020
              catalog:
                class: pydiverse.replication.backend.catalog.SQLCatalog
                args:
                  url: "postgresql://{$CATALOG_USER}@prod-db/metastore"
            destination:
              ...
          backfill:
            optimistic_copy_root: hdfs://dr-nn:8020/tmp/staging
    """

    default: ReplicationConfig

    def __init__(self, path: str | Path | None = None, *, config_dict=None):
        if (path is None) == (config_dict is None):
            raise ValueError("Exactly one of `path` and `config_dict` is required")

        self.path = str(path) if path is not None else None
        if path is not None:
            with open(path, encoding="utf-8") as f:
                config_dict = yaml.safe_load(f)

        if not isinstance(config_dict, dict):
            raise ConfigError(f"Config must be a mapping (path: {self.path})")
        self.config_dict = copy.deepcopy(config_dict)

    @cached_class_property
    def default(cls):
        config_path = find_config()
        return ReplicationConfig(config_path)

    @property
    def name(self) -> str | None:
        return self.config_dict.get("name")

    @property
    def instance_names(self) -> list[str]:
        return [k for k in self.config_dict.get("instances") or {} if k != "__any__"]

    def get(self, instance: str | None = None) -> ConfigContext:
        """
        Constructs a :py:class:`ConfigContext`.

        The ``__any__`` section gets deep-merged with the section of the
        requested instance.

        :param instance: Name of the instance.
            If no value is provided, only the ``__any__`` instance gets used.
        :raises ConfigError: If the instance doesn't exist or the resulting
            configuration is incomplete.
        """
        from pydiverse.replication.context import ConfigContext

        config = self.__get_merged_config_dict(instance)
        config = expand_environment_variables(config)

        for cluster in ("source", "destination"):
            section = config.get(cluster)
            if not isinstance(section, dict):
                raise ConfigError(f"Config section '{cluster}' is missing")
            for key in ("fs_root", "catalog"):
                if key not in section:
                    raise ConfigError(f"Config section '{cluster}' requires '{key}'")
            section.setdefault("name", cluster)

        config_context = ConfigContext(
            config_dict=config,
            config_name=self.name,
            instance_name=instance,
            instance_id=str(config.get("instance_id") or instance or "__any__"),
            allow_data_copy=bool(config["allow_data_copy"]),
            optimistic_copy_root=config["optimistic_copy_root"],
            attrs=Box(config["attrs"], frozen_box=True),
        )

        if "PYDIVERSE_REPLICATION_PYTEST" not in os.environ:
            # Create all backend objects once to throw config errors early
            try:
                with config_context:
                    _ = config_context.source_cluster
                    _ = config_context.destination_cluster
                    _ = config_context.directory_reconciler
                    _ = config_context.destination_builder
                    _ = config_context.conflict_policy
                    _ = config_context.trace_hook
                    config_context.create_lock_manager().dispose()
            except Exception as e:
                raise ConfigError(
                    "Error while creating backend objects from replication config"
                    f" (instance={instance}): {self.path}"
                ) from e

        return config_context

    def __get_merged_config_dict(self, instance: str | None) -> dict[str, Any]:
        instances = self.config_dict.get("instances") or {}
        if instance is not None and instance not in instances:
            raise ConfigError(
                f"Couldn't find instance '{instance}' in replication config."
            )

        merged = copy.deepcopy(_DEFAULTS)
        for name in ("__any__", instance):
            if name is not None and instances.get(name) is not None:
                merged = deep_merge(merged, copy.deepcopy(instances[name]))
        return merged


def find_config(
    name: str = "replication",
    search_paths: Iterable[str | Path] = None,
) -> str:
    """Searches for a replication config file

    The following paths get checked first.

    - The path specified in the "REPLICATION_CONFIG" environment variable

    Else it searches in the following locations:

    - Current working directory
    - All parent directories
    - The user folder

    :param name: The name of the config file
    :param search_paths: The directories in which to search for the config file
    :return: The path of the file.
    :raises FileNotFoundError: if no config file could be found.
    """

    extensions = [".yaml", ".yml"]

    if search_paths is None:
        if path := os.environ.get("REPLICATION_CONFIG", None):
            path = Path(path).expanduser().resolve()
            if path.is_file():
                return str(path)

            for extension in extensions:
                candidate = path / (name + extension)
                if candidate.is_file():
                    return str(candidate)

        search_paths = [
            Path.cwd(),
            *Path.cwd().resolve().parents,
            Path("~").expanduser(),
        ]
    else:
        search_paths = [Path(path) for path in search_paths]

    file_names = [name + extension for extension in extensions]
    for path, file_name in itertools.product(search_paths, file_names):
        config_path: Path = (path / file_name).resolve()
        if config_path.is_file():
            return str(config_path)

    raise FileNotFoundError("No config file found")


def expand_environment_variables(value):
    """
    Expands all occurrences of the form `{$ENV_VAR}` with the environment variable
    named `ENV_VAR`. Nested dicts and lists get expanded recursively.
    """

    if isinstance(value, dict):
        return {k: expand_environment_variables(v) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_environment_variables(v) for v in value]
    if not isinstance(value, str):
        return value

    def env_var_sub(match: re.Match):
        name = match.group()[2:-1]
        if name not in os.environ:
            raise ConfigError(
                f"Could not find environment variable '{name}' "
                f"referenced in '{value}'."
            )
        return os.environ[name]

    return re.sub(r"\{\$[a-zA-Z_]+[a-zA-Z0-9_]*\}", env_var_sub, value)
