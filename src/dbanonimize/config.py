"""Anonymization configuration and its loaders.

The configuration maps table names to targets (columns), each target being
anonymized by one registered anonymizer:

    users:
      email: email
      name:
        anonymizer: faker
        options:
          provider: name

Loaders turn a python mapping (:class:`ArrayLoader`) or a YAML file
(:class:`YamlLoader`) into an :class:`AnonymizationConfig`.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml

from dbanonimize.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnonymizationSingleConfig:
    """Configuration of one target.

    Attributes:
        table: Table name.
        target_name: Target (column) name, unique within the table.
        anonymizer: Registered anonymizer name.
        options: Anonymizer specific options.
    """

    table: str
    target_name: str
    anonymizer: str
    options: Dict[str, Any] = field(default_factory=dict)


class AnonymizationConfig:
    """Table -> target -> :class:`AnonymizationSingleConfig` mapping.

    Tables and targets keep their insertion order.
    """

    def __init__(self, connection_name: str = "default"):
        self.connection_name = connection_name
        self._tables: Dict[str, Dict[str, AnonymizationSingleConfig]] = {}

    def add(self, config: AnonymizationSingleConfig) -> None:
        targets = self._tables.setdefault(config.table, {})
        if config.target_name in targets:
            raise ConfigurationError(
                f'Target "{config.table}"."{config.target_name}" is configured twice'
            )
        targets[config.target_name] = config

    def count(self) -> int:
        """Count configured tables."""
        return len(self._tables)

    def has(self, table: str) -> bool:
        return table in self._tables

    def all(self) -> Dict[str, Dict[str, AnonymizationSingleConfig]]:
        return {table: dict(targets) for table, targets in self._tables.items()}

    def targets(self, table: str) -> List[str]:
        """Ordered target names of a table, empty if the table is unknown."""
        return list(self._tables.get(table, {}))

    def get_table_config(self, table: str) -> Dict[str, AnonymizationSingleConfig]:
        if table not in self._tables:
            raise ConfigurationError(f'Table "{table}" is not configured')
        return dict(self._tables[table])

    def get_table_config_targets(
        self, table: str, targets: Optional[Iterable[str]] = None
    ) -> Dict[str, AnonymizationSingleConfig]:
        """Get configurations for some targets of a table, in the given order.

        Args:
            table: Table name.
            targets: Target names; all targets of the table when None.

        Raises:
            ConfigurationError: If the table or one of the targets is unknown.
        """
        table_config = self.get_table_config(table)
        if targets is None:
            return table_config

        selected = {}
        for target in targets:
            if target not in table_config:
                raise ConfigurationError(
                    f'Target "{table}"."{target}" is not configured'
                )
            selected[target] = table_config[target]
        return selected

    def __len__(self) -> int:
        return self.count()


class BaseLoader(ABC):
    """Abstract base class for configuration loaders."""

    @abstractmethod
    def load(self) -> AnonymizationConfig:
        """Load the anonymization configuration.

        Raises:
            ConfigurationError: If the configuration is invalid.
        """
        pass


class ArrayLoader(BaseLoader):
    """Load configuration from a python mapping.

    Each target is either an anonymizer name or a mapping with an
    ``anonymizer`` key and an optional ``options`` mapping.

    Example:
        >>> loader = ArrayLoader({"users": {"email": "email"}})
        >>> loader.load().count()
        1
    """

    def __init__(self, data: Dict[str, Any], connection_name: Optional[str] = None):
        self.data = data
        self.connection_name = connection_name

    def load(self) -> AnonymizationConfig:
        data = self.data or {}
        if self.connection_name is not None:
            if not isinstance(data, dict) or self.connection_name not in data:
                raise ConfigurationError(
                    f"No anonymization configuration for connection '{self.connection_name}'"
                )
            data = data[self.connection_name] or {}

        config = AnonymizationConfig(self.connection_name or "default")
        errors: List[str] = []

        if not isinstance(data, dict):
            raise ConfigurationError(
                "Invalid anonymization configuration",
                ["top level must be a mapping of table names"],
            )

        for table, targets in data.items():
            if not isinstance(table, str) or not table:
                errors.append(f"Table name {table!r} must be a non-empty string")
                continue
            if not isinstance(targets, dict):
                errors.append(f"Table '{table}': targets must be a mapping")
                continue
            for target, settings in targets.items():
                single = self._parse_target(table, target, settings, errors)
                if single is not None:
                    config.add(single)

        if errors:
            raise ConfigurationError("Invalid anonymization configuration", errors)

        logger.debug(f"Loaded anonymization configuration for {config.count()} tables")
        return config

    def _parse_target(
        self, table: str, target: Any, settings: Any, errors: List[str]
    ) -> Optional[AnonymizationSingleConfig]:
        if not isinstance(target, str) or not target:
            errors.append(f"Table '{table}': target name {target!r} must be a non-empty string")
            return None

        if isinstance(settings, str):
            anonymizer, options = settings, {}
        elif isinstance(settings, dict):
            anonymizer = settings.get("anonymizer")
            options = settings.get("options") or {}
        else:
            errors.append(
                f"Target '{table}.{target}': settings must be an anonymizer name or a mapping"
            )
            return None

        if not isinstance(anonymizer, str) or not anonymizer:
            errors.append(f"Target '{table}.{target}': 'anonymizer' is required")
            return None
        if not isinstance(options, dict):
            errors.append(f"Target '{table}.{target}': 'options' must be a mapping")
            return None

        return AnonymizationSingleConfig(table, target, anonymizer, dict(options))


class YamlLoader(BaseLoader):
    """Load configuration from a YAML file.

    Args:
        path: YAML file path.
        connection_name: When given, the tables are read under this
            top-level key, allowing one file for several connections.
    """

    def __init__(self, path: Union[str, Path], connection_name: Optional[str] = None):
        self.path = Path(path)
        self.connection_name = connection_name

    def load(self) -> AnonymizationConfig:
        if not self.path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {self.path}",
                ["check the path, use an absolute path if unsure"],
            )

        try:
            with open(self.path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {self.path}", [str(e)]) from e

        logger.debug(f"Read anonymization configuration from {self.path}")
        return ArrayLoader(data or {}, self.connection_name).load()
