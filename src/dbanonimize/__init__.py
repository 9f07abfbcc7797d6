"""dbanonimize: in-place anonymization of relational database tables.

A declarative configuration maps tables and their columns ("targets") to
anonymizers. The Anonymizator plans which targets to process, runs one
UPDATE statement per table (or per column), and reports progress lazily.

QUICK START:
    >>> from sqlalchemy import create_engine
    >>> from dbanonimize import Anonymizator, YamlLoader
    >>> with create_engine("sqlite:///app.db").connect() as connection:
    ...     anonymizator = Anonymizator(
    ...         "default", connection, loader=YamlLoader("anonymization.yaml")
    ...     )
    ...     for line in anonymizator.anonymize(excluded_targets=["orders"]):
    ...         print(line)

Modules:
    - anonymizator: The anonymization engine (start here!)
    - plan: Target selection
    - config: Configuration and loaders (python mapping, YAML)
    - anonymizers: Anonymizer base class, registry and bundled anonymizers
    - query: UPDATE statement builder shared by anonymizers
"""

import logging

from dbanonimize.__version__ import __version__, __version_info__
from dbanonimize.anonymizator import Anonymizator
from dbanonimize.anonymizers import (
    AbstractAnonymizer,
    AnonymizerRegistry,
    default_registry,
)
from dbanonimize.config import (
    AnonymizationConfig,
    AnonymizationSingleConfig,
    ArrayLoader,
    BaseLoader,
    YamlLoader,
)
from dbanonimize.errors import (
    AnonimizeError,
    CleanupError,
    ConfigurationError,
    ExecutionError,
    InvalidTargetError,
    StrategyLifecycleError,
    UnknownAnonymizerError,
    UsageError,
)
from dbanonimize.plan import build_plan, parse_target
from dbanonimize.query import UpdateQuery

# Silence verbose logging by default
logging.getLogger("dbanonimize").setLevel(logging.WARNING)

__all__ = [
    # Engine - Start here!
    "Anonymizator",
    "build_plan",
    "parse_target",
    # Configuration
    "AnonymizationConfig",
    "AnonymizationSingleConfig",
    "BaseLoader",
    "ArrayLoader",
    "YamlLoader",
    # Anonymizers
    "AbstractAnonymizer",
    "AnonymizerRegistry",
    "default_registry",
    "UpdateQuery",
    # Errors
    "AnonimizeError",
    "UsageError",
    "InvalidTargetError",
    "UnknownAnonymizerError",
    "ConfigurationError",
    "StrategyLifecycleError",
    "CleanupError",
    "ExecutionError",
    "__version__",
    "__version_info__",
]
