"""Configuration management for dbferry tasks and database aliases."""
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import jsonschema
import yaml
from dotenv import load_dotenv

from .converters.dialects import DIALECT_ALIASES, DIALECTS, dialect_name, get_dialect
from .errors import ConfigurationError

MODE_REPLACE = "replace"
MODE_APPEND = "append"
MODE_MERGE = "merge"
TASK_MODES = (MODE_REPLACE, MODE_APPEND, MODE_MERGE)

VALIDATE_NONE = "none"
VALIDATE_ROW_COUNT = "row_count"
VALIDATE_MODES = (VALIDATE_NONE, VALIDATE_ROW_COUNT)

FILE_DATABASES = ("sqlite", "duckdb")

DEFAULT_BATCH_SIZE = 1000

CONFIG_SCHEMA = {
    "type": "object",
    "required": ["databases", "tasks"],
    "properties": {
        "databases": {
            "type": "object",
            "minProperties": 1,
            "additionalProperties": {
                "type": "object",
                "required": ["type"],
                "properties": {
                    "type": {"type": "string"},
                    "host": {"type": "string"},
                    "port": {"type": ["integer", "string"]},
                    "database": {"type": "string"},
                    "service": {"type": "string"},
                    "user": {"type": "string"},
                    "password": {"type": ["string", "null"]},
                    "path": {"type": "string"},
                    "read_only": {"type": "boolean"},
                    "options": {"type": "object"},
                },
            },
        },
        "tasks": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "properties": {
                    "table_name": {"type": "string"},
                    "sql": {"type": "string"},
                    "source_db": {"type": "string"},
                    "target_db": {"type": "string"},
                    "ignore": {"type": "boolean"},
                    "mode": {"type": "string"},
                    "batch_size": {"type": "integer"},
                    "max_retries": {"type": "integer"},
                    "validate": {"type": "string"},
                    "merge_keys": {"type": "array", "items": {"type": "string"}},
                    "resume_key": {"type": "string"},
                    "resume_from": {"type": ["string", "integer", "number"]},
                    "state_file": {"type": "string"},
                    "skip_create_table": {"type": "boolean"},
                    "indexes": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "name": {"type": "string"},
                                "columns": {"type": "array", "items": {"type": "string"}},
                                "unique": {"type": "boolean"},
                                "where": {"type": "string"},
                            },
                        },
                    },
                },
            },
        },
        "logging": {
            "type": "object",
            "properties": {
                "level": {"type": "string"},
                "file": {"type": ["string", "null"]},
                "console": {"type": "boolean"},
            },
        },
        "retry_delay": {"type": "number", "minimum": 0},
    },
}


@dataclass
class DatabaseConfig:
    """Connection definition for one database alias."""
    alias: str
    type: str
    host: Optional[str] = None
    port: Optional[int] = None
    database: Optional[str] = None
    service: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None
    path: Optional[str] = None
    read_only: bool = False
    options: Dict[str, Any] = field(default_factory=dict)

    @property
    def dialect(self) -> str:
        return dialect_name(self.type)


@dataclass
class IndexColumn:
    """One index column and its sort order."""
    name: str
    order: str = "ASC"


@dataclass
class IndexConfig:
    """Index to build on a task's target table."""
    name: str
    columns: List[str]
    unique: bool = False
    where: Optional[str] = None
    parsed_columns: List[IndexColumn] = field(default_factory=list)

    def parse_columns(self) -> List[IndexColumn]:
        """
        Parse ``"col"``, ``"col:1"`` and ``"col:-1"`` column specs.

        Returns:
            Parsed columns (also stored on ``parsed_columns``)

        Raises:
            ValueError: If a column spec is malformed
        """
        parsed = []
        for spec in self.columns:
            if ":" in spec:
                parts = spec.split(":")
                if len(parts) != 2:
                    raise ValueError(f"invalid column format: {spec}")
                order = parts[1].strip()
                if order not in ("1", "-1"):
                    raise ValueError(f"invalid order specifier: {order} (must be 1 or -1)")
                parsed.append(IndexColumn(parts[0].strip(), "ASC" if order == "1" else "DESC"))
            else:
                parsed.append(IndexColumn(spec.strip()))
            if not parsed[-1].name:
                raise ValueError(f"invalid column format: {spec}")
        self.parsed_columns = parsed
        return parsed


@dataclass
class TaskConfig:
    """One query-to-table migration task."""
    table_name: str
    sql: str
    source_db: str
    target_db: str
    ignore: bool = False
    mode: str = MODE_REPLACE
    batch_size: int = DEFAULT_BATCH_SIZE
    max_retries: int = 0
    validate: str = VALIDATE_NONE
    merge_keys: List[str] = field(default_factory=list)
    resume_key: Optional[str] = None
    resume_from: Optional[str] = None
    state_file: Optional[str] = None
    skip_create_table: bool = False
    indexes: List[IndexConfig] = field(default_factory=list)

    @property
    def task_key(self) -> str:
        """Identity of the task inside a resume state file."""
        return f"{self.source_db}:{self.target_db}:{self.table_name}"


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = None
    console: bool = True


@dataclass
class Config:
    """Main configuration object."""
    databases: Dict[str, DatabaseConfig]
    tasks: List[TaskConfig]
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    retry_delay: float = 1.0

    def get_database(self, alias: str) -> Optional[DatabaseConfig]:
        return self.databases.get(alias)

    @property
    def enabled_tasks(self) -> List[TaskConfig]:
        return [task for task in self.tasks if not task.ignore]

    @classmethod
    def load(cls, config_path: str, env_path: Optional[str] = None) -> "Config":
        """
        Load configuration from a YAML file.

        Variables from ``env_path`` (a ``.env`` file, optional) are loaded
        into the environment first; ``${VAR}`` references in string values
        are then expanded.

        Args:
            config_path: Path to the YAML configuration file
            env_path: Optional path to a .env file

        Returns:
            Validated Config object

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigurationError: If the configuration is malformed or inconsistent
        """
        if env_path and os.path.exists(env_path):
            load_dotenv(env_path)

        return cls.from_dict(load_config(config_path))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Build and validate a Config from already-parsed YAML data."""
        if not data:
            raise ConfigurationError("Configuration file is empty")

        data = _expand_env(data)
        try:
            jsonschema.validate(instance=data, schema=CONFIG_SCHEMA)
        except jsonschema.ValidationError as err:
            location = ".".join(str(part) for part in err.absolute_path) or "<root>"
            raise ConfigurationError(f"Invalid configuration at {location}: {err.message}") from err

        databases = {}
        for alias, db_data in data["databases"].items():
            port = db_data.get("port")
            databases[alias] = DatabaseConfig(
                alias=alias,
                type=db_data["type"],
                host=db_data.get("host"),
                port=int(port) if port not in (None, "") else None,
                database=db_data.get("database"),
                service=db_data.get("service"),
                user=db_data.get("user"),
                password=db_data.get("password"),
                path=db_data.get("path"),
                read_only=db_data.get("read_only", False),
                options=db_data.get("options", {}),
            )

        tasks = []
        for task_data in data["tasks"]:
            resume_from = task_data.get("resume_from")
            tasks.append(TaskConfig(
                table_name=task_data.get("table_name", ""),
                sql=task_data.get("sql", ""),
                source_db=task_data.get("source_db", ""),
                target_db=task_data.get("target_db", ""),
                ignore=task_data.get("ignore", False),
                mode=task_data.get("mode", MODE_REPLACE).lower(),
                batch_size=task_data.get("batch_size", DEFAULT_BATCH_SIZE),
                max_retries=task_data.get("max_retries", 0),
                validate=task_data.get("validate", VALIDATE_NONE).lower(),
                merge_keys=list(task_data.get("merge_keys", [])),
                resume_key=task_data.get("resume_key") or None,
                resume_from=str(resume_from) if resume_from not in (None, "") else None,
                state_file=task_data.get("state_file") or None,
                skip_create_table=task_data.get("skip_create_table", False),
                indexes=[
                    IndexConfig(
                        name=index_data.get("name", ""),
                        columns=list(index_data.get("columns", [])),
                        unique=index_data.get("unique", False),
                        where=index_data.get("where") or None,
                    )
                    for index_data in task_data.get("indexes", [])
                ],
            ))

        logging_data = data.get("logging", {})
        config = cls(
            databases=databases,
            tasks=tasks,
            logging=LoggingConfig(
                level=logging_data.get("level", "INFO"),
                file=logging_data.get("file"),
                console=logging_data.get("console", True),
            ),
            retry_delay=float(data.get("retry_delay", 1.0)),
        )

        errors = validate_config(config)
        if errors:
            raise ConfigurationError("invalid configuration:\n  - " + "\n  - ".join(errors))
        return config


def load_config(config_path: str) -> dict:
    """
    Load configuration from YAML file as dictionary.

    Args:
        config_path: Path to configuration file

    Returns:
        Dictionary with configuration data
    """
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        return yaml.safe_load(f)


def validate_config(config: Config) -> List[str]:
    """
    Validate database definitions and task shapes.

    Index columns are parsed as a side effect.

    Args:
        config: Loaded configuration

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []
    supported = set(DIALECTS) | set(DIALECT_ALIASES)

    for alias, db in config.databases.items():
        if dialect_name(db.type) not in supported:
            errors.append(f"database '{alias}': unsupported type '{db.type}'")
            continue
        if db.dialect in FILE_DATABASES:
            if not db.path:
                errors.append(f"database '{alias}': path is required for {db.dialect}")
        elif not db.host:
            errors.append(f"database '{alias}': host is required for {db.dialect}")

    if not config.tasks:
        errors.append("at least one task must be defined")

    index_owners: Dict[str, str] = {}
    for number, task in enumerate(config.tasks, start=1):
        label = f"task {number}"
        if not task.table_name:
            errors.append(f"{label}: table_name is required")
        else:
            label = f"task {number} ({task.table_name})"
        if not task.sql or not task.sql.strip():
            errors.append(f"{label}: sql is required")

        source = config.get_database(task.source_db)
        target = config.get_database(task.target_db)
        if source is None:
            errors.append(f"{label}: source_db '{task.source_db}' is not defined")
        if target is None:
            errors.append(f"{label}: target_db '{task.target_db}' is not defined")
        elif target.read_only:
            errors.append(f"{label}: database '{task.target_db}' is read_only and cannot be a target")

        target_profile = None
        if target is not None and target.dialect in DIALECTS:
            target_profile = get_dialect(target.dialect)

        if task.mode not in TASK_MODES:
            errors.append(f"{label}: invalid mode '{task.mode}' (must be one of {', '.join(TASK_MODES)})")
        if task.mode == MODE_MERGE:
            if not task.merge_keys:
                errors.append(f"{label}: merge_keys is required when mode is merge")
            if target_profile is not None and target_profile.upsert is None:
                errors.append(f"{label}: {target_profile.name} does not support merge mode")
        elif task.merge_keys:
            errors.append(f"{label}: merge_keys is only allowed when mode is merge")

        if task.validate not in VALIDATE_MODES:
            errors.append(f"{label}: invalid validate '{task.validate}' (must be one of {', '.join(VALIDATE_MODES)})")
        elif task.validate == VALIDATE_ROW_COUNT and task.mode == MODE_MERGE:
            errors.append(f"{label}: validate row_count cannot be combined with merge mode")

        if task.batch_size <= 0:
            errors.append(f"{label}: batch_size must be positive")
        if task.max_retries < 0:
            errors.append(f"{label}: max_retries must not be negative")

        if task.resume_key and not (task.resume_from or task.state_file):
            errors.append(f"{label}: resume_key requires resume_from or state_file")
        if (task.resume_from or task.state_file) and not task.resume_key:
            errors.append(f"{label}: resume_from/state_file require resume_key")

        for index_number, index in enumerate(task.indexes, start=1):
            index_label = f"{label}, index {index_number}"
            if not index.name:
                errors.append(f"{index_label}: index name is required")
                continue
            if not index.columns:
                errors.append(f"{index_label}: at least one column is required")
            owner = index_owners.get(index.name)
            if owner is not None:
                if owner == task.table_name:
                    errors.append(f"{index_label}: index name '{index.name}' is already defined for table '{owner}'")
                else:
                    errors.append(f"{index_label}: index name '{index.name}' is already used by table '{owner}'")
            index_owners[index.name] = task.table_name
            try:
                index.parse_columns()
            except ValueError as err:
                errors.append(f"{index_label}: {err}")
            if index.where and target_profile is not None and not target_profile.partial_indexes:
                errors.append(
                    f"{index_label}: {target_profile.name} does not support partial indexes (where clause)"
                )

    return errors


def _expand_env(value: Any) -> Any:
    if isinstance(value, str):
        return os.path.expandvars(value)
    if isinstance(value, dict):
        return {key: _expand_env(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand_env(item) for item in value]
    return value
