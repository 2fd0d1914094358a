from __future__ import annotations

import os
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import yaml
from dotenv import load_dotenv

from .errors import ConfigurationError
from .models import DEFAULT_REGION, DesiredConfig, PriorState, apply_overrides


# ---------- Typed sections ----------

@dataclass
class AppSection:
    run_id: Optional[str] = None
    dry_run: bool = False
    concurrency: int = 4


@dataclass
class AwsSection:
    region: str = DEFAULT_REGION
    profile: Optional[str] = None


@dataclass
class PathsSection:
    src: str = "."
    state_file: str = ".appsync/state.json"
    desired_file: str = "appsync.yml"


@dataclass
class SchemaSection:
    poll_interval_sec: float = 1.0
    timeout_sec: float = 300.0
    max_attempts: int = 300


@dataclass
class RoleSection:
    settle_sec: float = 10.0


@dataclass
class LoggingSection:
    base_dir: str = "logs"
    console_level: str = "INFO"   # INFO..CRITICAL
    file_level: str = "DEBUG"     # DEBUG..CRITICAL


@dataclass
class AppConfig:
    """Typed configuration object built by `load_config`."""
    app: AppSection
    aws: AwsSection
    paths: PathsSection
    schema: SchemaSection
    role: RoleSection
    logging: LoggingSection

    @property
    def run_id(self) -> str:
        """
        Return a stable run identifier for this process.
        Generated lazily when first accessed if not provided.
        """
        if not self.app.run_id:
            self.app.run_id = uuid.uuid4().hex[:12]
        return self.app.run_id


# ---------- Defaults ----------

_DEFAULT_FILES: Tuple[str, ...] = (
    "./appsync-deployer.yml",
    os.path.expanduser("~/.config/appsync-deployer/config.yml"),
)

_DEFAULTS: Dict[str, Any] = {
    "app": {"run_id": None, "dry_run": False, "concurrency": 4},
    "aws": {"region": DEFAULT_REGION, "profile": None},
    "paths": {"src": ".", "state_file": ".appsync/state.json", "desired_file": "appsync.yml"},
    "schema": {"poll_interval_sec": 1.0, "timeout_sec": 300.0, "max_attempts": 300},
    "role": {"settle_sec": 10.0},
    "logging": {"base_dir": "logs", "console_level": "INFO", "file_level": "DEBUG"},
}

_BOOL_KEYS = {"dry_run"}
_INT_KEYS = {"concurrency", "max_attempts"}
_FLOAT_KEYS = {"poll_interval_sec", "timeout_sec", "settle_sec"}


# ---------- Utilities ----------

def _deep_merge(base: Dict[str, Any], ext: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Deep-merge for dicts: maps merge recursively, lists/scalars override.
    `ext` wins over `base`; `None` in `ext` leaves `base` untouched.
    """
    if not ext:
        return dict(base)
    out: Dict[str, Any] = dict(base)
    for k, v in ext.items():
        if v is None:
            continue
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _read_yaml_file(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Top-level YAML must be a mapping: {path}")
    return data


def _load_first_existing(files: Tuple[str, ...]) -> Dict[str, Any]:
    for p in files:
        if os.path.exists(p):
            return _read_yaml_file(p)
    return {}


def _env_to_dict(prefix: str = "APPSYNC_") -> Dict[str, Any]:
    """
    Convert APPSYNC_AWS__REGION=val to {"aws": {"region": "val"}} (lowercased keys).
    """
    out: Dict[str, Any] = {}
    plen = len(prefix)
    for key, val in os.environ.items():
        if not key.startswith(prefix) or "__" not in key[plen:]:
            continue
        path = key[plen:].lower().split("__")
        cursor = out
        for part in path[:-1]:
            cursor = cursor.setdefault(part, {})
        cursor[path[-1]] = val
    return out


def _interpolate_env(cfg: Any) -> Any:
    """
    Replace values like "${VAR}" with os.environ["VAR"] when present.
    """
    def repl(v: Any) -> Any:
        if isinstance(v, str) and v.startswith("${") and v.endswith("}"):
            return os.environ.get(v[2:-1], "")
        return v

    def walk(obj: Any) -> Any:
        if isinstance(obj, dict):
            return {k: walk(repl(v)) for k, v in obj.items()}
        if isinstance(obj, list):
            return [walk(x) for x in obj]
        return repl(obj)

    return walk(cfg)


def _coerce_types(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """
    Type coercion for booleans, integers and floats in known keys.
    """
    def to_bool(x: Any) -> bool:
        return str(x).strip().lower() in {"1", "true", "yes", "y", "on"}

    def convert(kind: type, key: str, value: Any) -> Any:
        try:
            return kind(value)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid value for {key}: {value!r}") from exc

    def walk(obj: Any, key_path: Tuple[str, ...] = ()) -> Any:
        if isinstance(obj, dict):
            return {k: walk(v, key_path + (k,)) for k, v in obj.items()}
        if obj is None or not key_path:
            return obj
        key = key_path[-1]
        if key in _BOOL_KEYS:
            return to_bool(obj)
        if key in _INT_KEYS:
            return convert(int, ".".join(key_path), obj)
        if key in _FLOAT_KEYS:
            return convert(float, ".".join(key_path), obj)
        return obj

    return walk(cfg)


def _validate(cfg: Dict[str, Any]) -> None:
    problems = []
    if cfg["app"].get("concurrency", 1) < 1:
        problems.append("app.concurrency must be >= 1")
    if cfg["schema"].get("max_attempts", 1) < 1:
        problems.append("schema.max_attempts must be >= 1")
    for key in ("poll_interval_sec", "timeout_sec"):
        if cfg["schema"].get(key, 0) < 0:
            problems.append(f"schema.{key} must be >= 0")
    if cfg["role"].get("settle_sec", 0) < 0:
        problems.append("role.settle_sec must be >= 0")
    if problems:
        raise ConfigurationError("Invalid configuration: " + "; ".join(problems))


def _section(cls: type, raw: Dict[str, Any], name: str) -> Any:
    try:
        return cls(**raw.get(name, {}))
    except TypeError as exc:
        raise ConfigurationError(f"Unknown key in '{name}' section: {exc}") from exc


# ---------- Public API ----------

def load_config(
    cli_overrides: Optional[Dict[str, Any]] = None,
    files: Tuple[str, ...] = _DEFAULT_FILES,
    env_prefix: str = "APPSYNC_",
    dotenv_path: Optional[str] = ".env",
) -> AppConfig:
    """
    Build an AppConfig from (in precedence order):
      1) CLI overrides
      2) Environment variables (prefix APPSYNC_, nested via __), after
         loading `dotenv_path` without overriding the real environment
      3) YAML file (first existing)
      4) Built-in defaults

    Also performs:
      - ${ENV_VAR} interpolation
      - type coercion (bool/int/float)
      - range validation of numeric settings
    """
    if dotenv_path and os.path.exists(dotenv_path):
        load_dotenv(dotenv_path, override=False)

    file_cfg = _load_first_existing(files)
    env_cfg = _env_to_dict(env_prefix)

    merged = _deep_merge(_DEFAULTS, file_cfg)
    merged = _deep_merge(merged, env_cfg)
    merged = _deep_merge(merged, cli_overrides or {})

    merged = _interpolate_env(merged)
    merged = _coerce_types(merged)
    _validate(merged)

    return AppConfig(
        app=_section(AppSection, merged, "app"),
        aws=_section(AwsSection, merged, "aws"),
        paths=_section(PathsSection, merged, "paths"),
        schema=_section(SchemaSection, merged, "schema"),
        role=_section(RoleSection, merged, "role"),
        logging=_section(LoggingSection, merged, "logging"),
    )


def load_desired(
    path: str,
    prior: Optional[PriorState] = None,
    *,
    default_region: str = DEFAULT_REGION,
    explicit: Optional[Dict[str, Any]] = None,
) -> DesiredConfig:
    """
    Read the desired API document at `path` and fill `region` / `apiId`:
    `explicit` wins over the document, the document wins over the prior
    state, the prior state wins over defaults.
    """
    if not os.path.exists(path):
        raise ConfigurationError(f"Desired configuration not found: {path}")
    document = _interpolate_env(_read_yaml_file(path))
    recorded = {"apiId": prior.api_id, "region": prior.region} if prior else {}
    merged = apply_overrides({"region": default_region}, recorded, apply_overrides(document, None, explicit))
    return DesiredConfig.from_dict(merged)
