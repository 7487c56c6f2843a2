# curlytpl/config/loader.py
"""
Handles loading, merging, and saving of engine configuration from/to TOML files.
"""
import toml
from pathlib import Path
from typing import Any, Dict, Optional
from dataclasses import fields as dataclass_fields, MISSING
from enum import Enum
import structlog

from curlytpl.exceptions import ConfigError

from .settings import EngineConfig, CompileMode

log = structlog.get_logger(__name__)

PROJECT_CONFIG_FILENAMES = [".curlytpl.toml", "curlytpl.toml", "pyproject.toml"]
USER_CONFIG_DIR = Path.home() / ".config" / "curlytpl"
USER_CONFIG_FILE = USER_CONFIG_DIR / "config.toml"

CONFIG_KEY_TO_ENGINECONFIG_ATTR_MAP: Dict[str, str] = {
    "paths": "paths",
    "compile_dir": "compile_dir",
    "compile_mode": "compile_mode",
    "defaults": "defaults",
    "globals": "globals",
    "constants": "constants",
    "nocache": "nocache",
    "max_include_depth": "max_include_depth",
    "max_load_depth": "max_load_depth",
    "render_timeout": "render_timeout",
}

def _load_toml_file_data(file_path: Path) -> Dict[str, Any]:
    if not file_path.is_file():
        return {}
    log.debug("loading_toml_config_file", path=str(file_path))
    try:
        data = toml.load(file_path)
    except (toml.TomlDecodeError, OSError) as e:
        log.error("config_file_load_error", path=str(file_path), error=str(e))
        return {}
    if file_path.name == "pyproject.toml":
        return data.get("tool", {}).get("curlytpl", {})
    return data

def load_and_merge_configs(start_dir: Optional[Path] = None) -> Dict[str, Any]:
    # user-global settings first, then the first project file found in start_dir.
    start_dir = start_dir or Path.cwd()
    merged_toml_data: Dict[str, Any] = {}
    if USER_CONFIG_FILE.is_file():
        log.info("loading_user_global_config", path=str(USER_CONFIG_FILE))
        merged_toml_data.update(_load_toml_file_data(USER_CONFIG_FILE))

    for filename in PROJECT_CONFIG_FILENAMES:
        candidate = start_dir / filename
        if not candidate.is_file():
            continue
        project_settings = _load_toml_file_data(candidate)
        if not project_settings:
            continue
        log.info("loading_project_local_config", path=str(candidate))
        project_profiles = project_settings.pop("profiles", {})
        if isinstance(project_profiles, dict) and project_profiles:
            user_profiles = merged_toml_data.get("profiles")
            if not isinstance(user_profiles, dict):
                user_profiles = {}
            user_profiles.update(project_profiles)
            merged_toml_data["profiles"] = user_profiles
        merged_toml_data.update(project_settings)
        log.debug("project_config_applied", source_file=str(candidate))
        break
    if not merged_toml_data:
        log.debug("no_configuration_files_loaded")
    return merged_toml_data

def resolve_config_options(raw: Dict[str, Any], profile: Optional[str] = None) -> Dict[str, Any]:
    # flattens top-level keys plus the selected profile into EngineConfig keyword arguments.
    options: Dict[str, Any] = {}
    for toml_k, attr in CONFIG_KEY_TO_ENGINECONFIG_ATTR_MAP.items():
        if toml_k in raw:
            options[attr] = raw[toml_k]
    if "compile_absolute" in raw and "compile_mode" not in raw:
        options["compile_mode"] = CompileMode.from_flag(bool(raw["compile_absolute"]))

    if profile:
        profile_values = raw.get("profiles", {}).get(profile)
        if profile_values is None:
            raise ConfigError(f"profile '{profile}' not found in configuration files")
        log.info("applying_profile_settings", profile=profile)
        for toml_k, attr in CONFIG_KEY_TO_ENGINECONFIG_ATTR_MAP.items():
            if toml_k in profile_values:
                options[attr] = profile_values[toml_k]
        if "compile_absolute" in profile_values and "compile_mode" not in profile_values:
            options["compile_mode"] = CompileMode.from_flag(bool(profile_values["compile_absolute"]))
    return options

def build_config(raw: Dict[str, Any], profile: Optional[str] = None, **overrides: Any) -> EngineConfig:
    options = resolve_config_options(raw, profile)
    options.update({k: v for k, v in overrides.items() if v is not None})

    for mapping_key in ("defaults", "globals", "constants"):
        if mapping_key in options and not isinstance(options[mapping_key], dict):
            raise ConfigError(f"'{mapping_key}' must be a table, got {type(options[mapping_key]).__name__}")
    if "defaults" in options:
        # configured defaults extend the delimiter escapes rather than replacing them.
        base_defaults = next(f for f in dataclass_fields(EngineConfig) if f.name == "defaults").default_factory()
        base_defaults.update(options["defaults"])
        options["defaults"] = base_defaults

    try:
        return EngineConfig(**options)
    except TypeError as e:
        raise ConfigError(f"invalid configuration: {e}") from e

def save_config_to_profile(config_to_save: EngineConfig, profile_name: str, target_dir: Optional[Path] = None) -> bool:
    target_dir = target_dir or Path.cwd()
    target_toml_path = target_dir / ".curlytpl.toml"
    if not target_toml_path.exists():
        alt_path = target_dir / "curlytpl.toml"
        if alt_path.exists():
            target_toml_path = alt_path
    log.info("attempting_to_save_profile", profile=profile_name, path=str(target_toml_path))

    profile_data: Dict[str, Any] = {}
    for field_def in dataclass_fields(EngineConfig):
        toml_key = next((k for k, v in CONFIG_KEY_TO_ENGINECONFIG_ATTR_MAP.items() if v == field_def.name), None)
        if not toml_key:
            continue
        value = getattr(config_to_save, field_def.name)
        default_val = field_def.default_factory() if field_def.default_factory is not MISSING else field_def.default
        if value == default_val:
            continue
        if isinstance(value, Path):
            profile_data[toml_key] = str(value)
        elif isinstance(value, list) and all(isinstance(i, Path) for i in value):
            profile_data[toml_key] = [i.as_posix() for i in value]
        elif isinstance(value, Enum):
            profile_data[toml_key] = value.value
        elif value is not None:
            profile_data[toml_key] = value

    if not profile_data:
        log.info("no_options_to_save_for_profile", profile=profile_name)
        return False

    existing_data: Dict[str, Any] = {}
    if target_toml_path.exists():
        try:
            existing_data = toml.load(target_toml_path)
        except toml.TomlDecodeError as e:
            raise ConfigError(f"Could not read existing TOML {target_toml_path} to save profile: {e}") from e

    if profile_name.upper() == "DEFAULT":
        profiles_bak = existing_data.pop("profiles", None)
        existing_data.update(profile_data)
        if profiles_bak is not None:
            existing_data["profiles"] = profiles_bak
    else:
        existing_data.setdefault("profiles", {})[profile_name] = profile_data

    try:
        with target_toml_path.open("w", encoding="utf-8") as f:
            toml.dump(existing_data, f)
    except OSError as e:
        raise ConfigError(f"Error writing profile '{profile_name}' to {target_toml_path}: {e}") from e
    log.info("profile_saved_successfully", profile=profile_name, path=str(target_toml_path))
    return True
