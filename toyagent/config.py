"""Configuration file loading and merging for toyagent.

Reads TOML config from ~/.config/toyagent/config.toml (global) and
<base_dir>/toyagent.toml (project). Precedence: CLI > project > global >
environment > defaults. Connection settings may also come from a named
[profiles.<name>] table, which sits between the CLI and the flat keys.
"""

import argparse
import os
import sys
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ConfigError

_UNSET = object()  # Sentinel for "not set by CLI"


# --- Schema ---

CONFIG_KEYS: dict[str, type | tuple[type, ...]] = {
    "provider": str,
    "model": str,
    "fast_model": str,
    "api_key": str,
    "base_url": str,
    "max_rounds": int,
    "temperature": (int, float),
    "system_prompt": str,
    "no_history": bool,
    "debug_log": bool,
    "color": bool,
    "quiet": bool,
    "active_profile": str,
}

PROFILE_KEYS = ("base_url", "api_key", "model", "fast_model", "provider", "label")

# Connection settings are resolved by resolve_llm_settings, not copied onto args.
LLM_FIELDS = ("model", "fast_model", "api_key", "base_url", "provider")

ENV_VARS = {
    "api_key": "TOY_API_KEY",
    "base_url": "TOY_BASE_URL",
    "model": "TOY_MODEL",
    "fast_model": "TOY_FAST_MODEL",
}

# Argparse dest -> hardcoded default
_ARGPARSE_DEFAULTS: dict[str, Any] = {
    "max_rounds": 100,
    "temperature": None,
    "system_prompt": None,
    "no_history": False,
    "debug_log": False,
    "color": False,
    "no_color": False,
    "quiet": False,
}


# --- Internal helpers ---


def global_config_dir() -> Path:
    """Return the global config directory, respecting XDG_CONFIG_HOME."""
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "toyagent"
    return Path.home() / ".config" / "toyagent"


def _type_name(expected: type | tuple[type, ...]) -> str:
    if isinstance(expected, tuple):
        return " or ".join(t.__name__ for t in expected)
    return expected.__name__


def _validate_config(config: dict, source: str) -> None:
    """Validate types in a parsed config dict.

    Raises ConfigError for type mismatches. Prints warnings for unknown keys.
    """
    for key, value in config.items():
        if key not in CONFIG_KEYS:
            print(f"warning: {source}: unknown config key {key!r}", file=sys.stderr)
            continue

        expected = CONFIG_KEYS[key]
        # bool is a subclass of int; reject bools for non-bool fields.
        if isinstance(value, bool) and expected is not bool:
            raise ConfigError(
                f"{source}: {key!r} expected {_type_name(expected)}, got bool"
            )
        if not isinstance(value, expected):
            raise ConfigError(
                f"{source}: {key!r} expected {_type_name(expected)}, "
                f"got {type(value).__name__}"
            )

    if "max_rounds" in config and config["max_rounds"] < 1:
        raise ConfigError(f"{source}: 'max_rounds' must be at least 1")


def _validate_profiles(profiles, source: str) -> dict[str, dict]:
    if not isinstance(profiles, dict):
        raise ConfigError(f"{source}: 'profiles' must be a table")
    out = {}
    for name, cfg in profiles.items():
        if not isinstance(cfg, dict):
            raise ConfigError(f"{source}: profiles.{name} must be a table")
        for key, value in cfg.items():
            if key not in PROFILE_KEYS:
                print(
                    f"warning: {source}: unknown key {key!r} in profiles.{name}",
                    file=sys.stderr,
                )
                continue
            if not isinstance(value, str):
                raise ConfigError(
                    f"{source}: profiles.{name}.{key}: expected str, "
                    f"got {type(value).__name__}"
                )
        out[name] = {
            k: v.strip() for k, v in cfg.items() if k in PROFILE_KEYS and v.strip()
        }
    return out


def _check_api_key_in_git(config: dict, config_path: Path) -> None:
    """Warn if an api_key is set in a project config inside a git repo."""
    has_key = "api_key" in config or any(
        "api_key" in p for p in config.get("profiles", {}).values()
    )
    if not has_key:
        return
    parent = config_path.parent
    while parent != parent.parent:
        if (parent / ".git").exists():
            print(
                f"warning: {config_path}: 'api_key' in a git-tracked project config "
                f"may be committed accidentally. Consider using TOY_API_KEY.",
                file=sys.stderr,
            )
            return
        parent = parent.parent


def _load_single(path: Path, label: str) -> dict:
    """Load and validate a single TOML config file. Returns empty dict if missing."""
    if not path.is_file():
        return {}
    try:
        with open(path, "rb") as f:
            config = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{label}: invalid TOML: {e}") from e

    # Nested table, validated on its own.
    profiles = config.pop("profiles", None)

    _validate_config(config, label)
    known = {k: v for k, v in config.items() if k in CONFIG_KEYS}

    if profiles is not None:
        known["profiles"] = _validate_profiles(profiles, label)

    return known


# --- Public API ---


def load_config(base_dir: Path) -> dict:
    """Load and merge global + project config.

    Returns a flat dict with config-canonical keys; only keys actually set in
    config files are included. Profiles from both files are merged by name,
    the project file winning.
    """
    global_path = global_config_dir() / "config.toml"
    global_config = _load_single(global_path, str(global_path))

    project_path = Path(base_dir).resolve() / "toyagent.toml"
    project_config = _load_single(project_path, str(project_path))
    if project_config:
        _check_api_key_in_git(project_config, project_path)

    global_profiles = global_config.pop("profiles", {})
    project_profiles = project_config.pop("profiles", {})
    merged = {**global_config, **project_config}
    profiles = {**global_profiles, **project_profiles}
    if profiles:
        merged["profiles"] = profiles

    active = merged.get("active_profile")
    if active is not None and active not in profiles:
        raise ConfigError(f"active_profile {active!r} does not name a [profiles] table")

    return merged


def apply_config_to_args(args: argparse.Namespace, config: dict) -> None:
    """Apply config values to argparse namespace where CLI didn't set a value.

    Connection settings (model, api_key, ...) and profiles are left to
    resolve_llm_settings. Remaining _UNSET sentinels are replaced with the
    hardcoded defaults.
    """

    def _is_unset(dest: str) -> bool:
        return getattr(args, dest, _UNSET) is _UNSET

    # One config key controls the mutually exclusive --color/--no-color pair.
    if "color" in config:
        color_val = config["color"]
        if _is_unset("color") and _is_unset("no_color"):
            args.color = color_val
            args.no_color = not color_val

    for key, value in config.items():
        if key in ("color", "profiles", "active_profile") or key in LLM_FIELDS:
            continue
        if _is_unset(key):
            setattr(args, key, value)

    for dest, default in _ARGPARSE_DEFAULTS.items():
        if _is_unset(dest):
            setattr(args, dest, default)


@dataclass
class LLMSettings:
    """Effective connection settings plus where each value came from."""

    model: str | None = None
    fast_model: str | None = None
    api_key: str | None = None
    base_url: str | None = None
    provider: str = "openai"
    profile: str | None = None
    sources: dict[str, str] = field(default_factory=dict)

    def missing(self) -> list[str]:
        required = ("model",) if self.provider == "lmstudio" else ("model", "api_key")
        return [name for name in required if not getattr(self, name)]

    def summary_lines(self) -> list[str]:
        """One "  key: value [source]" line per field, api_key masked."""
        lines = []
        for key in ("provider", "base_url", "model", "fast_model", "api_key"):
            value = getattr(self, key)
            if key == "api_key":
                value = mask_secret(value)
            lines.append(f"  {key}: {value or '(missing)'} [{self.sources.get(key, 'missing')}]")
        return lines


def mask_secret(value: str | None) -> str | None:
    if not value:
        return None
    if len(value) <= 4:
        return "****"
    return f"{value[:4]}****{value[-2:]}"


def profile_names(config: dict) -> list[str]:
    return list(config.get("profiles", {}))


def resolve_llm_settings(
    config: dict, profile: str | None = None, cli: dict | None = None
) -> LLMSettings:
    """Compute connection settings from CLI values, profile, config and env.

    `profile` overrides config's active_profile. Each field's source is one
    of "cli", "profile", "config", "env" or "missing".
    """
    profiles = config.get("profiles", {})
    name = profile or config.get("active_profile")
    if name is not None and name not in profiles:
        known = ", ".join(profiles) or "none defined"
        raise ConfigError(f"unknown profile {name!r} (available: {known})")
    prof = profiles.get(name, {}) if name else {}
    cli = cli or {}

    settings = LLMSettings(profile=name)
    for key in LLM_FIELDS:
        env_name = ENV_VARS.get(key)
        env_value = (os.environ.get(env_name) or "").strip() if env_name else ""
        if cli.get(key):
            value, source = cli[key], "cli"
        elif prof.get(key):
            value, source = prof[key], "profile"
        elif config.get(key):
            value, source = config[key], "config"
        elif env_value:
            value, source = env_value, "env"
        else:
            value, source = None, "missing"
        if key == "provider":
            value = value or "openai"
        setattr(settings, key, value)
        settings.sources[key] = source
    return settings


def require_llm_settings(settings: LLMSettings) -> LLMSettings:
    """Raise ConfigError when a required connection setting is missing."""
    missing = settings.missing()
    if missing:
        hints = ", ".join(
            f"{m} (--{m.replace('_', '-')} or {ENV_VARS[m]})" for m in missing
        )
        raise ConfigError(f"missing LLM settings: {hints}")
    return settings


def generate_config(project: bool = False) -> str:
    """Return a commented-out template config string."""
    lines = [
        "# toyagent configuration file",
        f"# {'Project' if project else 'Global'} config: "
        f"{'<project>/toyagent.toml' if project else '~/.config/toyagent/config.toml'}",
        "#",
        "# CLI flags override these values. Only uncomment what you need.",
        "",
        "# --- Provider / model ---",
        '# provider = "openai"            # "openai" | "openrouter" | "lmstudio"',
        '# model = "deepseek-chat"',
        '# fast_model = "deepseek-chat"   # used by the outline tool',
        '# api_key = "sk-..."             # prefer TOY_API_KEY; this is a fallback',
        '# base_url = "https://api.deepseek.com/v1"',
        '# active_profile = "work"',
        "",
        "# --- Generation ---",
        "# temperature = 0.7",
        "",
        "# --- Agent behaviour ---",
        "# max_rounds = 100",
        '# system_prompt = "You are a helpful assistant."',
        "# no_history = false",
        "# debug_log = false",
        "",
        "# --- UI ---",
        "# color = true       # true = force color, false = force no-color, absent = auto",
        "# quiet = false",
        "",
        "# --- Profiles (switch with --profile or /profile) ---",
        "# [profiles.work]",
        '# label = "Work endpoint"',
        '# base_url = "https://llm.example.com/v1"',
        '# model = "qwen3-coder"',
        '# fast_model = "qwen3-8b"',
        "",
    ]
    return "\n".join(lines)
