"""
Run configuration.

Design goals:
- Strong typing
- Strict validation at construction
- Environment and YAML overrides with one precedence order:
  CLI flag > environment > config file > default
- Schema versioning for config files
"""

from __future__ import annotations

import math
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from .core.errors import ErrorCode, InvalidInvocationError

DEFAULT_RUNNER_COMMAND: Tuple[str, ...] = (
    "cargo", "run", "--quiet", "--manifest-path", "crates/wpt-runner/Cargo.toml",
)
DEFAULT_VARIANTS: Tuple[str, ...] = ("cpu",)
CONFIG_VERSION = 1

ENV_WPT_DIR = "WPT_DIR"
ENV_RUNNER_CMD = "WEBNN_RUNNER_CMD"
ENV_GIT_SHA = "RUSTNN_GIT_SHA"
ENV_GIT_URL = "RUSTNN_GIT_URL"


def _config_error(message: str) -> InvalidInvocationError:
    return InvalidInvocationError(message, error_code=ErrorCode.INVALID_CONFIG)


# ================================
# Runner
# ================================


@dataclass(frozen=True)
class RunnerConfig:
    """
    How to launch the backend process.
    """

    command: Tuple[str, ...] = DEFAULT_RUNNER_COMMAND
    cwd: Optional[Path] = None
    env: Dict[str, str] = field(default_factory=dict)
    # Prepended to DYLD_LIBRARY_PATH, e.g. an onnxruntime lib dir.
    library_paths: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "command", tuple(str(c) for c in self.command))
        object.__setattr__(self, "library_paths", tuple(str(p) for p in self.library_paths))
        if self.cwd is not None:
            object.__setattr__(self, "cwd", Path(self.cwd))
        if not self.command:
            raise _config_error("Runner command must be non-empty.")

    def build_env(self, base: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        env = dict(os.environ if base is None else base)
        env.update({k: str(v) for k, v in self.env.items()})
        if self.library_paths:
            existing = env.get("DYLD_LIBRARY_PATH", "")
            parts = list(self.library_paths) + ([existing] if existing else [])
            env["DYLD_LIBRARY_PATH"] = os.pathsep.join(parts)
        return env

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "RunnerConfig":
        command = raw.get("command", DEFAULT_RUNNER_COMMAND)
        if isinstance(command, str):
            command = shlex.split(command)
        env = raw.get("env") or {}
        if not isinstance(env, Mapping):
            raise _config_error("runner.env must be a mapping.")
        return cls(
            command=tuple(command),
            cwd=Path(raw["cwd"]) if raw.get("cwd") else None,
            env={str(k): str(v) for k, v in env.items()},
            library_paths=tuple(raw.get("library_paths") or ()),
        )


# ================================
# Run options
# ================================


def default_wpt_dir() -> Path:
    return Path(os.environ.get(ENV_WPT_DIR) or Path.cwd() / ".cache" / "wpt")


def parse_variants(text: str) -> Tuple[str, ...]:
    """``"cpu, gpu"`` -> ``("cpu", "gpu")``."""
    return tuple(part.strip() for part in text.split(",") if part.strip())


def _limit(value: Optional[float], name: str) -> float:
    if value is None:
        return math.inf
    if value != math.inf and (value < 1 or int(value) != value):
        raise _config_error(f"{name} must be a positive integer, got {value}.")
    return value


@dataclass(frozen=True)
class RunOptions:
    wpt_dir: Path = field(default_factory=default_wpt_dir)
    op: Optional[str] = None
    file: Optional[str] = None
    limit_tests: float = math.inf
    limit_files: float = math.inf
    variants: Tuple[str, ...] = DEFAULT_VARIANTS
    skip_unimplemented: bool = False
    stop_on_fail: bool = False
    report_json: Optional[Path] = None
    report_html: Optional[Path] = None
    exit_zero: bool = False

    def __post_init__(self):
        object.__setattr__(self, "wpt_dir", Path(self.wpt_dir))
        object.__setattr__(self, "limit_tests", _limit(self.limit_tests, "limit_tests"))
        object.__setattr__(self, "limit_files", _limit(self.limit_files, "limit_files"))

        variants = self.variants
        if isinstance(variants, str):
            variants = parse_variants(variants)
        variants = tuple(variants)
        if not variants or not all(isinstance(v, str) and v for v in variants):
            raise _config_error("At least one non-empty variant is required.")
        object.__setattr__(self, "variants", variants)

        for name in ("report_json", "report_html"):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, Path(value))

    def to_dict(self) -> Dict[str, Any]:
        """Report-meta form; unlimited limits serialize as null."""
        def number_or_none(value: float) -> Optional[int]:
            return int(value) if math.isfinite(value) else None

        return {
            "wptDir": str(self.wpt_dir),
            "op": self.op,
            "file": self.file,
            "limitTests": number_or_none(self.limit_tests),
            "limitFiles": number_or_none(self.limit_files),
            "variants": list(self.variants),
            "skipUnimplemented": self.skip_unimplemented,
            "stopOnFail": self.stop_on_fail,
            "reportJson": str(self.report_json) if self.report_json else None,
            "reportHtml": str(self.report_html) if self.report_html else None,
            "exitZero": self.exit_zero,
        }


# ================================
# Config file
# ================================

_RUN_KEYS = {
    "wpt_dir", "op", "file", "limit_tests", "limit_files", "variants",
    "skip_unimplemented", "stop_on_fail", "report_json", "report_html", "exit_zero",
}


@dataclass(frozen=True)
class ConformanceConfig:
    """Parsed config file: runner section plus run defaults."""

    runner: RunnerConfig = field(default_factory=RunnerConfig)
    run_defaults: Dict[str, Any] = field(default_factory=dict)


def load_config_file(path: Path) -> ConformanceConfig:
    """
    Load a YAML config file.

        version: 1
        runner:
          command: [cargo, run, --quiet, --manifest-path, crates/wpt-runner/Cargo.toml]
          library_paths: [../rustnn/target/onnxruntime/lib]
        run:
          variants: [cpu, gpu]
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except OSError as exc:
        raise _config_error(f"Cannot read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise _config_error(f"Invalid YAML in config file {path}: {exc}") from exc

    if not isinstance(raw, Mapping):
        raise _config_error(f"Config file {path} must contain a mapping.")

    version = raw.get("version", CONFIG_VERSION)
    if version != CONFIG_VERSION:
        raise _config_error(
            f"Unsupported config version: {version}. Expected version {CONFIG_VERSION}."
        )

    runner_raw = raw.get("runner") or {}
    run_raw = raw.get("run") or {}
    if not isinstance(runner_raw, Mapping) or not isinstance(run_raw, Mapping):
        raise _config_error(f"'runner' and 'run' in {path} must be mappings.")

    unknown = set(run_raw) - _RUN_KEYS
    if unknown:
        raise _config_error(f"Unknown run option(s) in {path}: {', '.join(sorted(unknown))}")

    return ConformanceConfig(
        runner=RunnerConfig.from_mapping(runner_raw),
        run_defaults=dict(run_raw),
    )


def resolve_runner_config(
    config: Optional[ConformanceConfig] = None,
    runner_cmd: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> RunnerConfig:
    """Apply the command override from the CLI flag or WEBNN_RUNNER_CMD."""
    environ = os.environ if environ is None else environ
    runner = config.runner if config else RunnerConfig()

    override = runner_cmd or environ.get(ENV_RUNNER_CMD)
    if override:
        command = shlex.split(override)
        if not command:
            raise _config_error("Runner command override is empty.")
        runner = RunnerConfig(
            command=tuple(command),
            cwd=runner.cwd,
            env=runner.env,
            library_paths=runner.library_paths,
        )
    return runner


def build_run_options(
    cli_values: Mapping[str, Any],
    config: Optional[ConformanceConfig] = None,
) -> RunOptions:
    """Merge CLI values (None means unset) over config-file defaults."""
    merged: Dict[str, Any] = dict(config.run_defaults) if config else {}
    merged.update({k: v for k, v in cli_values.items() if v is not None})
    try:
        return RunOptions(**merged)
    except TypeError as exc:
        raise _config_error(f"Invalid run options: {exc}") from exc


def backend_provenance(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Optional[str]]:
    environ = os.environ if environ is None else environ
    return {
        "commit": environ.get(ENV_GIT_SHA),
        "commitUrl": environ.get(ENV_GIT_URL),
    }


__all__ = [
    "DEFAULT_RUNNER_COMMAND",
    "RunnerConfig",
    "RunOptions",
    "ConformanceConfig",
    "default_wpt_dir",
    "parse_variants",
    "load_config_file",
    "resolve_runner_config",
    "build_run_options",
    "backend_provenance",
]
