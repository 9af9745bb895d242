"""Stack configuration management.

Stacks are described by YAML files in the stacks directory:
- stacks/<name>.yaml: definition root, input variables, gate policy,
  provisioning scenarios and tool settings

Resolution order for the stacks directory:
1. $STACK_HARNESS_STACKS environment variable
2. stacks/ in the repository root

Each run gets its own working-state directory under .states/ so parallel
processes never share provider caches or state files.
"""

import os
import re
import time
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

import yaml

from gate import GatePolicy

SCALAR_TYPES = (str, int, float, bool)


class ConfigError(Exception):
    """Configuration error."""


@dataclass(frozen=True)
class StackConfig:
    """Configuration for one infrastructure definition under test.

    Constructed once per run and never mutated; the lifecycle, the validation
    gate and the scenarios all read from the same instance.
    """
    name: str
    tofu_dir: Path
    vars: dict = field(default_factory=dict)
    binary: str = 'terraform'
    no_color: bool = True
    region: str = ''
    gate: GatePolicy = field(default_factory=GatePolicy)
    scenarios: tuple = ()
    run_id: str = ''
    timeout_init: Optional[int] = None
    timeout_apply: Optional[int] = None
    timeout_destroy: Optional[int] = None
    config_file: Optional[Path] = None
    state_root: Optional[Path] = None

    @property
    def aws_region(self) -> str:
        """Region for live assertions: vars.aws_region > region > environment."""
        return str(
            self.vars.get('aws_region')
            or self.region
            or os.environ.get('AWS_REGION')
            or os.environ.get('AWS_DEFAULT_REGION')
            or 'us-east-1'
        )

    @property
    def state_dir(self) -> Path:
        """Per-run state directory (<state root>/<stack>-<run_id>)."""
        root = self.state_root or get_state_root()
        return root / f'{self.name}-{self.run_id}'

    @property
    def data_dir(self) -> Path:
        # TF_DATA_DIR must not contain terraform.tfstate, so keep it one level down
        return self.state_dir / 'data'

    @property
    def state_file(self) -> Path:
        return self.state_dir / 'terraform.tfstate'

    def with_run_id(self, run_id: str) -> 'StackConfig':
        """Return a copy bound to another run id."""
        return replace(self, run_id=_sanitize_run_id(run_id))


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML file and return contents."""
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping at top level")
    return data


def _sanitize_run_id(run_id: str) -> str:
    return re.sub(r'[^A-Za-z0-9_.-]', '-', run_id).strip('-') or 'run'


def default_run_id() -> str:
    """Run id from $STACK_HARNESS_RUN_ID, else <pid>-<timestamp>."""
    env_id = os.environ.get('STACK_HARNESS_RUN_ID')
    if env_id:
        return _sanitize_run_id(env_id)
    return f"{os.getpid()}-{time.strftime('%Y%m%d%H%M%S')}"


def get_base_dir() -> Path:
    """Get the repository root directory."""
    return Path(__file__).parent.parent  # src/ -> repo root


def get_state_root() -> Path:
    """Root for per-run state: $STACK_HARNESS_STATE_DIR or <repo>/.states."""
    if env_path := os.environ.get('STACK_HARNESS_STATE_DIR'):
        return Path(env_path)
    return get_base_dir() / '.states'


def get_stacks_dir() -> Path:
    """Discover the stacks directory.

    Resolution order:
    1. $STACK_HARNESS_STACKS environment variable
    2. <repo>/stacks/
    """
    if env_path := os.environ.get('STACK_HARNESS_STACKS'):
        path = Path(env_path)
        if path.exists():
            return path
        raise ConfigError(f"STACK_HARNESS_STACKS={env_path} does not exist")

    path = get_base_dir() / 'stacks'
    if path.exists():
        return path

    raise ConfigError(
        "stacks directory not found. "
        "Set STACK_HARNESS_STACKS or create stacks/ in the repository root."
    )


def list_stacks() -> list[str]:
    """List available stack names."""
    try:
        stacks_dir = get_stacks_dir()
    except ConfigError:
        return []
    return sorted(p.stem for p in stacks_dir.glob('*.yaml'))


def _parse_vars(raw, path: Path) -> dict:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: 'vars' must be a mapping")
    parsed = {}
    for key, value in raw.items():
        if not isinstance(value, SCALAR_TYPES):
            raise ConfigError(
                f"{path}: variable '{key}' must be a scalar, got {type(value).__name__}"
            )
        parsed[str(key)] = value
    return parsed


def _parse_gate(raw, path: Path) -> GatePolicy:
    if raw is None:
        return GatePolicy()
    if not isinstance(raw, dict):
        raise ConfigError(
            f"{path}: 'gate' must be a mapping (e.g. 'gate: {{env: RUN_INTEGRATION_TESTS}}'), "
            f"got {type(raw).__name__}"
        )
    env = raw.get('env')
    if env is not None and not isinstance(env, str):
        raise ConfigError(f"{path}: 'gate.env' must be an environment variable name")
    return GatePolicy.from_dict(raw)


def _parse_timeout(data: dict, key: str, path: Path) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"{path}: '{key}' must be a positive integer (seconds)")
    return value


def load_stack_file(path: Path, run_id: Optional[str] = None) -> StackConfig:
    """Load a stack configuration from an explicit YAML file."""
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Stack file not found: {path}")

    data = _parse_yaml(path)

    tofu_dir_raw = data.get('tofu_dir')
    if not tofu_dir_raw:
        raise ConfigError(f"{path}: 'tofu_dir' is required")
    tofu_dir = Path(tofu_dir_raw)
    if not tofu_dir.is_absolute():
        tofu_dir = (path.parent / tofu_dir).resolve()

    scenarios = data.get('scenarios') or []
    if not isinstance(scenarios, list) or not all(isinstance(s, str) for s in scenarios):
        raise ConfigError(f"{path}: 'scenarios' must be a list of scenario names")

    binary = os.environ.get('STACK_HARNESS_TOFU_BIN') or str(data.get('binary') or 'terraform')

    return StackConfig(
        name=str(data.get('name') or path.stem),
        tofu_dir=tofu_dir,
        vars=_parse_vars(data.get('vars'), path),
        binary=binary,
        no_color=bool(data.get('no_color', True)),
        region=str(data.get('region') or ''),
        gate=_parse_gate(data.get('gate'), path),
        scenarios=tuple(scenarios),
        run_id=_sanitize_run_id(run_id) if run_id else default_run_id(),
        timeout_init=_parse_timeout(data, 'timeout_init', path),
        timeout_apply=_parse_timeout(data, 'timeout_apply', path),
        timeout_destroy=_parse_timeout(data, 'timeout_destroy', path),
        config_file=path,
    )


def load_stack_config(name: str, run_id: Optional[str] = None) -> StackConfig:
    """Load configuration for a named stack from the stacks directory."""
    stack_file = get_stacks_dir() / f'{name}.yaml'
    if not stack_file.exists():
        available = list_stacks()
        raise ConfigError(
            f"Unknown stack: {name}. Available: {', '.join(available) if available else 'none'}"
        )
    return load_stack_file(stack_file, run_id=run_id)
