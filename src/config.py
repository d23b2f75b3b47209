"""Run context configuration.

Values are merged in this order (later wins):
1. RunContext defaults
2. YAML config file (--config or $EKS_DRIVER_CONFIG)
3. Environment variables (AWS_REGION, AWS_PROFILE, EKS_CLUSTER_NAME, APP_NAMESPACE)
4. CLI overrides

The resulting RunContext is frozen: stages read it, nothing mutates it mid-run.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

import yaml


class ConfigError(Exception):
    """Configuration error."""


# Environment variable -> RunContext field
ENV_OVERRIDES = {
    'AWS_REGION': 'region',
    'AWS_PROFILE': 'profile',
    'EKS_CLUSTER_NAME': 'cluster_name',
    'APP_NAMESPACE': 'namespace',
}

CONFIG_ENV_VAR = 'EKS_DRIVER_CONFIG'


@dataclass(frozen=True)
class RunContext:
    """Read-only settings shared by every stage of a run."""
    region: str = 'eu-west-1'
    profile: str = 'default'
    cluster_name: str = 'demoapp-eks-cluster'
    namespace: str = 'demoapp'
    app_name: str = 'demoapp'

    # Project layout, relative to project_dir
    project_dir: Path = field(default_factory=Path.cwd)
    terraform_dir: str = 'terraform'
    manifests_dir: str = 'k8s'
    dockerfile: str = 'docker/Dockerfile'
    build_context: str = '.'

    # Registry and image
    repository_name: str = 'demoapp'
    image_tags: tuple[str, ...] = ('latest', 'v1.0.0')
    image_placeholder: str = 'demoapp:latest'

    # Externally provisioned endpoints
    ingress_name: str = 'demoapp-ingress'
    app_host: str = 'demoapp.com'
    jenkins_namespace: str = 'jenkins'
    jenkins_service: str = 'jenkins'
    jenkins_port: int = 8080
    vpc_name: str = 'demoapp-vpc'

    # Timeouts (seconds)
    apply_timeout: int = 3600
    rollout_timeout: int = 300
    endpoint_timeout: int = 300
    poll_interval: int = 10

    def __post_init__(self):
        if isinstance(self.project_dir, str):
            object.__setattr__(self, 'project_dir', Path(self.project_dir))
        object.__setattr__(self, 'image_tags', _coerce_tags(self.image_tags))

    @property
    def terraform_path(self) -> Path:
        return self.project_dir / self.terraform_dir

    @property
    def manifests_path(self) -> Path:
        return self.project_dir / self.manifests_dir

    @property
    def dockerfile_path(self) -> Path:
        return self.project_dir / self.dockerfile

    @property
    def build_context_path(self) -> Path:
        return self.project_dir / self.build_context

    @property
    def local_image(self) -> str:
        """Tag given to the locally built image before it is retagged for the registry."""
        return f'{self.app_name}:{self.image_tags[0]}'

    def aws_args(self) -> list[str]:
        """Region/profile flags appended to every aws CLI call."""
        return ['--region', self.region, '--profile', self.profile]

    def env(self) -> dict:
        """Environment overlay for child processes (terraform reads these)."""
        return {'AWS_PROFILE': self.profile, 'AWS_REGION': self.region}

    def registry_host(self, account_id: str) -> str:
        return f'{account_id}.dkr.ecr.{self.region}.amazonaws.com'


_FIELD_TYPES = {f.name: f.type for f in fields(RunContext)}
_INT_FIELDS = {name for name, ftype in _FIELD_TYPES.items() if ftype in (int, 'int')}
_STR_FIELDS = {name for name, ftype in _FIELD_TYPES.items() if ftype in (str, 'str')}


def _parse_yaml(path: Path) -> dict:
    """Parse a YAML file and return its top-level mapping."""
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping, got {type(data).__name__}")
    return data


def _coerce_tags(value) -> tuple[str, ...]:
    """image_tags accepts one tag or a list of tags."""
    tags = [value] if isinstance(value, str) else value
    if not isinstance(tags, (list, tuple)) or not all(isinstance(t, str) and t.strip() for t in tags):
        raise ConfigError(f"image_tags must be a tag or a list of tags, got {value!r}")
    if not tags:
        raise ConfigError("image_tags must contain at least one tag")
    return tuple(tags)


def _coerce(values: dict) -> dict:
    """Validate keys and coerce simple types."""
    unknown = sorted(set(values) - set(_FIELD_TYPES))
    if unknown:
        raise ConfigError(
            f"Unknown config keys: {', '.join(unknown)}\n"
            f"  Valid keys: {', '.join(sorted(_FIELD_TYPES))}"
        )
    coerced = dict(values)
    for key in _INT_FIELDS & set(coerced):
        try:
            coerced[key] = int(coerced[key])
        except (TypeError, ValueError) as e:
            raise ConfigError(f"{key} must be an integer, got {coerced[key]!r}") from e
    for key in _STR_FIELDS & set(coerced):
        if not isinstance(coerced[key], str) or not coerced[key].strip():
            raise ConfigError(f"{key} must be a non-empty string, got {coerced[key]!r}")
    if 'image_tags' in coerced:
        coerced['image_tags'] = _coerce_tags(coerced['image_tags'])
    if 'project_dir' in coerced:
        if not isinstance(coerced['project_dir'], (str, Path)) or not str(coerced['project_dir']).strip():
            raise ConfigError(f"project_dir must be a path, got {coerced['project_dir']!r}")
        coerced['project_dir'] = Path(coerced['project_dir']).expanduser()
    return coerced


def load_config_file(path: Path) -> dict:
    """Load settings from a YAML config file."""
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    return _coerce(_parse_yaml(path))


def load_run_context(
    config_file: Optional[Path] = None,
    overrides: Optional[dict] = None,
    environ: Optional[dict] = None,
) -> RunContext:
    """Build the RunContext for a run.

    Args:
        config_file: YAML file; falls back to $EKS_DRIVER_CONFIG
        overrides: CLI values (None entries are ignored)
        environ: Environment mapping (defaults to os.environ)
    """
    environ = os.environ if environ is None else environ
    values: dict = {}

    if config_file is None and environ.get(CONFIG_ENV_VAR):
        config_file = Path(environ[CONFIG_ENV_VAR])
    if config_file is not None:
        values.update(load_config_file(Path(config_file)))
        # Relative project_dir in the file is relative to the file itself
        if 'project_dir' in values and not values['project_dir'].is_absolute():
            values['project_dir'] = Path(config_file).parent / values['project_dir']

    for var, key in ENV_OVERRIDES.items():
        if value := environ.get(var):
            values[key] = value

    values.update(_coerce({k: v for k, v in (overrides or {}).items() if v is not None}))

    try:
        return RunContext(**values)
    except TypeError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
