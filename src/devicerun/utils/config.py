"""Configuration management: built-in defaults < devicerun.yaml < environment < CLI"""
import copy
import yaml
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from devicerun.core.protocols import ConfigLoader

DEFAULT_CONFIG_FILE = "devicerun.yaml"
DEFAULT_LOG_PORT = 9632

DEFAULTS: Dict[str, Any] = {
    'workspace': {
        'root': '.',
        'crate': 'gpui_ios_app',
    },
    'xcode': {
        'project': 'ios/hello-world/GPUIiOSHello.xcodeproj',
        'scheme': 'GPUIiOSHello',
        'spec': 'ios/hello-world/project.yml',
        'app_name': 'GPUIiOSHello',
        'derived_data': 'ios/hello-world/build',
    },
    'app': {
        'bundle_id': 'dev.glasshq.GPUIiOSHello',
    },
    'signing': {
        'team_id': None,
    },
    'relay': {
        'port': DEFAULT_LOG_PORT,
        'env_var': 'GPUI_LOG_RELAY',
        'stop_timeout': 5.0,
    },
    'build': {
        'artifact_dir': 'target/devicerun',
        'universal_simulator': False,
    },
}

# Environment variable → (section, key)
ENV_OVERRIDES = {
    'DEVELOPMENT_TEAM': ('signing', 'team_id'),
    'DEVICERUN_LOG_PORT': ('relay', 'port'),
    'DEVICERUN_LOG_RELAY': ('relay', 'address'),
}


@dataclass(frozen=True)
class DeployConfig:
    """Resolved configuration for one invocation."""
    workspace_root: Path
    crate: str
    xcode_project: Path
    xcode_scheme: str
    xcode_spec: Path
    app_name: str
    derived_data: Path
    bundle_id: str
    team_id: Optional[str]
    log_port: int
    relay_env_var: str
    relay_address: Optional[str]
    stop_timeout: float
    artifact_dir: Path
    universal_simulator: bool

    @property
    def library_name(self) -> str:
        """Static library file cargo produces for the crate."""
        return f"lib{self.crate}.a"


def _merge(base: Dict[str, Any], overrides: Mapping[str, Any], origin: str) -> None:
    """Merge a two-level mapping into base in place."""
    for section, values in overrides.items():
        if values is None:
            continue
        if not isinstance(values, Mapping):
            raise ValueError(f"{origin}: section '{section}' must be a mapping, got {type(values).__name__}")
        base.setdefault(section, {}).update(values)


def _parse_port(value: Any, origin: str) -> int:
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{origin}: invalid log port {value!r}")
    if not 0 < port < 65536:
        raise ValueError(f"{origin}: log port {port} out of range (1-65535)")
    return port


def load_config(
    loader: ConfigLoader,
    path: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    file_exists=None
) -> DeployConfig:
    """
    Load configuration with overrides applied.

    Args:
        loader: YAML loader
        path: Explicit config file (must exist); default devicerun.yaml if present
        env: Environment variables to honour (DEVELOPMENT_TEAM, DEVICERUN_LOG_PORT,
            DEVICERUN_LOG_RELAY)
        file_exists: Predicate used to check for the default config file

    Returns:
        DeployConfig with paths resolved against workspace.root

    Raises:
        ValueError: Unreadable or malformed config file, or invalid values
    """
    config = copy.deepcopy(DEFAULTS)
    file_exists = file_exists or (lambda p: Path(p).is_file())

    config_path = path
    if config_path is None and file_exists(DEFAULT_CONFIG_FILE):
        config_path = DEFAULT_CONFIG_FILE

    if config_path is not None:
        try:
            data = loader.load_yaml(config_path)
        except OSError as e:
            raise ValueError(f"Cannot read config file {config_path}: {e}")
        except yaml.YAMLError as e:
            raise ValueError(f"{config_path}: invalid YAML: {e}")
        if not isinstance(data, Mapping):
            raise ValueError(f"{config_path}: top level must be a mapping")
        _merge(config, data, config_path)

    for var, (section, key) in ENV_OVERRIDES.items():
        value = (env or {}).get(var)
        if value:
            config[section][key] = value

    root = Path(config['workspace']['root'])

    def _resolve(value: str) -> Path:
        p = Path(value)
        return p if p.is_absolute() else root / p

    origin = config_path or "configuration"
    return DeployConfig(
        workspace_root=root,
        crate=str(config['workspace']['crate']),
        xcode_project=_resolve(config['xcode']['project']),
        xcode_scheme=str(config['xcode']['scheme']),
        xcode_spec=_resolve(config['xcode']['spec']),
        app_name=str(config['xcode']['app_name']),
        derived_data=_resolve(config['xcode']['derived_data']),
        bundle_id=str(config['app']['bundle_id']),
        team_id=config['signing'].get('team_id') or None,
        log_port=_parse_port(config['relay']['port'], origin),
        relay_env_var=str(config['relay']['env_var']),
        relay_address=config['relay'].get('address') or None,
        stop_timeout=float(config['relay']['stop_timeout']),
        artifact_dir=_resolve(config['build']['artifact_dir']),
        universal_simulator=bool(config['build']['universal_simulator']),
    )
