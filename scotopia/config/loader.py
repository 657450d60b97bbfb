"""
Configuration management and loading.

Handles application settings and environment variables.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from scotopia.core.privacy import PrivacyTier
from scotopia.core.verifier import VerifierConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/default.yaml"
DEFAULT_ADMIN_API_KEY = "default-admin-key"


class Mode(Enum):
    """Which chain the deposit source and minting capability talk to."""
    MOCK = "mock"
    ETHEREUM = "ethereum"
    SOLANA = "solana"


@dataclass(frozen=True)
class EthereumConfig:
    """Ethereum endpoint and attestation contract."""
    rpc_url: str = ""
    contract_address: str = ""
    chain_id: int = 1
    poll_interval: float = 5.0
    receipt_timeout: float = 120.0

    def __post_init__(self):
        """Validate timing values are positive."""
        if self.poll_interval <= 0:
            raise ValueError("ethereum.poll_interval must be > 0")
        if self.receipt_timeout <= 0:
            raise ValueError("ethereum.receipt_timeout must be > 0")


@dataclass(frozen=True)
class SolanaConfig:
    """Solana endpoint and watched program."""
    rpc_url: str = ""
    program_id: str = ""
    poll_interval: float = 10.0

    def __post_init__(self):
        """Validate timing values are positive."""
        if self.poll_interval <= 0:
            raise ValueError("solana.poll_interval must be > 0")


@dataclass(frozen=True)
class MockConfig:
    """Delay range, in seconds, between generated mock deposits."""
    event_interval_min: float = 5.0
    event_interval_max: float = 15.0

    def __post_init__(self):
        """Validate the interval range."""
        if self.event_interval_min <= 0:
            raise ValueError("mock.event_interval_min must be > 0")
        if self.event_interval_max < self.event_interval_min:
            raise ValueError("mock.event_interval_max must be >= event_interval_min")


@dataclass(frozen=True)
class SecurityConfig:
    """Credentials for administrative operations."""
    admin_api_key: str = DEFAULT_ADMIN_API_KEY


DEFAULT_TIERS = (
    PrivacyTier(name="Tier A", threshold=100.0),
    PrivacyTier(name="Tier B", threshold=10.0),
    PrivacyTier(name="Tier C", threshold=1.0),
)


@dataclass(frozen=True)
class AppConfig:
    """Complete application configuration.

    Each component receives only its own section.
    """
    mode: Mode = Mode.MOCK
    auto_mint: Optional[bool] = None
    database_path: str = "data/scotopia.db"
    tiers: Tuple[PrivacyTier, ...] = DEFAULT_TIERS
    verifier: VerifierConfig = field(default_factory=VerifierConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    ethereum: EthereumConfig = field(default_factory=EthereumConfig)
    solana: SolanaConfig = field(default_factory=SolanaConfig)
    mock: MockConfig = field(default_factory=MockConfig)

    def __post_init__(self):
        """Auto-mint defaults to on only for the mock chain."""
        if self.auto_mint is None:
            object.__setattr__(self, 'auto_mint', self.mode == Mode.MOCK)


_SECTION_KEYS = {
    'database': {'path'},
    'privacy': {'tiers'},
    'verifier': {
        'max_age_hours', 'max_future_skew_seconds', 'min_wallet_length',
        'rate_limit_window_seconds', 'rate_limit_max_events'
    },
    'security': {'admin_api_key'},
    'ethereum': {'rpc_url', 'contract_address', 'chain_id', 'poll_interval', 'receipt_timeout'},
    'solana': {'rpc_url', 'program_id', 'poll_interval'},
    'mock': {'event_interval_min', 'event_interval_max'},
}
_TOP_LEVEL_KEYS = {'mode', 'auto_mint'} | set(_SECTION_KEYS)

# Environment variable -> (section, key)
_ENV_OVERRIDES = {
    'DB_PATH': ('database', 'path'),
    'ETH_RPC_URL': ('ethereum', 'rpc_url'),
    'ETH_CONTRACT_ADDRESS': ('ethereum', 'contract_address'),
    'SOLANA_RPC_URL': ('solana', 'rpc_url'),
    'HUMIDIFI_PROGRAM_ID': ('solana', 'program_id'),
    'ADMIN_API_KEY': ('security', 'admin_api_key'),
}


def load_config(path: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Load and validate application configuration.

    Values come from the YAML file, then environment variables override
    them. Without an explicit path, config/default.yaml is used when it
    exists and built-in defaults otherwise.

    Args:
        path: Path to YAML configuration file
        env: Environment mapping, os.environ when omitted

    Returns:
        Validated AppConfig object

    Raises:
        FileNotFoundError: If an explicit config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    env = os.environ if env is None else env

    if path is not None:
        raw_config = _read_yaml(Path(path))
    elif Path(DEFAULT_CONFIG_PATH).exists():
        raw_config = _read_yaml(Path(DEFAULT_CONFIG_PATH))
    else:
        raw_config = {}

    _apply_env_overrides(raw_config, env)
    return parse_config(raw_config)


def _read_yaml(config_path: Path) -> Dict[str, Any]:
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {config_path}: {e}")

    if raw_config is None:
        return {}
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration file must contain a mapping")
    return raw_config


def _apply_env_overrides(raw_config: Dict[str, Any], env: Mapping[str, str]) -> None:
    if env.get('MODE'):
        raw_config['mode'] = env['MODE']

    for var, (section, key) in _ENV_OVERRIDES.items():
        value = env.get(var)
        if not value:
            continue
        section_data = raw_config.get(section)
        if section_data is None:
            section_data = raw_config[section] = {}
        if not isinstance(section_data, dict):
            raise ValueError(f"'{section}' must be a dictionary")
        section_data[key] = value


def parse_config(raw_config: Dict[str, Any]) -> AppConfig:
    """Validate a raw configuration mapping and build AppConfig.

    Raises:
        ValueError: If configuration is invalid
    """
    unknown_keys = set(raw_config.keys()) - _TOP_LEVEL_KEYS
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    sections = {name: _section(raw_config, name) for name in _SECTION_KEYS}

    mode_str = raw_config.get('mode', Mode.MOCK.value)
    if not isinstance(mode_str, str):
        raise ValueError("'mode' must be a string")
    try:
        mode = Mode(mode_str.lower())
    except ValueError:
        valid_modes = [m.value for m in Mode]
        raise ValueError(f"'mode' must be one of: {valid_modes}")

    auto_mint = raw_config.get('auto_mint')
    if auto_mint is not None and not isinstance(auto_mint, bool):
        raise ValueError("'auto_mint' must be true or false")

    tiers = _parse_tiers(sections['privacy'].get('tiers'))

    admin_api_key = sections['security'].get('admin_api_key')
    if not admin_api_key:
        logger.warning("No admin API key configured, falling back to the default key")
        admin_api_key = DEFAULT_ADMIN_API_KEY

    return AppConfig(
        mode=mode,
        auto_mint=auto_mint,
        database_path=str(sections['database'].get('path', AppConfig.database_path)),
        tiers=tiers,
        verifier=VerifierConfig(**_numbers(sections['verifier'], 'verifier')),
        security=SecurityConfig(admin_api_key=str(admin_api_key)),
        ethereum=EthereumConfig(
            rpc_url=str(sections['ethereum'].get('rpc_url') or ""),
            contract_address=str(sections['ethereum'].get('contract_address') or ""),
            **_numbers(sections['ethereum'], 'ethereum', exclude={'rpc_url', 'contract_address'})
        ),
        solana=SolanaConfig(
            rpc_url=str(sections['solana'].get('rpc_url') or ""),
            program_id=str(sections['solana'].get('program_id') or ""),
            **_numbers(sections['solana'], 'solana', exclude={'rpc_url', 'program_id'})
        ),
        mock=MockConfig(**_numbers(sections['mock'], 'mock')),
    )


def _section(raw_config: Dict[str, Any], name: str) -> Dict[str, Any]:
    data = raw_config.get(name) or {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")

    unknown_keys = set(data.keys()) - _SECTION_KEYS[name]
    if unknown_keys:
        raise ValueError(f"Unknown keys in {name}: {unknown_keys}")
    return data


def _numbers(data: Dict[str, Any], path: str, exclude=frozenset()) -> Dict[str, Any]:
    """Check that every non-excluded value in a section is numeric."""
    values = {}
    for key, value in data.items():
        if key in exclude:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"'{key}' in {path} must be a number")
        values[key] = value
    return values


def _parse_tiers(tiers_data: Any) -> Tuple[PrivacyTier, ...]:
    """Parse and validate the privacy tier table.

    Raises:
        ValueError: If the table is malformed or has duplicate names
    """
    if tiers_data is None:
        return DEFAULT_TIERS
    if not isinstance(tiers_data, list) or not tiers_data:
        raise ValueError("'privacy.tiers' must be a non-empty list")

    tiers = []
    for i, tier_data in enumerate(tiers_data):
        path = f"privacy.tiers[{i}]"
        if not isinstance(tier_data, dict):
            raise ValueError(f"{path} must be a dictionary")

        unknown_keys = set(tier_data.keys()) - {'name', 'threshold'}
        if unknown_keys:
            raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

        name = tier_data.get('name')
        if not isinstance(name, str) or not name.strip():
            raise ValueError(f"Missing required 'name' in {path}")

        threshold = tier_data.get('threshold')
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)) or threshold < 0:
            raise ValueError(f"'threshold' in {path} must be a number >= 0")

        tiers.append(PrivacyTier(name=name, threshold=float(threshold)))

    names = [tier.name for tier in tiers]
    if len(set(names)) != len(names):
        raise ValueError("Privacy tier names must be unique")

    return tuple(tiers)
