"""
Unit tests for configuration loading and validation.

Tests strict validation, defaults and environment overrides.
"""

import os
import tempfile

import pytest
import yaml

from scotopia.config.loader import (
    DEFAULT_ADMIN_API_KEY,
    DEFAULT_TIERS,
    AppConfig,
    Mode,
    load_config,
    parse_config,
)
from scotopia.core.privacy import PrivacyTier


class TestConfigLoading:
    """Test configuration loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data, filename: str = "config.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return config_path

    def test_valid_config_loads_correctly(self):
        config_data = {
            "mode": "ethereum",
            "database": {"path": "/tmp/x.db"},
            "privacy": {"tiers": [
                {"name": "Gold", "threshold": 1000},
                {"name": "Silver", "threshold": 50},
            ]},
            "verifier": {"rate_limit_max_events": 3},
            "security": {"admin_api_key": "k"},
            "ethereum": {
                "rpc_url": "http://localhost:8545",
                "contract_address": "0x5FbDB2315678afecb367f032d93F642f64180aa3",
                "chain_id": 31337,
            },
            "mock": {"event_interval_min": 1, "event_interval_max": 2},
        }
        config = load_config(self._write_config(config_data), env={})

        assert config.mode == Mode.ETHEREUM
        assert config.auto_mint is False
        assert config.database_path == "/tmp/x.db"
        assert config.tiers == (PrivacyTier("Gold", 1000.0), PrivacyTier("Silver", 50.0))
        assert config.verifier.rate_limit_max_events == 3
        assert config.verifier.max_age_hours == 24
        assert config.security.admin_api_key == "k"
        assert config.ethereum.chain_id == 31337
        assert config.ethereum.rpc_url == "http://localhost:8545"
        assert config.mock.event_interval_max == 2

    def test_empty_file_uses_defaults(self):
        path = os.path.join(self.temp_dir, "empty.yaml")
        open(path, 'w').close()

        config = load_config(path, env={})
        assert config.mode == Mode.MOCK
        assert config.auto_mint is True
        assert config.tiers == DEFAULT_TIERS
        assert config.security.admin_api_key == DEFAULT_ADMIN_API_KEY

    def test_shipped_default_config_is_valid(self):
        root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
        config = load_config(os.path.join(root, "config", "default.yaml"), env={})
        assert config.mode == Mode.MOCK
        assert [t.name for t in config.tiers] == ["Tier A", "Tier B", "Tier C"]

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError):
            load_config(os.path.join(self.temp_dir, "nope.yaml"), env={})

    def test_invalid_yaml(self):
        path = os.path.join(self.temp_dir, "bad.yaml")
        with open(path, 'w') as f:
            f.write("mode: [unclosed")
        with pytest.raises(yaml.YAMLError):
            load_config(path, env={})

    def test_env_overrides(self):
        path = self._write_config({"mode": "mock", "security": {"admin_api_key": "file-key"}})
        env = {
            "MODE": "solana",
            "DB_PATH": "/data/env.db",
            "SOLANA_RPC_URL": "https://api.devnet.solana.com",
            "HUMIDIFI_PROGRAM_ID": "Prog1111111111111111111111111111111111111",
            "ADMIN_API_KEY": "env-key",
        }
        config = load_config(path, env=env)

        assert config.mode == Mode.SOLANA
        assert config.database_path == "/data/env.db"
        assert config.solana.rpc_url == "https://api.devnet.solana.com"
        assert config.solana.program_id.startswith("Prog")
        assert config.security.admin_api_key == "env-key"


class TestConfigValidation:
    """Test strict validation in parse_config."""

    def test_defaults(self):
        assert parse_config({}) == AppConfig()

    def test_unknown_top_level_key(self):
        with pytest.raises(ValueError, match="Unknown configuration keys"):
            parse_config({"port": 3000})

    def test_unknown_section_key(self):
        with pytest.raises(ValueError, match="Unknown keys in verifier"):
            parse_config({"verifier": {"max_events": 3}})

    def test_invalid_mode(self):
        with pytest.raises(ValueError, match="'mode' must be one of"):
            parse_config({"mode": "bitcoin"})

    def test_mode_is_case_insensitive(self):
        assert parse_config({"mode": "Ethereum"}).mode == Mode.ETHEREUM

    def test_explicit_auto_mint(self):
        assert parse_config({"mode": "ethereum", "auto_mint": True}).auto_mint is True
        assert parse_config({"auto_mint": False}).auto_mint is False
        with pytest.raises(ValueError, match="auto_mint"):
            parse_config({"auto_mint": "yes"})

    def test_section_must_be_mapping(self):
        with pytest.raises(ValueError, match="'verifier' must be a dictionary"):
            parse_config({"verifier": [1, 2]})

    def test_non_numeric_limit(self):
        with pytest.raises(ValueError, match="must be a number"):
            parse_config({"verifier": {"rate_limit_max_events": "ten"}})

    def test_non_positive_limit(self):
        with pytest.raises(ValueError, match="must be > 0"):
            parse_config({"verifier": {"rate_limit_window_seconds": 0}})

    def test_mock_interval_range(self):
        with pytest.raises(ValueError, match="event_interval_max"):
            parse_config({"mock": {"event_interval_min": 10, "event_interval_max": 5}})

    @pytest.mark.parametrize("tiers, message", [
        ([], "non-empty list"),
        ([{"name": "A"}], "threshold"),
        ([{"threshold": 1}], "name"),
        ([{"name": "A", "threshold": -1}], "threshold"),
        ([{"name": "A", "threshold": 1, "color": "red"}], "Unknown keys"),
        ([{"name": "A", "threshold": 1}, {"name": "A", "threshold": 2}], "unique"),
    ])
    def test_invalid_tiers(self, tiers, message):
        with pytest.raises(ValueError, match=message):
            parse_config({"privacy": {"tiers": tiers}})

    def test_direct_config_auto_mint_follows_mode(self):
        """Only the mock chain auto-mints unless told otherwise."""
        assert AppConfig().auto_mint is True
        assert AppConfig(mode=Mode.ETHEREUM).auto_mint is False
        assert AppConfig(mode=Mode.SOLANA).auto_mint is False
        assert AppConfig(mode=Mode.ETHEREUM, auto_mint=True).auto_mint is True
