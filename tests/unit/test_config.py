"""
Unit tests for settings loading.
"""

import json

import pytest

from delegate_tracker.shared.config import DelegateConfig, Settings
from delegate_tracker.shared.exceptions import ConfigurationException

ENV_VARS = [
    "DT_DATA_DIR",
    "DT_CONFIG_FILE",
    "DT_RPC_URL",
    "DT_CHAIN_ID",
    "DT_TOKEN_ADDRESS",
    "DT_BATCH_SIZE",
    "DT_DEFAULT_START_BLOCK",
    "DT_SHORT_TTL",
    "DT_LONG_TTL",
    "DT_SNAPSHOT_URL",
    "DT_SNAPSHOT_SPACE",
    "DT_CORE_GOVERNOR",
    "DT_TREASURY_GOVERNOR",
    "DT_GOVERNOR_START_BLOCK",
]

TOKEN = "0x" + "77" * 20


@pytest.fixture
def env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    missing_env_file = str(tmp_path / "missing.env")

    def load():
        return Settings.from_env(env_file=missing_env_file)

    return monkeypatch, load


@pytest.fixture
def config_file(tmp_path, delegate_address):
    path = tmp_path / "delegates.json"
    path.write_text(
        json.dumps(
            {
                "chainId": 42161,
                "tokenAddress": TOKEN,
                "snapshotSpace": "example.eth",
                "governorStartBlock": 16_500_000,
                "delegates": [
                    {
                        "address": "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed",
                        "name": "Example",
                        "startBlock": 17_000_000,
                    }
                ],
            }
        )
    )
    return str(path)


class TestSettings:
    def test_defaults(self, env):
        _, load = env
        settings = load()

        assert settings.data_dir == "data"
        assert settings.rpc_url is None
        assert settings.token_address is None
        assert settings.batch_size == 10_000
        assert settings.short_ttl == 30
        assert settings.long_ttl == 60
        assert settings.delegates == []
        assert settings.governor_start_block == 0

    def test_reads_environment(self, env):
        monkeypatch, load = env
        monkeypatch.setenv("DT_DATA_DIR", "/var/lib/delegates")
        monkeypatch.setenv("DT_RPC_URL", "http://localhost:8545")
        monkeypatch.setenv("DT_TOKEN_ADDRESS", TOKEN.upper().replace("0X", "0x"))
        monkeypatch.setenv("DT_BATCH_SIZE", "500")
        monkeypatch.setenv("DT_SHORT_TTL", "5")

        settings = load()

        assert settings.data_dir == "/var/lib/delegates"
        assert settings.rpc_url == "http://localhost:8545"
        assert settings.token_address == TOKEN
        assert settings.batch_size == 500
        assert settings.short_ttl == 5.0

    def test_reads_config_file(self, env, config_file, delegate_address):
        monkeypatch, load = env
        monkeypatch.setenv("DT_CONFIG_FILE", config_file)

        settings = load()

        assert settings.chain_id == 42161
        assert settings.token_address == TOKEN
        assert settings.snapshot_space == "example.eth"
        assert settings.delegates == [
            DelegateConfig(
                address=delegate_address, name="Example", start_block=17_000_000
            )
        ]
        assert settings.start_block_for(delegate_address) == 17_000_000
        assert settings.start_block_for("0x" + "12" * 20) == 0
        assert settings.governor_start_block == 16_500_000

    def test_environment_wins_over_file(self, env, config_file):
        monkeypatch, load = env
        monkeypatch.setenv("DT_CONFIG_FILE", config_file)
        monkeypatch.setenv("DT_CHAIN_ID", "1")
        monkeypatch.setenv("DT_SNAPSHOT_SPACE", "other.eth")

        settings = load()
        assert settings.chain_id == 1
        assert settings.snapshot_space == "other.eth"

    def test_governor_start_defaults_to_default_start(self, env):
        monkeypatch, load = env
        monkeypatch.setenv("DT_DEFAULT_START_BLOCK", "12000000")

        assert load().governor_start_block == 12_000_000

        monkeypatch.setenv("DT_GOVERNOR_START_BLOCK", "15000000")
        assert load().governor_start_block == 15_000_000

    @pytest.mark.parametrize(
        "name,value",
        [
            ("DT_BATCH_SIZE", "0"),
            ("DT_BATCH_SIZE", "ten"),
            ("DT_DEFAULT_START_BLOCK", "-1"),
            ("DT_LONG_TTL", "soon"),
            ("DT_TOKEN_ADDRESS", "0x1234"),
            ("DT_CORE_GOVERNOR", "governor"),
            ("DT_GOVERNOR_START_BLOCK", "genesis"),
        ],
    )
    def test_invalid_values(self, env, name, value):
        monkeypatch, load = env
        monkeypatch.setenv(name, value)

        with pytest.raises(ConfigurationException):
            load()

    def test_missing_config_file(self, env, tmp_path):
        monkeypatch, load = env
        monkeypatch.setenv("DT_CONFIG_FILE", str(tmp_path / "nope.json"))

        with pytest.raises(ConfigurationException):
            load()

    def test_invalid_delegate_entry(self, env, tmp_path):
        monkeypatch, load = env
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"delegates": [{"name": "No address"}]}))
        monkeypatch.setenv("DT_CONFIG_FILE", str(path))

        with pytest.raises(ConfigurationException):
            load()
