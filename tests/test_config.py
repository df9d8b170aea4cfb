# MIT License
# Copyright (c) 2025 Hashborn

import pytest
import yaml

from tanglewallet.protocol.config.params import (
    DEFAULT_PROVIDER, MIN_WEIGHT_MAGNITUDE, WalletConfig, config_from_dict, load_config
)
from tanglewallet.protocol.types.common import ConfigError


def write_config(tmp_path, data):
    path = tmp_path / "tanglewallet.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


def test_load_section(tmp_path):
    path = write_config(tmp_path, {
        "provider": "http://node.example:14265",
        "min_weight_magnitude": 15,
        "wallets": {
            "savings": {
                "seed": "MYSEED",
                "database_file": "savings.db",
                "address_security_level": 3,
                "address_index_new_address_start": 40,
                "address_index_search_balances_start": 12,
                "replay_poll_interval": 30,
            },
        },
    })

    config = load_config(path, "savings")

    assert config.name == "savings"
    assert config.seed == "MYSEED"
    assert config.provider == "http://node.example:14265"
    assert config.min_weight_magnitude == 15
    assert config.database_file == "savings.db"
    assert config.security_level == 3
    assert config.new_address_floor == 40
    assert config.search_floor == 12
    assert config.replay_poll_interval == 30
    assert config.max_auto_replays == 100


def test_defaults():
    config = config_from_dict({"wallets": {"w": {"seed": "S"}}}, "w")
    assert config.provider == DEFAULT_PROVIDER
    assert config.min_weight_magnitude == MIN_WEIGHT_MAGNITUDE
    assert config.security_level == 2
    assert config.new_address_floor == 0
    assert config.search_floor == 0
    assert config.signer is None


def test_section_overrides_provider():
    config = config_from_dict({
        "provider": "http://a:14265",
        "wallets": {"w": {"seed": "S", "provider": "http://b:14265"}},
    }, "w")
    assert config.provider == "http://b:14265"


@pytest.mark.parametrize("data", [
    {},
    {"wallets": {"other": {"seed": "S"}}},
    {"wallets": {"w": {"database_file": "x.db"}}},
    {"wallets": {"w": {"seed": "S", "sead": "typo"}}},
    {"wallets": {"w": {"seed": "S", "address_security_level": 4}}},
    {"wallets": {"w": {"seed": "S", "address_index_search_balances_start": -1}}},
])
def test_invalid_config(data):
    with pytest.raises(ConfigError):
        config_from_dict(data, "w")


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        load_config(str(tmp_path / "missing.yaml"), "w")


def test_broken_yaml(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("wallets: [unclosed")
    with pytest.raises(ConfigError):
        load_config(str(path), "w")


def test_repr_hides_seed():
    assert "SECRETSEED" not in repr(WalletConfig(seed="SECRETSEED"))
