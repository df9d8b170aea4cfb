# MIT License
# Copyright (c) 2025 Hashborn

import json
import pytest
import yaml

from tanglewallet.cli.main import build_parser, main, setup_logging
from tanglewallet.protocol.types.common import AddressStatus
from tanglewallet.wallet.storage.db import AddressStore
from conftest import put


@pytest.fixture
def wallet_files(tmp_path, monkeypatch):
    monkeypatch.delenv("TANGLEWALLET_NODE", raising=False)
    db_path = tmp_path / "cli.db"
    config_path = tmp_path / "tanglewallet.yaml"
    config_path.write_text(yaml.safe_dump({
        "wallets": {"cli": {"seed": "CLISEED", "database_file": str(db_path), "debug_level": 0}},
    }))
    return str(config_path), str(db_path)


def run_cli(capsys, config_path, *argv):
    code = main(["--config", config_path, "--wallet", "cli", *argv])
    return code, json.loads(capsys.readouterr().out)


def seed_db(db_path):
    store = AddressStore(db_path)
    put(store, 0, balance=0, status=AddressStatus.EXHAUSTED)
    put(store, 1, balance=30, status=AddressStatus.USED)
    put(store, 2, balance=12, status=AddressStatus.USED)
    put(store, 3, balance=0, status=AddressStatus.NEW)
    store.close()


def test_show_balance(capsys, wallet_files):
    config_path, db_path = wallet_files
    seed_db(db_path)

    code, out = run_cli(capsys, config_path, "show-balance")

    assert code == 0
    assert out == {"totalBalance": 42, "unit": "iota", "status": "ok"}


def test_show_balance_of_empty_wallet(capsys, wallet_files):
    config_path, _ = wallet_files

    code, out = run_cli(capsys, config_path, "show-balance")

    assert code == 1
    assert out["status"] == "error"
    assert out["kind"] == "ValidationError"


def test_get_address_indexes(capsys, wallet_files):
    config_path, db_path = wallet_files
    seed_db(db_path)

    code, out = run_cli(capsys, config_path, "get-address-indexes")

    assert code == 0
    assert out["addressIndexSeachBalancesStart"] == 1
    assert out["addressIndexNewAddressStart"] == 2


def test_show_db(capsys, wallet_files):
    config_path, db_path = wallet_files
    seed_db(db_path)

    _, out = run_cli(capsys, config_path, "show-db")
    assert [a["index"] for a in out["addresses"]] == [0, 1, 2]

    _, out = run_cli(capsys, config_path, "show-db", "--entire")
    assert [a["index"] for a in out["addresses"]] == [0, 1, 2, 3]
    assert out["addresses"][3]["status"] == "new"


def test_invalid_arguments_fail_before_node_calls(capsys, wallet_files):
    config_path, _ = wallet_files

    code, out = run_cli(capsys, config_path, "get-confirmation-state", "NOTAHASH")
    assert code == 1
    assert out["kind"] == "ValidationError"

    code, out = run_cli(capsys, config_path, "replay", "bad-address")
    assert out["kind"] == "ValidationError"


def test_sync_without_signer(capsys, wallet_files):
    config_path, _ = wallet_files

    code, out = run_cli(capsys, config_path, "sync", "--end", "2")

    assert code == 1
    assert out["kind"] == "ConfigError"


def test_auto_replay_refuses_public_nodes(capsys, wallet_files):
    config_path, _ = wallet_files

    code, out = run_cli(capsys, config_path, "--node", "http://iota.bitfinex.com:80",
                        "auto-replay", "A" * 81)

    assert code == 1
    assert out["kind"] == "ConfigError"


def test_unknown_wallet_section(capsys, wallet_files):
    config_path, _ = wallet_files

    code = main(["--config", config_path, "--wallet", "nope", "show-balance"])

    assert code == 1
    assert json.loads(capsys.readouterr().out)["kind"] == "ConfigError"


def test_metrics_file_written(capsys, wallet_files, tmp_path):
    config_path, db_path = wallet_files
    seed_db(db_path)
    metrics_path = tmp_path / "wallet.prom"

    run_cli(capsys, config_path, "--metrics-file", str(metrics_path), "show-balance")

    assert "tanglewallet_transfers_total" in metrics_path.read_text()


def test_parser_sync_options():
    args = build_parser().parse_args(["sync", "--start", "3", "--until-spent"])
    assert args.start == 3
    assert args.until_spent
    assert args.end is None

    with pytest.raises(SystemExit):
        build_parser().parse_args(["sync", "--end", "4", "--until-spent"])


@pytest.mark.parametrize("debug_level", [0, 3, 9])
def test_setup_logging_accepts_all_levels(debug_level):
    setup_logging(debug_level)
