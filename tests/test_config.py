import os

import pytest

from gauntlet.config import Settings, expiration_ledger, load_settings
from gauntlet.errors import ValidationError
from gauntlet.signer import KeypairSigner, load_dev_signers


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("GAUNTLET_"):
            monkeypatch.delenv(name)


def test_defaults_without_environment():
    assert load_settings() == Settings()


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("GAUNTLET_RPC_URL", "http://ledger.test:9000/rpc")
    monkeypatch.setenv("GAUNTLET_CONTRACT_ID", "CONTRACT")
    monkeypatch.setenv("GAUNTLET_POLL_ATTEMPTS", "5")
    monkeypatch.setenv("GAUNTLET_POLL_INTERVAL", "0.5")
    monkeypatch.setenv("GAUNTLET_DUAL_AUTH", "off")
    monkeypatch.setenv("GAUNTLET_GAME_MODE", " Levels ")
    monkeypatch.setenv("GAUNTLET_ADMIN_ADDRESS", "")

    s = load_settings()

    assert s.rpc_url == "http://ledger.test:9000/rpc"
    assert s.contract_id == "CONTRACT"
    assert s.poll_attempts == 5
    assert s.poll_interval_seconds == 0.5
    assert s.dual_auth is False
    assert s.game_mode == "levels"
    assert s.admin_address is None


@pytest.mark.parametrize("name, value", [
    ("GAUNTLET_POLL_ATTEMPTS", "many"),
    ("GAUNTLET_RPC_TIMEOUT", "soon"),
    ("GAUNTLET_DUAL_AUTH", "maybe"),
    ("GAUNTLET_GAME_MODE", "sprint"),
])
def test_bad_values_fail_loudly(monkeypatch, name, value):
    monkeypatch.setenv(name, value)

    with pytest.raises(ValidationError, match=name):
        load_settings()


@pytest.mark.parametrize("latest, ttl, expected", [
    (1000, 60, 1720),
    (1000, 30, 1360),
    (1000, 0.3, 1004),
    (0, 0, 0),
])
def test_expiration_ledger(latest, ttl, expected):
    assert expiration_ledger(latest, ttl) == expected


def test_dev_wallets_from_environment(monkeypatch):
    player1 = KeypairSigner.generate()
    monkeypatch.setenv("GAUNTLET_DEV_PLAYER1_MNEMONIC", player1.mnemonic())
    monkeypatch.setenv("GAUNTLET_DEV_PLAYER2_MNEMONIC", "NOT_AVAILABLE")

    signers = load_dev_signers()

    assert set(signers) == {1}
    assert signers[1].address == player1.address
