import json

import pytest

from gauntlet.cli import main
from gauntlet.signer import KeypairSigner
from gauntlet.track import generate_track


def test_track_prints_the_course(capsys):
    assert main(["track", "42", "1"]) == 0

    out = capsys.readouterr().out.splitlines()
    assert out[0].startswith("seed=42 level=1 length=3540")
    assert len(out) == 1 + 7
    assert "gap [247, 377)" in out[1]


def test_track_json_matches_library(capsys):
    assert main(["track", "7", "3", "--json"]) == 0

    doc = json.loads(capsys.readouterr().out)
    layout = generate_track(7, 3)
    assert doc["digest"] == layout.digest().hex()
    assert [o["gap_start"] for o in doc["obstacles"]] == [o.gap_start for o in layout.obstacles]


def test_invalid_level_exits_with_error(capsys):
    assert main(["track", "42", "4"]) == 2

    err = capsys.readouterr().err
    assert "invalid level 4" in err
    assert "none on-chain" in err


def test_keygen_round_trips_mnemonic(capsys):
    assert main(["keygen"]) == 0

    lines = dict(line.split(":", 1) for line in capsys.readouterr().out.splitlines())
    signer = KeypairSigner.from_mnemonic(lines["mnemonic"].strip())
    assert signer.address == lines["address"].strip()


@pytest.fixture
def dev_wallets(monkeypatch, client, net, alice, bob):
    monkeypatch.setattr("gauntlet.cli._client", lambda: (client, net))
    monkeypatch.setenv("GAUNTLET_DEV_PLAYER1_MNEMONIC", alice.mnemonic())
    monkeypatch.setenv("GAUNTLET_DEV_PLAYER2_MNEMONIC", bob.mnemonic())
    return client


def test_handoff_with_dev_wallets(dev_wallets, capsys, bob):
    prepare = ["prepare", "--session", "7", "--player2", bob.address, "--stake1", "100", "--stake2", "100"]
    assert main(prepare + ["--dev-player", "1"]) == 0
    artifact = capsys.readouterr().out.strip()

    assert main(["finalize", artifact, "--stake", "100", "--dev-player", "2"]) == 0

    assert "session started: 7" in capsys.readouterr().out
    assert dev_wallets.get_session(7).player2 == bob.address


def test_missing_dev_wallet_exits(dev_wallets, monkeypatch, bob):
    monkeypatch.setenv("GAUNTLET_DEV_PLAYER2_MNEMONIC", "NOT_AVAILABLE")

    with pytest.raises(SystemExit, match="GAUNTLET_DEV_PLAYER2_MNEMONIC"):
        main(["finalize", "AAAA", "--stake", "100", "--dev-player", "2"])
