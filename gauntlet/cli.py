# gauntlet/cli.py
# Command line: regenerate courses and drive the two-party handoff by
# copy/paste. Keys come from environment variables holding mnemonics,
# or from the dev wallets with --dev-player.
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import asdict

from gauntlet.config import load_settings
from gauntlet.errors import GauntletError
from gauntlet.ledger import RpcLedger
from gauntlet.service import GameClient
from gauntlet.signer import KeypairSigner, load_dev_signers
from gauntlet.track import generate_track


def _signer(args) -> KeypairSigner:
    if args.dev_player:
        signer = load_dev_signers().get(args.dev_player)
        if signer is None:
            raise SystemExit(f"set GAUNTLET_DEV_PLAYER{args.dev_player}_MNEMONIC to use the dev wallet")
        return signer
    words = os.getenv(args.key_env, "")
    if not words:
        raise SystemExit(f"set {args.key_env} to the signing account's mnemonic")
    return KeypairSigner.from_mnemonic(words)


def _client() -> tuple[GameClient, RpcLedger]:
    settings = load_settings()
    ledger = RpcLedger(settings.rpc_url, timeout=settings.rpc_timeout_seconds)
    return GameClient(ledger, settings), ledger


def cmd_track(args) -> int:
    layout = generate_track(args.seed, args.level)
    if args.json:
        doc = asdict(layout)
        doc["digest"] = layout.digest().hex()
        print(json.dumps(doc, indent=2))
        return 0
    print(f"seed={layout.seed} level={layout.level} length={layout.length} digest={layout.digest().hex()}")
    for o in layout.obstacles:
        print(f"  #{o.index:<2} at {o.position:>5}  gap [{o.gap_start}, {o.gap_end})")
    return 0


def cmd_keygen(args) -> int:
    signer = KeypairSigner.generate()
    print("address: ", signer.address)
    print("mnemonic:", signer.mnemonic())
    return 0


def cmd_prepare(args) -> int:
    client, _ = _client()
    signer = _signer(args)
    artifact = client.prepare(args.session, signer.address, args.player2, args.stake1, args.stake2, signer)
    print(artifact)
    return 0


def cmd_finalize(args) -> int:
    client, _ = _client()
    signer = _signer(args)
    artifact = args.artifact if args.artifact != "-" else sys.stdin.read()
    session_id = client.finalize(artifact, signer.address, args.stake, signer)
    print("session started:", session_id)
    return 0


def cmd_session(args) -> int:
    client, _ = _client()
    session = client.get_session(args.session)
    if session is None:
        print("no such session")
        return 1
    doc = asdict(session)
    doc["mode"] = session.mode.value
    print(json.dumps(doc, indent=2))
    return 0


def cmd_health(args) -> int:
    _, ledger = _client()
    print(ledger.health())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gauntlet", description="Two-player seeded obstacle runs on a shared ledger")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("track", help="regenerate the obstacle course for a seed and level")
    p.add_argument("seed", type=int)
    p.add_argument("level", type=int)
    p.add_argument("--json", action="store_true")
    p.set_defaults(func=cmd_track)

    p = sub.add_parser("keygen", help="create a throwaway account key")
    p.set_defaults(func=cmd_keygen)

    p = sub.add_parser("prepare", help="player 1: sign a session start and print the artifact")
    p.add_argument("--session", type=int, required=True)
    p.add_argument("--player2", required=True)
    p.add_argument("--stake1", type=int, required=True)
    p.add_argument("--stake2", type=int, required=True)
    p.add_argument("--key-env", default="GAUNTLET_MNEMONIC")
    p.add_argument("--dev-player", type=int, choices=[1, 2], help="sign with a dev wallet instead")
    p.set_defaults(func=cmd_prepare)

    p = sub.add_parser("finalize", help="player 2: import an artifact and submit the session start")
    p.add_argument("artifact", help="artifact text, or - to read stdin")
    p.add_argument("--stake", type=int, required=True)
    p.add_argument("--key-env", default="GAUNTLET_MNEMONIC")
    p.add_argument("--dev-player", type=int, choices=[1, 2], help="sign with a dev wallet instead")
    p.set_defaults(func=cmd_finalize)

    p = sub.add_parser("session", help="show a session's on-ledger state")
    p.add_argument("session", type=int)
    p.set_defaults(func=cmd_session)

    p = sub.add_parser("health", help="check the ledger RPC endpoint")
    p.set_defaults(func=cmd_health)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except GauntletError as exc:
        print(f"error ({exc.chain_effect.value} on-chain): {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
