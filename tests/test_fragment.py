import re

import pytest

from gauntlet.auth import (
    AuthorizationObligation,
    CredentialKind,
    Invocation,
    decode_fragment,
    encode_fragment,
    parse_start_terms,
    sign_obligation,
    start_invocation,
)
from gauntlet.errors import MalformedFragment, SigningError
from gauntlet.signer import KeypairSigner
from gauntlet.values import I128_MAX, U32, U32_MAX, b64encode

PASSPHRASE = "Gauntlet Test Network"
CONTRACT = KeypairSigner.generate().address


def _fragment(p1, p2, session_id=7, stake1=100, stake2=100, kind=CredentialKind.ADDRESS, nonce=99, expiration=500):
    invocation = start_invocation(CONTRACT, session_id, p1.address, p2.address, stake1, stake2)
    obligation = AuthorizationObligation(kind, p1.address, nonce, invocation)
    return sign_obligation(obligation, p1, expiration, PASSPHRASE)


@pytest.mark.parametrize("session_id, stake", [(0, 1), (7, 100), (U32_MAX, I128_MAX), (12345, 2**64)])
def test_fragment_round_trips_through_text(alice, bob, session_id, stake):
    fragment = _fragment(alice, bob, session_id=session_id, stake1=stake)

    artifact = encode_fragment(fragment)
    decoded = decode_fragment(artifact)

    assert decoded == fragment
    terms = parse_start_terms(decoded)
    assert (terms.session_id, terms.player1, terms.player1_stake) == (session_id, alice.address, stake)
    assert terms.contract_id == CONTRACT


def test_artifact_is_copy_paste_safe(alice, bob):
    artifact = encode_fragment(_fragment(alice, bob))

    assert re.fullmatch(r"[A-Za-z0-9+/=]+", artifact)


def test_decode_tolerates_line_wrapping(alice, bob):
    fragment = _fragment(alice, bob)
    artifact = encode_fragment(fragment)
    wrapped = "\n  " + "\n".join(artifact[i:i + 60] for i in range(0, len(artifact), 60)) + "\n"

    assert decode_fragment(wrapped) == fragment


def test_signature_verifies_and_detects_tampering(alice, bob):
    fragment = _fragment(alice, bob)
    assert fragment.verify(PASSPHRASE)
    assert not fragment.verify("Some Other Network")

    forged = _fragment(alice, bob, stake1=1)
    tampered = type(fragment)(forged.obligation, fragment.expiration_ledger, fragment.signature)
    assert not tampered.verify(PASSPHRASE)


@pytest.mark.parametrize("artifact", ["", "   ", "!!!not base64!!!", b64encode(b"\x93\x01\x02\x03"), b64encode(b"junk")])
def test_garbage_artifacts_are_malformed(artifact):
    with pytest.raises(MalformedFragment):
        decode_fragment(artifact)


def test_wrong_function_is_malformed(alice):
    invocation = Invocation(CONTRACT, "submit_score", (U32(7),))
    obligation = AuthorizationObligation(CredentialKind.ADDRESS, alice.address, 1, invocation)
    fragment = decode_fragment(encode_fragment(sign_obligation(obligation, alice, 10, PASSPHRASE)))

    with pytest.raises(MalformedFragment, match="start_game"):
        parse_start_terms(fragment)


def test_source_account_credential_is_malformed(alice, bob):
    fragment = _fragment(alice, bob, kind=CredentialKind.SOURCE_ACCOUNT)

    with pytest.raises(MalformedFragment, match="credential"):
        parse_start_terms(fragment)


def test_fragment_must_come_from_player_1(alice, bob):
    # bob signs an obligation for a call that names alice as player 1
    invocation = start_invocation(CONTRACT, 7, alice.address, bob.address, 100, 100)
    obligation = AuthorizationObligation(CredentialKind.ADDRESS, bob.address, 1, invocation)
    fragment = sign_obligation(obligation, bob, 10, PASSPHRASE)

    with pytest.raises(MalformedFragment, match="player 1"):
        parse_start_terms(fragment)


def test_signer_must_own_the_obligation(alice, bob):
    invocation = start_invocation(CONTRACT, 7, alice.address, bob.address, 100, 100)
    obligation = AuthorizationObligation(CredentialKind.ADDRESS, alice.address, 1, invocation)

    with pytest.raises(SigningError):
        sign_obligation(obligation, bob, 10, PASSPHRASE)


def test_expiry_is_inclusive_of_the_horizon(alice, bob):
    fragment = _fragment(alice, bob, expiration=500)

    assert not fragment.is_expired(499)
    assert fragment.is_expired(500)
    assert fragment.is_expired(501)


def test_declining_signer_surfaces_signing_error(alice, bob):
    class Declines:
        address = alice.address

        def sign_auth_entry(self, payload):
            raise RuntimeError("user rejected the request")

    invocation = start_invocation(CONTRACT, 7, alice.address, bob.address, 100, 100)
    obligation = AuthorizationObligation(CredentialKind.ADDRESS, alice.address, 1, invocation)
    with pytest.raises(SigningError, match="rejected"):
        sign_obligation(obligation, Declines(), 10, PASSPHRASE)
