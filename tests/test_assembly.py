from dataclasses import replace

import pytest

from gauntlet.assembly import TransactionAssembler, check_matches, find_obligation
from gauntlet.auth import (
    AuthorizationObligation,
    CredentialKind,
    SignedFragment,
    decode_fragment,
    sign_obligation,
    start_invocation,
)
from gauntlet.errors import (
    ChainEffect,
    LedgerRejected,
    MissingSignature,
    ObligationMismatch,
    SigningError,
    ValidationError,
)


def _start(net, alice, bob, stake2=100):
    return start_invocation(net.contract_id, 7, alice.address, bob.address, 100, stake2)


def _address_ob(signer, invocation, nonce=11):
    return AuthorizationObligation(CredentialKind.ADDRESS, signer.address, nonce, invocation)


def _source_ob(signer, invocation, nonce=22):
    return AuthorizationObligation(CredentialKind.SOURCE_ACCOUNT, signer.address, nonce, invocation)


@pytest.mark.parametrize("reverse", [False, True])
def test_reconcile_matches_by_account_not_position(net, settings, alice, bob, reverse):
    asm = TransactionAssembler(net, settings)
    invocation = _start(net, alice, bob)
    fragment = sign_obligation(_address_ob(alice, invocation), alice, 2000, settings.network_passphrase)
    obligations = [_address_ob(alice, invocation, nonce=99), _source_ob(bob, invocation)]
    if reverse:
        obligations.reverse()

    auth = asm.reconcile(obligations, bob.address, fragments={alice.address: fragment}, signers={bob.address: bob})

    assert len(auth) == 2
    assert find_obligation(auth, alice.address) is fragment
    assert find_obligation(auth, bob.address).kind is CredentialKind.SOURCE_ACCOUNT
    assert find_obligation(auth, "nobody") is None


def test_reconcile_rejects_fragment_for_other_arguments(net, settings, alice, bob):
    asm = TransactionAssembler(net, settings)
    signed_for = _start(net, alice, bob, stake2=100)
    fragment = sign_obligation(_address_ob(alice, signed_for), alice, 2000, settings.network_passphrase)
    now_building = _start(net, alice, bob, stake2=200)

    with pytest.raises(ObligationMismatch, match="different start_game arguments"):
        asm.reconcile([_address_ob(alice, now_building)], bob.address, fragments={alice.address: fragment})


def test_check_matches_compares_accounts(net, settings, alice, bob):
    invocation = _start(net, alice, bob)
    fragment = sign_obligation(_address_ob(alice, invocation), alice, 2000, settings.network_passphrase)

    with pytest.raises(ObligationMismatch):
        check_matches(_address_ob(bob, invocation), fragment)


def test_reconcile_signs_local_obligations_with_auth_ttl(net, settings, alice, bob):
    asm = TransactionAssembler(net, settings)
    invocation = _start(net, alice, bob)

    (entry,) = asm.reconcile([_address_ob(bob, invocation)], alice.address, signers={bob.address: bob})

    assert isinstance(entry, SignedFragment)
    assert entry.expiration_ledger == net.ledger + settings.auth_ttl_minutes * settings.ledgers_per_minute
    assert entry.verify(settings.network_passphrase)


def test_reconcile_without_signer_reports_the_account(net, settings, alice, bob):
    asm = TransactionAssembler(net, settings)

    with pytest.raises(MissingSignature) as err:
        asm.reconcile([_address_ob(bob, _start(net, alice, bob))], alice.address)
    assert err.value.account == bob.address


def test_source_credential_must_name_the_source(net, settings, alice, bob):
    asm = TransactionAssembler(net, settings)

    with pytest.raises(ObligationMismatch):
        asm.reconcile([_source_ob(alice, _start(net, alice, bob))], bob.address)


def test_verify_envelope_refuses_mismatched_auth(net, settings, alice, bob):
    asm = TransactionAssembler(net, settings)
    body = _start(net, alice, bob)
    other = _start(net, alice, bob, stake2=1)
    envelope = asm.build(bob.address, body)
    passphrase = settings.network_passphrase

    tampered = replace(envelope, auth=(
        sign_obligation(_address_ob(alice, other), alice, 2000, passphrase), _source_ob(bob, body)))
    with pytest.raises(ObligationMismatch, match="different arguments"):
        asm.verify_envelope(tampered)

    unsigned = replace(envelope, auth=(_address_ob(alice, body),))
    with pytest.raises(MissingSignature):
        asm.verify_envelope(unsigned)

    good = sign_obligation(_address_ob(alice, body), alice, 2000, passphrase)
    forged = SignedFragment(good.obligation, good.expiration_ledger + 1, good.signature)
    with pytest.raises(ObligationMismatch, match="does not verify"):
        asm.verify_envelope(replace(envelope, auth=(forged,)))

    twice = replace(envelope, auth=(good, good))
    with pytest.raises(ObligationMismatch, match="duplicate"):
        asm.verify_envelope(twice)


def test_only_the_source_signs_the_envelope(net, settings, alice, bob):
    asm = TransactionAssembler(net, settings)
    envelope = asm.build(bob.address, _start(net, alice, bob))

    with pytest.raises(SigningError):
        asm.sign_envelope(envelope, alice)
    assert asm.sign_envelope(envelope, bob).signatures[0][0] == bob.address


def test_build_reads_next_sequence(net, settings, alice, bob):
    asm = TransactionAssembler(net, settings)
    net.accounts[bob.address] = 41

    assert asm.build(bob.address, _start(net, alice, bob)).sequence == 42


def test_unset_contract_id_is_a_config_error(net, settings):
    asm = TransactionAssembler(net, replace(settings, contract_id=""))

    with pytest.raises(ValidationError, match="GAUNTLET_CONTRACT_ID"):
        asm.invocation("get_leaderboard")


def test_stale_footprint_fails_on_chain(client, net, alice, bob):
    """Assembling with the dry-run taken before the imported fragment was attached."""
    artifact = client.prepare(7, alice.address, bob.address, 100, 100, alice)
    fragment = decode_fragment(artifact)
    asm = client.assembler

    envelope = asm.build(bob.address, fragment.invocation)
    sim = asm.simulate(envelope)
    auth = asm.reconcile(sim.obligations, bob.address, fragments={alice.address: fragment}, signers={bob.address: bob})
    stale = asm.sign_envelope(asm.assemble(envelope, sim, auth), bob)

    with pytest.raises(LedgerRejected) as err:
        client.poller.submit_and_wait(stale).raise_for_status()
    assert err.value.chain_effect is ChainEffect.APPLIED
    assert "footprint" in err.value.diagnostic
    assert client.get_session(7) is None
    # included, so the sequence number is spent
    assert net.accounts[bob.address] == 1
