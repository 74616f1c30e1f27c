import pytest

from gauntlet.config import Settings
from gauntlet.localnet import LocalNet
from gauntlet.poller import FinalityPoller
from gauntlet.service import GameClient
from gauntlet.session import GameMode
from gauntlet.signer import KeypairSigner


@pytest.fixture
def alice():
    return KeypairSigner.generate()


@pytest.fixture
def bob():
    return KeypairSigner.generate()


@pytest.fixture
def admin():
    return KeypairSigner.generate()


def _net(signers, **kwargs):
    net = LocalNet(seed=1234, **kwargs)
    for s in signers:
        net.fund(s.address)
    return net


def _settings(net, **overrides):
    base = dict(
        network_passphrase=net.network_passphrase,
        contract_id=net.contract_id,
        admin_address=net.admin,
        poll_interval_seconds=0,
        poll_attempts=10,
        not_found_tolerance=5,
        dual_auth=net.dual_auth,
        game_mode=net.mode.value,
    )
    base.update(overrides)
    return Settings(**base)


def _client(net, settings):
    poller = FinalityPoller(net, interval=0, max_attempts=settings.poll_attempts,
                            not_found_tolerance=settings.not_found_tolerance, sleep=lambda s: None)
    return GameClient(net, settings, poller=poller)


@pytest.fixture
def net(alice, bob, admin):
    return _net([alice, bob, admin], admin=admin.address)


@pytest.fixture
def settings(net):
    return _settings(net)


@pytest.fixture
def client(net, settings):
    return _client(net, settings)


@pytest.fixture
def make_client(alice, bob, admin):
    """Build a (net, client) pair with custom ledger/contract options."""

    def factory(settings_overrides=None, **net_kwargs):
        net_kwargs.setdefault("admin", admin.address)
        net = _net([alice, bob, admin], **net_kwargs)
        return net, _client(net, _settings(net, **(settings_overrides or {})))

    return factory


@pytest.fixture
def levels_client(make_client):
    return make_client(mode=GameMode.LEVELS)
