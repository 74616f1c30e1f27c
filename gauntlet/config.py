"""Runtime settings, read from GAUNTLET_* environment variables."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass

from gauntlet.errors import ValidationError

DEFAULT_RPC_URL = "http://localhost:8000/rpc"
DEFAULT_NETWORK_PASSPHRASE = "Gauntlet Local Network ; 2026"

# ~5 s per ledger close
LEDGERS_PER_MINUTE = 12
BASE_FEE = 100


@dataclass(frozen=True)
class Settings:
    rpc_url: str = DEFAULT_RPC_URL
    network_passphrase: str = DEFAULT_NETWORK_PASSPHRASE
    contract_id: str = ""
    admin_address: str | None = None
    simulation_source: str | None = None
    base_fee: int = BASE_FEE
    tx_timeout_seconds: int = 30
    handoff_ttl_minutes: int = 60
    auth_ttl_minutes: int = 30
    ledgers_per_minute: int = LEDGERS_PER_MINUTE
    poll_interval_seconds: float = 2.0
    poll_attempts: int = 30
    not_found_tolerance: int = 15
    rpc_timeout_seconds: float = 15.0
    dual_auth: bool = True
    game_mode: str = "survival"


def _int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer, got {raw!r}") from None


def _float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValidationError(f"{name} must be a number, got {raw!r}") from None


def _bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ValidationError(f"{name} must be a boolean, got {raw!r}")


def load_settings() -> Settings:
    mode = os.getenv("GAUNTLET_GAME_MODE", "survival").strip().lower()
    if mode not in ("survival", "levels"):
        raise ValidationError(f"GAUNTLET_GAME_MODE must be 'survival' or 'levels', got {mode!r}")
    return Settings(
        rpc_url=os.getenv("GAUNTLET_RPC_URL", DEFAULT_RPC_URL),
        network_passphrase=os.getenv("GAUNTLET_NETWORK_PASSPHRASE", DEFAULT_NETWORK_PASSPHRASE),
        contract_id=os.getenv("GAUNTLET_CONTRACT_ID", ""),
        admin_address=os.getenv("GAUNTLET_ADMIN_ADDRESS") or None,
        simulation_source=os.getenv("GAUNTLET_SIMULATION_SOURCE") or None,
        base_fee=_int("GAUNTLET_BASE_FEE", BASE_FEE),
        tx_timeout_seconds=_int("GAUNTLET_TX_TIMEOUT", 30),
        handoff_ttl_minutes=_int("GAUNTLET_HANDOFF_TTL_MINUTES", 60),
        auth_ttl_minutes=_int("GAUNTLET_AUTH_TTL_MINUTES", 30),
        ledgers_per_minute=_int("GAUNTLET_LEDGERS_PER_MINUTE", LEDGERS_PER_MINUTE),
        poll_interval_seconds=_float("GAUNTLET_POLL_INTERVAL", 2.0),
        poll_attempts=_int("GAUNTLET_POLL_ATTEMPTS", 30),
        not_found_tolerance=_int("GAUNTLET_NOT_FOUND_TOLERANCE", 15),
        rpc_timeout_seconds=_float("GAUNTLET_RPC_TIMEOUT", 15.0),
        dual_auth=_bool("GAUNTLET_DUAL_AUTH", True),
        game_mode=mode,
    )


def expiration_ledger(latest: int, ttl_minutes: float, ledgers_per_minute: int = LEDGERS_PER_MINUTE) -> int:
    """Ledger sequence after which a signature made now stops being valid."""
    return latest + math.ceil(ttl_minutes * ledgers_per_minute)
