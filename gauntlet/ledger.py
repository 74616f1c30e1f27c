"""Ledger access: the protocol the rest of the package talks to, plus a
JSON-RPC client for a remote ledger node.

Binary payloads (envelopes, auth entries, return values) travel as base64
msgpack inside the JSON, the same way they are hashed and signed.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

import requests

from gauntlet.auth import AuthEntry, auth_entry_from_wire
from gauntlet.envelope import Footprint, TransactionEnvelope
from gauntlet.errors import AccountNotFound, DecodeError, RpcError
from gauntlet.values import b64decode, b64encode, canonical_bytes, unpack

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountState:
    account_id: str
    sequence: int


@dataclass(frozen=True)
class SimulationResult:
    obligations: tuple[AuthEntry, ...]
    footprint: Footprint
    result: Any
    min_resource_fee: int
    latest_ledger: int
    error: str | None = None
    error_code: int | None = None

    def to_json(self) -> dict:
        doc = {
            "latestLedger": self.latest_ledger,
            "minResourceFee": str(self.min_resource_fee),
            "transactionData": self.footprint.to_wire(),
            "results": [{
                "auth": [b64encode(canonical_bytes(e.to_wire())) for e in self.obligations],
                "xdr": b64encode(canonical_bytes(self.result)),
            }],
        }
        if self.error is not None:
            doc["error"] = self.error
            doc["errorCode"] = self.error_code
        return doc

    @classmethod
    def from_json(cls, doc: dict) -> "SimulationResult":
        try:
            latest = int(doc["latestLedger"])
            if "error" in doc:
                return cls((), Footprint(), None, 0, latest, doc["error"], doc.get("errorCode"))
            result = doc["results"][0]
            return cls(
                obligations=tuple(auth_entry_from_wire(unpack(b64decode(a))) for a in result["auth"]),
                footprint=Footprint.from_wire(doc["transactionData"]),
                result=unpack(b64decode(result["xdr"])),
                min_resource_fee=int(doc["minResourceFee"]),
                latest_ledger=latest,
            )
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise DecodeError(f"malformed simulation response: {exc}") from exc


class SubmitStatus(Enum):
    PENDING = "PENDING"
    DUPLICATE = "DUPLICATE"
    TRY_AGAIN_LATER = "TRY_AGAIN_LATER"
    ERROR = "ERROR"


@dataclass(frozen=True)
class SubmitResponse:
    hash: str
    status: SubmitStatus
    latest_ledger: int
    error: str | None = None

    def to_json(self) -> dict:
        return {
            "hash": self.hash,
            "status": self.status.value,
            "latestLedger": self.latest_ledger,
            "errorResult": self.error,
        }

    @classmethod
    def from_json(cls, doc: dict) -> "SubmitResponse":
        try:
            return cls(doc["hash"], SubmitStatus(doc["status"]), int(doc["latestLedger"]), doc.get("errorResult"))
        except (KeyError, TypeError, ValueError) as exc:
            raise DecodeError(f"malformed sendTransaction response: {exc}") from exc


class TransactionStatus(Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    NOT_FOUND = "NOT_FOUND"
    PENDING = "PENDING"


@dataclass(frozen=True)
class TransactionInfo:
    hash: str
    status: TransactionStatus
    result: Any = None
    diagnostic: str | None = None
    ledger: int | None = None

    def to_json(self) -> dict:
        doc = {"hash": self.hash, "status": self.status.value, "ledger": self.ledger, "resultMeta": self.diagnostic}
        if self.status is TransactionStatus.SUCCESS:
            doc["returnValue"] = b64encode(canonical_bytes(self.result))
        return doc

    @classmethod
    def from_json(cls, doc: dict) -> "TransactionInfo":
        try:
            status = TransactionStatus(doc["status"])
            result = None
            if status is TransactionStatus.SUCCESS and doc.get("returnValue"):
                result = unpack(b64decode(doc["returnValue"]))
            return cls(doc["hash"], status, result, doc.get("resultMeta"), doc.get("ledger"))
        except (KeyError, TypeError, ValueError) as exc:
            raise DecodeError(f"malformed getTransaction response: {exc}") from exc


class Ledger(Protocol):
    def get_account(self, account_id: str) -> AccountState:
        """Current sequence number of an account."""

    def simulate(self, envelope: TransactionEnvelope) -> SimulationResult:
        """Dry-run without committing."""

    def submit(self, envelope: TransactionEnvelope) -> SubmitResponse:
        """Hand a signed envelope to the network."""

    def get_transaction(self, tx_hash: str) -> TransactionInfo:
        """Status of a submitted transaction."""

    def get_latest_ledger(self) -> int:
        """Sequence of the most recently closed ledger."""


class RpcLedger:
    def __init__(self, url: str, timeout: float = 15.0, session: requests.Session | None = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()
        self._ids = itertools.count(1)

    def _call(self, method: str, params: dict | None = None) -> Any:
        request_id = next(self._ids)
        body = {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params or {}}
        try:
            r = self.session.post(self.url, json=body, timeout=self.timeout)
            r.raise_for_status()
            payload = r.json()
        except requests.RequestException as exc:
            raise RpcError(f"{method} failed: {exc}") from exc
        except ValueError as exc:
            raise RpcError(f"{method} returned non-JSON body") from exc
        if not isinstance(payload, dict):
            raise RpcError(f"{method} returned {type(payload).__name__}, expected an object")
        if payload.get("error"):
            err = payload["error"]
            if isinstance(err, dict):
                raise RpcError(str(err.get("message", err)), err.get("code"))
            raise RpcError(str(err))
        logger.debug("rpc %s #%d ok", method, request_id)
        return payload.get("result")

    def health(self) -> str:
        result = self._call("getHealth")
        return (result or {}).get("status", "unknown")

    def get_account(self, account_id: str) -> AccountState:
        result = self._call("getAccount", {"address": account_id})
        if result is None:
            raise AccountNotFound(account_id)
        try:
            return AccountState(result["id"], int(result["sequence"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise DecodeError(f"malformed getAccount response: {exc}") from exc

    def simulate(self, envelope: TransactionEnvelope) -> SimulationResult:
        return SimulationResult.from_json(self._call("simulateTransaction", {"transaction": envelope.to_base64()}))

    def submit(self, envelope: TransactionEnvelope) -> SubmitResponse:
        return SubmitResponse.from_json(self._call("sendTransaction", {"transaction": envelope.to_base64()}))

    def get_transaction(self, tx_hash: str) -> TransactionInfo:
        return TransactionInfo.from_json(self._call("getTransaction", {"hash": tx_hash}))

    def get_latest_ledger(self) -> int:
        result = self._call("getLatestLedger")
        try:
            return int(result["sequence"])
        except (KeyError, TypeError, ValueError) as exc:
            raise DecodeError(f"malformed getLatestLedger response: {exc}") from exc
