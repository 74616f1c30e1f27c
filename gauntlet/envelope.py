# gauntlet/envelope.py
# Transaction envelope: one contract invocation, its auth entries, the
# resource footprint from the dry-run, and the source account's signature.
from __future__ import annotations

import hashlib
from dataclasses import dataclass, field, replace
from typing import Any

from gauntlet.auth import AuthEntry, Invocation, auth_entry_from_wire, network_id
from gauntlet.errors import DecodeError
from gauntlet.values import b64decode, b64encode, canonical_bytes, unpack


@dataclass(frozen=True)
class Footprint:
    read_only: tuple[str, ...] = ()
    read_write: tuple[str, ...] = ()

    def covers(self, keys) -> bool:
        allowed = set(self.read_only) | set(self.read_write)
        return all(k in allowed for k in keys)

    def to_wire(self) -> dict:
        return {"ro": list(self.read_only), "rw": list(self.read_write)}

    @classmethod
    def from_wire(cls, wire: Any) -> "Footprint":
        if not isinstance(wire, dict) or set(wire) != {"ro", "rw"}:
            raise DecodeError(f"malformed footprint {wire!r}")
        ro, rw = wire["ro"], wire["rw"]
        if not all(isinstance(k, str) for k in (*ro, *rw)):
            raise DecodeError(f"footprint keys must be strings: {wire!r}")
        return cls(tuple(ro), tuple(rw))


@dataclass(frozen=True)
class TransactionEnvelope:
    source: str
    sequence: int
    fee: int
    invocation: Invocation
    auth: tuple[AuthEntry, ...] = ()
    footprint: Footprint | None = None
    resource_fee: int = 0
    timeout_seconds: int = 30
    signatures: tuple[tuple[str, bytes], ...] = field(default=())

    def body_wire(self) -> dict:
        return {
            "source": self.source,
            "seq": self.sequence,
            "fee": self.fee + self.resource_fee,
            "invoke": self.invocation.to_wire(),
            "auth": [entry.to_wire() for entry in self.auth],
            "footprint": self.footprint.to_wire() if self.footprint else None,
            "resource_fee": self.resource_fee,
            "timeout": self.timeout_seconds,
        }

    def hash_bytes(self, passphrase: str) -> bytes:
        return hashlib.sha256(network_id(passphrase) + canonical_bytes(self.body_wire())).digest()

    def hash(self, passphrase: str) -> str:
        return self.hash_bytes(passphrase).hex()

    def with_signature(self, address: str, signature: bytes) -> "TransactionEnvelope":
        return replace(self, signatures=self.signatures + ((address, bytes(signature)),))

    def to_base64(self) -> str:
        wire = {
            "body": self.body_wire(),
            "sigs": [[address, sig] for address, sig in self.signatures],
        }
        return b64encode(canonical_bytes(wire))

    @classmethod
    def from_base64(cls, text: str) -> "TransactionEnvelope":
        wire = unpack(b64decode(text))
        try:
            body = wire["body"]
            sigs = wire["sigs"]
            total_fee = body["fee"]
            resource_fee = body["resource_fee"]
            footprint = body["footprint"]
            envelope = cls(
                source=body["source"],
                sequence=body["seq"],
                fee=total_fee - resource_fee,
                invocation=Invocation.from_wire(body["invoke"]),
                auth=tuple(auth_entry_from_wire(e) for e in body["auth"]),
                footprint=Footprint.from_wire(footprint) if footprint is not None else None,
                resource_fee=resource_fee,
                timeout_seconds=body["timeout"],
                signatures=tuple((address, sig) for address, sig in sigs),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise DecodeError(f"malformed transaction envelope: {exc}") from exc
        return envelope
