"""Submission and finality polling.

``Submitted -> {Pending, NotFound} -> {Success, Failed, TimedOut}``.
TimedOut means the outcome is unknown, not negative. Cancelling a poll only
stops local observation; the submitted transaction is unaffected.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

from gauntlet.envelope import TransactionEnvelope
from gauntlet.errors import (
    ChainEffect,
    DecodeError,
    LedgerRejected,
    PollCancelled,
    TransactionTimedOut,
    TransientError,
)
from gauntlet.ledger import Ledger, SubmitStatus, TransactionStatus

logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 30.0


class FinalityStatus(Enum):
    SUCCESS = "success"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class Finality:
    hash: str
    status: FinalityStatus
    attempts: int
    result: Any = None
    diagnostic: str | None = None
    ledger: int | None = None

    @property
    def ok(self) -> bool:
        return self.status is FinalityStatus.SUCCESS

    def raise_for_status(self) -> "Finality":
        if self.status is FinalityStatus.FAILED:
            raise LedgerRejected(self.hash, self.diagnostic or "transaction failed", ChainEffect.APPLIED)
        if self.status is FinalityStatus.TIMED_OUT:
            raise TransactionTimedOut(self.hash, self.attempts)
        return self


class FinalityPoller:
    def __init__(
        self,
        ledger: Ledger,
        interval: float = 2.0,
        max_attempts: int = 30,
        not_found_tolerance: int = 15,
        sleep=time.sleep,
    ):
        self.ledger = ledger
        self.interval = interval
        self.max_attempts = max_attempts
        self.not_found_tolerance = not_found_tolerance
        self._sleep = sleep

    @classmethod
    def from_settings(cls, ledger: Ledger, settings) -> "FinalityPoller":
        return cls(
            ledger,
            interval=settings.poll_interval_seconds,
            max_attempts=settings.poll_attempts,
            not_found_tolerance=settings.not_found_tolerance,
        )

    def submit(self, envelope: TransactionEnvelope) -> str:
        resp = self.ledger.submit(envelope)
        if resp.status is SubmitStatus.ERROR:
            # refused before inclusion: nothing happened on-chain
            raise LedgerRejected(resp.hash, resp.error or "submission rejected", ChainEffect.NONE)
        if resp.status is SubmitStatus.TRY_AGAIN_LATER:
            raise TransientError(f"ledger busy, resubmit {resp.hash} later")
        logger.info("submitted %s (%s)", resp.hash, resp.status.value)
        return resp.hash

    def _pause(self, seconds: float, cancel: threading.Event | None, tx_hash: str) -> None:
        if cancel is None:
            self._sleep(seconds)
        elif cancel.wait(seconds):
            raise PollCancelled(tx_hash)

    def wait(self, tx_hash: str, cancel: threading.Event | None = None) -> Finality:
        not_found = 0
        errors = 0
        delay = self.interval
        for attempt in range(1, self.max_attempts + 1):
            self._pause(delay, cancel, tx_hash)
            try:
                info = self.ledger.get_transaction(tx_hash)
            except (TransientError, DecodeError) as exc:
                # already submitted: an unreadable answer is no evidence either way
                errors += 1
                delay = min(self.interval * 2 ** errors, MAX_BACKOFF_SECONDS)
                logger.warning("poll %d for %s failed (%s); retrying in %.1fs", attempt, tx_hash, exc, delay)
                continue
            errors = 0
            delay = self.interval

            if info.status is TransactionStatus.SUCCESS:
                logger.info("%s succeeded in ledger %s", tx_hash, info.ledger)
                return Finality(tx_hash, FinalityStatus.SUCCESS, attempt, info.result, info.diagnostic, info.ledger)
            if info.status is TransactionStatus.FAILED:
                logger.error("%s failed: %s", tx_hash, info.diagnostic)
                return Finality(tx_hash, FinalityStatus.FAILED, attempt, None, info.diagnostic, info.ledger)
            if info.status is TransactionStatus.NOT_FOUND:
                not_found += 1
                if not_found > self.not_found_tolerance:
                    logger.warning("%s still not found after %d polls", tx_hash, not_found)
                    return Finality(tx_hash, FinalityStatus.TIMED_OUT, attempt, diagnostic="not found")
            else:
                not_found = 0

        return Finality(tx_hash, FinalityStatus.TIMED_OUT, self.max_attempts)

    def submit_and_wait(self, envelope: TransactionEnvelope, cancel: threading.Event | None = None) -> Finality:
        return self.wait(self.submit(envelope), cancel)
