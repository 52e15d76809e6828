import logging
import math
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field

from . import captcha
from .captcha import Challenge
from .errors import BackendError, BackendUnavailable, LedgerCorrupted, LedgerError

logger = logging.getLogger(__name__)

NORMAL = "normal"
CHALLENGE_REQUIRED = "challenge_required"
LOCKED = "locked"

STATUS_LOCKED = "locked"
STATUS_CHALLENGE_FAILED = "challenge_failed"
STATUS_INVALID_CREDENTIALS = "invalid_credentials"
STATUS_SUCCESS = "success"
STATUS_SYSTEM_ERROR = "system_error"


def normalize_identifier(identifier: str) -> str:
    return (identifier or "").strip().lower()


@dataclass(frozen=True)
class AttemptRecord:
    failure_count: int = 0
    last_failure_at: float | None = None
    lockout_until: float | None = None

    @property
    def is_clean(self) -> bool:
        return self.failure_count == 0 and self.lockout_until is None

    def to_dict(self) -> dict:
        return {
            "failure_count": self.failure_count,
            "last_failure_at": self.last_failure_at,
            "lockout_until": self.lockout_until,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AttemptRecord":
        try:
            count = int(data.get("failure_count", 0))
            last = data.get("last_failure_at")
            until = data.get("lockout_until")
            record = cls(
                failure_count=count,
                last_failure_at=float(last) if last is not None else None,
                lockout_until=float(until) if until is not None else None,
            )
        except (AttributeError, TypeError, ValueError) as exc:
            raise LedgerCorrupted() from exc
        if record.failure_count < 0:
            raise LedgerCorrupted()
        return record


@dataclass(frozen=True)
class GovernorDecision:
    mode: str
    seconds_remaining: int = 0
    challenge: Challenge | None = None

    @property
    def locked(self) -> bool:
        return self.mode == LOCKED

    @property
    def challenge_required(self) -> bool:
        return self.mode == CHALLENGE_REQUIRED


@dataclass(frozen=True)
class SubmitResult:
    status: str
    decision: GovernorDecision
    message: str | None = None
    failures: int = 0
    token: str | None = None
    expires_at: float | None = None
    subject: object = field(default=None, compare=False)

    @property
    def ok(self) -> bool:
        return self.status == STATUS_SUCCESS

    @property
    def seconds_remaining(self) -> int:
        return self.decision.seconds_remaining

    @property
    def challenge(self) -> Challenge | None:
        return self.decision.challenge


class AttemptLedger:
    """
    Failure history for one login identifier, persisted in a slot store.
    Expired lockouts are reset as part of load().
    """

    def __init__(self, store, key: str, policy):
        self.store = store
        self.key = key
        self.policy = policy

    def load(self, now: float) -> AttemptRecord:
        raw = self.store.get(self.key)
        if raw is None:
            return AttemptRecord()
        record = AttemptRecord.from_dict(raw)
        if record.lockout_until is not None and now >= record.lockout_until:
            logger.info("Lockout expired for %s, resetting ledger", self.key)
            self.reset()
            return AttemptRecord()
        return record

    def record_failure(self, now: float) -> AttemptRecord:
        current = self.load(now)
        if current.lockout_until is not None:
            # Frozen while locked
            return current

        count = current.failure_count + 1
        until = None
        if count >= self.policy.lockout_at_failure:
            until = now + self.policy.lockout_seconds

        record = AttemptRecord(failure_count=count, last_failure_at=now, lockout_until=until)
        self.store.put(self.key, record.to_dict())
        return record

    def reset(self) -> None:
        self.store.delete(self.key)


class KeyedLocks:
    """One lock per key, dropped once no caller holds or waits on it."""

    def __init__(self):
        self._guard = threading.Lock()
        self._entries = {}  # key -> [lock, holders]

    @contextmanager
    def hold(self, key: str):
        with self._guard:
            entry = self._entries.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if not entry[1]:
                    del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)


class LoginGovernor:
    """
    Decides for each login submission whether to allow it, demand an
    arithmetic challenge, or refuse it outright.

    Ledgers are keyed server-side by the normalized identifier. The challenge
    last shown for an identifier lives next to its ledger and is consumed by
    the next submission, right or wrong. Submissions for one identifier are
    serialized within the process.
    """

    def __init__(self, policy, store, verifier, issuer, rng=None, clock=time.time):
        self.policy = policy
        self.store = store
        self.verifier = verifier
        self.issuer = issuer
        self.rng = rng
        self.clock = clock
        self._locks = KeyedLocks()

    def ledger(self, identifier: str) -> AttemptLedger:
        return AttemptLedger(self.store, f"attempts:{normalize_identifier(identifier)}", self.policy)

    def _challenge_key(self, identifier: str) -> str:
        return f"challenge:{normalize_identifier(identifier)}"

    def _fail_closed(self, identifier: str, exc: Exception) -> GovernorDecision:
        logger.error("Login ledger unreadable for %r, failing closed: %s", normalize_identifier(identifier), exc)
        return GovernorDecision(LOCKED, seconds_remaining=self.policy.fail_closed_seconds)

    def _mode(self, record: AttemptRecord, now: float) -> GovernorDecision:
        if record.lockout_until is not None and now < record.lockout_until:
            return GovernorDecision(LOCKED, seconds_remaining=max(1, math.ceil(record.lockout_until - now)))
        if self.policy.challenge_from_failure <= record.failure_count < self.policy.lockout_at_failure:
            return GovernorDecision(CHALLENGE_REQUIRED)
        return GovernorDecision(NORMAL)

    def _take_shown_challenge(self, identifier: str) -> Challenge | None:
        key = self._challenge_key(identifier)
        raw = self.store.get(key)
        if raw is None:
            return None
        self.store.delete(key)
        try:
            return Challenge.from_dict(raw)
        except (KeyError, TypeError, ValueError):
            logger.warning("Discarding malformed challenge slot %s", key)
            return None

    def evaluate(self, identifier: str, now: float | None = None) -> GovernorDecision:
        """Decision used to render the login form (countdown, challenge, or plain)."""
        now = self.clock() if now is None else now
        try:
            record = self.ledger(identifier).load(now)
            decision = self._mode(record, now)
            if decision.challenge_required:
                challenge = captcha.generate(self.rng)
                self.store.put(self._challenge_key(identifier), challenge.to_dict())
                decision = GovernorDecision(CHALLENGE_REQUIRED, challenge=challenge)
        except LedgerError as exc:
            return self._fail_closed(identifier, exc)
        return decision

    def submit(self, identifier: str, secret: str, challenge_answer=None, now: float | None = None) -> SubmitResult:
        ledger = self.ledger(identifier)
        # Lock check, verify and ledger write must not interleave for one identifier
        with self._locks.hold(ledger.key):
            now = self.clock() if now is None else now
            return self._submit(identifier, ledger, secret, challenge_answer, now)

    def _submit(self, identifier, ledger, secret, challenge_answer, now) -> SubmitResult:
        try:
            shown = self._take_shown_challenge(identifier)
            record = ledger.load(now)
        except LedgerError as exc:
            decision = self._fail_closed(identifier, exc)
            return SubmitResult(STATUS_LOCKED, decision, self.policy.msg_locked.format(n=decision.seconds_remaining))

        decision = self._mode(record, now)
        if decision.locked:
            logger.warning("Rejected login for %r while locked (%ss left)", ledger.key, decision.seconds_remaining)
            return SubmitResult(
                STATUS_LOCKED,
                decision,
                self.policy.msg_locked.format(n=decision.seconds_remaining),
                failures=record.failure_count,
            )

        if decision.challenge_required:
            if shown is None:
                # No challenge was shown: issue one, count nothing
                return SubmitResult(
                    STATUS_CHALLENGE_FAILED,
                    self.evaluate(identifier, now),
                    self.policy.msg_challenge_required.format(n=self.policy.challenge_from_failure),
                    failures=record.failure_count,
                )
            answer = captcha.parse_answer(challenge_answer)
            if answer is None or answer != shown.expected_answer:
                return self._record_failure(identifier, ledger, record, now,
                                            STATUS_CHALLENGE_FAILED, self.policy.msg_challenge_failed)

        try:
            verification = self.verifier.verify(identifier, secret)
        except (BackendError, BackendUnavailable) as exc:
            logger.error("Credential check unavailable: %s", exc)
            return self._system_error(identifier, now)

        if not verification.valid:
            return self._record_failure(identifier, ledger, record, now,
                                        STATUS_INVALID_CREDENTIALS, self.policy.msg_invalid_generic)

        try:
            ledger.reset()
            issued = self.issuer.issue(verification.subject)
        except (LedgerError, BackendError, BackendUnavailable) as exc:
            logger.error("Login succeeded but session could not be issued: %s", exc)
            return self._system_error(identifier, now)

        logger.info("Login succeeded for %r", ledger.key)
        return SubmitResult(
            STATUS_SUCCESS,
            GovernorDecision(NORMAL),
            token=issued.token,
            expires_at=issued.expires_at,
            subject=verification.subject,
        )

    def _record_failure(self, identifier, ledger, previous, now, status, message) -> SubmitResult:
        try:
            record = ledger.record_failure(now)
        except LedgerError as exc:
            logger.error("Could not record login failure for %r: %s", ledger.key, exc)
            return self._system_error(identifier, now)

        if previous.lockout_until is None and record.lockout_until is not None:
            logger.warning(
                "Login locked for %r for %ss after %d failed attempts",
                ledger.key, self.policy.lockout_seconds, record.failure_count,
            )
        elif record.lockout_until is None:
            logger.warning("Failed login for %r (%d consecutive)", ledger.key, record.failure_count)

        decision = self.evaluate(identifier, now)
        return SubmitResult(status, decision, message, failures=record.failure_count)

    def _system_error(self, identifier, now) -> SubmitResult:
        # Re-evaluate only to redraw the form; the ledger is left as it was.
        decision = self.evaluate(identifier, now)
        return SubmitResult(STATUS_SYSTEM_ERROR, decision, self.policy.msg_system_error)
