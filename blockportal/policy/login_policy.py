from dataclasses import dataclass

@dataclass(frozen=True)
class LoginPolicy:
    # Thresholds (by number of consecutive failed attempts)
    challenge_from_failure: int = 3      # arithmetic challenge for failures 3..4
    lockout_at_failure: int = 5          # lockout starts on the 5th failure
    lockout_seconds: int = 100
    fail_closed_seconds: int = 30        # lockout shown when the ledger can't be read

    # Copy you want for UI
    msg_invalid_generic: str = "Invalid credentials."
    msg_missing_fields: str = "User ID and password are required."
    msg_challenge_failed: str = "Incorrect answer. Please solve the new problem."
    msg_challenge_required: str = "Security verification is required after {n} failed attempts."
    msg_locked: str = "Too many failed attempts. Try again in {n} seconds."
    msg_attempts_left: str = "{n} more incorrect attempt(s) and login will be locked."
    msg_system_error: str = "Login is temporarily unavailable. Please try again shortly."
