import time
from dataclasses import dataclass

from itsdangerous import BadSignature, URLSafeTimedSerializer


@dataclass(frozen=True)
class IssuedSession:
    token: str
    expires_at: float


class SessionIssuer:
    """
    Mints and validates signed, time-bounded admin session tokens.
    Only the subject id goes into the token; role and permissions are
    looked up again on every request.
    """

    salt = "blockportal-admin-session"

    def __init__(self, secret_key: str, max_age_sec: int = 86400, clock=time.time):
        self.max_age_sec = max_age_sec
        self.clock = clock
        self._serializer = URLSafeTimedSerializer(secret_key, salt=self.salt)

    def issue(self, subject) -> IssuedSession:
        token = self._serializer.dumps({"sub": str(subject.id)})
        return IssuedSession(token=token, expires_at=self.clock() + self.max_age_sec)

    def validate(self, token: str | None) -> str | None:
        if not token:
            return None
        try:
            data = self._serializer.loads(token, max_age=self.max_age_sec)
        except BadSignature:
            return None
        if not isinstance(data, dict) or not data.get("sub"):
            return None
        return str(data["sub"])
