"""Application settings and validation."""

import os
from datetime import date
from pathlib import Path
from typing import Optional

BASE = Path(__file__).resolve().parent.parent
SUBJECT_DELETE_POLICIES = ("orphan", "cascade")


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Settings:
    ENV: str
    DATABASE_URL: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    LOG_LEVEL: str
    ALLOW_DEV_CORS: bool
    ALLOW_INSECURE_JWT: bool
    WEBHOOK_SECRET: Optional[str]
    EXAM_DATE: date
    DEFAULT_TARGET_SCORE: int
    ENFORCE_SUBJECT_REFERENCES: bool
    SUBJECT_DELETE_POLICY: str

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE / 'studytrack.db'}")
        self.JWT_SECRET = os.getenv("JWT_SECRET", "change_me_for_prod")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.ALLOW_DEV_CORS = _flag("ALLOW_DEV_CORS", "true")
        self.ALLOW_INSECURE_JWT = _flag("ALLOW_INSECURE_JWT", "false")
        # unset disables the provisioning webhook
        self.WEBHOOK_SECRET = os.getenv("WEBHOOK_SECRET") or None
        self.EXAM_DATE = date.fromisoformat(os.getenv("EXAM_DATE", "2026-02-01"))
        self.DEFAULT_TARGET_SCORE = int(os.getenv("DEFAULT_TARGET_SCORE", "800"))
        self.ENFORCE_SUBJECT_REFERENCES = _flag("ENFORCE_SUBJECT_REFERENCES", "true")
        self.SUBJECT_DELETE_POLICY = os.getenv("SUBJECT_DELETE_POLICY", "orphan").lower()
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == "change_me_for_prod":
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if self.SUBJECT_DELETE_POLICY not in SUBJECT_DELETE_POLICIES:
            raise RuntimeError(
                f"SUBJECT_DELETE_POLICY must be one of {', '.join(SUBJECT_DELETE_POLICIES)}"
            )


settings = Settings()
