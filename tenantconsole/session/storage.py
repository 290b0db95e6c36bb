"""Persistence for the signed-in session between client runs."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from ..schemas.auth import SessionPayload
from .models import Session

logger = logging.getLogger(__name__)


class SessionStorage(Protocol):
    def load(self) -> Session | None: ...

    def save(self, session: Session) -> None: ...

    def clear(self) -> None: ...


class MemorySessionStorage:
    def __init__(self, session: Session | None = None) -> None:
        self._session = session

    def load(self) -> Session | None:
        return self._session

    def save(self, session: Session) -> None:
        self._session = session

    def clear(self) -> None:
        self._session = None


class FileSessionStorage:
    """Stores the session as JSON on disk, readable only by the owner."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Session | None:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return SessionPayload.model_validate(json.loads(raw)).to_session()
        except (ValueError, ValidationError) as exc:
            logger.warning("discarding unreadable session file %s: %s", self._path, exc)
            return None

    def save(self, session: Session) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = SessionPayload.from_session(session).model_dump_json()
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(payload, encoding="utf-8")
        os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, self._path)

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)
