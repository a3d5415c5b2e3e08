"""
Device-scoped visitor identity.

The identity is generated once per device profile and kept on disk. It is
never sent alongside content, only on ledger and like requests. When the
profile cannot be written the client still works with an identifier that
lives for the current session only.
"""

import os
from pathlib import Path
from typing import Optional, Protocol

import structlog

from core.security import generate_session_visitor_id, generate_visitor_id, is_valid_visitor_id

logger = structlog.get_logger(__name__)

DEFAULT_APP_DIR = "sia-feedback"
VISITOR_ID_FILE = "visitor_id"


class IdentityStorage(Protocol):
    """Where a visitor id is persisted. Both methods raise OSError when storage is unusable."""

    def load(self) -> Optional[str]: ...

    def save(self, visitor_id: str) -> None: ...


class FileIdentityStorage:
    """Visitor id kept in a small file under the user's config directory."""

    def __init__(self, path: Path):
        self.path = Path(path)

    @classmethod
    def default(cls, app_dir: str = DEFAULT_APP_DIR) -> "FileIdentityStorage":
        base = os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config"
        return cls(Path(base) / app_dir / VISITOR_ID_FILE)

    def load(self) -> Optional[str]:
        # Undecodable bytes come back as U+FFFD and fail validation like any corrupt id
        try:
            return self.path.read_text(encoding="utf-8", errors="replace").strip() or None
        except FileNotFoundError:
            return None

    def save(self, visitor_id: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(visitor_id, encoding="utf-8")
        os.replace(tmp, self.path)


class MemoryIdentityStorage:
    """In-memory storage. available=False behaves like a disabled profile."""

    def __init__(self, visitor_id: Optional[str] = None, available: bool = True):
        self.visitor_id = visitor_id
        self.available = available

    def load(self) -> Optional[str]:
        if not self.available:
            raise OSError("Identity storage is unavailable")
        return self.visitor_id

    def save(self, visitor_id: str) -> None:
        if not self.available:
            raise OSError("Identity storage is unavailable")
        self.visitor_id = visitor_id


class IdentityContext:
    """
    Holds the visitor identity for one client.

    Construct once at client start and pass it to FeedbackClient.
    """

    def __init__(self, storage: Optional[IdentityStorage] = None):
        self.storage = storage if storage is not None else FileIdentityStorage.default()
        self._visitor_id: Optional[str] = None
        self._persistent = True

    @property
    def is_persistent(self) -> bool:
        """False once the identity had to fall back to a session-only id."""
        self.get_visitor_id()
        return self._persistent

    def get_visitor_id(self) -> str:
        """Return the visitor id, creating and persisting it on first use."""
        if self._visitor_id is not None:
            return self._visitor_id

        try:
            stored = self.storage.load()
        except OSError as e:
            return self._fall_back(e)

        if stored and is_valid_visitor_id(stored):
            self._visitor_id = stored
            return stored

        if stored:
            logger.warning("stored_visitor_id_invalid", action="regenerating")

        visitor_id = generate_visitor_id()
        try:
            self.storage.save(visitor_id)
        except OSError as e:
            return self._fall_back(e)

        logger.info("visitor_id_created")
        self._visitor_id = visitor_id
        return visitor_id

    def _fall_back(self, error: OSError) -> str:
        logger.warning("identity_storage_unavailable", error=str(error), fallback="session")
        self._persistent = False
        self._visitor_id = generate_session_visitor_id()
        return self._visitor_id
