"""Runtime settings, read from the environment (and a .env file)."""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

_TRUTHY = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    vault_path: Path = Path("vault")
    backend_url: str = "http://localhost:3333"
    request_timeout: float = 30.0
    stream_timeout: float = 60.0
    import_archived: bool = True
    log_level: str = "INFO"

    @property
    def index_path(self) -> Path:
        return self.vault_path / ".tether" / "index.db"

    @classmethod
    def from_env(cls, env_file: Path | None = None) -> "Settings":
        """Build settings from TETHER_* variables, loading ``env_file`` first."""
        load_dotenv(env_file or Path.cwd() / ".env")
        env = os.environ
        return cls(
            vault_path=Path(env.get("TETHER_VAULT_PATH", "vault")),
            backend_url=env.get("TETHER_BACKEND_URL", "http://localhost:3333"),
            request_timeout=float(env.get("TETHER_REQUEST_TIMEOUT", "30")),
            stream_timeout=float(env.get("TETHER_STREAM_TIMEOUT", "60")),
            import_archived=env.get("TETHER_IMPORT_ARCHIVED", "true").lower() in _TRUTHY,
            log_level=env.get("TETHER_LOG_LEVEL", "INFO").upper(),
        )
