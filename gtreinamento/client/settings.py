from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

LEGACY_API_PREFIX = "/api"


class ClientSettings(BaseSettings):
    """Configuration of the portal client, read from ``GTREINAMENTO_*`` variables."""

    api_url: str = ""
    # None: strip when the API is served under the /treinamento gateway path
    strip_legacy_api_prefix: bool | None = None
    storage_path: Path | None = Path.home() / ".gtreinamento" / "state.json"
    timeout_seconds: float = 30.0
    # Length of the descriptors produced by the face model in use
    face_descriptor_length: int = 128

    model_config = SettingsConfigDict(env_prefix="GTREINAMENTO_", env_file=".env", extra="ignore")

    @property
    def api_base(self) -> str:
        return self.api_url.rstrip("/")

    @property
    def strips_legacy_prefix(self) -> bool:
        if self.strip_legacy_api_prefix is None:
            return "/treinamento" in self.api_base
        return self.strip_legacy_api_prefix
