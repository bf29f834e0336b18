from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # CORS origins; set ALLOWED_ORIGINS env var for production (comma-separated)
    allowed_origins: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]
    # Extra production origin; appended to allowed_origins
    extra_origin: str = ""
    debug: bool = False

    # Session persistence: "memory" (single process) or "firestore"
    session_backend: str = "memory"
    google_cloud_project: str = ""
    firestore_emulator_host: Optional[str] = None
    firestore_collection: str = "rooms"

    # CSV word library: groupId,word1,word2,... (bundled file when empty)
    words_file: str = ""

    # Seconds a room may sit with zero connections before its session is cleared
    room_inactivity_seconds: int = 30 * 60

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
    )


settings = Settings()
