import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from dotenv import load_dotenv


# Load .env once at import time (support running from any cwd)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

DEFAULT_STUN_SERVERS = (
    "stun:stun.l.google.com:19302",
    "stun:stun1.l.google.com:19302",
)


@dataclass(frozen=True)
class Settings:
    # Server
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    # STUN/TURN
    STUN_SERVER: str | None = os.getenv("STUN_SERVER")
    TURN_URL: str | None = os.getenv("TURN_URL")
    TURN_USERNAME: str | None = os.getenv("TURN_USERNAME")
    TURN_PASSWORD: str | None = os.getenv("TURN_PASSWORD")

    # Rooms
    ROOM_CAPACITY: int = int(os.getenv("ROOM_CAPACITY", "2"))
    ROOM_SWEEP_INTERVAL: float = float(os.getenv("ROOM_SWEEP_INTERVAL", "60"))
    ROOM_ID_BYTES: int = int(os.getenv("ROOM_ID_BYTES", "16"))

    # Client
    SIGNALING_URL: str = os.getenv("SIGNALING_URL", "ws://localhost:8000/ws")
    RECONNECT_ATTEMPTS: int = int(os.getenv("RECONNECT_ATTEMPTS", "5"))
    RECONNECT_DELAY: float = float(os.getenv("RECONNECT_DELAY", "1.0"))
    MEDIA_SOURCE: str | None = os.getenv("MEDIA_SOURCE")
    MEDIA_FORMAT: str | None = os.getenv("MEDIA_FORMAT")

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    def ice_servers(self) -> list[dict]:
        """ICE server list handed to the peer-connection engine.

        STUN_SERVER (if set) comes first, then the public Google STUN
        fallbacks. TURN is only added when URL and both credentials are set.
        """
        ice_servers = []
        if self.STUN_SERVER:
            ice_servers.append({"urls": self.STUN_SERVER})
        ice_servers.extend({"urls": url} for url in DEFAULT_STUN_SERVERS)

        if self.TURN_URL and self.TURN_USERNAME and self.TURN_PASSWORD:
            ice_servers.append({
                "urls": self.TURN_URL,
                "username": self.TURN_USERNAME,
                "credential": self.TURN_PASSWORD,
            })
        return ice_servers


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

# Convenient module-level alias
settings = get_settings()
