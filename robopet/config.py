import sys
from pydantic_settings import BaseSettings

AGE_GROUPS = ("3-5", "6-8", "9-12")


class Settings(BaseSettings):
    # Storage backend: "sqlite" (default) or "memory"
    storage_backend: str = "sqlite"
    # SQLite file path - can be overridden via ROBOPET_STORAGE_PATH
    storage_path: str = "robo_pet.db"
    # Prefix applied to every persisted key
    storage_namespace: str = "robo_pet_"
    # Number of previous states kept for back navigation
    state_history_limit: int = 10
    # Frame delta ceiling; longer frames (tab switch, debugger) are clamped
    max_frame_delta_ms: float = 100.0
    # Records kept per ledger history list
    activity_history_limit: int = 200
    # Bracket used when no player profile exists yet
    default_age_group: str = "6-8"
    log_level: str = "INFO"

    model_config = {"env_prefix": "ROBOPET_", "env_file": ".env", "env_file_encoding": "utf-8"}


def _load_settings() -> Settings:
    """Load settings and reject values the engine cannot run with."""
    s = Settings()

    if s.storage_backend not in ("sqlite", "memory"):
        print(f"ERROR: ROBOPET_STORAGE_BACKEND must be 'sqlite' or 'memory', got {s.storage_backend!r}.",
              file=sys.stderr)
        sys.exit(1)

    if s.storage_backend == "sqlite" and not s.storage_path:
        print("ERROR: ROBOPET_STORAGE_PATH is required for the sqlite backend.", file=sys.stderr)
        sys.exit(1)

    if s.state_history_limit < 1:
        print("ERROR: ROBOPET_STATE_HISTORY_LIMIT must be at least 1.", file=sys.stderr)
        sys.exit(1)

    if s.max_frame_delta_ms <= 0:
        print("ERROR: ROBOPET_MAX_FRAME_DELTA_MS must be positive.", file=sys.stderr)
        sys.exit(1)

    if s.default_age_group not in AGE_GROUPS:
        print(f"ERROR: ROBOPET_DEFAULT_AGE_GROUP must be one of {', '.join(AGE_GROUPS)}.", file=sys.stderr)
        sys.exit(1)

    return s


settings = _load_settings()
