import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env", override=False)

# Session store config
DDA_SESSION_TTL_SECONDS = int(os.getenv("DDA_SESSION_TTL_SECONDS", "3600"))
DDA_STORE_TIMEOUT_MS = int(os.getenv("DDA_STORE_TIMEOUT_MS", "250"))
DDA_PURGE_INTERVAL_SECONDS = int(os.getenv("DDA_PURGE_INTERVAL_SECONDS", "300"))

# Rolling window / ring buffer sizes
DDA_ENCOUNTER_WINDOW = int(os.getenv("DDA_ENCOUNTER_WINDOW", "20"))
DDA_HISTORY_LIMIT = int(os.getenv("DDA_HISTORY_LIMIT", "50"))
DDA_TRANSPARENCY_LOG_LIMIT = int(os.getenv("DDA_TRANSPARENCY_LOG_LIMIT", "100"))

# Transparency config
DDA_DEFAULT_TRANSPARENCY = os.getenv("DDA_DEFAULT_TRANSPARENCY", "balanced")
_seed = os.getenv("DDA_NOTIFICATION_SEED")
DDA_NOTIFICATION_SEED = int(_seed) if _seed else None
