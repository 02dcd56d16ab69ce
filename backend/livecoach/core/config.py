import os
from pathlib import Path
from dotenv import load_dotenv

_PROJECT_ROOT = Path(__file__).resolve().parents[3]
_PROJECT_ENV_PATH = _PROJECT_ROOT / ".env"
load_dotenv(dotenv_path=_PROJECT_ENV_PATH, override=False)


def _env_float(name: str, default: float) -> float:
    raw = str(os.getenv(name) or "").strip()
    if not raw:
        return float(default)
    try:
        return float(raw)
    except ValueError:
        return float(default)


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, default))


def _env_bool(name: str, default: bool) -> bool:
    raw = str(os.getenv(name) or "").strip().lower()
    if not raw:
        return bool(default)
    return raw in {"1", "true", "yes", "on"}


# Transcript aggregation
ECHO_TIME_WINDOW_MS = _env_int("ECHO_TIME_WINDOW_MS", 500)
TEXT_SIMILARITY_THRESHOLD = _env_float("TEXT_SIMILARITY_THRESHOLD", 0.6)
PARTIAL_UPDATE_WINDOW_MS = _env_int("PARTIAL_UPDATE_WINDOW_MS", 2000)
MAX_SEGMENT_BUFFER_SIZE = _env_int("MAX_SEGMENT_BUFFER_SIZE", 500)
STALE_SEGMENT_TIMEOUT_MS = _env_int("STALE_SEGMENT_TIMEOUT_MS", 10000)
STALE_SWEEP_INTERVAL_SEC = _env_float("STALE_SWEEP_INTERVAL_SEC", 5.0)

# Which capture path carries the interviewer's voice in this deployment
INTERVIEWER_SOURCE = str(os.getenv("INTERVIEWER_SOURCE") or "system").strip().lower()
INTERVIEWER_SPEAKER_SLOT = str(os.getenv("INTERVIEWER_SPEAKER_SLOT") or "Speaker 0").strip()

# Answer timing coach
COACHING_ENABLED = _env_bool("COACHING_ENABLED", True)
COACH_CLASSIFICATION_TIMEOUT_MS = _env_int("COACH_CLASSIFICATION_TIMEOUT_MS", 1200)
COACH_NUDGE_AUTO_DISMISS_MS = _env_int("COACH_NUDGE_AUTO_DISMISS_MS", 5000)
COACH_LOW_DIARIZATION_CONFIDENCE = _env_float("COACH_LOW_DIARIZATION_CONFIDENCE", 0.7)
COACH_SILENCE_GAP_MS = _env_int("COACH_SILENCE_GAP_MS", 0)  # 0 = never end on silence
COACH_TIMER_INTERVAL_SEC = _env_float("COACH_TIMER_INTERVAL_SEC", 0.5)
COACH_CLASSIFICATION_CACHE_TTL_SEC = _env_float("COACH_CLASSIFICATION_CACHE_TTL_SEC", 300.0)
COACH_CLASSIFIER_URL = str(os.getenv("COACH_CLASSIFIER_URL") or "").strip()

LOG_LEVEL = str(os.getenv("LOG_LEVEL") or "INFO").strip().upper()
