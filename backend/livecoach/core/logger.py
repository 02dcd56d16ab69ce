import json
import logging
from enum import Enum
from typing import Any

from livecoach.core.config import LOG_LEVEL

logging.basicConfig(
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    level=getattr(logging, LOG_LEVEL, logging.INFO),
)

logger = logging.getLogger("livecoach")

# transcript content never reaches the logs, only its length
REDACTED_KEYS = frozenset({"text", "transcript", "question_text", "normalized_text"})


def _redact(key: str, value: Any) -> Any:
	field = str(key or "").lower()
	if field in REDACTED_KEYS:
		return {"redacted": True, "length": len(str(value or ""))}
	if isinstance(value, Enum):
		return value.value
	if isinstance(value, (str, int, float, bool)) or value is None:
		return value
	if hasattr(value, "to_dict"):
		value = value.to_dict()
	if isinstance(value, dict):
		return {str(k): _redact(str(k), v) for k, v in value.items()}
	if isinstance(value, (list, tuple, set, frozenset)):
		return [_redact(field, item) for item in value]
	return str(value)


def log_event(component: str, event: str, session_id: str | None, **fields) -> None:
	payload = {
		"component": str(component or "livecoach"),
		"event": str(event or "unknown"),
		"session_id": str(session_id or ""),
	}
	for key, value in fields.items():
		payload[str(key)] = _redact(str(key), value)
	logger.info(json.dumps(payload, ensure_ascii=False, default=str))
