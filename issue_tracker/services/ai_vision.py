"""
Client for the external AI vision service.

The service is optional: every call uses a short timeout and falls back
to empty defaults when the service is unreachable or answers with an error.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

EMPTY_STATS: Dict[str, Any] = {
    "total_detections": 0,
    "today_detections": 0,
    "auto_reported_issues": 0,
    "by_damage_type": {},
    "by_severity": {},
    "by_camera": {},
}


class AIVisionClient:
    def __init__(self, base_url: Optional[str], timeout: float = 5.0):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout

    def is_enabled(self) -> bool:
        return bool(self.base_url)

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        if not self.is_enabled():
            return None
        try:
            resp = requests.get(f"{self.base_url}{path}", params=params, timeout=self.timeout)
            if resp.status_code != 200:
                logger.warning(f"AI vision GET {path} failed with status {resp.status_code}")
                return None
            return resp.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Could not reach AI vision service ({path}): {e}")
            return None

    def recent_detections(self, limit: int = 50) -> List[Dict[str, Any]]:
        data = self._get("/api/detections/recent", params={"limit": limit})
        return data if isinstance(data, list) else []

    def stats(self) -> Dict[str, Any]:
        data = self._get("/api/detections/stats")
        return data if isinstance(data, dict) else dict(EMPTY_STATS)

    def save_detection(self, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Forward a detection for permanent storage; None when the service is unavailable."""
        if not self.is_enabled():
            return None
        try:
            resp = requests.post(f"{self.base_url}/api/detections/save", json=record, timeout=self.timeout)
            if resp.status_code not in (200, 201):
                logger.warning(f"AI vision save failed with status {resp.status_code}")
                return None
            return resp.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Could not save to AI vision service: {e}")
            return None
