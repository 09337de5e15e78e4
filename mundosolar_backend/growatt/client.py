"""
Minimal client for the Growatt open monitoring API.

Every call is a plain ``requests`` round trip with the configured timeout.
The vendor answers HTTP 200 with ``{"back": {"success": ...}}``; anything
else is turned into ``GrowattApiError``.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Any, Optional

import requests

from django.conf import settings
from django.utils import timezone

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openapi.growatt.com"


class GrowattApiError(Exception):
    pass


def hash_password(password: str) -> str:
    """MD5 hex digest with every even-indexed ``0`` replaced by ``c``."""
    digest = hashlib.md5(password.encode("utf-8")).hexdigest()
    return "".join(
        "c" if char == "0" and index % 2 == 0 else char
        for index, char in enumerate(digest)
    )


class GrowattApi:
    def __init__(self, base_url: Optional[str] = None, timeout: Optional[int] = None):
        self.base_url = (
            base_url or getattr(settings, "GROWATT_API_URL", None) or DEFAULT_BASE_URL
        ).rstrip("/")
        self.timeout = timeout or getattr(settings, "GROWATT_REQUEST_TIMEOUT", 15)
        self.token: Optional[str] = None
        self.session = requests.Session()

    # ------------------------------------------------------------------ #

    def _request(self, method: str, path: str, **kwargs) -> dict:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            logger.warning("Growatt %s %s failed: %s", method, path, exc)
            raise GrowattApiError("Error de conexión con Growatt") from exc

        if resp.status_code != 200:
            logger.warning("Growatt %s %s returned HTTP %s", method, path, resp.status_code)
            raise GrowattApiError(f"Growatt respondió HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise GrowattApiError("Respuesta inválida de Growatt") from exc
        back = data.get("back") if isinstance(data, dict) else None
        if not isinstance(back, dict):
            raise GrowattApiError("Respuesta inválida de Growatt")
        return back

    def _require_token(self) -> str:
        if not self.token:
            raise GrowattApiError("Not logged in. Call login() first.")
        return self.token

    # ------------------------------------------------------------------ #

    def login(self, username: str, password: str) -> str:
        back = self._request(
            "POST",
            "/newTwoLoginAPI.do",
            data={"userName": username, "password": hash_password(password)},
        )
        if not back.get("success"):
            raise GrowattApiError(back.get("msg") or "Login failed")
        token = (back.get("user") or {}).get("cpowerToken")
        if not token:
            raise GrowattApiError("Growatt no devolvió token")
        self.token = token
        return token

    def get_plant_list(self) -> list[dict[str, Any]]:
        back = self._request(
            "GET", "/PlantListAPI.do", params={"token": self._require_token()}
        )
        if not back.get("success"):
            return []
        return [
            {
                "plantId": str(p.get("plantId") or p.get("id") or ""),
                "plantName": p.get("plantName"),
                "todayEnergy": p.get("todayEnergy"),
                "totalEnergy": p.get("totalEnergy"),
                "currentPower": p.get("currentPower"),
                "co2Saved": p.get("co2Reduction") or "N/A",
            }
            for p in back.get("data") or []
        ]

    def get_plant_data(self, plant_id) -> dict[str, Any]:
        back = self._request(
            "GET",
            "/PlantDetailAPI.do",
            params={"token": self._require_token(), "plantId": plant_id},
        )
        if not back.get("success"):
            raise GrowattApiError("Invalid response from Growatt API")
        return back

    def get_energy_data(self, plant_id, date=None) -> Any:
        target = date or timezone.localdate()
        back = self._request(
            "GET",
            "/PlantEnergyAPI.do",
            params={
                "token": self._require_token(),
                "plantId": plant_id,
                "date": str(target),
            },
        )
        if not back.get("success"):
            raise GrowattApiError("Invalid response from Growatt API")
        return back.get("data")

    @classmethod
    def test_credentials(cls, username: str, password: str) -> bool:
        try:
            cls().login(username, password)
        except GrowattApiError as exc:
            logger.info("Growatt credential test failed for %s: %s", username, exc)
            return False
        return True
