"""
Growatt Monitoring API Mock
===========================

Fake Growatt open API for sync and credential tests, served through
``responses`` so the real ``requests`` code path runs.

Usage:
-----
@pytest.fixture
def mock_growatt(responses_mock, settings):
    mock = GrowattMock()
    mock.register_responses(responses_mock)
    return mock

def test_sync(mock_growatt):
    mock_growatt.add_account("solar1", "secret", plant_id="P-1", today_energy=21.4)
    ...
"""

import json
from typing import Any, Dict
from urllib.parse import parse_qs, urlparse

from growatt.client import hash_password


class GrowattMock:
    """Accounts, plants and login tokens held in memory."""

    def __init__(self, api_url: str = "https://growatt.test"):
        self.api_url = api_url
        self.accounts: Dict[str, Dict[str, Any]] = {}
        self.tokens: Dict[str, str] = {}
        self.login_calls = 0
        self.fail_plant_detail = False

    def add_account(
        self,
        username: str,
        password: str,
        *,
        plant_id: str = "PLANT-1",
        plant_name: str = "Casa",
        today_energy: float = 18.5,
        month_energy: float = 420.0,
        year_energy: float = 5100.0,
        total_energy: float = 12800.0,
        current_power: float = 3.2,
        co2_reduction: float = 9.1,
        status: str = "online",
    ):
        self.accounts[username] = {
            "password_hash": hash_password(password),
            "plants": [
                {
                    "plantId": plant_id,
                    "plantName": plant_name,
                    "todayEnergy": f"{today_energy} kWh",
                    "totalEnergy": f"{total_energy} kWh",
                    "currentPower": f"{current_power} kW",
                    "co2Reduction": f"{co2_reduction}",
                    "detail": {
                        "todayEnergy": today_energy,
                        "monthEnergy": month_energy,
                        "yearEnergy": year_energy,
                        "totalEnergy": total_energy,
                        "currentPower": current_power,
                        "co2Reduction": co2_reduction,
                        "status": status,
                    },
                }
            ],
        }

    def register_responses(self, responses_mock):
        """Register all Growatt API mock responses"""

        def _as_callback(func):
            def _callback(request):
                payload = func(request) or {}
                return (
                    200,
                    {"Content-Type": "application/json"},
                    json.dumps(payload, default=str),
                )

            return _callback

        responses_mock.add_callback(
            responses_mock.POST,
            f"{self.api_url}/newTwoLoginAPI.do",
            callback=_as_callback(self._login_callback),
        )
        responses_mock.add_callback(
            responses_mock.GET,
            f"{self.api_url}/PlantListAPI.do",
            callback=_as_callback(self._plant_list_callback),
        )
        responses_mock.add_callback(
            responses_mock.GET,
            f"{self.api_url}/PlantDetailAPI.do",
            callback=_as_callback(self._plant_detail_callback),
        )

    # ------------------------------------------------------------------ #

    @staticmethod
    def _query(request) -> Dict[str, str]:
        return {k: v[0] for k, v in parse_qs(urlparse(request.url).query).items()}

    def _login_callback(self, request) -> Dict[str, Any]:
        self.login_calls += 1
        form = {k: v[0] for k, v in parse_qs(request.body or "").items()}
        account = self.accounts.get(form.get("userName"))
        if account is None or account["password_hash"] != form.get("password"):
            return {"back": {"success": False, "msg": "Usuario o contraseña incorrectos"}}
        token = f"token-{form['userName']}"
        self.tokens[token] = form["userName"]
        return {"back": {"success": True, "user": {"cpowerToken": token}}}

    def _account_for(self, request):
        username = self.tokens.get(self._query(request).get("token"))
        return self.accounts.get(username) if username else None

    def _plant_list_callback(self, request) -> Dict[str, Any]:
        account = self._account_for(request)
        if account is None:
            return {"back": {"success": False, "msg": "token invalid"}}
        plants = [
            {k: v for k, v in plant.items() if k != "detail"}
            for plant in account["plants"]
        ]
        return {"back": {"success": True, "data": plants}}

    def _plant_detail_callback(self, request) -> Dict[str, Any]:
        account = self._account_for(request)
        if account is None or self.fail_plant_detail:
            return {"back": {"success": False}}
        plant_id = self._query(request).get("plantId")
        for plant in account["plants"]:
            if plant["plantId"] == plant_id:
                return {"back": {"success": True, "data": plant["detail"]}}
        return {"back": {"success": False}}
