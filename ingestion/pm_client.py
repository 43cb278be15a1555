"""
Property-management software API client
"""
from typing import Dict, List, Optional

import requests

from config import settings
from utils.logging_config import get_logger

logger = get_logger(__name__)


class PMClientError(Exception):
    """Upstream PM API failure: bad status, auth error payload or network error"""


class PMClient:
    """
    Client for a PM software REST API.

    Authenticates with an OAuth2 password grant and reads properties plus the
    per-property occupancy, financial and maintenance resources.
    """

    def __init__(
        self,
        pm_software: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None
    ):
        self.pm_software = pm_software.lower()
        if base_url is None and self.pm_software not in settings.PM_API_URLS:
            raise ValueError(f"Unsupported PM software: {pm_software}")
        self.base_url = (base_url or settings.PM_API_URLS[self.pm_software]).rstrip("/")
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS
        self.session = session or requests.Session()
        self.access_token: Optional[str] = None

    def authenticate(self, username: str, password: str) -> str:
        """Password grant against {base_url}/oauth/token; returns the access token"""
        url = f"{self.base_url}/oauth/token"
        logger.info("pm_authenticating", pm_software=self.pm_software, url=url)
        try:
            response = self.session.post(
                url,
                json={
                    'grant_type': 'password',
                    'username': username,
                    'password': password,
                    'client_id': settings.PM_OAUTH_CLIENT_ID,
                    'scope': settings.PM_OAUTH_SCOPE,
                },
                headers={'Accept': 'application/json'},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise PMClientError(f"{self.pm_software} authentication failed: {e}") from e

        if not response.ok:
            raise PMClientError(
                f"{self.pm_software} authentication failed: {response.status_code} - {response.text}"
            )

        data = response.json()
        if data.get('error'):
            raise PMClientError(f"{self.pm_software} authentication error: {data['error']}")

        self.access_token = data.get('access_token')
        if not self.access_token:
            raise PMClientError(f"{self.pm_software} authentication returned no access token")
        return self.access_token

    def _get(self, path: str, what: str) -> Dict:
        if not self.access_token:
            raise PMClientError("Not authenticated")
        try:
            response = self.session.get(
                f"{self.base_url}{path}",
                headers={
                    'Authorization': f"Bearer {self.access_token}",
                    'Accept': 'application/json',
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise PMClientError(f"Failed to fetch {what}: {e}") from e

        if not response.ok:
            raise PMClientError(f"Failed to fetch {what}: {response.status_code}")
        return response.json()

    def fetch_properties(self) -> List[Dict]:
        return self._get("/api/v1/properties", "properties").get('properties') or []

    def fetch_occupancy(self, property_id: str) -> Dict:
        return self._get(f"/api/v1/properties/{property_id}/occupancy", "property details")

    def fetch_financial(self, property_id: str) -> Dict:
        return self._get(f"/api/v1/properties/{property_id}/financial", "financial data")

    def fetch_maintenance(self, property_id: str) -> Dict:
        return self._get(f"/api/v1/properties/{property_id}/maintenance", "maintenance data")
