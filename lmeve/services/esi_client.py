"""EVE SSO / ESI HTTP client"""

import base64
import logging
from typing import Any, Dict, Optional

import httpx

from lmeve.config import settings

logger = logging.getLogger(__name__)


class EsiClient:
    """Thin wrapper over the vendor SSO and ESI endpoints

    Every call returns the raw ``httpx.Response``; callers decide what a
    failure means for them. Transport errors propagate as ``httpx.HTTPError``.
    """

    def __init__(self, transport: Optional[httpx.BaseTransport] = None, user_agent: str = None):
        self.sso_base_url = settings.SSO_BASE_URL.rstrip('/')
        self.esi_base_url = settings.ESI_BASE_URL.rstrip('/')
        self.user_agent = user_agent or settings.USER_AGENT
        self.timeout = settings.HTTP_TIMEOUT
        self.transport = transport

    def with_user_agent(self, user_agent: str) -> "EsiClient":
        """Same transport, different User-Agent (ESI asks apps to identify themselves)"""
        return EsiClient(transport=self.transport, user_agent=user_agent)

    def _client(self, timeout: float = None, follow_redirects: bool = False) -> httpx.Client:
        return httpx.Client(
            timeout=timeout if timeout is not None else self.timeout,
            transport=self.transport,
            headers={"User-Agent": self.user_agent},
            follow_redirects=follow_redirects,
        )

    @staticmethod
    def basic_auth(client_id: str, client_secret: str) -> str:
        token = base64.b64encode(f"{client_id}:{client_secret}".encode()).decode()
        return f"Basic {token}"

    def request_token(self, form: Dict[str, Any], authorization: Optional[str] = None) -> httpx.Response:
        """
        POST to the SSO token endpoint

        Args:
            form: Grant parameters (grant_type, code / refresh_token, ...)
            authorization: Optional Authorization header (HTTP Basic client credentials)
        """
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        if authorization:
            headers["Authorization"] = authorization
        with self._client() as client:
            return client.post(f"{self.sso_base_url}/v2/oauth/token", data=form, headers=headers)

    def exchange_code(self, client_id: str, client_secret: str, code: str, redirect_uri: str) -> httpx.Response:
        """Authorization-code grant"""
        return self.request_token(
            {"grant_type": "authorization_code", "code": code, "redirect_uri": redirect_uri},
            authorization=self.basic_auth(client_id, client_secret),
        )

    def refresh(self, client_id: str, client_secret: str, refresh_token: str) -> httpx.Response:
        """Refresh-token grant"""
        return self.request_token(
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
            authorization=self.basic_auth(client_id, client_secret),
        )

    def proxy_token(self, form: Dict[str, Any]) -> httpx.Response:
        """Token request with client credentials, if any, in the form body"""
        return self.request_token(form)

    def verify(self, authorization: str) -> httpx.Response:
        """Identity of the token owner (CharacterID, CharacterName, Scopes)"""
        with self._client() as client:
            return client.get(f"{self.sso_base_url}/oauth/verify", headers={"Authorization": authorization})

    def get_character(self, character_id: int, access_token: str) -> httpx.Response:
        """Public character record, including corporation_id"""
        with self._client() as client:
            return client.get(
                f"{self.esi_base_url}/latest/characters/{character_id}/",
                params={"datasource": settings.ESI_DATASOURCE},
                headers={"Authorization": f"Bearer {access_token}"},
            )

    def fetch_json(self, url: str, timeout: float = None, params: Dict[str, Any] = None) -> Optional[Any]:
        """
        Best-effort GET returning decoded JSON

        Returns:
            Decoded JSON object/array, or None on any transport, status or decode failure
        """
        try:
            with self._client(timeout=timeout) as client:
                response = client.get(url, params=params)
            if response.status_code >= 400:
                logger.warning(f"GET {url} returned {response.status_code}")
                return None
            data = response.json()
        except httpx.HTTPError as e:
            logger.warning(f"GET {url} failed: {str(e)}")
            return None
        except ValueError:
            logger.warning(f"GET {url} returned invalid JSON")
            return None
        return data if isinstance(data, (dict, list)) else None

    def server_status(self) -> Optional[Dict[str, Any]]:
        """Tranquility status (players, server_version)"""
        data = self.fetch_json(
            f"{self.esi_base_url}/latest/status/",
            params={"datasource": settings.ESI_DATASOURCE},
        )
        return data if isinstance(data, dict) else None

    def swagger_available(self) -> bool:
        """Whether the ESI swagger spec can be fetched"""
        return bool(self.fetch_json(f"{self.esi_base_url}/latest/swagger.json"))

    def public_ip(self) -> Optional[str]:
        """This host's public address, None if the lookup does not answer quickly"""
        data = self.fetch_json(settings.PUBLIC_IP_URL, timeout=settings.PUBLIC_IP_TIMEOUT)
        if isinstance(data, dict) and data.get("ip"):
            return str(data["ip"])
        return None

    def head(self, url: str, timeout: float = None) -> httpx.Response:
        """HEAD request following redirects"""
        with self._client(timeout=timeout, follow_redirects=True) as client:
            return client.head(url)


def get_esi_client() -> EsiClient:
    """ESI client dependency"""
    return EsiClient()
