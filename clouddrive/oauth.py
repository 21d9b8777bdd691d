# Filename: clouddrive/oauth.py
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"


class OAuthError(Exception):
    pass


class GoogleOAuth:
    """Authorization-code flow against Google, just enough to learn who signed in."""

    def __init__(self, client_id: Optional[str], client_secret: Optional[str], redirect_uri: str, timeout: float = 10.0):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def authorization_url(self, state: Optional[str] = None) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": "openid email profile",
            "access_type": "online",
            "prompt": "select_account",
        }
        if state:
            params["state"] = state
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def fetch_profile(self, code: str) -> Dict[str, Any]:
        """Exchange ``code`` for a token and return the userinfo document."""
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                r = await client.post(
                    GOOGLE_TOKEN_URL,
                    data={
                        "code": code,
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "redirect_uri": self.redirect_uri,
                        "grant_type": "authorization_code",
                    },
                )
                if r.status_code != 200:
                    raise OAuthError(f"token exchange failed with status {r.status_code}")
                access_token = r.json().get("access_token")
                if not access_token:
                    raise OAuthError("token exchange returned no access token")
                r = await client.get(GOOGLE_USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"})
            except httpx.HTTPError as e:
                raise OAuthError(f"google unreachable: {e}") from e
        if r.status_code != 200:
            raise OAuthError(f"userinfo failed with status {r.status_code}")
        profile = r.json()
        if not profile.get("email"):
            raise OAuthError("No email found in Google profile")
        return profile
