"""
Microsoft Graph REST API Client for Teams reporting (client_credentials)

Provides authenticated, read-only access to the Microsoft Graph API for
enumerating teams, their settings, members and channels.

Authentication uses the client_credentials flow:
  - POST to Entra ID token endpoint with client_id + client_secret
  - Tokens are valid for ~1 hour
  - Tokens are cached and refreshed 5 minutes before expiry

Failed calls are never retried. Every failure is raised as a GraphError
subclass carrying the message, a category and the client call it came from.

Environment variables (or bridges/microsoft-graph/.env):
  AZURE_TENANT_ID      - Entra ID tenant ID
  GRAPH_CLIENT_ID      - App registration client ID
  GRAPH_CLIENT_SECRET  - App registration client secret

Required application permissions:
  Group.Read.All, TeamSettings.Read.All, TeamMember.Read.All,
  Channel.ReadBasic.All
"""

import os
import sys
import json
import time
import logging
import requests
from pathlib import Path
from dotenv import load_dotenv

_env_path = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(_env_path)

TOKEN_URL_TEMPLATE = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"
API_BASE = "https://graph.microsoft.com/v1.0"
BETA_BASE = "https://graph.microsoft.com/beta"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"

TOKEN_REFRESH_BUFFER_SECS = 300
TEAM_GROUP_FILTER = "resourceProvisioningOptions/Any(x:x eq 'Team')"
TEAM_GROUP_SELECT = "id,displayName,description,visibility,classification,mailNickname"

log = logging.getLogger(__name__)


# ── Errors ─────────────────────────────────────────────────────────────

class GraphError(Exception):
    """A failed Graph call, with a category and the originating call."""

    def __init__(self, message: str, category: str = "Unknown", source: str = None):
        super().__init__(message)
        self.message = message
        self.category = category
        self.source = source


class SessionError(GraphError):
    """Session could not be established (credentials or token request)."""


class EnumerationError(GraphError):
    """Listing the tenant's teams failed."""


class FetchError(GraphError):
    """A per-team fetch (settings, members, channels) failed."""


def _status_category(status_code: int) -> str:
    return {
        400: "BadRequest",
        401: "Unauthorized",
        403: "PermissionDenied",
        404: "NotFound",
        429: "Throttled",
    }.get(status_code, f"HTTP {status_code}")


def _error_message(resp: requests.Response) -> str:
    """Pull error.message out of a Graph error body, falling back to raw text."""
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
        if body.get("error_description"):
            return body["error_description"]
    return resp.text or f"HTTP {resp.status_code}"


def _json(resp: requests.Response, source: str, error_cls=GraphError) -> dict:
    """Decode a successful response body; a non-JSON body raises error_cls."""
    try:
        data = resp.json()
    except ValueError:
        raise error_cls(
            f"Response is not JSON: {(resp.text or '')[:80]}",
            category="InvalidResponse",
            source=source,
        )
    if not isinstance(data, dict):
        raise error_cls(
            f"Unexpected response body: {type(data).__name__}",
            category="InvalidResponse",
            source=source,
        )
    return data


class GraphClient:
    """Microsoft Graph client with cached client_credentials tokens."""

    def __init__(
        self,
        tenant_id: str = None,
        client_id: str = None,
        client_secret: str = None,
        session=None,
    ):
        self.tenant_id = tenant_id or os.getenv("AZURE_TENANT_ID", "")
        self.client_id = client_id or os.getenv("GRAPH_CLIENT_ID", "")
        self.client_secret = client_secret or os.getenv("GRAPH_CLIENT_SECRET", "")

        self._access_token = None
        self._token_expires_at = 0
        self.session = session or requests.Session()

    # ── Session Lifecycle ──────────────────────────────────────────────

    def connect(self) -> None:
        """Establish the session by acquiring a fresh token."""
        self._access_token = None
        self._token_expires_at = 0
        self._get_token()
        log.debug("Connected to Microsoft Graph (tenant %s)", self.tenant_id)

    def disconnect(self) -> None:
        """Drop the cached token and close the HTTP session."""
        try:
            self.session.close()
        except (requests.RequestException, OSError) as e:
            raise SessionError(str(e), category=type(e).__name__, source="disconnect")
        finally:
            self._access_token = None
            self._token_expires_at = 0
        log.debug("Disconnected from Microsoft Graph")

    @property
    def connected(self) -> bool:
        return bool(self._access_token) and time.time() < self._token_expires_at

    # ── OAuth Token Management ─────────────────────────────────────────

    def _get_token(self) -> str:
        """Obtain or refresh the client_credentials token."""
        now = time.time()
        if self._access_token and now < self._token_expires_at:
            return self._access_token

        missing = [
            name for name, value in (
                ("AZURE_TENANT_ID", self.tenant_id),
                ("GRAPH_CLIENT_ID", self.client_id),
                ("GRAPH_CLIENT_SECRET", self.client_secret),
            ) if not value
        ]
        if missing:
            raise SessionError(
                f"Missing Microsoft Graph credentials: {', '.join(missing)}",
                category="MissingCredentials",
                source="connect",
            )

        token_url = TOKEN_URL_TEMPLATE.format(tenant=self.tenant_id)
        try:
            resp = self.session.post(
                token_url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "scope": GRAPH_SCOPE,
                },
                timeout=30,
            )
        except requests.RequestException as e:
            raise SessionError(
                f"Token request failed: {e}", category="ConnectionError", source="connect"
            )

        if resp.status_code != 200:
            raise SessionError(
                f"Token request failed ({resp.status_code}): {_error_message(resp)}",
                category=_status_category(resp.status_code),
                source="connect",
            )

        token_data = _json(resp, "connect", SessionError)
        if not token_data.get("access_token"):
            raise SessionError(
                "Token response has no access_token",
                category="InvalidResponse",
                source="connect",
            )
        self._access_token = token_data["access_token"]
        expires_in = token_data.get("expires_in", 3600)
        self._token_expires_at = now + expires_in - TOKEN_REFRESH_BUFFER_SECS

        return self._access_token

    def _auth_headers(self) -> dict:
        """Return headers with a valid Bearer token."""
        token = self._get_token()
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "ConsistencyLevel": "eventual",
        }

    # ── Core HTTP Methods ──────────────────────────────────────────────

    def _request(
        self, method: str, endpoint: str, source: str, error_cls=GraphError, **kwargs
    ) -> requests.Response:
        """Make an authenticated request; raise error_cls on any failure."""
        url = endpoint if endpoint.startswith("http") else f"{API_BASE}/{endpoint.lstrip('/')}"
        kwargs["headers"] = self._auth_headers()

        try:
            resp = self.session.request(method, url, timeout=60, **kwargs)
        except requests.RequestException as e:
            raise error_cls(str(e), category="ConnectionError", source=source)

        if resp.status_code != 200:
            raise error_cls(
                _error_message(resp),
                category=_status_category(resp.status_code),
                source=source,
            )
        return resp

    def get(self, endpoint: str, params: dict = None, source: str = "get",
            error_cls=GraphError) -> requests.Response:
        return self._request("GET", endpoint, source, error_cls, params=params)

    # ── Pagination Helper ──────────────────────────────────────────────

    def get_all(
        self,
        endpoint: str,
        key: str = "value",
        params: dict = None,
        top: int = 100,
        max_pages: int = 100,
        source: str = "get_all",
        error_cls=GraphError,
    ) -> list:
        """
        Paginate through all results for a list endpoint.

        Graph uses @odata.nextLink for cursor-based pagination. A failing
        page, or a next link still pending after max_pages, raises
        error_cls; partial results are never returned.
        """
        params = dict(params or {})
        if "$top" not in params and top:
            params["$top"] = top
        results = []
        url = endpoint

        for _ in range(max_pages):
            resp = self.get(
                url,
                params=params if not url.startswith("http") else None,
                source=source,
                error_cls=error_cls,
            )
            data = _json(resp, source, error_cls)
            results.extend(data.get(key, []))

            next_link = data.get("@odata.nextLink")
            if not next_link:
                return results

            url = next_link
            params = None

        raise error_cls(
            f"More than {max_pages} pages for {endpoint}",
            category="TooManyPages",
            source=source,
        )

    # ── Teams ──────────────────────────────────────────────────────────

    def list_teams(self, top: int = 999) -> list:
        """List every team-enabled Microsoft 365 group in the tenant."""
        params = {"$filter": TEAM_GROUP_FILTER, "$select": TEAM_GROUP_SELECT}
        return self.get_all(
            "groups", params=params, top=top,
            source="list_teams", error_cls=EnumerationError,
        )

    def get_team(self, team_id: str) -> dict:
        """Team settings; beta carries discoverySettings."""
        resp = self.get(
            f"{BETA_BASE}/teams/{team_id}", source="get_team", error_cls=FetchError
        )
        return _json(resp, "get_team", FetchError)

    def list_team_channels(self, team_id: str) -> list:
        """List channels for a team (no $top -- channels API rejects it)."""
        resp = self.get(
            f"teams/{team_id}/channels", source="list_team_channels", error_cls=FetchError
        )
        return _json(resp, "list_team_channels", FetchError).get("value", [])

    def list_team_users(self, team_id: str) -> list:
        """List conversation members of a team (no $top -- members API rejects it)."""
        resp = self.get(
            f"teams/{team_id}/members", source="list_team_users", error_cls=FetchError
        )
        return _json(resp, "list_team_users", FetchError).get("value", [])


# ── CLI Entrypoint ─────────────────────────────────────────────────────
# Allows quick testing: python3 graph_client.py test

if __name__ == "__main__":
    action = sys.argv[1] if len(sys.argv) > 1 else "test"
    client = GraphClient()

    try:
        if action == "test":
            client.connect()
            teams = client.get_all(
                "groups",
                params={"$filter": TEAM_GROUP_FILTER, "$select": "id"},
                top=1,
                max_pages=1,
                source="list_teams",
                error_cls=EnumerationError,
            )
            print(json.dumps({"ok": True, "teams_accessible": bool(teams)}, indent=2))

        elif action == "teams":
            teams = client.list_teams()
            print(f"Total teams: {len(teams)}")
            for t in teams:
                print(f"  {t.get('displayName') or '?':40s}  {t.get('visibility') or '?'}")

        else:
            print(f"Unknown action: {action}")
            print("Usage: python3 graph_client.py [test|teams]")
            sys.exit(1)

    except GraphError as e:
        print(f"ERROR: {e} ({e.category}, {e.source})", file=sys.stderr)
        sys.exit(1)
