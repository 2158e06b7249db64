"""
Microsoft Graph identity resolution.

Resolves requestor emails to directory identities and classifies them
into CSU / STU / UNKNOWN teams from their job title.
"""

import logging
import re
import time
from typing import Callable, Optional
from urllib.parse import quote

import httpx

from .config import GraphConfig
from .errors import IdentityError
from .models import NOT_FOUND, UNKNOWN, ResolvedIdentity, Team


logger = logging.getLogger(__name__)


GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
LOGIN_BASE_URL = "https://login.microsoftonline.com"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"

# Order matters: a title matching both lists is CSU
CSU_KEYWORDS = (
    "customer success account manager",
    "csam",
    "cloud solution architect",
    "csa",
    "customer success",
)

STU_KEYWORDS = (
    "specialist",
    "sales engineer",
    "account executive",
    "technical specialist",
    "solution specialist",
)

# Seconds subtracted from the token lifetime
TOKEN_EXPIRY_BUFFER = 60

_EMAIL_RE = re.compile(r"([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})")


def classify_team(job_title: Optional[str]) -> Team:
    """
    Classify a job title as CSU, STU or UNKNOWN.

    Matching is case-insensitive substring containment; CSU keywords are
    checked before STU keywords and the first match wins.
    """
    if not job_title:
        return Team.UNKNOWN

    title = job_title.lower()

    for keyword in CSU_KEYWORDS:
        if keyword in title:
            return Team.CSU

    for keyword in STU_KEYWORDS:
        if keyword in title:
            return Team.STU

    return Team.UNKNOWN


def extract_email(text: Optional[str]) -> Optional[str]:
    """Return the first email address found in free text."""
    if not text:
        return None
    match = _EMAIL_RE.search(text)
    return match.group(1) if match else None


def unknown_identity(email: str, error: Optional[str] = None) -> ResolvedIdentity:
    """Identity with only the email known."""
    return ResolvedIdentity(email=email or UNKNOWN, error=error)


def identity_from_user(user: dict, email: Optional[str] = None) -> ResolvedIdentity:
    """Build an identity from a Graph user object; missing attributes read UNKNOWN."""
    job_title = str(user.get("jobTitle") or "")
    return ResolvedIdentity(
        email=str(user.get("mail") or email or UNKNOWN),
        name=str(user.get("displayName") or UNKNOWN),
        title=job_title or UNKNOWN,
        department=str(user.get("department") or UNKNOWN),
        team=classify_team(job_title),
    )


class TokenCache:
    """
    In-memory bearer token with an expiry.

    There is no lock: two callers seeing an expired token may both refresh
    it. Token issuance is idempotent, so the last writer simply wins.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at = 0.0

    @property
    def valid(self) -> bool:
        return self._token is not None and self._clock() < self._expires_at

    def get_or_refresh(self, fetch: Callable[[], tuple[str, int]]) -> str:
        """
        Return the cached token, fetching a new one if it has expired.

        Args:
            fetch: Returns ``(access_token, expires_in_seconds)``.

        Returns:
            A bearer token.
        """
        if self.valid:
            return self._token

        token, expires_in = fetch()
        self._token = token
        self._expires_at = self._clock() + expires_in - TOKEN_EXPIRY_BUFFER
        return token


class IdentityResolver:
    """
    Resolves requestor identities against Microsoft Graph.

    Every public method is best effort: failures are logged and turned into
    partial or empty results instead of exceptions.
    """

    def __init__(
        self,
        config: GraphConfig,
        http_client: Optional[httpx.Client] = None,
        token_cache: Optional[TokenCache] = None,
    ):
        """
        Initialize the resolver.

        Args:
            config: Graph app registration settings.
            http_client: Optional preconfigured client (used by tests).
            token_cache: Optional token cache (used by tests).
        """
        self._config = config
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=config.request_timeout)
        self._tokens = token_cache or TokenCache()

    def __enter__(self) -> "IdentityResolver":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def _request_token(self) -> tuple[str, int]:
        """Acquire an app-only token with the client credentials grant."""
        try:
            response = self._client.post(
                f"{LOGIN_BASE_URL}/{self._config.tenant_id}/oauth2/v2.0/token",
                data={
                    "client_id": self._config.client_id,
                    "client_secret": self._config.client_secret,
                    "scope": GRAPH_SCOPE,
                    "grant_type": "client_credentials",
                },
            )
            response.raise_for_status()
            data = response.json()
            return data["access_token"], int(data.get("expires_in", 3600))
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.error(f"Failed to get Graph access token: {e}")
            raise IdentityError("Failed to authenticate with Microsoft Graph") from e

    def get_access_token(self) -> str:
        """Get a valid Graph access token, refreshing it when expired."""
        return self._tokens.get_or_refresh(self._request_token)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.get_access_token()}",
            "ConsistencyLevel": "eventual",
        }

    def resolve_identity(self, email: Optional[str]) -> ResolvedIdentity:
        """
        Resolve a user by email.

        Args:
            email: User principal name or mail address.

        Returns:
            ResolvedIdentity; partial (with ``error`` set) if the lookup fails.
        """
        if not email or email in (NOT_FOUND, UNKNOWN):
            return ResolvedIdentity(email=email or UNKNOWN)

        try:
            response = self._client.get(
                f"{GRAPH_BASE_URL}/users/{quote(email, safe='')}",
                headers=self._headers(),
                params={"$select": "displayName,mail,jobTitle,department,officeLocation"},
            )
            response.raise_for_status()
            user = response.json()
        except (httpx.HTTPError, IdentityError, ValueError) as e:
            logger.warning(f"Failed to resolve identity for {email}: {e}")
            return unknown_identity(email, error=str(e))

        if not isinstance(user, dict):
            logger.warning(f"Unexpected Graph response for {email}: {type(user).__name__}")
            return unknown_identity(email, error="Unexpected response from Microsoft Graph")

        identity = identity_from_user(user, email)
        logger.info(f"Resolved {email} as {identity.name!r} ({identity.team.value})")
        return identity

    def resolve_identities(self, emails: list[str]) -> list[ResolvedIdentity]:
        """
        Resolve several emails, skipping duplicates and placeholders.

        Args:
            emails: Email addresses in any order, possibly repeated.

        Returns:
            One identity per unique email, in first-seen order.
        """
        unique = [
            email for email in dict.fromkeys(emails)
            if email and email != NOT_FOUND
        ]
        return [self.resolve_identity(email) for email in unique]

    def search_users(self, query: Optional[str]) -> list[ResolvedIdentity]:
        """
        Search the directory by display name or mail.

        Args:
            query: Search text (at least 3 characters).

        Returns:
            Up to 10 matching identities; empty on failure.
        """
        if not query or len(query.strip()) < 3:
            return []

        try:
            response = self._client.get(
                f"{GRAPH_BASE_URL}/users",
                headers=self._headers(),
                params={
                    "$search": f'"displayName:{query}" OR "mail:{query}"',
                    "$select": "displayName,mail,jobTitle,department",
                    "$top": "10",
                },
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, IdentityError, ValueError) as e:
            logger.warning(f"User search failed for {query!r}: {e}")
            return []

        users = data.get("value") if isinstance(data, dict) else None
        if not isinstance(users, list):
            logger.warning(f"Unexpected Graph search response for {query!r}")
            return []

        return [identity_from_user(user) for user in users if isinstance(user, dict)]
