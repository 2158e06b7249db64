"""
Unit tests for Microsoft Graph identity resolution.
"""

import httpx
import pytest

from uat_router.config import GraphConfig
from uat_router.identity import (
    IdentityResolver,
    TokenCache,
    classify_team,
    extract_email,
)
from uat_router.models import NOT_FOUND, UNKNOWN, Team


# =============================================================================
# Fixtures
# =============================================================================

class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeGraph:
    """Transport handler standing in for the token and Graph endpoints."""

    def __init__(self, users: dict = None, token_status: int = 200):
        self.users = users or {}
        self.token_status = token_status
        self.token_requests = 0
        self.user_requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "login.microsoftonline.com":
            self.token_requests += 1
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_client"})
            return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})

        assert request.headers["Authorization"] == "Bearer tok"
        path = request.url.path
        if path == "/v1.0/users":
            return httpx.Response(200, json={"value": list(self.users.values())})

        email = path.rsplit("/", 1)[-1]
        self.user_requests.append(email)
        if email not in self.users:
            return httpx.Response(404, json={"error": {"code": "Request_ResourceNotFound"}})
        return httpx.Response(200, json=self.users[email])


@pytest.fixture
def graph_config() -> GraphConfig:
    return GraphConfig(client_id="app", client_secret="secret", tenant_id="tenant")


@pytest.fixture
def fake_graph() -> FakeGraph:
    return FakeGraph(users={
        "jane@contoso.com": {
            "displayName": "Jane Doe",
            "mail": "jane@contoso.com",
            "jobTitle": "Cloud Solution Architect",
            "department": "Azure Infra",
        },
        "bob@contoso.com": {
            "displayName": "Bob Smith",
            "mail": "bob@contoso.com",
            "jobTitle": "Technical Specialist",
        },
    })


@pytest.fixture
def resolver(graph_config: GraphConfig, fake_graph: FakeGraph) -> IdentityResolver:
    client = httpx.Client(transport=httpx.MockTransport(fake_graph))
    return IdentityResolver(graph_config, http_client=client)


# =============================================================================
# Team Classification Tests
# =============================================================================

class TestClassifyTeam:
    """Tests for job title classification."""

    @pytest.mark.parametrize("title", [
        "Customer Success Account Manager",
        "Sr. CSAM",
        "Cloud Solution Architect - Data & AI",
        "Customer Success Lead",
    ])
    def test_csu(self, title: str):
        """Test customer success titles map to CSU."""
        assert classify_team(title) == Team.CSU

    @pytest.mark.parametrize("title", [
        "Technical Specialist",
        "Solution Specialist",
        "Senior Account Executive",
        "Sales Engineer",
    ])
    def test_stu(self, title: str):
        """Test specialist and sales titles map to STU."""
        assert classify_team(title) == Team.STU

    def test_csu_checked_first(self):
        """Test a title matching both lists is CSU."""
        assert classify_team("CSA Specialist") == Team.CSU

    def test_case_insensitive(self):
        """Test matching ignores case."""
        assert classify_team("CLOUD SOLUTION ARCHITECT") == Team.CSU

    @pytest.mark.parametrize("title", ["Software Engineer", "", None])
    def test_unknown(self, title):
        """Test unmatched or missing titles are UNKNOWN."""
        assert classify_team(title) == Team.UNKNOWN


class TestExtractEmail:
    """Tests for email extraction from free text."""

    def test_first_email(self):
        """Test the first address is returned."""
        text = "Jane Doe <jane.doe@contoso.com>; bob@contoso.com"
        assert extract_email(text) == "jane.doe@contoso.com"

    @pytest.mark.parametrize("text", ["Jane Doe", "", None, NOT_FOUND])
    def test_no_email(self, text):
        """Test text without an address yields None."""
        assert extract_email(text) is None


# =============================================================================
# Token Cache Tests
# =============================================================================

class TestTokenCache:
    """Tests for the bearer token cache."""

    def test_reuses_valid_token(self):
        """Test a valid token is not refetched."""
        clock = FakeClock()
        cache = TokenCache(clock=clock)
        calls = []

        def fetch():
            calls.append(1)
            return f"tok-{len(calls)}", 3600

        assert cache.get_or_refresh(fetch) == "tok-1"
        clock.now = 1000
        assert cache.get_or_refresh(fetch) == "tok-1"
        assert len(calls) == 1

    def test_refreshes_before_expiry(self):
        """Test the token is refreshed a minute before it expires."""
        clock = FakeClock()
        cache = TokenCache(clock=clock)
        tokens = iter([("first", 120), ("second", 120)])

        assert cache.get_or_refresh(lambda: next(tokens)) == "first"
        clock.now = 59
        assert cache.valid is True
        clock.now = 60
        assert cache.valid is False
        assert cache.get_or_refresh(lambda: next(tokens)) == "second"

    def test_empty_cache_invalid(self):
        """Test a fresh cache holds no token."""
        assert TokenCache(clock=FakeClock()).valid is False


# =============================================================================
# Resolver Tests
# =============================================================================

class TestIdentityResolver:
    """Tests for Graph lookups."""

    def test_resolve_identity(self, resolver: IdentityResolver):
        """Test a known user is resolved and classified."""
        identity = resolver.resolve_identity("jane@contoso.com")

        assert identity.email == "jane@contoso.com"
        assert identity.name == "Jane Doe"
        assert identity.title == "Cloud Solution Architect"
        assert identity.department == "Azure Infra"
        assert identity.team == Team.CSU
        assert identity.error is None

    def test_missing_fields_unknown(self, resolver: IdentityResolver):
        """Test absent directory attributes become UNKNOWN."""
        identity = resolver.resolve_identity("bob@contoso.com")

        assert identity.team == Team.STU
        assert identity.department == UNKNOWN

    def test_token_reused(self, resolver: IdentityResolver, fake_graph: FakeGraph):
        """Test one token serves several lookups."""
        resolver.resolve_identity("jane@contoso.com")
        resolver.resolve_identity("bob@contoso.com")
        assert fake_graph.token_requests == 1

    def test_unknown_user_is_partial(self, resolver: IdentityResolver):
        """Test a failed lookup returns a partial identity."""
        identity = resolver.resolve_identity("ghost@contoso.com")

        assert identity.email == "ghost@contoso.com"
        assert identity.name == UNKNOWN
        assert identity.team == Team.UNKNOWN
        assert identity.error

    def test_token_failure_is_partial(self, graph_config: GraphConfig):
        """Test an authentication failure does not raise."""
        graph = FakeGraph(token_status=401)
        client = httpx.Client(transport=httpx.MockTransport(graph))
        identity = IdentityResolver(graph_config, http_client=client).resolve_identity("jane@contoso.com")

        assert identity.team == Team.UNKNOWN
        assert identity.error
        assert graph.user_requests == []

    @pytest.mark.parametrize("body", [["jane@contoso.com"], "jane", 42])
    def test_non_object_user_is_partial(self, graph_config: GraphConfig, body):
        """Test a user reply that is not an object yields a partial identity."""
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "login.microsoftonline.com":
                return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
            return httpx.Response(200, json=body)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        identity = IdentityResolver(graph_config, http_client=client).resolve_identity("jane@contoso.com")

        assert identity.email == "jane@contoso.com"
        assert identity.team == Team.UNKNOWN
        assert identity.error

    def test_non_string_attributes(self, graph_config: GraphConfig):
        """Test non-string user attributes are rendered as text."""
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "login.microsoftonline.com":
                return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
            return httpx.Response(200, json={"displayName": "Jane", "jobTitle": 7, "department": ["x"]})

        client = httpx.Client(transport=httpx.MockTransport(handler))
        identity = IdentityResolver(graph_config, http_client=client).resolve_identity("jane@contoso.com")

        assert identity.title == "7"
        assert identity.team == Team.UNKNOWN
        assert identity.error is None

    @pytest.mark.parametrize("body", [[], {"value": "x"}, {"value": [1, "a"]}])
    def test_search_unexpected_payload(self, graph_config: GraphConfig, body):
        """Test malformed search replies give no results."""
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "login.microsoftonline.com":
                return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
            return httpx.Response(200, json=body)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        assert IdentityResolver(graph_config, http_client=client).search_users("contoso") == []

    @pytest.mark.parametrize("email", [None, "", NOT_FOUND, UNKNOWN])
    def test_placeholders_skip_lookup(self, email, resolver: IdentityResolver, fake_graph: FakeGraph):
        """Test placeholder inputs make no requests."""
        identity = resolver.resolve_identity(email)

        assert identity.team == Team.UNKNOWN
        assert fake_graph.token_requests == 0

    def test_resolve_identities_dedupes(self, resolver: IdentityResolver, fake_graph: FakeGraph):
        """Test repeated emails are looked up once, in first-seen order."""
        identities = resolver.resolve_identities(
            ["bob@contoso.com", "jane@contoso.com", "bob@contoso.com", NOT_FOUND]
        )

        assert [i.email for i in identities] == ["bob@contoso.com", "jane@contoso.com"]
        assert fake_graph.user_requests == ["bob@contoso.com", "jane@contoso.com"]

    def test_search_users(self, resolver: IdentityResolver):
        """Test search results are classified."""
        results = resolver.search_users("contoso")

        assert {r.name for r in results} == {"Jane Doe", "Bob Smith"}
        assert {r.team for r in results} == {Team.CSU, Team.STU}

    @pytest.mark.parametrize("query", [None, "", "ab", "  a  "])
    def test_search_short_query(self, query, resolver: IdentityResolver, fake_graph: FakeGraph):
        """Test queries under three characters return nothing."""
        assert resolver.search_users(query) == []
        assert fake_graph.token_requests == 0
