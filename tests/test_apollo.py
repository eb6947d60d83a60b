import asyncio
import json
import os
import random
import sys

import httpx
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tools.apollo import (
    APOLLO_MATCH_URL,
    AVATAR_PALETTE,
    ApolloEnricher,
    HashColorPolicy,
    RandomColorPolicy,
    avatar_url,
    facebook_picture_url,
)
from tools.errors import (
    EnrichmentError,
    ProviderAuthFailed,
    ProviderBadRequest,
    ProviderEmptyResult,
    ProviderError,
    ProviderNoData,
    ProviderRateLimited,
)


def enrich_with(handler, email="jane@acme.com", **kwargs):
    """Run ApolloEnricher.enrich against a mocked Apollo endpoint."""
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            enricher = ApolloEnricher(api_key="test-key", client=client, **kwargs)
            return await enricher.enrich(email)

    return asyncio.run(scenario())


def respond(status_code, body=None):
    return lambda request: httpx.Response(status_code, json=body if body is not None else {})


class TestApolloEnricher:
    """Test Apollo people-match enrichment and normalization."""

    def test_request_shape(self):
        seen = {}

        def handler(request):
            seen["request"] = request
            return httpx.Response(200, json={"person": {"name": "Jane Doe", "photo_url": "https://img/jane.png"}})

        enrich_with(handler)
        request = seen["request"]

        assert request.method == "POST"
        assert str(request.url) == APOLLO_MATCH_URL
        assert request.headers["X-API-KEY"] == "test-key"
        assert request.headers["Cache-Control"] == "no-cache"
        assert json.loads(request.content) == {
            "email": "jane@acme.com",
            "reveal_personal_emails": False,
            "reveal_phone_number": False,
            "enrich_profiles": True,
        }

    def test_normalizes_person_and_organization(self):
        body = {
            "person": {
                "id": "abc123",
                "name": "Jane Doe",
                "title": "CTO",
                "photo_url": "https://img/jane.png",
                "linkedin_url": "https://linkedin.com/in/janedoe",
                "email": "jane@acme.com",
                "organization": {
                    "name": "Acme",
                    "website_url": "https://acme.com",
                    "industry": "Software",
                    "employee_count": 120,
                    "location": {"city": "Austin", "state": "TX", "country": "US"},
                },
            }
        }

        result = enrich_with(respond(200, body))

        assert result.name == "Jane Doe"
        assert result.title == "CTO"
        assert result.photo_url == "https://img/jane.png"
        assert result.organization.name == "Acme"
        assert result.organization.employee_count == "120"
        assert result.organization.location.city == "Austin"

    @pytest.mark.parametrize("status_code,error_cls,fragment", [
        (429, ProviderRateLimited, "rate limit exceeded"),
        (401, ProviderAuthFailed, "Invalid Apollo API key"),
        (400, ProviderBadRequest, "check the email format"),
        (404, ProviderNoData, "No data found"),
        (500, ProviderError, "Failed to fetch Apollo data: 500 Internal Server Error"),
        (302, ProviderError, "Failed to fetch Apollo data: 302 Found"),
    ])
    def test_error_statuses(self, status_code, error_cls, fragment):
        with pytest.raises(error_cls) as exc_info:
            enrich_with(respond(status_code, {"error": "nope"}))

        assert fragment in str(exc_info.value)
        assert isinstance(exc_info.value, EnrichmentError)

    def test_success_without_person_is_empty_result(self):
        with pytest.raises(ProviderEmptyResult):
            enrich_with(respond(200, {"person": None}))

    def test_transport_error_is_provider_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProviderError):
            enrich_with(handler)

    def test_missing_api_key(self):
        enricher = ApolloEnricher(api_key="")

        with pytest.raises(ProviderAuthFailed) as exc_info:
            asyncio.run(enricher.enrich("jane@acme.com"))

        assert "not configured" in str(exc_info.value)


class TestPhotoResolution:
    """Test the provider photo -> Facebook picture -> generated avatar fallback."""

    def test_facebook_profile_picture(self):
        body = {"person": {"name": "Jane Doe", "facebook_url": "https://www.facebook.com/jane.doe?ref=apollo"}}

        result = enrich_with(respond(200, body))

        assert result.photo_url == "https://graph.facebook.com/jane.doe/picture?type=large"

    def test_unparsable_facebook_url_falls_back_to_avatar(self):
        body = {"person": {"name": "Jane Doe", "facebook_url": "https://www.facebook.com/"}}

        result = enrich_with(respond(200, body), color_policy=HashColorPolicy())

        assert result.photo_url.startswith("https://ui-avatars.com/api/?name=Jane%20Doe&")

    def test_avatar_uses_email_local_part_without_name(self):
        result = enrich_with(respond(200, {"person": {"title": "CTO"}}), color_policy=HashColorPolicy())

        assert "name=jane&" in result.photo_url
        assert "bold=true&size=200&length=2&font-size=0.4" in result.photo_url

    def test_hash_policy_is_deterministic(self):
        policy = HashColorPolicy()

        first = policy.choose("Jane Doe", AVATAR_PALETTE)

        assert first in AVATAR_PALETTE
        assert all(policy.choose("Jane Doe", AVATAR_PALETTE) == first for _ in range(10))

    def test_random_policy_draws_from_palette(self):
        policy = RandomColorPolicy(random.Random(7))

        picks = {policy.choose("Jane Doe", AVATAR_PALETTE) for _ in range(50)}

        assert picks <= set(AVATAR_PALETTE)
        assert len(picks) > 1

    def test_avatar_url_format(self):
        assert avatar_url("Jane Doe", ("2563eb", "ffffff")) == (
            "https://ui-avatars.com/api/?name=Jane%20Doe&background=2563eb&color=ffffff"
            "&bold=true&size=200&length=2&font-size=0.4"
        )

    def test_facebook_picture_url_requires_username(self):
        assert facebook_picture_url("https://facebook.com/") is None
        assert facebook_picture_url("https://example.com/jane") is None
