import hashlib
import os
import random
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import httpx
from loguru import logger
from pydantic import ValidationError

from graph.models import EnrichmentResult
from tools.errors import (
    ProviderAuthFailed,
    ProviderBadRequest,
    ProviderEmptyResult,
    ProviderError,
    ProviderNoData,
    ProviderRateLimited,
)

APOLLO_MATCH_URL = "https://api.apollo.io/api/v1/people/match"
AVATAR_URL = "https://ui-avatars.com/api/"

# (background, foreground) hex pairs for generated avatars
AVATAR_PALETTE: List[Tuple[str, str]] = [
    ("2563eb", "ffffff"),  # blue
    ("4f46e5", "ffffff"),  # indigo
    ("7c3aed", "ffffff"),  # violet
    ("0891b2", "ffffff"),  # cyan
    ("0284c7", "ffffff"),  # light blue
]

_STATUS_ERRORS = {
    429: (ProviderRateLimited, "Apollo API rate limit exceeded. Please try again later."),
    401: (ProviderAuthFailed, "Invalid Apollo API key. Please check your configuration."),
    400: (ProviderBadRequest, "Invalid request to Apollo API. Please check the email format."),
    404: (ProviderNoData, "No data found for the provided email address."),
}


class RandomColorPolicy:
    """Pick an avatar colour pair at random."""

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    def choose(self, name: str, palette: List[Tuple[str, str]]) -> Tuple[str, str]:
        return self._rng.choice(palette)


class HashColorPolicy:
    """Pick an avatar colour pair from a hash of the display name."""

    def choose(self, name: str, palette: List[Tuple[str, str]]) -> Tuple[str, str]:
        digest = hashlib.sha256(name.encode("utf-8")).digest()
        return palette[digest[0] % len(palette)]


def facebook_picture_url(facebook_url: str) -> Optional[str]:
    """Derive a profile picture URL from a Facebook profile URL, if it has a username."""
    if "facebook.com/" not in facebook_url:
        return None
    username = facebook_url.split("facebook.com/", 1)[1].split("?", 1)[0].strip("/")
    if not username:
        return None
    return f"https://graph.facebook.com/{username}/picture?type=large"


def avatar_url(name: str, colors: Tuple[str, str]) -> str:
    bg, fg = colors
    return (
        f"{AVATAR_URL}?name={quote(name, safe='')}&background={bg}&color={fg}"
        "&bold=true&size=200&length=2&font-size=0.4"
    )


class ApolloEnricher:
    """Identity and company enrichment through Apollo's people-match API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        color_policy=None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key if api_key is not None else os.getenv("APOLLO_API_KEY")
        self.base_url = APOLLO_MATCH_URL
        self.timeout = timeout if timeout is not None else float(os.getenv("APOLLO_TIMEOUT", "20"))
        self.color_policy = color_policy or RandomColorPolicy()
        self._client = client

        if not self.api_key:
            logger.warning("No Apollo API key provided, enrichment calls will fail")

    async def enrich(self, email: str) -> EnrichmentResult:
        """
        Resolve an email to person and organization facts.

        Args:
            email: Address to look up (already validated by the caller)

        Returns:
            Normalized enrichment result with a resolved photo URL

        Raises:
            EnrichmentError subclass describing why the provider gave no usable data
        """
        if not self.api_key:
            raise ProviderAuthFailed("Apollo API key is not configured")

        response = await self._post(email)

        if not response.is_success:
            logger.error(
                f"Apollo fetch failed for {email}: {response.status_code} "
                f"{response.reason_phrase} {response.text[:200]}"
            )
            error_cls, message = _STATUS_ERRORS.get(
                response.status_code,
                (ProviderError, f"Failed to fetch Apollo data: {response.status_code} {response.reason_phrase}"),
            )
            raise error_cls(message)

        try:
            data = response.json()
        except ValueError:
            raise ProviderError("Failed to fetch Apollo data: response was not valid JSON")

        person = data.get("person") if isinstance(data, dict) else None
        if not person:
            raise ProviderEmptyResult("No person data found in Apollo API response")

        try:
            result = EnrichmentResult.model_validate(person)
        except ValidationError as e:
            logger.error(f"Unexpected Apollo person payload for {email}: {e}")
            raise ProviderError("Failed to fetch Apollo data: unexpected person payload")
        result.photo_url = self._resolve_photo(result, email)
        logger.info(f"Apollo enrichment succeeded for {email}")
        return result

    async def _post(self, email: str) -> httpx.Response:
        payload = {
            "email": email,
            "reveal_personal_emails": False,
            "reveal_phone_number": False,
            "enrich_profiles": True,
        }
        try:
            if self._client is not None:
                return await self._client.post(self.base_url, json=payload, headers=self._get_headers())
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.post(self.base_url, json=payload, headers=self._get_headers())
        except httpx.HTTPError as e:
            logger.error(f"Apollo request failed for {email}: {e}")
            raise ProviderError(f"Failed to fetch Apollo data: {e}")

    def _get_headers(self) -> Dict[str, Any]:
        return {
            "Content-Type": "application/json",
            "Cache-Control": "no-cache",
            "X-API-KEY": self.api_key,
        }

    def _resolve_photo(self, result: EnrichmentResult, email: str) -> str:
        """Provider photo, then Facebook picture, then a generated avatar."""
        if result.photo_url:
            return result.photo_url

        if result.facebook_url:
            photo = facebook_picture_url(result.facebook_url)
            if photo:
                return photo
            logger.debug(f"Could not derive a picture from {result.facebook_url}")

        name = result.name or email.split("@")[0]
        return avatar_url(name, self.color_policy.choose(name, AVATAR_PALETTE))
