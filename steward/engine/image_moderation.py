"""
steward.engine.image_moderation — Image Moderation Adapter
===========================================================

Thin async client for the Sightengine ``nudity-2.0`` model plus a cheap
filename/URL keyword heuristic.

The adapter **fails open**: when the provider is not configured, answers
with a non-2xx status, times out or returns garbage, the image is reported
as *not* explicit and the failure is surfaced as a ``provider_*`` reason
code.  :meth:`ImageModerator.evaluate` never raises.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import httpx

from steward.config import DEFAULT_IMAGE_THRESHOLDS, ImageModerationSettings

logger = logging.getLogger(__name__)

SIGHTENGINE_MODEL = "nudity-2.0"

# Sub-score names in evaluation order: also the order of ``reasons``
SCORE_NAMES: tuple[str, ...] = tuple(DEFAULT_IMAGE_THRESHOLDS)

EXPLICIT_NAME_RE = re.compile(r"(nude|naked|porn|xxx|nsfw|explicit|sex|erotic)", re.IGNORECASE)
HTTP_URL_RE = re.compile(r"^https?://", re.IGNORECASE)
IMAGE_URL_RE = re.compile(r"https?://\S+?\.(?:png|jpe?g|gif|webp)\b\S*", re.IGNORECASE)

REASON_NOT_CONFIGURED = "provider_not_configured"
REASON_ERROR = "provider_error"


@dataclass(frozen=True, slots=True)
class ImageVerdict:
    """Outcome of one image check."""

    is_explicit: bool = False
    score: float = 0.0
    reasons: tuple[str, ...] = ()

    @property
    def provider_failed(self) -> bool:
        return any(r.startswith("provider_") for r in self.reasons)


def looks_explicit_name(ref: str) -> bool:
    """Keyword heuristic over a filename or URL."""
    return bool(EXPLICIT_NAME_RE.search(ref))


def is_http_url(ref: str) -> bool:
    return bool(HTTP_URL_RE.match(ref))


def extract_image_urls(text: str) -> list[str]:
    """Image URLs (png/jpg/jpeg/gif/webp) embedded in free text."""
    return IMAGE_URL_RE.findall(text or "")


def score_nudity(payload: dict, thresholds: dict[str, float]) -> ImageVerdict:
    """Apply *thresholds* to a Sightengine response body.

    A sub-score triggers when it is strictly greater than its threshold.
    ``score`` is the highest triggered sub-score (0 when none trigger).
    """
    nudity = payload.get("nudity") or {}
    reasons: list[str] = []
    score = 0.0
    for name in SCORE_NAMES:
        value = float(nudity.get(name) or 0)
        if value > thresholds.get(name, DEFAULT_IMAGE_THRESHOLDS[name]):
            reasons.append(name)
            score = max(score, value)
    return ImageVerdict(is_explicit=bool(reasons), score=score, reasons=tuple(reasons))


class ImageModerator:
    """Async adapter over the external visual classifier.

    Parameters
    ----------
    settings : Credentials, endpoint, timeout and thresholds.
    transport : Optional httpx transport (tests inject ``httpx.MockTransport``).
    """

    def __init__(
        self,
        settings: ImageModerationSettings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or ImageModerationSettings()
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        if self._transport is not None:
            return httpx.AsyncClient(
                timeout=self.settings.timeout_seconds, transport=self._transport,
            )
        return httpx.AsyncClient(
            timeout=self.settings.timeout_seconds,
            transport=httpx.AsyncHTTPTransport(retries=1),
        )

    async def evaluate(self, image_url: str) -> ImageVerdict:
        """Classify one image URL.  Never raises."""
        if not self.settings.configured:
            return ImageVerdict(reasons=(REASON_NOT_CONFIGURED,))

        params = {
            "models": SIGHTENGINE_MODEL,
            "url": image_url,
            "api_user": self.settings.api_user,
            "api_secret": self.settings.api_secret,
        }
        try:
            async with self._client() as client:
                resp = await client.get(self.settings.endpoint, params=params)
            if not resp.is_success:
                logger.warning(
                    "Image classifier returned HTTP %d for %s",
                    resp.status_code, image_url,
                )
                return ImageVerdict(reasons=(f"provider_http_{resp.status_code}",))
            return score_nudity(resp.json(), self.settings.thresholds)
        except (httpx.HTTPError, ValueError, TypeError, AttributeError):
            logger.warning("Image classifier unavailable for %s", image_url, exc_info=True)
            return ImageVerdict(reasons=(REASON_ERROR,))

    async def evaluate_many(self, image_urls: Iterable[str]) -> list[ImageVerdict]:
        """Classify several URLs concurrently; results keep input order."""
        urls: Sequence[str] = list(image_urls)
        if not urls:
            return []
        return list(await asyncio.gather(*(self.evaluate(u) for u in urls)))
