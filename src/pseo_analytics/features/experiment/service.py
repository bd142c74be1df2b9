from __future__ import annotations

import re
from typing import Protocol
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

from pseo_analytics.core.config import ExperimentConfig
from pseo_analytics.core.logging import get_logger
from pseo_analytics.core.rng import RNG
from pseo_analytics.core.types import PageContext
from pseo_analytics.features.platform.storage import read_storage, write_storage
from pseo_analytics.features.platform.types import Platform
from pseo_analytics.features.transport.service import track_tag_event

VARIANT_A = "A"
VARIANT_B = "B"
VARIANTS: tuple[str, str] = (VARIANT_A, VARIANT_B)

VARIANT_STORAGE_KEY = "pseo_cta_variant"
VARIANT_QUERY_PARAM = "cta_variant"

CTA_VIEW_EVENT = "pseo_signup_cta_view"
CTA_CLICK_EVENT = "pseo_signup_cta_click"

_ABSOLUTE_URL = re.compile(r"^https?://", re.IGNORECASE)
_RESOLVE_BASE = "https://cta.invalid/"

_logger = get_logger(__name__)


class RNGLike(Protocol):
    def random(self) -> float: ...


def normalize_variant(value: str | None) -> str | None:
    if value is None:
        return None
    upper = value.strip().upper()
    return upper if upper in VARIANTS else None


class VariantAssigner:
    """
    Resolves the CTA arm for the current visitor.

      1. ?cta_variant=a|b (any case) wins and is re-persisted (QA override)
      2. a valid variant already in durable storage is reused
      3. otherwise a fair coin, persisted

    Must only run on the client after first render. Storage failures just mean
    the assignment is not remembered.
    """

    def __init__(self, platform: Platform, rng: RNGLike | None = None) -> None:
        self._platform = platform
        self._rng = rng or RNG()

    def query_override(self) -> str | None:
        search = self._platform.location().search.lstrip("?")
        for key, value in parse_qsl(search, keep_blank_values=True):
            if key == VARIANT_QUERY_PARAM:
                return normalize_variant(value)
        return None

    def resolve_variant(self) -> str:
        storage = self._platform.local_storage

        override = self.query_override()
        if override is not None:
            write_storage(storage, VARIANT_STORAGE_KEY, override)
            return override

        stored = read_storage(storage, VARIANT_STORAGE_KEY)
        if stored in VARIANTS:
            return stored

        assigned = VARIANT_A if float(self._rng.random()) < 0.5 else VARIANT_B
        write_storage(storage, VARIANT_STORAGE_KEY, assigned)
        return assigned


def _set_param(params: list[tuple[str, str]], key: str, value: str) -> list[tuple[str, str]]:
    """URLSearchParams.set: replace the first occurrence, drop the rest, else append."""
    out: list[tuple[str, str]] = []
    replaced = False
    for k, v in params:
        if k != key:
            out.append((k, v))
        elif not replaced:
            out.append((key, value))
            replaced = True
    if not replaced:
        out.append((key, value))
    return out


def build_cta_href(href: str, variant: str, cfg: ExperimentConfig | None = None) -> str:
    """
    Tag a CTA destination with the variant and default UTM parameters.

    cta_variant is always set; utm_* are only added when missing, so an
    explicit utm_source=newsletter survives and re-tagging is a no-op.
    Relative hrefs stay relative (resolved against the site root), absolute
    ones keep their origin.
    """
    cfg = cfg or ExperimentConfig()
    is_absolute = bool(_ABSOLUTE_URL.match(href))
    parts = urlsplit(href) if is_absolute else urlsplit(urljoin(_RESOLVE_BASE, href))

    params = parse_qsl(parts.query, keep_blank_values=True)
    params = _set_param(params, VARIANT_QUERY_PARAM, variant)
    defaults = (
        ("utm_source", cfg.utm_source),
        ("utm_medium", cfg.utm_medium),
        ("utm_campaign", cfg.utm_campaign),
        ("utm_content", f"cta_{variant.lower()}"),
    )
    present = {k for k, _ in params}
    for key, value in defaults:
        if key not in present:
            params.append((key, value))

    query = urlencode(params)
    path = parts.path or "/"
    if is_absolute:
        return urlunsplit((parts.scheme, parts.netloc, path, query, parts.fragment))
    return urlunsplit(("", "", path, query, parts.fragment))


class CtaButton:
    """
    Signup call-to-action with a two-arm label test.

    Before mount() it renders arm A with the caller's label, which is what a
    server render produces. mount() resolves the real arm and records one
    impression; every click() records a click and returns the tagged href.
    """

    def __init__(
        self,
        *,
        label: str,
        context: PageContext,
        platform: Platform,
        assigner: VariantAssigner | None = None,
        href: str | None = None,
        config: ExperimentConfig | None = None,
    ) -> None:
        self._platform = platform
        self._assigner = assigner or VariantAssigner(platform)
        self._cfg = config or ExperimentConfig.from_env()
        self.context = context
        self.default_label = label
        self.target_href = href or self._cfg.signup_url

        self.variant = VARIANT_A
        self.label = label
        self.ready = False
        self._view_tracked = False

    @property
    def href(self) -> str:
        return build_cta_href(self.target_href, self.variant, self._cfg)

    def _label_for(self, variant: str) -> str:
        return self._cfg.alt_label if variant == VARIANT_B else self.default_label

    def _params(self) -> dict[str, str]:
        return {**self.context.as_params(), "label": self.label, "variant": self.variant}

    def mount(self) -> str:
        self.variant = self._assigner.resolve_variant()
        self.label = self._label_for(self.variant)
        self.ready = True

        if not self._view_tracked:
            self._view_tracked = True
            track_tag_event(self._platform, CTA_VIEW_EVENT, self._params())
            _logger.debug(
                "cta variant resolved",
                extra={"feature": "experiment", "event_type": CTA_VIEW_EVENT},
            )
        return self.variant

    def click(self) -> str:
        track_tag_event(self._platform, CTA_CLICK_EVENT, self._params())
        return self.href
