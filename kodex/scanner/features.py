"""Pattern catalog and per-file feature detection."""

from __future__ import annotations

import re
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional, Pattern, Sequence, Tuple

from ..config import CustomTopic, regex_body
from ..models import DetectedFeature, Evidence
from .source import SourceUnit

MAX_EVIDENCE_PER_FILE = 10
CONFIDENCE_STEP = 0.05
_BOOST_THRESHOLDS = (3, 5)


@dataclass(frozen=True)
class FeaturePattern:
    """One catalog topic: its id, regexes, and base confidence."""

    id: str
    patterns: Tuple[Pattern[str], ...]
    confidence: float
    name: Optional[str] = None
    prompt: Optional[str] = None

    @property
    def category(self) -> str:
        return self.id.split(".", 1)[0]

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        return display_name(self.id)


def display_name(topic_id: str) -> str:
    """``authentication.two-factor-auth`` -> ``two factor auth``."""
    return topic_id.split(".")[-1].replace("-", " ")


def compile_pattern(source: str) -> Pattern[str]:
    """Compile a case-insensitive catalog regex."""
    return re.compile(source, re.IGNORECASE)


def custom_pattern_source(pattern: str) -> str:
    """Custom topic patterns are substrings unless written as ``/regex/``."""
    body = regex_body(pattern)
    if body is None:
        return re.escape(pattern)
    return body


def feature_pattern(
    topic_id: str,
    sources: Sequence[str],
    confidence: float,
    *,
    name: Optional[str] = None,
    prompt: Optional[str] = None,
) -> FeaturePattern:
    return FeaturePattern(
        id=topic_id,
        patterns=tuple(compile_pattern(source) for source in sources),
        confidence=confidence,
        name=name,
        prompt=prompt,
    )


@dataclass(frozen=True)
class FeatureCatalog:
    """Ordered, immutable collection of FeaturePattern entries."""

    entries: Tuple[FeaturePattern, ...] = field(default_factory=tuple)

    def __iter__(self) -> Iterator[FeaturePattern]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, topic_id: str) -> Optional[FeaturePattern]:
        for entry in self.entries:
            if entry.id == topic_id:
                return entry
        return None

    @property
    def ids(self) -> List[str]:
        return [entry.id for entry in self.entries]

    def extend(self, custom_topics: Iterable[CustomTopic], confidence: float = 0.8) -> "FeatureCatalog":
        """Return a new catalog with ``custom_topics`` appended.

        A custom topic whose id matches an existing entry replaces it in place.
        """
        entries = list(self.entries)
        for topic in custom_topics:
            entry = feature_pattern(
                topic.id,
                [custom_pattern_source(pattern) for pattern in topic.patterns],
                confidence,
                name=topic.name,
                prompt=topic.prompt,
            )
            for index, existing in enumerate(entries):
                if existing.id == topic.id:
                    entries[index] = entry
                    break
            else:
                entries.append(entry)
        return FeatureCatalog(tuple(entries))


_SEP = "[-_]?"

DEFAULT_CATALOG = FeatureCatalog(
    (
        # authentication
        feature_pattern(
            "authentication.login-logout",
            ["login", "logout", f"sign{_SEP}in", f"sign{_SEP}out", "auth"],
            0.9,
        ),
        feature_pattern(
            "authentication.password-reset",
            [f"password{_SEP}reset", f"forgot{_SEP}password", f"reset{_SEP}password"],
            0.95,
        ),
        feature_pattern(
            "authentication.signup-registration",
            [f"sign{_SEP}up", "register", f"create{_SEP}account", "registration"],
            0.9,
        ),
        feature_pattern(
            "authentication.two-factor-auth",
            ["2fa", f"two{_SEP}factor", "mfa", "authenticator", "totp", "otp"],
            0.95,
        ),
        feature_pattern(
            "authentication.session-management",
            ["session", f"active{_SEP}devices", f"logout{_SEP}all"],
            0.7,
        ),
        # navigation
        feature_pattern(
            "navigation.getting-started",
            ["onboarding", "welcome", f"getting{_SEP}started", "tutorial"],
            0.9,
        ),
        feature_pattern(
            "navigation.keyboard-shortcuts",
            ["shortcut", "hotkey", "useHotkeys", f"key{_SEP}binding"],
            0.95,
        ),
        feature_pattern(
            "navigation.search",
            ["search", f"command{_SEP}palette", f"quick{_SEP}actions"],
            0.8,
        ),
        # data
        feature_pattern(
            "data.import-export",
            ["import", "export", "download", "csv", "excel"],
            0.8,
        ),
        feature_pattern(
            "data.autosave",
            [f"auto{_SEP}save", "draft", f"unsaved{_SEP}changes"],
            0.9,
        ),
        feature_pattern(
            "data.filtering-sorting",
            ["filter", "sort", f"order{_SEP}by"],
            0.7,
        ),
        # settings
        feature_pattern(
            "settings.profile-management",
            ["profile", f"account{_SEP}settings", f"update{_SEP}profile"],
            0.85,
        ),
        feature_pattern(
            "settings.notifications",
            ["notification", f"email{_SEP}pref", f"push{_SEP}notif", f"alert{_SEP}settings"],
            0.9,
        ),
        feature_pattern(
            "settings.theme-appearance",
            ["theme", f"dark{_SEP}mode", "appearance", f"light{_SEP}mode"],
            0.9,
        ),
        feature_pattern(
            "settings.language-locale",
            ["language", "locale", "i18n", "internationalization"],
            0.85,
        ),
        # errors
        feature_pattern(
            "errors.error-boundary",
            [f"error{_SEP}boundary", f"error{_SEP}page", f"error{_SEP}handler"],
            0.9,
        ),
        feature_pattern(
            "errors.connection-issues",
            ["offline", f"network{_SEP}error", f"connection{_SEP}lost", "reconnect"],
            0.9,
        ),
        feature_pattern(
            "errors.not-found",
            ["404", f"not{_SEP}found", f"page{_SEP}not{_SEP}found"],
            0.95,
        ),
        # billing
        feature_pattern(
            "billing.subscription",
            ["subscription", "pricing", "plan", "upgrade", "downgrade"],
            0.85,
        ),
        feature_pattern(
            "billing.payment-methods",
            ["payment", f"credit{_SEP}card", "billing", "stripe"],
            0.9,
        ),
        # integrations
        feature_pattern(
            "integrations.api-access",
            [f"api{_SEP}key", f"api{_SEP}token", f"access{_SEP}token"],
            0.9,
        ),
        feature_pattern(
            "integrations.webhooks",
            ["webhook", f"webhook{_SEP}config", f"webhook{_SEP}url"],
            0.95,
        ),
        feature_pattern(
            "integrations.sso",
            ["sso", "saml", "oidc", f"single{_SEP}sign{_SEP}on"],
            0.95,
        ),
        # collaboration
        feature_pattern(
            "collaboration.inviting-members",
            ["invite", f"add{_SEP}member", f"team{_SEP}invite"],
            0.9,
        ),
        feature_pattern(
            "collaboration.sharing",
            ["share", f"share{_SEP}link", f"public{_SEP}link"],
            0.85,
        ),
        feature_pattern(
            "collaboration.comments",
            ["comment", "mention", "thread"],
            0.8,
        ),
    )
)


def boosted_confidence(base: float, evidence_count: int) -> float:
    """Apply the per-file evidence boost, capped at 1.0."""
    confidence = base
    for threshold in _BOOST_THRESHOLDS:
        if evidence_count >= threshold:
            confidence = round(min(confidence + CONFIDENCE_STEP, 1.0), 4)
    return confidence


def detect_features(
    unit: SourceUnit,
    relative_path: str,
    catalog: FeatureCatalog = DEFAULT_CATALOG,
) -> List[DetectedFeature]:
    """Score one file against ``catalog``; only topics with evidence are returned."""
    text = unit.text
    newlines = [match.start() for match in re.finditer("\n", text)]
    features: List[DetectedFeature] = []

    for entry in catalog:
        evidence: List[Evidence] = []
        for regex in entry.patterns:
            if regex.search(relative_path):
                evidence.append(Evidence(pattern=regex.pattern, source_file=relative_path, line=1))
            for match in regex.finditer(text):
                if match.start() == match.end():
                    continue
                evidence.append(
                    Evidence(
                        pattern=match.group(0),
                        source_file=relative_path,
                        line=bisect_right(newlines, match.start() - 1) + 1,
                    )
                )
        if not evidence:
            continue
        features.append(
            DetectedFeature(
                id=entry.id,
                confidence=boosted_confidence(entry.confidence, len(evidence)),
                evidence=evidence[:MAX_EVIDENCE_PER_FILE],
            )
        )
    return features


__all__ = [
    "DEFAULT_CATALOG",
    "FeatureCatalog",
    "FeaturePattern",
    "boosted_confidence",
    "compile_pattern",
    "custom_pattern_source",
    "detect_features",
    "display_name",
    "feature_pattern",
]
