"""Source trust evaluation.

Trust tiers:
- trusted domains (.edu, .gov, arxiv.org, ...) -> trusted_score
- general web -> neutral_score
- user-flagged domains -> untrusted_score
- user-created content with no external source -> user_content_score
- user overrides -> the score of the configured tier
"""

from urllib.parse import urlparse

from commitgate.config import SourceTrustConfig
from commitgate.types import Resource


class SourceTrustEvaluator:
    """Score how reliable a proposal's source is."""

    def __init__(self, config: SourceTrustConfig | None = None):
        self.config = config or SourceTrustConfig()

    def update_config(self, config: SourceTrustConfig) -> None:
        self.config = config

    def evaluate(self, resource: Resource | None, is_user_created: bool = False) -> float:
        if resource is None or is_user_created:
            return self.config.user_content_score

        if not resource.url:
            return self.config.neutral_score

        domain = _extract_domain(resource.url)
        if not domain:
            return self.config.neutral_score

        override = self._find_override(domain)
        if override is not None:
            return self._level_score(override)

        if _matches(domain, self.config.trusted_domains):
            return self.config.trusted_score
        if _matches(domain, self.config.untrusted_domains):
            return self.config.untrusted_score
        return self.config.neutral_score

    def _find_override(self, domain: str) -> str | None:
        overrides = self.config.user_overrides
        if domain in overrides:
            return overrides[domain]
        for pattern, level in overrides.items():
            if _matches(domain, (pattern,)):
                return level
        return None

    def _level_score(self, level: str) -> float:
        return {
            "trusted": self.config.trusted_score,
            "neutral": self.config.neutral_score,
            "untrusted": self.config.untrusted_score,
        }.get(level, self.config.neutral_score)


def _extract_domain(url: str) -> str | None:
    """Hostname of a URL or bare domain, lowercased."""
    normalized = url if "://" in url else f"https://{url}"
    try:
        hostname = urlparse(normalized).hostname
    except ValueError:
        return None
    return hostname.lower() if hostname else None


def _matches(domain: str, patterns: tuple[str, ...]) -> bool:
    """Suffix (``.edu``), exact, or subdomain match."""
    for pattern in patterns:
        pattern = pattern.lower()
        if pattern.startswith(".") and domain.endswith(pattern):
            return True
        if domain == pattern or domain.endswith(f".{pattern}"):
            return True
    return False
