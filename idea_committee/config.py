"""Settings loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv


def _load_env() -> None:
    """Load .env from project root if it exists."""
    env_path = Path(__file__).resolve().parent.parent / ".env"
    if env_path.exists():
        load_dotenv(env_path)


_load_env()


@dataclass(frozen=True)
class Settings:
    # API Keys
    anthropic_api_key: str = field(default_factory=lambda: os.environ.get("ANTHROPIC_API_KEY", ""))
    tavily_api_key: str = field(default_factory=lambda: os.environ.get("TAVILY_API_KEY", ""))

    # Models
    committee_model: str = field(
        default_factory=lambda: os.environ.get("COMMITTEE_MODEL", "claude-sonnet-4-6")
    )
    judge_model: str = field(default_factory=lambda: os.environ.get("JUDGE_MODEL", "claude-opus-4-6"))
    fallback_model: str = field(
        default_factory=lambda: os.environ.get("FALLBACK_MODEL", "claude-sonnet-4-6")
    )
    max_concurrent_requests: int = field(
        default_factory=lambda: int(os.environ.get("MAX_CONCURRENT_REQUESTS", "4"))
    )

    # Grounding endpoints
    coingecko_url: str = field(
        default_factory=lambda: os.environ.get("COINGECKO_URL", "https://api.coingecko.com/api/v3")
    )
    solana_rpc_url: str = field(
        default_factory=lambda: os.environ.get(
            "SOLANA_RPC_URL", "https://api.mainnet-beta.solana.com"
        )
    )
    defillama_url: str = field(
        default_factory=lambda: os.environ.get("DEFILLAMA_URL", "https://api.llama.fi")
    )

    # Timeouts (seconds)
    grounding_timeout: float = field(
        default_factory=lambda: float(os.environ.get("GROUNDING_TIMEOUT", "5.0"))
    )
    stage_timeout: float = field(
        default_factory=lambda: float(os.environ.get("STAGE_TIMEOUT", "25.0"))
    )
    judge_timeout: float = field(
        default_factory=lambda: float(os.environ.get("JUDGE_TIMEOUT", "60.0"))
    )
    evaluation_timeout: float = field(
        default_factory=lambda: float(os.environ.get("EVALUATION_TIMEOUT", "180.0"))
    )

    # Grounding freshness windows (hours)
    market_ttl_hours: float = field(
        default_factory=lambda: float(os.environ.get("MARKET_TTL_HOURS", "1"))
    )
    token_ttl_hours: float = field(
        default_factory=lambda: float(os.environ.get("TOKEN_TTL_HOURS", "1"))
    )
    competitive_ttl_hours: float = field(
        default_factory=lambda: float(os.environ.get("COMPETITIVE_TTL_HOURS", "72"))
    )

    # Grounding cache (stale-if-error)
    grounding_cache_dir: str = field(
        default_factory=lambda: os.environ.get("GROUNDING_CACHE_DIR", ".cache/grounding")
    )
    grounding_cache_max_age_hours: float = field(
        default_factory=lambda: float(os.environ.get("GROUNDING_CACHE_MAX_AGE_HOURS", "168"))
    )

    # Verification
    max_repairs: int = field(default_factory=lambda: int(os.environ.get("MAX_REPAIRS", "2")))
    consistency_tolerance: float = field(
        default_factory=lambda: float(os.environ.get("CONSISTENCY_TOLERANCE", "25.0"))
    )

    # Circuit breaker
    breaker_min_samples: int = field(
        default_factory=lambda: int(os.environ.get("BREAKER_MIN_SAMPLES", "5"))
    )
    breaker_cooldown_s: float = field(
        default_factory=lambda: float(os.environ.get("BREAKER_COOLDOWN_S", "60"))
    )

    # Output
    result_dir: str = field(default_factory=lambda: os.environ.get("RESULT_DIR", "evaluations/"))
    run_log_dir: str = field(default_factory=lambda: os.environ.get("RUN_LOG_DIR", "runs/"))

    def available_sources(self) -> list[str]:
        """Return grounding sources that have valid configuration."""
        sources = ["market", "token_security"]  # Public endpoints
        if self.tavily_api_key:
            sources.append("competitive")
        return sources

    def validate(self) -> list[str]:
        """Return list of validation errors. Empty list means valid."""
        errors = []
        if not self.anthropic_api_key:
            errors.append("ANTHROPIC_API_KEY is required")
        for name in ("grounding_timeout", "stage_timeout", "judge_timeout", "evaluation_timeout"):
            if getattr(self, name) <= 0:
                errors.append(f"{name.upper()} must be > 0")
        if self.max_repairs < 0:
            errors.append(f"MAX_REPAIRS must be >= 0, got {self.max_repairs}")
        if self.consistency_tolerance <= 0 or self.consistency_tolerance > 100:
            errors.append(
                f"CONSISTENCY_TOLERANCE must be in (0, 100], got {self.consistency_tolerance}"
            )
        if self.breaker_min_samples < 1:
            errors.append("BREAKER_MIN_SAMPLES must be >= 1")
        return errors

    def warnings(self) -> list[str]:
        """Return list of non-fatal configuration warnings."""
        warns: list[str] = []
        if not self.tavily_api_key:
            warns.append(
                "TAVILY_API_KEY is not set. Competitive grounding is disabled "
                "and confidence will be capped at medium."
            )
        if self.evaluation_timeout < self.stage_timeout + self.judge_timeout:
            warns.append(
                f"EVALUATION_TIMEOUT={self.evaluation_timeout:.0f}s is shorter than "
                "STAGE_TIMEOUT + JUDGE_TIMEOUT; slow runs will time out."
            )
        return warns


def get_settings() -> Settings:
    """Create Settings from current environment."""
    return Settings()
