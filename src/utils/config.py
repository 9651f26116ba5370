"""
Configuration management using pydantic-settings.

Loads settings from environment variables and .env files.
"""

from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DB_PATH = Path(__file__).parent.parent.parent / "data" / "claims.db"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    database_path: Path = Field(
        default=DEFAULT_DB_PATH,
        description="SQLite database file for claims, documents and decisions",
    )

    # Rules engine
    max_claim_amount: float = Field(default=50000.0, description="Global claim amount ceiling")
    max_claims_per_month: int = Field(default=3, description="Claims allowed per claimant per calendar month")
    min_days_between_claims: int = Field(default=7, description="Minimum days between a claimant's claims")
    duplicate_window_days: int = Field(default=7, description="Window for same-amount duplicate detection")
    document_required_threshold: float = Field(
        default=1000.0,
        description="Claims above this amount must carry at least one document",
    )
    min_policy_id_length: int = Field(default=5, description="Minimum policy id length")
    coverage_tiers: Dict[str, float] = Field(
        default_factory=lambda: {"PREM": 100000.0, "STD": 25000.0, "BASIC": 10000.0},
        description="Policy id prefix -> coverage ceiling",
    )

    # Risk scoring
    statistical_weight: float = Field(default=0.6, description="Weight of the statistical fraud score")
    narrative_weight: float = Field(default=0.4, description="Weight of the narrative fraud score")
    reject_threshold: float = Field(default=0.70, description="Combined fraud above this rejects")
    auto_approve_threshold: float = Field(default=0.80, description="Approval above this may auto-approve")
    auto_approve_max_fraud: float = Field(default=0.30, description="Combined fraud must stay below this to auto-approve")
    high_risk_threshold: float = Field(default=0.70)
    medium_risk_threshold: float = Field(default=0.40)

    # Providers
    document_analysis_provider: str = Field(default="local", description="Document analysis provider (local, tesseract)")
    ocr_language: str = Field(default="eng", description="Tesseract language pack(s), e.g. eng+spa")
    tesseract_cmd: Optional[str] = Field(default=None, description="Path to the tesseract binary when not on PATH")
    narrative_provider: str = Field(default="mock", description="Narrative NLP provider (mock, openai, claude)")
    narrative_model: Optional[str] = Field(default=None, description="Model for the LLM narrative provider")
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    anthropic_api_key: Optional[str] = Field(default=None, description="Anthropic API key")
    statistical_provider: str = Field(default="heuristic", description="Statistical scorer (heuristic, joblib)")
    fraud_model_path: Path = Field(
        default=Path("models") / "fraud_model.joblib",
        description="Serialized scikit-learn classifier for the joblib scorer",
    )
    provider_timeout_seconds: float = Field(default=30.0, description="Timeout per external provider call")
    parallel_document_analysis: bool = Field(default=False, description="Analyze a claim's documents concurrently")
    use_claim_history_features: bool = Field(
        default=False,
        description="Feed claimant history into the statistical scorer instead of cold-start zeros",
    )

    # Notifications
    notification_channel: str = Field(default="log", description="Notification channel (log, smtp)")
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_sender_email: str = "noreply@claims.example.com"
    smtp_sender_name: str = "Claims System"

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    debug: bool = Field(default=False, description="Enable debug mode")

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_username)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to avoid re-reading environment on every call.
    """
    return Settings()
