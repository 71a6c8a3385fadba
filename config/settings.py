"""
Central configuration for the KYC batch verifier.
All tunable parameters are exposed here with sensible defaults.

Provider credentials and the field-cipher passphrase have no defaults: they
are loaded once at startup through ``load_settings()`` and passed into each
component constructor.
"""

from dataclasses import dataclass
from pathlib import Path

from pydantic import Field, SecretStr
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings

from models.errors import ConfigurationError
from models.kyc import VerificationMode


class ProviderConfig(BaseSettings):
    """Verification provider endpoint and credentials."""

    base_url: str = "https://api.sandbox.co.in"
    api_key: SecretStr
    api_secret: SecretStr

    timeout_seconds: float = Field(default=30.0, gt=0)
    token_ttl_seconds: int = Field(
        default=3600,
        gt=0,
        description="Used when the provider does not declare expires_in"
    )
    accept_cache: bool = True
    default_reason: str = "KYC Verification"

    pan_entity: str = "in.co.sandbox.kyc.pan_verification.request"
    aadhaar_entity: str = "in.co.sandbox.kyc.aadhaar_verification.request"

    class Config:
        env_prefix = "KYC_PROVIDER_"


class CipherConfig(BaseSettings):
    """Configuration for at-rest field encryption."""

    passphrase: SecretStr
    salt: str = "salt"

    class Config:
        env_prefix = "KYC_CIPHER_"


class PolicyConfig(BaseSettings):
    """Retry and fallback policy for verification calls."""

    mode: VerificationMode = VerificationMode.STRICT
    max_retries: int = Field(default=2, ge=0, description="Extra attempts after the first")
    backoff_seconds: float = Field(default=1.0, ge=0)
    backoff_max_seconds: float = Field(default=10.0, ge=0)

    # Provider rate limits allow only a handful of parallel calls
    concurrency: int = Field(default=3, ge=1, le=5)

    class Config:
        env_prefix = "KYC_POLICY_"


class ValidationConfig(BaseSettings):
    """Configuration for row validation rules."""

    pan_pattern: str = r"^[A-Z]{5}[0-9]{4}[A-Z]$"
    aadhaar_pattern: str = r"^\d{12}$"
    min_name_length: int = 2

    # Date formats accepted for date of birth cells
    date_formats: list = Field(
        default=[
            "%Y-%m-%d",      # 1990-03-01
            "%Y/%m/%d",      # 1990/03/01
            "%d/%m/%Y",      # 01/03/1990
            "%d-%m-%Y",      # 01-03-1990
        ]
    )

    class Config:
        env_prefix = "KYC_VALIDATION_"


class AppConfig(BaseSettings):
    """Main application configuration."""

    # Paths
    base_dir: Path = Path(__file__).parent.parent
    uploads_dir: Path = Field(default_factory=lambda: Path(__file__).parent.parent / "uploads")
    output_dir: Path = Field(default_factory=lambda: Path(__file__).parent.parent / "output")

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Uploads
    max_upload_size_mb: int = 10
    allowed_extensions: list = Field(default=[".xlsx", ".xls"])

    # Logging
    log_level: str = "INFO"
    mask_sensitive_data: bool = True

    def ensure_directories(self):
        """Create necessary directories if they don't exist."""
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    class Config:
        env_prefix = "KYC_APP_"


@dataclass(frozen=True)
class KycSettings:
    """Startup configuration handed to the pipeline components."""
    provider: ProviderConfig
    cipher: CipherConfig
    policy: PolicyConfig


def load_settings(**overrides) -> KycSettings:
    """
    Build the pipeline configuration from the environment.

    Missing provider credentials or a missing cipher passphrase are a hard
    startup failure.

    Args:
        overrides: Optional ``provider``, ``cipher`` or ``policy`` instances
            that replace the environment-derived ones.

    Raises:
        ConfigurationError: If a required secret is absent or a value is invalid
    """
    try:
        provider = overrides.get("provider") or ProviderConfig()
        cipher = overrides.get("cipher") or CipherConfig()
        policy = overrides.get("policy") or PolicyConfig()
    except PydanticValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise ConfigurationError(f"Invalid or missing configuration: {', '.join(fields)}") from e

    if not provider.api_key.get_secret_value() or not provider.api_secret.get_secret_value():
        raise ConfigurationError("Provider API key and secret must not be empty")
    if not cipher.passphrase.get_secret_value():
        raise ConfigurationError("Field cipher passphrase must not be empty")

    return KycSettings(provider=provider, cipher=cipher, policy=policy)


# Global configuration instances (no secrets)
validation_config = ValidationConfig()
app_config = AppConfig()
