"""Configuration module for the KYC batch verifier."""

from .settings import (
    ProviderConfig,
    CipherConfig,
    PolicyConfig,
    ValidationConfig,
    AppConfig,
    KycSettings,
    load_settings,
    validation_config,
    app_config,
)

__all__ = [
    "ProviderConfig",
    "CipherConfig",
    "PolicyConfig",
    "ValidationConfig",
    "AppConfig",
    "KycSettings",
    "load_settings",
    "validation_config",
    "app_config",
]
