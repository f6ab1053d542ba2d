"""Identity provider registry."""

from __future__ import annotations

import logging
from typing import Dict, Mapping

from wecarry.core.auth.providers.azureadv2 import AzureADV2Provider
from wecarry.core.auth.providers.base import AuthUser, Provider, Session
from wecarry.core.auth.providers.google import GoogleProvider

logger = logging.getLogger(__name__)

__all__ = ["AuthUser", "AzureADV2Provider", "GoogleProvider", "Provider", "Session", "build_providers"]


def build_providers(config: Mapping) -> Dict[str, Provider]:
    """Instantiate every provider whose credentials are configured."""
    callback = config.get("AUTH_CALLBACK_URL", "")
    providers: Dict[str, Provider] = {}
    if config.get("AZURE_AD_KEY"):
        providers[AzureADV2Provider.name] = AzureADV2Provider.from_json(
            {
                "TenantID": config.get("AZURE_AD_TENANT", ""),
                "ClientSecret": config.get("AZURE_AD_SECRET", ""),
                "ApplicationID": config.get("AZURE_AD_KEY", ""),
            },
            callback_url=f"{callback}/{AzureADV2Provider.name}",
        )
    if config.get("GOOGLE_KEY"):
        providers[GoogleProvider.name] = GoogleProvider(
            config["GOOGLE_KEY"],
            config.get("GOOGLE_SECRET", ""),
            callback_url=f"{callback}/{GoogleProvider.name}",
        )
    logger.debug("Configured identity providers: %s", ", ".join(sorted(providers)) or "none")
    return providers
