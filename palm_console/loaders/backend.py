"""Supabase client construction."""

import logging

from supabase import Client, create_client

from ..config import Settings
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


def get_client(settings: Settings) -> Client:
    """Create a Supabase client for the configured project.

    Raises ConfigurationError if the URL or key is missing.
    """
    if not settings.backend_configured:
        raise ConfigurationError(
            "Supabase credentials not configured. "
            "Set SUPABASE_URL and SUPABASE_KEY environment variables."
        )
    logger.info("Connecting to Supabase project at %s", settings.supabase_url)
    return create_client(settings.supabase_url, settings.supabase_key)
