"""
Configuration module.

Exports:
    settings: Application settings instance
    get_settings: Function to get settings (for dependency injection)
    get_supabase_client: Cached Supabase client
    get_admin_client: Service-role client for migrations
    check_connection: Health check function
    get_pricing_config: Cached cost-plus pricing configuration
"""

from config.settings import settings, get_settings, Settings
from config.database import get_supabase_client, get_admin_client, check_connection
from config.pricing import load_pricing_config, get_pricing_config
from config.logging import configure_logging

__all__ = [
    # Settings
    "settings",
    "get_settings",
    "Settings",

    # Database
    "get_supabase_client",
    "get_admin_client",
    "check_connection",

    # Pricing
    "load_pricing_config",
    "get_pricing_config",

    # Logging
    "configure_logging",
]
