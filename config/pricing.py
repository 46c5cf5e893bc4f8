"""
Cost-plus pricing configuration loader.

The configuration is loaded once at process start (API lifespan, CLI)
and passed explicitly into the pricing engine.
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Optional, Union

import structlog
from pydantic import ValidationError as PydanticValidationError

from config.settings import settings
from exceptions import PricingConfigError
from models.pricing import PricingConfig

logger = structlog.get_logger(__name__)


def load_pricing_config(path: Union[str, Path]) -> PricingConfig:
    """
    Read and validate a pricing configuration document.

    Args:
        path: Path to the JSON document

    Returns:
        PricingConfig

    Raises:
        PricingConfigError: If the file is missing, not JSON, or invalid
    """
    config_path = Path(path)

    try:
        raw = config_path.read_text(encoding="utf-8")
    except OSError as e:
        logger.error("pricing_config_unreadable", path=str(config_path), error=str(e))
        raise PricingConfigError(str(config_path), f"cannot read file: {e}") from e

    try:
        document = json.loads(raw)
    except json.JSONDecodeError as e:
        raise PricingConfigError(str(config_path), f"not valid JSON: {e}") from e

    try:
        config = PricingConfig.model_validate(document)
    except PydanticValidationError as e:
        logger.error(
            "pricing_config_invalid",
            path=str(config_path),
            errors=e.error_count()
        )
        raise PricingConfigError(str(config_path), str(e)) from e

    logger.info(
        "pricing_config_loaded",
        path=str(config_path),
        currency=config.currency,
        rounding=config.rounding.strategy.value,
        materials=len(config.materials)
    )
    return config


@lru_cache()
def get_pricing_config(path: Optional[str] = None) -> PricingConfig:
    """
    Get cached pricing configuration.

    Call get_pricing_config.cache_clear() to reload after editing the file.
    """
    return load_pricing_config(path or settings.pricing_config_path)
