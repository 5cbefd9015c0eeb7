"""
Orders Configuration Schema.

Defines the structure and sensible defaults for order lifecycle settings.
Values can be overridden per tenant from a dictionary or a YAML file.
"""

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Self

import yaml

from commerce_kernel.logging_config import get_logger

logger = get_logger("modules.orders.config")


@dataclass
class OrdersConfig:
    """
    Configuration schema for the orders module.

    Field defaults represent the standard commercial terms:

        config = OrdersConfig(
            default_days_valid=45,
            **load_tenant_settings("orders"),
        )
    """

    # Quotations
    default_days_valid: int = 30
    quotation_number_prefix: str = "Q"
    quotation_number_width: int = 5

    # Carts
    line_number_step: int = 10
    default_currency: str = "EUR"

    # Duplication
    reset_quantities_on_duplicate: bool = False

    def __post_init__(self):
        if self.default_days_valid <= 0:
            raise ValueError("default_days_valid must be positive")
        if not self.quotation_number_prefix or not self.quotation_number_prefix.strip():
            raise ValueError("quotation_number_prefix cannot be empty")
        if not 1 <= self.quotation_number_width <= 12:
            raise ValueError(
                f"quotation_number_width must be between 1 and 12, "
                f"got {self.quotation_number_width}"
            )
        if self.line_number_step <= 0:
            raise ValueError("line_number_step must be positive")
        if len(self.default_currency) != 3 or not self.default_currency.isalpha():
            raise ValueError(
                f"default_currency must be a 3-letter ISO code, got '{self.default_currency}'"
            )

        logger.info(
            "orders_config_initialized",
            extra={
                "default_days_valid": self.default_days_valid,
                "quotation_number_prefix": self.quotation_number_prefix,
                "line_number_step": self.line_number_step,
                "default_currency": self.default_currency,
                "reset_quantities_on_duplicate": self.reset_quantities_on_duplicate,
            },
        )

    def format_quotation_number(self, year: int, sequence: int) -> str:
        """Render a quotation number, e.g. ``Q-2025-00001``."""
        return (
            f"{self.quotation_number_prefix}-{year}-"
            f"{sequence:0{self.quotation_number_width}d}"
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with standard defaults."""
        logger.info("orders_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from dictionary (e.g., loaded from database/file)."""
        logger.info(
            "orders_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown orders config keys: {sorted(unknown)}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Load config from a YAML file with an optional top-level ``orders`` key."""
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Orders config in {path} must be a mapping")
        if "orders" in data:
            data = data["orders"] or {}
        logger.info("orders_config_loaded_from_yaml", extra={"path": str(path)})
        return cls.from_dict(data)
