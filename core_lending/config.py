"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from decimal import Decimal
from typing import List, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class LendingConfig(BaseSettings):
    """Core lending system configuration"""
    
    # Loan business rules
    installments_allowed: List[int] = Field(default_factory=lambda: [6, 9, 12, 24], min_length=1)
    interest_min: Decimal = Field(default=Decimal("0.1"), ge=Decimal("0.01"))
    interest_max: Decimal = Field(default=Decimal("0.5"), le=Decimal("1.0"))
    day_of_payment: int = Field(default=1, ge=1, le=30)  # Day of month closing the payment window
    max_allowed_due_month_count: int = Field(default=3, ge=0, le=12)
    
    # Database configuration
    database_url: str = "sqlite:///core_lending.db"  # or memory://
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    
    # Security configuration
    jwt_secret: str = "change-me-in-production"
    jwt_expiry_hours: int = 24
    jwt_algorithm: str = "HS256"
    
    # Seed users for the identity directory
    admin_username: str = "admin"
    admin_password: str = "admin123"
    customer_username: Optional[str] = None
    customer_password: Optional[str] = None
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    
    @model_validator(mode="after")
    def check_interest_range(self) -> "LendingConfig":
        if self.interest_min > self.interest_max:
            raise ValueError("interest_min cannot exceed interest_max")
        return self

    class Config:
        env_prefix = "LENDING_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = LendingConfig()


def get_config() -> LendingConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LendingConfig:
    """Reload configuration from environment"""
    global config
    config = LendingConfig()
    return config
