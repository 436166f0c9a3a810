"""
Configuration management for the Channel-Fit engine
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List, Optional


# Hard ceiling on products per report, independent of configuration.
MAX_PRODUCTS_HARD_CAP = 20


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "Channel-Fit Intelligence Engine"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    log_to_file: bool = True

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Database (populated by the marketplace sync adapters)
    database_url: str = "sqlite:///./channel_fit.db"

    # Pseudonymisation
    # Required outside the environments listed in non_production_environments.
    pseudonym_key: Optional[str] = None
    non_production_environments: str = "development,test,preview"

    # Cross-tenant benchmarks
    channel_fit_min_sellers_for_benchmark: int = 5  # k-anonymity gate
    channel_fit_benchmark_ttl_hours: int = 24
    channel_fit_phase2_min_users: int = 100  # tenant population for data-rich phase
    channel_fit_population_ttl_seconds: int = 300

    # Timeouts (seconds)
    channel_fit_population_timeout_seconds: float = 5.0
    channel_fit_signal_timeout_seconds: float = 30.0
    channel_fit_benchmark_timeout_seconds: float = 30.0

    # Report shape
    channel_fit_default_products: int = 10
    channel_fit_max_products: int = MAX_PRODUCTS_HARD_CAP
    channel_fit_top_recommendations: int = 5
    channel_fit_worker_threads: int = 8
    channel_fit_currency_symbol: str = "₹"

    # Benchmark cache warm-up job
    enable_benchmark_warmup: bool = False
    benchmark_warmup_schedule: str = "30 2 * * *"

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def non_production_env_names(self) -> List[str]:
        return [e.strip().lower() for e in self.non_production_environments.split(",") if e.strip()]

    @property
    def max_products(self) -> int:
        """Configured product cap, never above the hard cap."""
        return max(1, min(MAX_PRODUCTS_HARD_CAP, self.channel_fit_max_products))


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
