"""
Centralized settings and path configuration for the storefront backend.
"""
import logging
import os
from pathlib import Path
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional


def get_project_root() -> Path:
    """Get the project root directory (where pyproject.toml lives)."""
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'pyproject.toml').exists():
            return parent
    # Fallback to 3 levels up from this file
    return Path(__file__).resolve().parent.parent.parent.parent


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    # Project paths
    project_root: Path

    # Table snapshots (None keeps the store in memory)
    data_dir: Optional[Path] = None

    # Image quotas
    default_max_images_per_product: int = 10
    min_images_per_product: int = 1
    max_images_per_product_ceiling: int = 50

    # Upload validation
    max_upload_size_mb: int = 5
    allowed_image_types: tuple = ('image/png', 'image/jpeg', 'image/webp', 'image/jpg')
    similarity_threshold: int = 5

    # API
    cors_origins: tuple = ('*',)
    log_level: str = 'INFO'

    # Copy operation
    sync_categories_after_copy: bool = True

    # Referral payouts
    min_withdrawal_amount: Decimal = Decimal('50.00')

    @classmethod
    def load(cls, project_root: Optional[Path] = None, env: Optional[dict] = None) -> 'Settings':
        """Load settings from the project structure and STOREFRONT_* variables."""
        root = project_root or get_project_root()
        env = os.environ if env is None else env

        data_dir = env.get('STOREFRONT_DATA_DIR')
        origins = env.get('STOREFRONT_CORS_ORIGINS')

        return cls(
            project_root=root,
            data_dir=Path(data_dir) if data_dir else None,
            default_max_images_per_product=int(env.get('STOREFRONT_DEFAULT_IMAGE_LIMIT', 10)),
            max_upload_size_mb=int(env.get('STOREFRONT_MAX_UPLOAD_MB', 5)),
            cors_origins=tuple(o.strip() for o in origins.split(',')) if origins else ('*',),
            log_level=env.get('STOREFRONT_LOG_LEVEL', 'INFO').upper(),
            sync_categories_after_copy=env.get('STOREFRONT_SYNC_CATEGORIES', 'true').lower() == 'true',
            min_withdrawal_amount=Decimal(env.get('STOREFRONT_MIN_WITHDRAWAL', '50.00')),
        )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def reset_settings():
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None


def configure_logging(settings: Optional[Settings] = None):
    """Install a basic log format at the configured level."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )
