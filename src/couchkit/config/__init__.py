from .config import DatabaseConfig, RollingCollectionConfig, ServiceConfig

__all__ = ["DatabaseConfig", "RollingCollectionConfig", "ServiceConfig"]
