"""Application configuration"""
from fund_connect.config.settings import Settings, settings

__all__ = ["Settings", "settings"]
