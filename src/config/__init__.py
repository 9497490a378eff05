"""Configuration module"""

from .models import ChainConfig, PnlMonitorConfig, Settings

__all__ = ["ChainConfig", "PnlMonitorConfig", "Settings"]
