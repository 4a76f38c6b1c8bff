"""
Utility modules for the crawler.
"""

from .config import Config, ConfigManager, CrawlerConfig, load_config, get_config

__all__ = ['Config', 'ConfigManager', 'CrawlerConfig', 'load_config', 'get_config']
