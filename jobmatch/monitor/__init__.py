"""
Job board monitoring.
"""

from .crawler import JobCrawler
from .service import MonitorService, MonitorStats

__all__ = ["JobCrawler", "MonitorService", "MonitorStats"]
