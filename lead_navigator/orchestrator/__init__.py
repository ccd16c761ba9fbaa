"""Task scheduling for background automation."""

from .scheduler import AutomationScheduler, default_scraper_factories  # noqa: F401

__all__ = ["AutomationScheduler", "default_scraper_factories"]
