"""Clients for HowLongToBeat data sources."""

from .hltb_api_client import HLTBApiClient
from .hltb_scraper import HLTBScraper
from .http_client import HTTPClient

__all__ = [
    "HLTBApiClient",
    "HLTBScraper",
    "HTTPClient",
]
