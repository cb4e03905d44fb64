"""
Website scraping collaborator.

The wizard does not crawl anything itself. A PageScraper turns one page of
the organization's site into data chunks; the job tracker decides when each
page is processed. SimulatedPageScraper produces the canned chunks the
onboarding demo shows while "training" the chatbot.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

NAVIGATION_PAGES = ["Home", "About Us", "Products", "Services", "Blog", "Contact"]


@dataclass
class DataChunk:
    """One piece of extracted page content."""

    type: str
    content: str


class PageScraper(ABC):
    """Extracts data chunks from one page of a website."""

    @abstractmethod
    def scrape(self, page: str, context: dict[str, Any]) -> list[DataChunk]:
        ...


class SimulatedPageScraper(PageScraper):
    """Deterministic chunks built from the page name and company name."""

    def __init__(self, navigation: list[str] | None = None):
        self.navigation = navigation or NAVIGATION_PAGES

    def scrape(self, page: str, context: dict[str, Any]) -> list[DataChunk]:
        company = context.get("company_name", "")
        section = page.lower()
        return [
            DataChunk(
                type="Meta Information",
                content=(
                    f"Title: {page} | {company}\n"
                    f"Description: Comprehensive information about our {section} section."
                ),
            ),
            DataChunk(
                type="Main Content",
                content=f"Detailed content about {section} including key features and benefits.",
            ),
            DataChunk(
                type="SEO Data",
                content=(
                    f"Keywords: {section}, {company.lower()}, business\n"
                    f"Meta Description: Learn more about our {section} offerings."
                ),
            ),
            DataChunk(
                type="Navigation Links",
                content=", ".join(self.navigation),
            ),
        ]
