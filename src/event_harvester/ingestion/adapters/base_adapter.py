"""
Base Source Adapter.

One adapter class serves every site: per-site differences live in the
SourceConfig values (URLs, selectors, category table). The adapter owns page
navigation with bounded retries; how a page is loaded is delegated to a
PageAutomation implementation.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional

from event_harvester.ingestion.adapters.parsers import bs4_soup, first_attr, first_text, get_text_bs4
from event_harvester.runtime.errors import NavigationError
from event_harvester.runtime.resilience import Deadline, RetryPolicy, retry_call
from event_harvester.schemas.event import RawEventRecord
from event_harvester.schemas.source import SourceConfig

DEFAULT_PAGE_TIMEOUT_S = 30.0
DEFAULT_NAVIGATION_POLICY = RetryPolicy(max_attempts=3, backoff_mode="fixed", base_delay_s=5.0)


@dataclass
class PageHandle:
    """
    A loaded listing page.

    Holds the rendered HTML captured after navigation; extraction works on
    this snapshot, never on a live browser page.
    """

    url: str
    html: str
    final_url: Optional[str] = None
    status: Optional[int] = None

    def text(self, max_chars: Optional[int] = None) -> str:
        """Visible page text with scripts and styles removed."""
        return get_text_bs4(self.html, max_chars=max_chars)


def extract_with_selectors(html: str, source: SourceConfig, page_url: Optional[str] = None) -> List[RawEventRecord]:
    """
    Apply a source's CSS selectors to captured HTML.

    Each ``event_container`` match yields at most one record. For every field
    the first matching element's text is used; ``website`` yields the link
    href and ``image`` the image src. Containers without a title are skipped.
    """
    soup = bs4_soup(html)
    sel = source.selectors
    records: List[RawEventRecord] = []

    for node in soup.select(sel.event_container):
        title = first_text(node, sel.title)
        if not title:
            continue

        date_selector = sel.start_date or sel.date
        date_text = first_text(node, date_selector) or first_attr(node, date_selector, "datetime")
        end_date_text = first_text(node, sel.end_date) or first_attr(node, sel.end_date, "datetime")

        records.append(
            RawEventRecord(
                title=title,
                source_name=source.name,
                date_text=date_text,
                end_date_text=end_date_text,
                time_text=first_text(node, sel.time),
                price_text=first_text(node, sel.cost),
                location_text=first_text(node, sel.location),
                venue_text=first_text(node, sel.venue),
                description_text=first_text(node, sel.description),
                category_text=first_text(node, sel.category),
                detail_url=first_attr(node, sel.website, "href"),
                image_url=first_attr(node, sel.image, "src"),
                source_url=page_url,
            )
        )
    return records


class PageAutomation(ABC):
    """
    Abstract page automation.

    Implementations load a URL (optionally waiting for a selector) and return
    the rendered HTML. Selector extraction runs over that HTML by default.
    """

    @abstractmethod
    def navigate(self, url: str, wait_for: Optional[str] = None, timeout_s: float = DEFAULT_PAGE_TIMEOUT_S) -> PageHandle:
        """
        Load a page.

        Raises:
            NavigationError: if the page could not be loaded.
        """
        pass

    def extract_via_selectors(self, page: PageHandle, source: SourceConfig) -> List[RawEventRecord]:
        return extract_with_selectors(page.html, source, page.url)

    def release(self) -> None:
        """Release resources held for the calling thread."""

    def close(self) -> None:
        """Release browser resources."""

    def __enter__(self) -> "PageAutomation":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class SourceAdapter:
    """
    Navigation and selector extraction for one configured source.

    Args:
        source: Static descriptor of the site
        automation: Page automation used to load listing pages
        policy: Retry policy for navigation (3 attempts, fixed 5s delay)
        page_timeout_s: Per-attempt page-load timeout
        sleep: Sleep function used between retries
    """

    def __init__(
        self,
        source: SourceConfig,
        automation: PageAutomation,
        policy: RetryPolicy = DEFAULT_NAVIGATION_POLICY,
        page_timeout_s: float = DEFAULT_PAGE_TIMEOUT_S,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.source = source
        self.automation = automation
        self.policy = policy
        self.page_timeout_s = page_timeout_s
        self.sleep = sleep
        self.logger = logging.getLogger(f"adapter.{source.name}")

    @property
    def name(self) -> str:
        return self.source.name

    @property
    def event_urls(self) -> List[str]:
        return list(self.source.event_urls)

    def fetch_page(self, url: str, deadline: Optional[Deadline] = None) -> PageHandle:
        """
        Load one listing page, retrying transient failures.

        Raises:
            NavigationError: after the last attempt fails or the deadline passes.
        """
        wait_for = self.source.selectors.event_container if self.source.wait_for_selector else None

        def attempt() -> PageHandle:
            timeout_s = self.page_timeout_s
            if deadline is not None:
                if deadline.expired():
                    raise NavigationError(url, "run deadline reached")
                timeout_s = deadline.clip(timeout_s)
            try:
                return self.automation.navigate(url, wait_for=wait_for, timeout_s=timeout_s)
            except NavigationError:
                raise
            except Exception as e:
                raise NavigationError(url, str(e)) from e

        self.logger.debug(f"Loading {url}")
        return retry_call(
            attempt,
            self.policy,
            retry_on=(NavigationError,),
            sleep=self.sleep,
            deadline=deadline,
            label=f"navigate {url}",
        )

    def extract(self, page: PageHandle) -> List[RawEventRecord]:
        """Selector-based extraction for a loaded page."""
        records = self.automation.extract_via_selectors(page, self.source)
        self.logger.debug(f"Selectors matched {len(records)} record(s) on {page.url}")
        return records
