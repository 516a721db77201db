"""
Gripp API Integration

Client for Gripp's JSON-RPC API (``api3.php``). Every call is a POST of a
one-element batch:

    [{"method": "hour.get",
      "params": [[{"field": "hour.date", "operator": "between", ...}],
                 {"paging": {"firstresult": 0, "maxresults": 250}}],
      "id": 1}]

and the answer is ``[{"id": 1, "result": {"rows": [...], "more_items_in_collection": true}}]``
or ``[{"id": 1, "error": "..."}]``.
"""

import logging
import time
from datetime import date
from typing import Any, Dict, List, Optional

import requests

from config.settings import settings
from src.utils.errors import GrippApiError
from src.utils.retry_logic import retry_with_backoff

logger = logging.getLogger(__name__)


class GrippAPIClient:
    """Client for the Gripp JSON-RPC API with paging and rate limiting."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        page_size: Optional[int] = None,
        max_pages: Optional[int] = None,
    ):
        self.api_key = api_key or settings.gripp.api_key
        if not self.api_key:
            raise ValueError("GRIPP_API_KEY environment variable is required")

        self.api_url = api_url or settings.gripp.api_url
        self.page_size = page_size or settings.gripp.page_size
        self.max_pages = max_pages or settings.gripp.max_pages
        self.timeout = settings.gripp.request_timeout

        self.headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        self._request_id = 0

        # Gripp allows roughly 10 requests per second per API key
        self.last_request_time = 0.0
        self.min_request_interval = 0.1

    def _rate_limit(self):
        """Enforce a minimum interval between Gripp API calls."""
        elapsed = time.time() - self.last_request_time
        if elapsed < self.min_request_interval:
            time.sleep(self.min_request_interval - elapsed)
        self.last_request_time = time.time()

    def _next_id(self) -> int:
        self._request_id += 1
        return self._request_id

    @retry_with_backoff(max_retries=3, base_delay=1.0)
    def _post(self, payload: List[Dict[str, Any]]) -> Any:
        self._rate_limit()
        response = requests.post(
            self.api_url, json=payload, headers=self.headers, timeout=self.timeout
        )
        response.raise_for_status()
        return response.json()

    def call(
        self,
        method: str,
        filters: Optional[List[Dict[str, Any]]] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Execute a single JSON-RPC method and return its ``result`` member.

        Args:
            method: Gripp method name (e.g. "project.get")
            filters: List of Gripp filter objects
            options: Paging and ordering options

        Returns:
            The ``result`` dict of the response

        Raises:
            GrippApiError: On transport failures, malformed responses or API errors
        """
        payload = [
            {
                "method": method,
                "params": [filters or [], options or {}],
                "id": self._next_id(),
            }
        ]

        try:
            data = self._post(payload)
        except requests.RequestException as e:
            raise GrippApiError(f"Gripp request {method} failed: {e}") from e
        except ValueError as e:
            raise GrippApiError(f"Gripp returned invalid JSON for {method}") from e

        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            raise GrippApiError(f"Unexpected Gripp response for {method}", details=data)

        entry = data[0]
        if entry.get("error"):
            raise GrippApiError(
                f"Gripp API error for {method}: {entry['error']}", details=entry["error"]
            )

        result = entry.get("result")
        if not isinstance(result, dict):
            raise GrippApiError(f"Gripp response for {method} has no result")
        return result

    def get_all(
        self,
        method: str,
        filters: Optional[List[Dict[str, Any]]] = None,
        order_field: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Fetch every row of a paged Gripp collection.

        Stops when a page is short or Gripp reports no more items.

        Raises:
            GrippApiError: If ``max_pages`` pages were read and more rows remain,
                instead of returning a partial set
        """
        rows: List[Dict[str, Any]] = []

        for page in range(self.max_pages):
            options: Dict[str, Any] = {
                "paging": {
                    "firstresult": page * self.page_size,
                    "maxresults": self.page_size,
                }
            }
            if order_field:
                options["orderings"] = [{"field": order_field, "direction": "asc"}]

            result = self.call(method, filters, options)
            page_rows = result.get("rows") or []
            rows.extend(page_rows)

            logger.debug(f"{method}: page {page + 1} returned {len(page_rows)} rows")

            if len(page_rows) < self.page_size:
                break
            if result.get("more_items_in_collection") is False:
                break
        else:
            logger.error(
                f"{method}: more rows remain after {self.max_pages} pages ({len(rows)} rows)"
            )
            raise GrippApiError(
                f"Gripp {method} returned more than {self.max_pages} pages; "
                f"raise GRIPP_MAX_PAGES or GRIPP_PAGE_SIZE",
                details={"method": method, "pages": self.max_pages, "rows": len(rows)},
            )

        logger.info(f"Fetched {len(rows)} rows via {method}")
        return rows

    def get_projects(self) -> List[Dict[str, Any]]:
        return self.get_all("project.get", order_field="project.id")

    def get_project_lines(self, project_id: int) -> List[Dict[str, Any]]:
        filters = [
            {
                "field": "projectline.offerprojectbase",
                "operator": "equals",
                "value": project_id,
            }
        ]
        return self.get_all("projectline.get", filters, order_field="projectline.id")

    def get_offers(self) -> List[Dict[str, Any]]:
        return self.get_all("offer.get", order_field="offer.id")

    def get_hours(self, start_date: date, end_date: date) -> List[Dict[str, Any]]:
        """Fetch all time registrations with a work date in ``[start_date, end_date]``."""
        filters = [
            {
                "field": "hour.date",
                "operator": "between",
                "value": start_date.isoformat(),
                "value2": end_date.isoformat(),
            }
        ]
        logger.info(f"Fetching Gripp hours from {start_date} to {end_date}")
        return self.get_all("hour.get", filters, order_field="hour.id")
