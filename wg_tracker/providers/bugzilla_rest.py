"""Bugzilla provider implementation using the REST API."""

from typing import Any

import httpx
import structlog

from wg_tracker.exceptions import NetworkError, ResponseError
from wg_tracker.providers.base import BugTracker

log = structlog.get_logger(__name__)


class BugzillaRestProvider(BugTracker):
    """Files bugs through ``POST /rest/bug``."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        client: httpx.AsyncClient,
    ):
        """Initialize Bugzilla provider.

        Args:
            base_url: Bugzilla base URL (e.g., https://bugzilla.mozilla.org)
            api_key: Bugzilla API key
            client: HTTP client shared with the other providers of a run
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key.strip() if api_key else api_key
        self._client = client

    def bug_url(self, bug_id: int) -> str:
        return f"{self.base_url}/show_bug.cgi?id={bug_id}"

    async def file_bug(
        self,
        product: str,
        component: str,
        summary: str,
        description: str,
        urls: list[str],
    ) -> str:
        """File a bug and return its web URL."""
        log.info("file_bug", product=product, component=component, summary=summary)

        data: dict[str, Any] = {
            "product": product,
            "component": component,
            "summary": summary,
            "description": description,
            "version": "unspecified",
        }
        if urls:
            data["url"] = urls[0]
            data["see_also"] = urls

        try:
            response = await self._client.post(
                f"{self.base_url}/rest/bug",
                json=data,
                headers={"X-BUGZILLA-API-KEY": self.api_key, "Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            log.error("bugzilla_request_failed", error=str(e))
            raise NetworkError("could not perform network request") from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}

        if response.status_code >= 400 or payload.get("error"):
            log.error("bugzilla_file_bug_failed", status=response.status_code, message=payload.get("message"))
            raise ResponseError(
                f"bug filing failed: {payload.get('message', 'unknown error')}",
                status_code=response.status_code,
                response_text=response.text,
            )

        bug_id = payload.get("id")
        if bug_id is None:
            raise ResponseError("bug filing failed: no id in response", response_text=response.text)

        url = self.bug_url(bug_id)
        log.info("bug_filed", url=url)
        return url
