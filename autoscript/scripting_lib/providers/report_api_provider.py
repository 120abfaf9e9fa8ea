from __future__ import annotations

from datetime import date
import logging
from typing import Any, Mapping

import httpx

from autoscript.scripting_lib.errors import ReportUnavailable
from autoscript.scripting_lib.models import ReportPoint


logger = logging.getLogger(__name__)


class HttpReportEngine:
    """Reads day/count series from a ``/admin/reports/<name>.json`` endpoint."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: int,
        api_key: str | None = None,
        api_username: str | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._headers: dict[str, str] = {"Accept": "application/json"}
        if api_key:
            self._headers["Api-Key"] = api_key
        if api_username:
            self._headers["Api-Username"] = api_username

    def compute_series(
        self, report_name: str, filters: Mapping[str, Any]
    ) -> list[ReportPoint] | None:
        url = f"{self._base_url}/admin/reports/{report_name}.json"
        try:
            with httpx.Client(
                timeout=self._timeout_seconds,
                headers=self._headers,
                follow_redirects=True,
            ) as client:
                response = client.get(url, params=self.build_params(filters))
        except httpx.HTTPError as exc:
            raise ReportUnavailable(f"{report_name}: {exc}") from exc
        if response.status_code == 404:
            return None
        try:
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPStatusError, ValueError) as exc:
            raise ReportUnavailable(f"{report_name}: {exc}") from exc
        return self.parse_series(payload)

    @staticmethod
    def build_params(filters: Mapping[str, Any]) -> dict[str, str]:
        params: dict[str, str] = {}
        for key, value in filters.items():
            if isinstance(value, date):
                value = value.isoformat()
            if key in {"start_date", "end_date"}:
                params[key] = str(value)
            else:
                params[f"filters[{key}]"] = str(value)
        return params

    @staticmethod
    def parse_series(payload: Any) -> list[ReportPoint] | None:
        if not isinstance(payload, dict):
            raise ReportUnavailable("unexpected report payload")
        report = payload.get("report")
        if not isinstance(report, dict):
            return None
        points: list[ReportPoint] = []
        for item in report.get("data") or []:
            if not isinstance(item, dict):
                continue
            raw_day = str(item.get("x", "")).strip()[:10]
            try:
                day = date.fromisoformat(raw_day)
                count = int(item.get("y") or 0)
            except (TypeError, ValueError):
                logger.warning(
                    "skipping malformed report row",
                    extra={"event": "report_row_invalid"},
                )
                continue
            points.append(ReportPoint(day=day, count=count))
        return points
