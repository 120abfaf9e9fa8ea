from __future__ import annotations

from datetime import date
import logging
import re
from typing import Any, Mapping

from autoscript.scripting_lib.models import SITE_TITLE_PLACEHOLDER
from autoscript.scripting_lib.reports import ReportBridge


logger = logging.getLogger(__name__)

# %%NAME%% or %%NAME=args%%. There is no escape for a literal "%%".
TOKEN_RE = re.compile(r"%%(?P<name>[A-Za-z0-9_]+)(?:=(?P<args>.*?))?%%")
REPORT_TOKEN = "report"
DATE_FILTERS = ("start_date", "end_date")


def parse_report_filters(raw: str | None) -> dict[str, Any]:
    filters: dict[str, Any] = {}
    for chunk in (raw or "").split():
        key, sep, value = chunk.partition("=")
        key = key.strip().lower()
        value = value.strip()
        if not sep or not key or not value:
            continue
        if key in DATE_FILTERS:
            try:
                filters[key] = date.fromisoformat(value)
            except ValueError:
                logger.warning(
                    "ignoring invalid report date filter",
                    extra={"event": "report_filter_invalid", "report": key},
                )
            continue
        filters[key] = value
    return filters


class PlaceholderEngine:
    def __init__(self, report_bridge: ReportBridge, site_title: str = "") -> None:
        self._report_bridge = report_bridge
        self._site_title = site_title

    def render(self, template: str, values: Mapping[str, Any] | None = None) -> str:
        if not template:
            return template or ""
        lookup = {str(key).lower(): value for key, value in (values or {}).items()}
        if self._site_title and SITE_TITLE_PLACEHOLDER not in lookup:
            lookup[SITE_TITLE_PLACEHOLDER] = self._site_title

        def replace(match: re.Match) -> str:
            name = match.group("name").lower()
            args = match.group("args")
            if args is not None:
                if name != REPORT_TOKEN:
                    return match.group(0)
                return self._render_report(args)
            if name not in lookup or lookup[name] is None:
                return match.group(0)
            return str(lookup[name])

        return TOKEN_RE.sub(replace, template)

    def _render_report(self, args: str) -> str:
        report_name, _, raw_filters = args.strip().partition(" ")
        if not report_name:
            return ""
        filters = parse_report_filters(raw_filters)
        return self._report_bridge.fetch_report(report_name.lower(), filters) or ""
