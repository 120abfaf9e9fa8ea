from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from autoscript.scripting_lib.base import ReportEngine
from autoscript.scripting_lib.errors import ReportUnavailable
from autoscript.scripting_lib.models import ReportPoint


logger = logging.getLogger(__name__)

TABLE_HEADER = "\n|Day|Count|\n|-|-|\n"


def render_table(points: Sequence[ReportPoint]) -> str:
    rows = [f"|{point.day.strftime('%Y-%m-%d')}|{point.count}|\n" for point in points]
    return TABLE_HEADER + "".join(rows)


class ReportBridge:
    def __init__(self, engine: ReportEngine | None) -> None:
        self._engine = engine

    def fetch_report(
        self, name: str, filters: Mapping[str, Any] | None = None
    ) -> str | None:
        if self._engine is None:
            return None
        report_name = str(name).strip().lower()
        try:
            series = self._engine.compute_series(report_name, dict(filters or {}))
        except ReportUnavailable as exc:
            logger.warning(
                "report unavailable: %s",
                exc,
                extra={"event": "report_unavailable", "report": report_name},
            )
            return None
        except Exception:
            logger.exception(
                "report engine failed",
                extra={"event": "report_error", "report": report_name},
            )
            return None
        if series is None:
            return None
        return render_table(series)
