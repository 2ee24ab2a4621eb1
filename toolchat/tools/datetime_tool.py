"""
DateTime tools — current date/time and calendar facts about a date.

LLMs don't know what day it is. These do.

Examples the model would route here:
  "What's today's date?"
  "What day of the week was 2024-03-15?"
  "Which month is 2025-12-01 in?"

Pure computation, no I/O. Bad input comes back as an error string.
"""

import logging
from datetime import date, datetime, timedelta, timezone

from toolchat.models import ToolDescriptor, ToolParameter
from toolchat.tools.base import FunctionTool, Toolkit

logger = logging.getLogger(__name__)

DATE_FORMAT_ERROR = "Error: Please provide date in YYYY-MM-DD format"

# Fixed English names; strftime would follow the process locale
MONTHS = (
    "JANUARY", "FEBRUARY", "MARCH", "APRIL", "MAY", "JUNE",
    "JULY", "AUGUST", "SEPTEMBER", "OCTOBER", "NOVEMBER", "DECEMBER",
)
WEEKDAYS = ("MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY")

_DATE_PARAM = ToolParameter("date", "string", "The date in YYYY-MM-DD format")


def _parse(value: str) -> date | None:
    try:
        return date.fromisoformat(value.strip())
    except (AttributeError, ValueError):
        return None


class DateTimeTool(Toolkit):
    """Current date/time plus year, month and weekday of a given date."""

    def __init__(self, local_tz_offset: float | None = None):
        """
        Args:
            local_tz_offset: Fixed UTC offset in hours for "now". None uses
                             the host's local time zone.
        """
        self.local_offset = local_tz_offset
        if local_tz_offset is None:
            logger.info("DateTimeTool initialized (host local time)")
        else:
            logger.info("DateTimeTool initialized (local UTC%+.1f)", local_tz_offset)

    def _now(self) -> datetime:
        if self.local_offset is None:
            return datetime.now()
        tz = timezone(timedelta(hours=self.local_offset))
        return datetime.now(timezone.utc).astimezone(tz)

    def current_date(self) -> str:
        return self._now().date().isoformat()

    def current_time(self) -> str:
        return self._now().time().isoformat()

    def year_of(self, date: str) -> str:
        parsed = _parse(date)
        if parsed is None:
            return DATE_FORMAT_ERROR
        return str(parsed.year)

    def month_of(self, date: str) -> str:
        parsed = _parse(date)
        if parsed is None:
            return DATE_FORMAT_ERROR
        return MONTHS[parsed.month - 1]

    def day_of_week_of(self, date: str) -> str:
        parsed = _parse(date)
        if parsed is None:
            return DATE_FORMAT_ERROR
        return WEEKDAYS[parsed.weekday()]

    def tools(self) -> list[FunctionTool]:
        return [
            FunctionTool(ToolDescriptor("current_date", "Get the current date"), self.current_date),
            FunctionTool(ToolDescriptor("current_time", "Get the current time"), self.current_time),
            FunctionTool(
                ToolDescriptor("year_of", "Get the year from a given date", (_DATE_PARAM,)),
                self.year_of,
            ),
            FunctionTool(
                ToolDescriptor("month_of", "Get the month from a given date", (_DATE_PARAM,)),
                self.month_of,
            ),
            FunctionTool(
                ToolDescriptor("day_of_week_of", "Get the day of week from a given date", (_DATE_PARAM,)),
                self.day_of_week_of,
            ),
        ]
