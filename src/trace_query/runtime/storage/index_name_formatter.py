import calendar
from datetime import UTC, date, datetime, timedelta

ONE_DAY = timedelta(days=1)


class IndexNameFormatter:
    """
    Names the daily span and dependency partitions, e.g. "zipkin-span-2016-03-01".
    Ranges covering whole months or years collapse into wildcard patterns.
    """

    def __init__(self, index: str = "zipkin", date_separator: str = "-"):
        self.index = index
        self.date_separator = date_separator

    def _prefix(self, doc_type: str) -> str:
        return f"{self.index}-{doc_type}-"

    def format_type(self, doc_type: str) -> str:
        """Pattern matching every partition of a document type"""
        return f"{self._prefix(doc_type)}*"

    def format_type_and_timestamp(self, doc_type: str, timestamp_millis: int) -> str:
        return self._format_day(doc_type, _to_date(timestamp_millis))

    def format_type_and_range(self, doc_type: str, begin_millis: int, end_millis: int) -> list[str]:
        """Index names or patterns covering [begin_millis, end_millis]; empty when the range is inverted"""
        current = _to_date(begin_millis)
        end = _to_date(end_millis)
        sep = self.date_separator
        prefix = self._prefix(doc_type)

        indices: list[str] = []
        while current <= end:
            if current.day == 1:
                if current.month == 1 and date(current.year, 12, 31) <= end:
                    indices.append(f"{prefix}{current.year:04d}{sep}*")
                    current = date(current.year + 1, 1, 1)
                    continue
                month_end = date(current.year, current.month, calendar.monthrange(current.year, current.month)[1])
                if month_end <= end:
                    indices.append(f"{prefix}{current.year:04d}{sep}{current.month:02d}{sep}*")
                    current = month_end + ONE_DAY
                    continue
            indices.append(self._format_day(doc_type, current))
            current += ONE_DAY
        return indices

    def _format_day(self, doc_type: str, day: date) -> str:
        sep = self.date_separator
        return f"{self._prefix(doc_type)}{day.year:04d}{sep}{day.month:02d}{sep}{day.day:02d}"


def _to_date(timestamp_millis: int) -> date:
    return datetime.fromtimestamp(timestamp_millis / 1000, tz=UTC).date()
