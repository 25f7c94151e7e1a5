"""Recurrence-rule editing for series splits.

Rules are handled as structured ``NAME=VALUE`` clause lists: a rule is parsed,
one clause is rewritten and the rule is serialized again. Only the termination
clause (``COUNT`` / ``UNTIL``) is ever changed; every other clause and every
non-``RRULE`` line (``EXDATE``, ``RDATE``, ``EXRULE``) passes through verbatim.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta

from dateutil.rrule import rrule, rrulestr

from gcal_mcp.calendar.errors import RecurrenceFormatError

RRULE_PREFIX = "RRULE:"
TERMINATION_CLAUSES = ("UNTIL", "COUNT")


@dataclass(frozen=True)
class RecurrenceRule:
    """An ``RRULE:`` line parsed into its ordered clauses."""

    parts: tuple[tuple[str, str], ...]

    @classmethod
    def parse(cls, line: str) -> RecurrenceRule:
        text = line.strip()
        if not text.upper().startswith(RRULE_PREFIX):
            raise RecurrenceFormatError(f"Not an RRULE line: {line!r}")
        parts: list[tuple[str, str]] = []
        for clause in text[len(RRULE_PREFIX) :].split(";"):
            if not clause:
                continue
            name, sep, value = clause.partition("=")
            if not sep or not name.strip():
                raise RecurrenceFormatError(f"Malformed recurrence clause {clause!r} in {line!r}")
            parts.append((name.strip().upper(), value.strip()))
        if not any(name == "FREQ" for name, _ in parts):
            raise RecurrenceFormatError(f"Recurrence rule has no FREQ clause: {line!r}")
        return cls(parts=tuple(parts))

    def get(self, name: str) -> str | None:
        for part_name, value in self.parts:
            if part_name == name:
                return value
        return None

    def without(self, *names: str) -> RecurrenceRule:
        return RecurrenceRule(parts=tuple(part for part in self.parts if part[0] not in names))

    def with_clause(self, name: str, value: str) -> RecurrenceRule:
        """Return a copy with ``name`` set to ``value``, replacing it in place if present."""
        if self.get(name) is None:
            return RecurrenceRule(parts=(*self.parts, (name, value)))
        return RecurrenceRule(
            parts=tuple((n, value if n == name else v) for n, v in self.parts)
        )

    def body(self) -> str:
        return ";".join(f"{name}={value}" for name, value in self.parts)

    def serialize(self) -> str:
        return f"{RRULE_PREFIX}{self.body()}"


def _is_frequency_line(line: str) -> bool:
    stripped = line.strip().upper()
    return stripped.startswith(RRULE_PREFIX) and "FREQ=" in stripped


def _locate_frequency_rule(rules: list[str]) -> tuple[int, RecurrenceRule]:
    for index, line in enumerate(rules):
        if _is_frequency_line(line):
            return index, RecurrenceRule.parse(line)
    raise RecurrenceFormatError(
        f"No RRULE with a FREQ clause found in recurrence {list(rules)!r}"
    )


def format_until(cutoff: date | datetime) -> str:
    """Render an ``UNTIL`` value: ``YYYYMMDD`` for dates, UTC ``YYYYMMDDTHHMMSSZ`` otherwise."""
    if isinstance(cutoff, datetime):
        if cutoff.tzinfo is None:
            cutoff = cutoff.replace(tzinfo=UTC)
        return cutoff.astimezone(UTC).strftime("%Y%m%dT%H%M%SZ")
    return cutoff.strftime("%Y%m%d")


def compute_cutoff(future_start: date | datetime, *, all_day: bool = False) -> date | datetime:
    """Return the last instant a truncated series may still produce an occurrence.

    All-day series are cut one day before ``future_start``; timed series one
    second before it.
    """
    if all_day or not isinstance(future_start, datetime):
        start_day = future_start.date() if isinstance(future_start, datetime) else future_start
        return start_day - timedelta(days=1)
    return future_start - timedelta(seconds=1)


def bound_recurrence(rules: list[str], cutoff: date | datetime) -> list[str]:
    """Bound the series described by ``rules`` so it ends at ``cutoff``.

    Any existing ``COUNT`` or ``UNTIL`` clause of the frequency rule is
    dropped and ``UNTIL=<cutoff>`` is appended. Applying the function twice
    with the same cutoff yields the same rules.
    """
    index, rule = _locate_frequency_rule(rules)
    bounded = rule.without(*TERMINATION_CLAUSES).with_clause("UNTIL", format_until(cutoff))
    updated = list(rules)
    updated[index] = bounded.serialize()
    return updated


def _expansion_bounds(
    series_start: date | datetime, future_start: date | datetime
) -> tuple[datetime, datetime]:
    if isinstance(series_start, datetime):
        if not isinstance(future_start, datetime):
            future_start = datetime.combine(future_start, time.min, tzinfo=series_start.tzinfo)
        return series_start, future_start
    threshold_day = future_start.date() if isinstance(future_start, datetime) else future_start
    return datetime.combine(series_start, time.min), datetime.combine(threshold_day, time.min)


def _aligned_until(rule: RecurrenceRule, dtstart: datetime) -> RecurrenceRule:
    """Return ``rule`` with an ``UNTIL`` of the same kind as ``dtstart``.

    dateutil needs a UTC ``UNTIL`` for an aware start and a floating one for a
    naive start. Date-only and floating values on a timed series are read in
    the series' time zone; a date-only value covers that whole day. Only the
    copy used for expansion changes.
    """
    until = rule.get("UNTIL")
    if until is None:
        return rule
    value = until.upper()
    if dtstart.tzinfo is None:
        return rule.with_clause("UNTIL", value.removesuffix("Z"))
    if value.endswith("Z"):
        return rule
    try:
        if "T" in value:
            local_until = datetime.strptime(value, "%Y%m%dT%H%M%S")
        else:
            local_until = datetime.combine(
                datetime.strptime(value, "%Y%m%d").date(), time(23, 59, 59)
            )
    except ValueError as exc:
        raise RecurrenceFormatError(f"Invalid UNTIL value {until!r} in recurrence rule") from exc
    return rule.with_clause("UNTIL", format_until(local_until.replace(tzinfo=dtstart.tzinfo)))


def _expand(line: str, rule: RecurrenceRule, dtstart: datetime) -> rrule:
    try:
        return rrulestr(_aligned_until(rule, dtstart).body(), dtstart=dtstart)
    except (ValueError, TypeError) as exc:
        raise RecurrenceFormatError(f"Unable to expand recurrence rule {line!r}: {exc}") from exc


def continue_recurrence(
    rules: list[str],
    *,
    series_start: date | datetime,
    future_start: date | datetime,
) -> list[str] | None:
    """Return the rules of a series that picks up at ``future_start``.

    ``COUNT`` is reduced by the occurrences already produced before
    ``future_start``; ``UNTIL`` bounds and unbounded rules carry over
    unchanged. Returns ``None`` when the series has no occurrence at or after
    ``future_start``.
    """
    index, rule = _locate_frequency_rule(rules)
    dtstart, threshold = _expansion_bounds(series_start, future_start)
    expansion = _expand(rules[index], rule, dtstart)
    if expansion.after(threshold, inc=True) is None:
        return None

    count = rule.get("COUNT")
    if count is None:
        return list(rules)
    try:
        total = int(count)
    except ValueError as exc:
        raise RecurrenceFormatError(f"COUNT must be an integer in {rules[index]!r}") from exc

    consumed = 0
    for occurrence in expansion:
        if occurrence >= threshold:
            break
        consumed += 1

    continued = list(rules)
    continued[index] = rule.with_clause("COUNT", str(total - consumed)).serialize()
    return continued
