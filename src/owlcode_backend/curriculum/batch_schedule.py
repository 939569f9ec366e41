import datetime
import typing

from owlcode_backend.models.batch_models import BatchDayModel


def js_weekday(day: datetime.date) -> int:
    """Weekday index with Sunday as 0, the convention used by `excludedDays`."""
    return (day.weekday() + 1) % 7


def generate_batch_day_schedule(
    start: datetime.datetime,
    end: datetime.datetime,
    excluded_days: typing.Collection[int] = (0,),
    holidays: typing.Collection[datetime.datetime] = (),
) -> list[BatchDayModel]:
    """
    Lists the teaching days of a batch, numbered from 1.
    Every calendar day from start to end inclusive is a teaching day unless it falls on
    an excluded weekday or a holiday.
    """
    holiday_dates = {h.date() for h in holidays}
    days: list[BatchDayModel] = []

    current = start.date()
    last = end.date()
    while current <= last:
        if js_weekday(current) not in excluded_days and current not in holiday_dates:
            days.append(BatchDayModel(dayNumber=len(days) + 1, date=current))
        current += datetime.timedelta(days=1)

    return days
