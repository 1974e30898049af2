"""Business-day labelling of forecast steps."""

from datetime import date
from typing import List, Union

import pandas as pd


def next_business_days(last_date: Union[str, date, pd.Timestamp], n: int) -> List[date]:
    """
    The ``n`` weekdays following ``last_date``, skipping Saturday and Sunday.

    Exchange holidays are not skipped.
    """
    if n < 0:
        raise ValueError(f"n must be >= 0, got {n}")
    if n == 0:
        return []

    start = pd.Timestamp(last_date).normalize() + pd.Timedelta(days=1)
    return [ts.date() for ts in pd.bdate_range(start=start, periods=n)]
