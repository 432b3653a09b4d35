"""Tabular report helpers for the trip and balance screens.

These functions turn store results into pandas frames and are shared by the
driver, operator and admin views.
"""

from datetime import datetime
from typing import Iterable, Optional

import pandas as pd
from pydantic import BaseModel

from ..config import config
from ..data.dates import start_of_day
from ..data.schema import BalanceOperationType, TripStatus

TRIP_COLUMNS = [
    'id', 'created_at', 'completed_at', 'status', 'origin', 'destination',
    'price', 'driver_name', 'operator_name'
]
BALANCE_COLUMNS = ['created_at', 'type', 'type_label', 'amount', 'signed_amount', 'description']


def _as_dict(row) -> dict:
    if isinstance(row, BaseModel):
        return row.model_dump()
    return dict(row)


def _person_name(profile) -> str:
    if not profile:
        return ''
    if isinstance(profile, list):
        profile = profile[0] if profile else {}
    first = profile.get('first_name') or ''
    last = profile.get('last_name') or ''
    return f"{first} {last}".strip()


def _to_local(series: pd.Series) -> pd.Series:
    """Parse timestamps and express them in the local timezone."""
    parsed = pd.to_datetime(series, utc=True, errors='coerce', format='mixed')
    return parsed.dt.tz_convert(datetime.now().astimezone().tzinfo)


def trips_to_frame(trips: Iterable) -> pd.DataFrame:
    """
    Build a trips frame from Trip models or raw trip rows.

    Embedded driver and operator profiles are flattened into
    'driver_name' and 'operator_name'.
    """
    records = []
    for trip in trips:
        row = _as_dict(trip)
        records.append({
            'id': row.get('id'),
            'created_at': row.get('created_at'),
            'completed_at': row.get('completed_at'),
            'status': getattr(row.get('status'), 'value', row.get('status')),
            'origin': row.get('origin') or '',
            'destination': row.get('destination') or '',
            'price': float(row.get('price') or 0),
            'driver_name': _person_name(row.get('driver_profiles')),
            'operator_name': _person_name(row.get('operator_profiles')),
        })

    df = pd.DataFrame(records, columns=TRIP_COLUMNS)
    df['created_at'] = _to_local(df['created_at'])
    df['completed_at'] = _to_local(df['completed_at'])
    df['price'] = df['price'].astype(float)
    return df


def add_commission_columns(
    df: pd.DataFrame,
    rate: Optional[float] = None,
    completed_only: bool = False
) -> pd.DataFrame:
    """
    Add the platform commission and the driver's net for each trip.

    With completed_only, rows whose status is not 'completed' get NaN in both
    columns.
    """
    rate = config.dispatch.commission_rate if rate is None else rate
    df = df.copy()
    df['commission'] = df['price'] * rate
    df['net'] = df['price'] - df['commission']
    if completed_only:
        unfinished = df['status'] != TripStatus.COMPLETED.value
        df.loc[unfinished, ['commission', 'net']] = float('nan')
    return df


def filter_today(df: pd.DataFrame, column: str = 'created_at', now: Optional[datetime] = None) -> pd.DataFrame:
    """Keep rows whose timestamp is at or after local midnight."""
    midnight = pd.Timestamp(start_of_day(now))
    return df[df[column] >= midnight]


def summarize_by(df: pd.DataFrame, key: str) -> pd.DataFrame:
    """Trip count and money totals per driver or operator, largest total first."""
    if 'commission' not in df.columns:
        df = add_commission_columns(df)

    summary = (df.groupby(key)
               .agg(trips=('id', 'count'),
                    total=('price', 'sum'),
                    commission=('commission', 'sum'),
                    net=('net', 'sum'))
               .sort_values('total', ascending=False))
    summary.index.name = key
    return summary


def trips_total(df: pd.DataFrame) -> dict:
    """Overall trip count, total price, commission and net of a frame."""
    if 'commission' not in df.columns:
        df = add_commission_columns(df)
    return {
        'trips': int(len(df)),
        'total': float(df['price'].sum()),
        'commission': float(df['commission'].sum()),
        'net': float(df['net'].sum()),
    }


def balance_frame(entries: Iterable) -> pd.DataFrame:
    """Balance ledger as a frame; deductions carry a negative signed amount."""
    records = []
    for entry in entries:
        row = _as_dict(entry)
        kind = getattr(row.get('type'), 'value', row.get('type'))
        amount = float(row.get('amount') or 0)
        records.append({
            'created_at': row.get('created_at'),
            'type': kind,
            'type_label': config.labels.balance_type.get(kind, kind),
            'amount': amount,
            'signed_amount': -amount if kind == BalanceOperationType.DEDUCTION.value else amount,
            'description': row.get('description') or '',
        })

    df = pd.DataFrame(records, columns=BALANCE_COLUMNS)
    df['created_at'] = _to_local(df['created_at'])
    return df


def export_csv(df: pd.DataFrame) -> bytes:
    """Encode a report frame for st.download_button."""
    export = df.copy()
    for column in export.select_dtypes(include=['datetimetz', 'datetime']).columns:
        export[column] = export[column].dt.strftime('%Y-%m-%d %H:%M')
    return export.to_csv(index=False).encode('utf-8')
