"""Chart creation functions for TaxiDispatch."""

from typing import Iterable, Optional

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

from taxidispatch.config import config


def drivers_frame(drivers: Iterable) -> pd.DataFrame:
    """Positions of drivers with a known location."""
    records = [
        {
            'name': driver.full_name,
            'vehicle': driver.vehicle or '',
            'vehicle_type': config.labels.vehicle_type.get(
                getattr(driver.vehicle_type, 'value', ''), ''
            ),
            'status': 'En servicio' if driver.is_on_duty else 'Fuera de servicio',
            'latitude': driver.latitude,
            'longitude': driver.longitude,
        }
        for driver in drivers
        if driver.has_location
    ]
    return pd.DataFrame(
        records,
        columns=['name', 'vehicle', 'vehicle_type', 'status', 'latitude', 'longitude']
    )


def create_driver_map(drivers: Iterable, center: Optional[dict] = None):
    """Create map of driver positions, colored by duty status."""
    df = drivers_frame(drivers)

    if center is None and not df.empty:
        center = {'lat': df['latitude'].mean(), 'lon': df['longitude'].mean()}

    driver_map = px.scatter_map(
        df,
        lat='latitude',
        lon='longitude',
        color='status',
        hover_name='name',
        hover_data={'vehicle': True, 'vehicle_type': True, 'latitude': False, 'longitude': False},
        color_discrete_map={
            'En servicio': config.labels.status_colors['completed'],
            'Fuera de servicio': config.labels.status_colors['cancelled'],
        },
        center=center,
        zoom=12,
    )

    driver_map.update_layout(
        margin={'l': 0, 'r': 0, 't': 0, 'b': 0},
        legend_title='',
    )
    driver_map.update_traces(marker={'size': 14})

    return driver_map


def create_earnings_chart(summary: pd.DataFrame, title: str = 'Ingresos'):
    """Create bar chart of totals per driver or operator from reports.summarize_by."""
    chart = go.Figure()
    names = [str(name) for name in summary.index]

    chart.add_trace(go.Bar(
        x=names,
        y=summary['net'],
        name='Neto',
        marker_color=config.labels.status_colors['completed'],
    ))
    chart.add_trace(go.Bar(
        x=names,
        y=summary['commission'],
        name='Comisión',
        marker_color=config.labels.status_colors['pending'],
    ))

    chart.update_layout(
        title_text=title,
        barmode='stack',
        xaxis_title='',
        yaxis_title='Monto en $',
        legend_title='',
        bargap=0.2
    )
    chart.update_traces(hovertemplate='<b>%{x}</b>: $%{y:.2f}')

    return chart


def create_daily_trips_chart(df: pd.DataFrame):
    """Create bar chart of completed trips per day from a trips frame."""
    daily = (df.groupby(df['created_at'].dt.date)
             .agg(trips=('id', 'count'), total=('price', 'sum')))

    chart = px.bar(daily, y='trips', color_discrete_sequence=[config.labels.status_colors['in_progress']])
    chart.update_layout(
        title_text='Viajes por día',
        xaxis_title='',
        yaxis_title='Viajes',
        bargap=0.1
    )
    chart.update_traces(hovertemplate='<b>%{x|%d %b %Y}</b>: %{y}')

    return chart
