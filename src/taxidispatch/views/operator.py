"""Operator screens: trip request form, driver map and today's trips."""

import logging

import pandas as pd
import streamlit as st
from pydantic import ValidationError

from ..config import config
from ..data.models import BroadcastRequestCreate, StopCreate, User
from ..data.schema import RequestStatus, TripStatus, VehicleType
from ..viz.charts import create_driver_map
from .common import format_money, get_cached_stores, run_action, status_label, vehicle_label

logger = logging.getLogger(__name__)

STOP_COLUMNS = ['name', 'latitude', 'longitude']


def _stops_from_editor(df: pd.DataFrame):
    stops = []
    for row in df.dropna(subset=STOP_COLUMNS).to_dict('records'):
        if str(row['name']).strip():
            stops.append(StopCreate(
                name=str(row['name']).strip(),
                latitude=float(row['latitude']),
                longitude=float(row['longitude']),
            ))
    return stops


def render_request_form(user: User, key_prefix: str = "operator"):
    """Display the trip request form and broadcast the request on submit."""
    settings = config.dispatch

    with st.form(f"{key_prefix}_request", clear_on_submit=True):
        col1, col2 = st.columns(2)
        with col1:
            origin = st.text_input("Origen")
            origin_lat = st.number_input("Latitud origen", value=0.0, format="%.6f")
            origin_lng = st.number_input("Longitud origen", value=0.0, format="%.6f")
        with col2:
            destination = st.text_input("Destino")
            destination_lat = st.number_input("Latitud destino", value=0.0, format="%.6f")
            destination_lng = st.number_input("Longitud destino", value=0.0, format="%.6f")

        col3, col4, col5 = st.columns(3)
        price = col3.number_input("Precio", min_value=0.0, step=0.5, format="%.2f")
        search_radius = col4.number_input(
            "Radio de búsqueda (m)",
            min_value=500,
            max_value=settings.max_broadcast_radius_m,
            value=settings.default_search_radius_m,
            step=500,
        )
        vehicle_type = col5.selectbox(
            "Tipo de vehículo",
            list(VehicleType),
            index=1,
            format_func=vehicle_label,
        )

        passenger_phone = st.text_input("Teléfono del pasajero")
        observations = st.text_area("Observaciones")

        st.caption("Paradas intermedias")
        stops_df = st.data_editor(
            pd.DataFrame(columns=STOP_COLUMNS).astype({'name': str, 'latitude': float, 'longitude': float}),
            num_rows="dynamic",
            hide_index=True,
            key=f"{key_prefix}_stops",
            column_config={
                'name': 'Nombre',
                'latitude': st.column_config.NumberColumn('Latitud', format='%.6f'),
                'longitude': st.column_config.NumberColumn('Longitud', format='%.6f'),
            },
        )

        submitted = st.form_submit_button("Enviar solicitud", type="primary")

    if not submitted:
        return

    try:
        request_data = BroadcastRequestCreate(
            operator_id=user.id,
            origin=origin,
            destination=destination,
            price=price,
            origin_lat=origin_lat,
            origin_lng=origin_lng,
            destination_lat=destination_lat,
            destination_lng=destination_lng,
            search_radius=int(search_radius),
            observations=observations,
            vehicle_type=vehicle_type,
            passenger_phone=passenger_phone,
            status=RequestStatus.BROADCASTING,
            stops=_stops_from_editor(stops_df),
        )
    except ValidationError as e:
        logger.info(f"Invalid trip request: {e}")
        st.error("Completa origen, destino y un precio mayor a cero")
        return

    trips = get_cached_stores().trips
    request = run_action(
        lambda: trips.create_broadcast_request(request_data),
        "No se pudo crear la solicitud",
    )
    if request is None:
        return

    with st.spinner("Notificando a los choferes cercanos..."):
        result = run_action(
            lambda: trips.broadcast_request(request.id),
            "No se pudo notificar a los choferes",
        )

    if result is not None:
        st.success(
            f"Solicitud enviada a {result.special_drivers_count} choferes especiales "
            f"y {result.regular_drivers_count} choferes regulares"
        )


@st.fragment(run_every=config.dispatch.map_refresh_seconds)
def render_driver_map(user: User):
    """Display on-duty drivers, refreshed periodically."""
    drivers = run_action(
        get_cached_stores().operators.get_active_drivers_with_location,
        "No se pudo cargar la ubicación de los choferes",
    )
    if drivers is None:
        return

    st.caption(f"{len(drivers)} choferes en servicio")
    if drivers:
        st.plotly_chart(create_driver_map(drivers), use_container_width=True)


def _display_trip_actions(item):
    trips = get_cached_stores().trips

    if item.kind == "trip" and item.status in (TripStatus.PENDING.value, TripStatus.IN_PROGRESS.value,
                                               TripStatus.PICKUP_REACHED.value):
        reason = st.text_input("Motivo de cancelación", key=f"reason_{item.id}")
        if st.button("Cancelar viaje", key=f"cancel_{item.id}"):
            if not reason.strip():
                st.error("Indica el motivo de la cancelación")
                return
            if run_action(lambda: trips.cancel_trip(item.id, reason.strip()),
                          "No se pudo cancelar el viaje") is not None:
                st.rerun()

    elif item.kind == "trip" and item.status == TripStatus.CANCELLED.value:
        if st.button("Reenviar viaje", key=f"resend_{item.id}"):
            request = run_action(lambda: trips.resend_cancelled_trip(item.id),
                                 "No se pudo reenviar el viaje")
            if request is not None:
                with st.spinner("Notificando a los choferes cercanos..."):
                    run_action(lambda: trips.broadcast_request(request.id),
                               "No se pudo notificar a los choferes")
                st.rerun()


def render_operator_trips(user: User):
    """Display today's trips and open requests of the operator."""
    if st.button("Actualizar", key="refresh_operator_trips"):
        st.rerun()

    items = run_action(
        lambda: get_cached_stores().trips.get_operator_trips(user.id),
        "No se pudieron cargar los viajes",
    )
    if not items:
        if items is not None:
            st.info("No hay viajes hoy")
        return

    for item in items:
        with st.container(border=True):
            col1, col2 = st.columns([3, 1])
            col1.write(f"**{item.origin}** → **{item.destination}**")
            if item.created_at:
                col1.caption(item.created_at.astimezone().strftime('%H:%M'))
            col2.markdown(
                f":{'blue' if item.kind == 'request' else 'gray'}[{status_label(item.status)}]"
            )
            col2.write(format_money(item.price))
            _display_trip_actions(item)
