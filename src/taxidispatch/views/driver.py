"""Driver screens: duty, requests, active trip, history, balance and stats."""

import logging

import streamlit as st

from ..config import config
from ..data.dates import start_of_day
from ..data.geo import bearing, haversine_distance
from ..data.models import Position, User
from ..data.schema import TripStatus, VehicleType
from ..dispatch import (
    RejectedRequests,
    accept_request,
    commission_breakdown,
    complete_trip,
    mark_pickup_reached,
    reject_request,
)
from ..errors import RequestUnavailableError
from ..tracking.duty import DutyTracker
from ..tracking.polling import PendingRequestPoller
from ..viz.reports import (
    add_commission_columns,
    balance_frame,
    filter_today,
    trips_to_frame,
    trips_total,
)
from .common import (
    format_money,
    get_cached_session_store,
    get_cached_stores,
    run_action,
    status_label,
)

logger = logging.getLogger(__name__)

PHASE_TO_PICKUP = "to_pickup"
PHASE_TO_DESTINATION = "to_destination"


def _request_offline_prompt() -> bool:
    # Streamlit cannot block for an answer; the prompt is rendered on the next run.
    st.session_state.offline_prompt = True
    return False


def get_tracker(user: User) -> DutyTracker:
    """Return the duty tracker of the logged-in driver, loading it on first use."""
    tracker = st.session_state.get("duty_tracker")
    if tracker is None or tracker.driver_id != user.id:
        tracker = DutyTracker(get_cached_stores().drivers, user.id, _request_offline_prompt)
        if not tracker.load_initial_status():
            st.error("No se pudo cargar el estado del conductor")
        st.session_state.duty_tracker = tracker
        st.session_state.rejected_requests = RejectedRequests()
    return tracker


def _vehicle_type(user: User) -> VehicleType:
    profile = user.driver_profiles
    if profile is not None and profile.vehicle_type is not None:
        return profile.vehicle_type
    return VehicleType.FOUR_WHEELS


def get_poller(user: User) -> PendingRequestPoller:
    poller = st.session_state.get("request_poller")
    if poller is None or poller.tracker is not get_tracker(user):
        poller = PendingRequestPoller(
            get_cached_stores().trips,
            get_tracker(user),
            _vehicle_type(user),
            rejected=st.session_state.rejected_requests,
            has_active_trip=lambda: st.session_state.get("active_trip") is not None,
        )
        st.session_state.request_poller = poller
    return poller


def display_offline_prompt(tracker: DutyTracker):
    if not st.session_state.get("offline_prompt") or tracker.offline_mode:
        return

    with st.container(border=True):
        st.warning("No se pudo enviar tu ubicación. ¿Deseas activar el modo sin conexión?")
        col1, col2 = st.columns(2)
        if col1.button("Activar modo sin conexión"):
            tracker.offline_mode = True
            st.session_state.offline_prompt = False
            st.rerun()
        if col2.button("Cancelar"):
            st.session_state.offline_prompt = False
            st.rerun()


def display_duty_section(tracker: DutyTracker):
    """Display the duty switch and the position form."""
    col1, col2 = st.columns([3, 1])
    col1.subheader("En servicio 🟢" if tracker.is_on_duty else "Fuera de servicio 🔴", anchor=False)
    label = "Salir de servicio" if tracker.is_on_duty else "Entrar en servicio"
    if col2.button(label, type="primary", use_container_width=True):
        if tracker.toggle():
            st.rerun()
        st.error("No se pudo actualizar el estado de servicio")

    if tracker.offline_mode:
        st.caption("Modo sin conexión activo")

    with st.expander("Mi ubicación", expanded=tracker.position is None):
        position = tracker.position
        col1, col2 = st.columns(2)
        latitude = col1.number_input(
            "Latitud", value=position.latitude if position else 0.0, format="%.6f"
        )
        longitude = col2.number_input(
            "Longitud", value=position.longitude if position else 0.0, format="%.6f"
        )
        if st.button("Actualizar ubicación"):
            sent = tracker.on_position(Position(latitude=latitude, longitude=longitude))
            if sent:
                st.success("Ubicación actualizada")
            elif not tracker.is_on_duty:
                st.info("Tu ubicación se enviará cuando estés en servicio")


def display_active_trip(user: User, tracker: DutyTracker):
    """Display the trip in progress with its phase actions."""
    stores = get_cached_stores()
    trip = st.session_state.active_trip
    phase = st.session_state.get("trip_phase", PHASE_TO_PICKUP)

    with st.container(border=True):
        st.subheader("Viaje en curso", anchor=False)
        st.write(f"**Origen:** {trip.origin}")
        st.write(f"**Destino:** {trip.destination}")
        for stop in trip.trip_stops:
            st.write(f"**Parada {stop.order_index or ''}:** {stop.name}")
        if trip.passenger_phone:
            st.write(f"**Teléfono del pasajero:** {trip.passenger_phone}")
        st.metric("Precio", format_money(trip.price))

        target = (trip.origin_lat, trip.origin_lng) if phase == PHASE_TO_PICKUP \
            else (trip.destination_lat, trip.destination_lng)
        if tracker.position is not None and None not in target:
            distance = haversine_distance(tracker.position.latitude, tracker.position.longitude, *target)
            heading = bearing(tracker.position.latitude, tracker.position.longitude, *target)
            st.caption(f"A {distance / 1000:.1f} km, rumbo {heading:.0f}°")

        if phase == PHASE_TO_PICKUP:
            if st.button("Llegué al punto de recogida", type="primary"):
                updated = run_action(
                    lambda: mark_pickup_reached(stores.trips, trip.id),
                    "No se pudo actualizar el estado del viaje",
                )
                if updated is not None:
                    st.session_state.trip_phase = PHASE_TO_DESTINATION
                    st.rerun()
        elif st.button("Finalizar viaje", type="primary"):
            result = run_action(
                lambda: complete_trip(stores.trips, stores.drivers, trip, user.id),
                "No se pudo completar el viaje",
            )
            if result is not None:
                st.session_state.active_trip = None
                st.session_state.trip_phase = None
                st.session_state.rejected_requests.clear()
                st.session_state.completion_message = result.message
                if result.suspended:
                    tracker.is_on_duty = False
                    st.session_state.suspended = True
                st.rerun()


def _handle_accept(user: User, request_id: str):
    stores = get_cached_stores()
    try:
        trip = accept_request(stores.trips, request_id, user.id)
    except RequestUnavailableError as e:
        st.error(str(e))
        return
    except Exception as e:
        logger.error(f"Error accepting request {request_id}: {e}", exc_info=True)
        st.error("No se pudo confirmar la solicitud")
        return

    st.session_state.active_trip = trip
    st.session_state.trip_phase = PHASE_TO_PICKUP
    st.rerun()


@st.fragment(run_every=config.dispatch.request_poll_seconds)
def pending_requests_fragment(user: User):
    """Poll and show the request the driver can take next."""
    poller = get_poller(user)
    requests = poller.poll()

    if not poller.tracker.is_on_duty:
        st.info("Activa el modo en servicio para recibir solicitudes")
        return
    if poller.tracker.position is None:
        st.info("Registra tu ubicación para recibir solicitudes")
        return
    if not requests:
        st.caption("Sin solicitudes pendientes")
        return

    request = requests[0]
    with st.container(border=True):
        st.subheader("¡Nueva solicitud de viaje! 🚖", anchor=False)
        st.write(f"**Origen:** {request.origin}")
        st.write(f"**Destino:** {request.destination}")
        for stop in request.trip_stops:
            st.write(f"**Parada:** {stop.name}")
        if request.observations:
            st.write(f"**Observaciones:** {request.observations}")
        st.metric("Precio", format_money(request.price))

        col1, col2 = st.columns(2)
        if col1.button("✅ Aceptar", key=f"accept_{request.id}", type="primary"):
            _handle_accept(user, request.id)
        if col2.button("❌ Rechazar", key=f"reject_{request.id}"):
            reject_request(poller.rejected, request.id)
            st.rerun(scope="fragment")


def render_driver_home(user: User):
    """Display the driver's main screen."""
    tracker = get_tracker(user)

    if st.session_state.get("suspended"):
        st.error(
            "Tu cuenta ha sido suspendida por balance negativo. "
            "Por favor, contacta al administrador para reactivar tu cuenta."
        )
        if st.button("Entendido"):
            get_cached_session_store().logout()
            st.session_state.clear()
            st.rerun()
        return

    message = st.session_state.pop("completion_message", None)
    if message:
        st.success(message)

    display_offline_prompt(tracker)
    display_duty_section(tracker)

    if st.session_state.get("active_trip") is not None:
        display_active_trip(user, tracker)
    else:
        pending_requests_fragment(user)


def render_driver_trips(user: User):
    """Display the driver's finished trips with commission and net."""
    trips = get_cached_stores().trips.get_driver_trips(user.id)
    if not trips:
        st.info("Aún no tienes viajes")
        return

    df = add_commission_columns(trips_to_frame(trips), completed_only=True)
    completed = df[df['status'] == TripStatus.COMPLETED.value]
    totals = trips_total(completed)

    col1, col2, col3 = st.columns(3)
    col1.metric("Viajes completados", totals['trips'])
    col2.metric("Comisiones", format_money(totals['commission']))
    col3.metric("Ganancia neta", format_money(totals['net']))

    df['status'] = df['status'].map(status_label)
    st.dataframe(
        df[['created_at', 'origin', 'destination', 'status', 'price', 'commission', 'net']],
        hide_index=True,
        use_container_width=True,
        column_config={
            'created_at': st.column_config.DatetimeColumn('Fecha', format='DD/MM/YYYY HH:mm'),
            'origin': 'Origen',
            'destination': 'Destino',
            'status': 'Estado',
            'price': st.column_config.NumberColumn('Precio', format='$%.2f'),
            'commission': st.column_config.NumberColumn('Comisión', format='$%.2f'),
            'net': st.column_config.NumberColumn('Neto', format='$%.2f'),
        }
    )


def render_driver_balance(user: User):
    """Display the current balance and the ledger, today's or complete."""
    stores = get_cached_stores()
    profile = run_action(
        lambda: stores.drivers.get_driver_profile(user.id),
        "No se pudo cargar el saldo",
    )
    if profile is not None:
        st.metric("Saldo actual", format_money(profile.balance))

    period = st.radio("Periodo", ["Hoy", "Todo"], horizontal=True, key="balance_period")
    start = start_of_day() if period == "Hoy" else None
    df = balance_frame(stores.drivers.get_balance_history(user.id, start=start))
    if period == "Hoy":
        df = filter_today(df)

    if df.empty:
        st.info("No hay movimientos en este periodo")
        return

    st.dataframe(
        df[['created_at', 'type_label', 'signed_amount', 'description']],
        hide_index=True,
        use_container_width=True,
        column_config={
            'created_at': st.column_config.DatetimeColumn('Fecha', format='DD/MM/YYYY HH:mm'),
            'type_label': 'Tipo',
            'signed_amount': st.column_config.NumberColumn('Monto', format='$%.2f'),
            'description': 'Descripción',
        }
    )


def render_driver_stats(user: User):
    """Display trip count, earnings and balance for a time frame."""
    labels = {'day': 'Hoy', 'week': 'Semana', 'month': 'Mes'}
    timeframe = st.radio(
        "Periodo",
        list(labels),
        format_func=labels.get,
        horizontal=True,
        key="stats_timeframe",
    )

    stats = run_action(
        lambda: get_cached_stores().analytics.get_driver_trip_stats(user.id, timeframe),
        "No se pudieron cargar las estadísticas",
    )
    if stats is None:
        return

    commission, net = commission_breakdown(stats.total_earnings)
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Viajes", stats.total_trips)
    col2.metric("Ingresos", format_money(stats.total_earnings))
    col3.metric("Neto", format_money(net), delta=f"-{format_money(commission)}", delta_color="off")
    col4.metric("Saldo", format_money(stats.balance))
