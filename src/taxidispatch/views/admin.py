"""Admin screens: dashboard, driver and operator management, balances and reports."""

import datetime
import logging

import pandas as pd
import streamlit as st
from pydantic import ValidationError

from ..data.dates import local_now
from ..data.models import (
    BalanceAdjustment,
    DriverCreate,
    DriverUpdate,
    OperatorCreate,
    OperatorUpdate,
    User,
)
from ..data.schema import BalanceOperationType, VehicleType
from ..errors import DuplicateUserError
from ..viz.charts import create_daily_trips_chart, create_earnings_chart
from ..viz.reports import (
    add_commission_columns,
    balance_frame,
    export_csv,
    summarize_by,
    trips_to_frame,
    trips_total,
)
from .common import format_money, get_cached_stores, run_action, vehicle_label

logger = logging.getLogger(__name__)


def render_dashboard(user: User):
    """Display today's counters."""
    analytics = get_cached_stores().analytics
    stats = run_action(analytics.get_admin_dashboard_stats, "No se pudieron cargar las estadísticas")
    if stats is None:
        return

    revenue = run_action(
        lambda: analytics.get_daily_revenue(local_now().date()),
        "No se pudo calcular la recaudación del día",
    )

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Viajes hoy", stats.trips_today)
    col2.metric("Choferes activos", stats.active_drivers)
    col3.metric("Usuarios activos", stats.total_users)
    col4.metric("Recaudación hoy", format_money(revenue or 0))


def _create_user_error(e: Exception):
    if isinstance(e, DuplicateUserError):
        st.error(str(e))
    else:
        logger.error(f"Error creating user: {e}", exc_info=True)
        st.error("No se pudo crear el usuario")


def display_create_driver_form():
    with st.form("create_driver", clear_on_submit=True):
        col1, col2 = st.columns(2)
        first_name = col1.text_input("Nombre")
        last_name = col2.text_input("Apellido")
        phone_number = col1.text_input("Teléfono")
        pin = col2.text_input("PIN", type="password", max_chars=6)
        vehicle = col1.text_input("Vehículo")
        vehicle_type = col2.selectbox("Tipo de vehículo", list(VehicleType), index=1,
                                      format_func=vehicle_label)
        is_special = st.checkbox("Chofer especial")
        submitted = st.form_submit_button("Crear chofer", type="primary")

    if not submitted:
        return

    try:
        driver_data = DriverCreate(
            first_name=first_name, last_name=last_name, phone_number=phone_number,
            pin=pin, vehicle=vehicle, vehicle_type=vehicle_type, is_special=is_special,
        )
    except ValidationError:
        st.error("Completa nombre, apellido, teléfono y un PIN de al menos 4 dígitos")
        return

    try:
        get_cached_stores().drivers.create_driver(driver_data)
    except ValueError as e:
        _create_user_error(e)
        return
    st.success("Chofer creado")


def display_edit_driver(drivers):
    options = {driver.id: driver for driver in drivers}
    driver_id = st.selectbox(
        "Chofer", list(options), format_func=lambda key: options[key].full_name, key="edit_driver_id"
    )
    if driver_id is None:
        return
    driver = options[driver_id]
    store = get_cached_stores().drivers

    with st.form(f"edit_driver_{driver_id}"):
        col1, col2 = st.columns(2)
        first_name = col1.text_input("Nombre", value=driver.first_name)
        last_name = col2.text_input("Apellido", value=driver.last_name)
        phone_number = col1.text_input("Teléfono", value=driver.phone_number or "")
        pin = col2.text_input("Nuevo PIN (opcional)", type="password", max_chars=6)
        vehicle = col1.text_input("Vehículo", value=driver.vehicle or "")
        types = list(VehicleType)
        vehicle_type = col2.selectbox(
            "Tipo de vehículo", types,
            index=types.index(driver.vehicle_type) if driver.vehicle_type else 1,
            format_func=vehicle_label,
        )
        is_special = st.checkbox("Chofer especial", value=driver.is_special)
        submitted = st.form_submit_button("Guardar cambios", type="primary")

    if submitted:
        try:
            update = DriverUpdate(
                first_name=first_name, last_name=last_name,
                phone_number=phone_number or None, pin=pin or None,
                vehicle=vehicle, vehicle_type=vehicle_type, is_special=is_special,
            )
        except ValidationError:
            st.error("El PIN debe tener al menos 4 dígitos")
            return
        if run_action(lambda: store.update_driver(driver_id, update),
                      "No se pudo actualizar el chofer", "Chofer actualizado") is not None:
            st.rerun()

    label = "Desactivar cuenta" if driver.active else "Activar cuenta"
    if st.button(label, key=f"toggle_active_{driver_id}"):
        run_action(lambda: store.set_active(driver_id, not driver.active),
                   "No se pudo cambiar el estado de la cuenta")
        st.rerun()


def render_driver_management(user: User):
    """Display the driver list with create, edit and activation controls."""
    drivers = run_action(get_cached_stores().drivers.get_all_drivers, "No se pudieron cargar los choferes")
    if drivers is None:
        return

    df = pd.DataFrame([
        {
            'Nombre': driver.full_name,
            'Teléfono': driver.phone_number or (driver.users or {}).get('phone_number', ''),
            'Vehículo': driver.vehicle or '',
            'Tipo': vehicle_label(driver.vehicle_type),
            'Especial': driver.is_special,
            'Saldo': driver.balance,
            'En servicio': driver.is_on_duty,
            'Activo': driver.active,
        }
        for driver in drivers
    ])
    if not df.empty:
        st.dataframe(
            df, hide_index=True, use_container_width=True,
            column_config={'Saldo': st.column_config.NumberColumn(format='$%.2f')}
        )

    create_tab, edit_tab = st.tabs(["Nuevo chofer", "Editar chofer"])
    with create_tab:
        display_create_driver_form()
    with edit_tab:
        if drivers:
            display_edit_driver(drivers)
        else:
            st.info("No hay choferes registrados")


def display_create_operator_form():
    with st.form("create_operator", clear_on_submit=True):
        col1, col2 = st.columns(2)
        first_name = col1.text_input("Nombre")
        last_name = col2.text_input("Apellido")
        phone_number = col1.text_input("Teléfono")
        pin = col2.text_input("PIN", type="password", max_chars=6)
        submitted = st.form_submit_button("Crear operador", type="primary")

    if not submitted:
        return

    try:
        operator_data = OperatorCreate(
            first_name=first_name, last_name=last_name, phone_number=phone_number, pin=pin
        )
    except ValidationError:
        st.error("Completa nombre, apellido, teléfono y un PIN de al menos 4 dígitos")
        return

    try:
        get_cached_stores().operators.create_operator(operator_data)
    except ValueError as e:
        _create_user_error(e)
        return
    st.success("Operador creado")


def display_edit_operator(operators):
    options = {operator.id: operator for operator in operators}
    operator_id = st.selectbox(
        "Operador", list(options), format_func=lambda key: options[key].full_name,
        key="edit_operator_id"
    )
    if operator_id is None:
        return
    operator = options[operator_id]
    store = get_cached_stores().operators

    with st.form(f"edit_operator_{operator_id}"):
        col1, col2 = st.columns(2)
        first_name = col1.text_input("Nombre", value=operator.first_name)
        last_name = col2.text_input("Apellido", value=operator.last_name)
        phone_number = col1.text_input("Teléfono", value=operator.phone_number or "")
        pin = col2.text_input("Nuevo PIN (opcional)", type="password", max_chars=6)
        submitted = st.form_submit_button("Guardar cambios", type="primary")

    if submitted:
        try:
            update = OperatorUpdate(
                first_name=first_name, last_name=last_name,
                phone_number=phone_number or None, pin=pin or None,
            )
        except ValidationError:
            st.error("El PIN debe tener al menos 4 dígitos")
            return
        if run_action(lambda: store.update_operator(operator_id, update),
                      "No se pudo actualizar el operador", "Operador actualizado") is not None:
            st.rerun()

    label = "Desactivar cuenta" if operator.active else "Activar cuenta"
    if st.button(label, key=f"toggle_operator_{operator_id}"):
        run_action(lambda: store.update_operator_status(operator_id, not operator.active),
                   "No se pudo cambiar el estado de la cuenta")
        st.rerun()


def render_operator_management(user: User):
    """Display the operator list with create, edit and activation controls."""
    operators = run_action(get_cached_stores().operators.get_all_operators,
                           "No se pudieron cargar los operadores")
    if operators is None:
        return

    df = pd.DataFrame([
        {
            'Nombre': operator.full_name,
            'Cédula': operator.identity_card or '',
            'Teléfono': operator.phone_number or '',
            'Activo': operator.active,
        }
        for operator in operators
    ])
    if not df.empty:
        st.dataframe(df, hide_index=True, use_container_width=True)

    create_tab, edit_tab = st.tabs(["Nuevo operador", "Editar operador"])
    with create_tab:
        display_create_operator_form()
    with edit_tab:
        if operators:
            display_edit_operator(operators)
        else:
            st.info("No hay operadores registrados")


def render_balances(user: User):
    """Display a driver's balance with recharge and deduction controls."""
    store = get_cached_stores().drivers
    drivers = run_action(store.get_all_drivers, "No se pudieron cargar los choferes")
    if not drivers:
        return

    options = {driver.id: driver for driver in drivers}
    driver_id = st.selectbox(
        "Chofer", list(options),
        format_func=lambda key: f"{options[key].full_name} ({format_money(options[key].balance)})",
        key="balance_driver_id",
    )
    driver = options[driver_id]
    st.metric("Saldo actual", format_money(driver.balance))

    with st.form("balance_adjustment", clear_on_submit=True):
        col1, col2 = st.columns(2)
        operation = col1.radio(
            "Operación",
            [BalanceOperationType.RECHARGE, BalanceOperationType.DEDUCTION],
            format_func=lambda op: op.value.capitalize(),
            horizontal=True,
        )
        amount = col2.number_input("Monto", min_value=0.0, step=1.0, format="%.2f")
        description = st.text_input("Descripción")
        submitted = st.form_submit_button("Aplicar", type="primary")

    if submitted:
        try:
            adjustment = BalanceAdjustment(
                driver_id=driver_id, amount=amount, type=operation, description=description
            )
        except ValidationError:
            st.error("El monto debe ser mayor a cero")
            return

        result = run_action(
            lambda: store.update_driver_balance(
                adjustment.driver_id,
                adjustment.amount,
                adjustment.type,
                adjustment.description or adjustment.type.value.capitalize(),
                user.id,
            ),
            "No se pudo actualizar el saldo",
        )
        if result is not None:
            st.success(f"Nuevo saldo: {format_money(result.balance)}")

    history = balance_frame(store.get_balance_history(driver_id))
    if not history.empty:
        st.dataframe(
            history[['created_at', 'type_label', 'signed_amount', 'description']],
            hide_index=True,
            use_container_width=True,
            column_config={
                'created_at': st.column_config.DatetimeColumn('Fecha', format='DD/MM/YYYY HH:mm'),
                'type_label': 'Tipo',
                'signed_amount': st.column_config.NumberColumn('Monto', format='$%.2f'),
                'description': 'Descripción',
            }
        )


def _date_range(key: str):
    today = local_now().date()
    selected = st.date_input(
        "Rango de fechas",
        value=(today - datetime.timedelta(days=30), today),
        format="DD/MM/YYYY",
        key=key,
    )
    if not isinstance(selected, tuple) or len(selected) != 2:
        return None, None
    start = datetime.datetime.combine(selected[0], datetime.time.min).astimezone()
    end = datetime.datetime.combine(selected[1], datetime.time.max).astimezone()
    return start, end


def display_report(df: pd.DataFrame, group_key: str = None, file_name: str = "reporte.csv"):
    if df.empty:
        st.info("No hay viajes completados en este rango")
        return

    totals = trips_total(df)
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Viajes", totals['trips'])
    col2.metric("Total", format_money(totals['total']))
    col3.metric("Comisiones", format_money(totals['commission']))
    col4.metric("Neto choferes", format_money(totals['net']))

    if group_key:
        summary = summarize_by(df, group_key)
        st.plotly_chart(create_earnings_chart(summary), use_container_width=True)
        st.dataframe(summary, use_container_width=True)
    else:
        st.plotly_chart(create_daily_trips_chart(df), use_container_width=True)

    st.dataframe(
        df[['created_at', 'origin', 'destination', 'driver_name', 'operator_name',
            'price', 'commission', 'net']],
        hide_index=True,
        use_container_width=True,
        column_config={
            'created_at': st.column_config.DatetimeColumn('Fecha', format='DD/MM/YYYY HH:mm'),
            'price': st.column_config.NumberColumn('Precio', format='$%.2f'),
            'commission': st.column_config.NumberColumn('Comisión', format='$%.2f'),
            'net': st.column_config.NumberColumn('Neto', format='$%.2f'),
        }
    )
    st.download_button("Descargar CSV", export_csv(df), file_name=file_name, mime="text/csv")


def render_reports(user: User):
    """Display general, per-driver and per-operator reports of completed trips."""
    stores = get_cached_stores()
    general_tab, driver_tab, operator_tab = st.tabs(["General", "Por chofer", "Por operador"])

    with general_tab:
        start, end = _date_range("report_general_range")
        if start is not None:
            rows = run_action(lambda: stores.analytics.get_completed_trips(start, end),
                              "No se pudo cargar el reporte")
            if rows is not None:
                display_report(add_commission_columns(trips_to_frame(rows)),
                               file_name="reporte_general.csv")

    with driver_tab:
        start, end = _date_range("report_driver_range")
        drivers = run_action(stores.drivers.get_all_drivers, "No se pudieron cargar los choferes") or []
        options = {"": "Todos"} | {driver.id: driver.full_name for driver in drivers}
        driver_id = st.selectbox("Chofer", list(options), format_func=options.get, key="report_driver")
        if start is not None:
            rows = run_action(
                lambda: stores.analytics.get_completed_trips(start, end, driver_id=driver_id or None),
                "No se pudo cargar el reporte",
            )
            if rows is not None:
                display_report(add_commission_columns(trips_to_frame(rows)), 'driver_name',
                               file_name="reporte_choferes.csv")

    with operator_tab:
        start, end = _date_range("report_operator_range")
        operators = run_action(stores.operators.get_all_operators,
                               "No se pudieron cargar los operadores") or []
        options = {"": "Todos"} | {operator.id: operator.full_name for operator in operators}
        operator_id = st.selectbox("Operador", list(options), format_func=options.get,
                                   key="report_operator")
        if start is not None:
            rows = run_action(
                lambda: stores.analytics.get_operator_completed_trips(start, end, operator_id or None),
                "No se pudo cargar el reporte",
            )
            if rows is not None:
                display_report(add_commission_columns(trips_to_frame(rows)), 'operator_name',
                               file_name="reporte_operadores.csv")
