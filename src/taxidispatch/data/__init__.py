"""Data access layer for TaxiDispatch."""
