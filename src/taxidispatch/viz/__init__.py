"""Reports and charts for TaxiDispatch."""
