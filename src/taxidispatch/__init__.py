"""TaxiDispatch: dispatch console for drivers, operators and administrators."""

__version__ = "0.1.0"
