"""Wattlink order-series scheduling and resolution engine."""
