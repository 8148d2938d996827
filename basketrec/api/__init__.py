"""FastAPI application module for BasketRec.

This module contains the FastAPI application, route handlers, service wiring
and metrics for serving cart suggestions and triggering rule refreshes.
"""
