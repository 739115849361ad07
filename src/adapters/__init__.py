"""Adapters layer for CareOps.

This module contains adapters that connect the domain services to external
systems: the hosted database (or a direct PostgreSQL/DuckDB store), the
hosted language model, and outbound notification channels. Adapters
implement Port interfaces defined in the domain layer.
"""
