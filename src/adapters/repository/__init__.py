"""Repository adapters - Database implementations."""

from .postgres import PostgresDeviceStateStore, PostgresDeviceStateUnit, run_migrations

__all__ = ["PostgresDeviceStateStore", "PostgresDeviceStateUnit", "run_migrations"]
