"""
PostgreSQL repository adapter - Implements the DeviceStateStore protocol.

This module provides the PostgreSQL implementation of the domain's
device state port using psycopg3 with raw SQL.

Concurrency Design:
-------------------
Uniqueness of the *active* activation record is delegated to partial
unique indexes (see migrations/001_device_activation.sql):

    device(factory_data_id)        WHERE is_active
    device_activation(jit_act_id)  WHERE is_active

Two concurrent first activations of the same device both pass the state
check, but only one INSERT can succeed. The loser's UniqueViolation is
translated to DuplicateActivation and its transaction rolled back, so
no application-level locking is needed.

All mutations of one operation go through a single unit of work bound
to one pooled connection: commit on clean exit, rollback on exception.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import psycopg
from psycopg import errors
from psycopg_pool import ConnectionPool

from src.domain.exceptions import DuplicateActivation
from src.domain.models import (
    ActivationReadiness,
    ActivationRecord,
    Association,
    DeviceState,
    FactoryRecord,
    PreSharedKeyActivation,
)

logger = logging.getLogger(__name__)

_FACTORY_COLUMNS = """
    id, serial_number, state, imei, bssid, ssid, iccid, msisdn, imsi,
    vin, hw_version, sw_version, device_type, stolen, faulty
"""

# Lookup identifiers, in lookup order. Column names never come from input.
_LOOKUP_COLUMNS = ("imei", "serial_number", "bssid")

_TRANSACTION_COMPLETED = "Completed"


def _factory_record(row: tuple) -> FactoryRecord:
    return FactoryRecord(
        id=row[0],
        serial_number=row[1],
        state=DeviceState(row[2]),
        imei=row[3],
        bssid=row[4],
        ssid=row[5],
        iccid=row[6],
        msisdn=row[7],
        imsi=row[8],
        vin=row[9],
        hw_version=row[10],
        sw_version=row[11],
        device_type=row[12],
        stolen=row[13],
        faulty=row[14],
    )


class PostgresDeviceStateUnit:
    """
    Unit-of-work mutations on one open connection.

    Never commits; PostgresDeviceStateStore.transaction() owns the
    transaction boundary.
    """

    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn

    def insert_activation_record(
        self,
        factory_id: int,
        passcode: str,
        seed: int,
        vin: str | None,
        hw_version: str | None,
        sw_version: str | None,
    ) -> int:
        sql = """
            INSERT INTO device
                (factory_data_id, passcode, seed, vin, hw_version, sw_version, activated_at, is_active)
            VALUES (%s, %s, %s, %s, %s, %s, NOW(), TRUE)
            RETURNING id
        """
        try:
            with self._conn.cursor() as cursor:
                cursor.execute(sql, (factory_id, passcode, seed, vin, hw_version, sw_version))
                return cursor.fetchone()[0]
        except errors.UniqueViolation as e:
            logger.warning("Duplicate activation for factory record %s", factory_id)
            raise DuplicateActivation() from e

    def assign_device_id(self, record_id: int, device_id: str) -> None:
        sql = "UPDATE device SET device_id = %s, updated_at = NOW() WHERE id = %s"
        self._conn.execute(sql, (device_id, record_id))

    def update_passcode(self, record_id: int, passcode: str) -> None:
        sql = """
            UPDATE device
            SET passcode = %s, activated_at = NOW(), updated_at = NOW()
            WHERE id = %s AND is_active
        """
        self._conn.execute(sql, (passcode, record_id))

    def change_state(self, factory_id: int, state: DeviceState, action: str) -> None:
        update_sql = "UPDATE factory_data SET state = %s, updated_at = NOW() WHERE id = %s"
        history_sql = """
            INSERT INTO factory_data_history (factory_data_id, state, action, created_at)
            VALUES (%s, %s, %s, NOW())
        """
        self._conn.execute(update_sql, (state.value, factory_id))
        self._conn.execute(history_sql, (factory_id, state.value, action))

    def update_device_type(self, factory_id: int, device_type: str, action: str | None) -> None:
        self._conn.execute(
            "UPDATE factory_data SET device_type = %s, updated_at = NOW() WHERE id = %s",
            (device_type, factory_id),
        )
        if action is not None:
            history_sql = """
                INSERT INTO factory_data_history (factory_data_id, state, action, created_at)
                SELECT id, state, %s, NOW() FROM factory_data WHERE id = %s
            """
            self._conn.execute(history_sql, (action, factory_id))

    def complete_transaction(self, transaction_id: str) -> None:
        self._conn.execute(
            "UPDATE sim_details SET tran_status = %s WHERE tran_id = %s",
            (_TRANSACTION_COMPLETED, transaction_id),
        )

    def insert_psk_activation(self, jit_act_id: str, encrypted_passcode: str, device_type: str) -> int:
        sql = """
            INSERT INTO device_activation (jit_act_id, passcode, device_type, activated_at, is_active)
            VALUES (%s, %s, %s, NOW(), TRUE)
            RETURNING id
        """
        try:
            with self._conn.cursor() as cursor:
                cursor.execute(sql, (jit_act_id, encrypted_passcode, device_type))
                return cursor.fetchone()[0]
        except errors.UniqueViolation as e:
            logger.warning("Duplicate pre-shared key activation")
            raise DuplicateActivation() from e

    def assign_psk_device_id(self, record_id: int, device_id: str) -> None:
        self._conn.execute("UPDATE device_activation SET device_id = %s WHERE id = %s", (device_id, record_id))

    def update_psk_passcode(self, record_id: int, encrypted_passcode: str) -> None:
        sql = """
            UPDATE device_activation
            SET passcode = %s, activated_at = NOW()
            WHERE id = %s AND is_active
        """
        self._conn.execute(sql, (encrypted_passcode, record_id))

    def insert_readiness(self, serial_number: str, user_id: str | None) -> int:
        sql = """
            INSERT INTO device_activation_state
                (serial_number, factory_data_id, activation_ready, initiated_by, initiated_on)
            VALUES (%s, (SELECT id FROM factory_data WHERE serial_number = %s ORDER BY id LIMIT 1), TRUE, %s, NOW())
            RETURNING id
        """
        with self._conn.cursor() as cursor:
            cursor.execute(sql, (serial_number, serial_number, user_id))
            return cursor.fetchone()[0]

    def disable_readiness(self, serial_number: str, user_id: str | None) -> int:
        sql = """
            UPDATE device_activation_state
            SET activation_ready = FALSE, deactivated_by = %s, deactivated_on = NOW()
            WHERE serial_number = %s AND activation_ready
        """
        with self._conn.cursor() as cursor:
            cursor.execute(sql, (user_id, serial_number))
            return cursor.rowcount

    def disable_readiness_for_factory(self, factory_id: int, user_id: str | None) -> int:
        sql = """
            UPDATE device_activation_state
            SET activation_ready = FALSE, deactivated_by = %s, deactivated_on = NOW()
            WHERE activation_ready
              AND (factory_data_id = %s
                   OR serial_number = (SELECT serial_number FROM factory_data WHERE id = %s))
        """
        with self._conn.cursor() as cursor:
            cursor.execute(sql, (user_id, factory_id, factory_id))
            return cursor.rowcount

    def deactivate_records(self, serial_number: str) -> int:
        sql = """
            UPDATE device
            SET is_active = FALSE, updated_at = NOW()
            WHERE is_active
              AND factory_data_id IN (SELECT id FROM factory_data WHERE serial_number = %s)
        """
        with self._conn.cursor() as cursor:
            cursor.execute(sql, (serial_number,))
            return cursor.rowcount

    def deactivate_records_for_factory(self, factory_id: int) -> list[str]:
        sql = """
            UPDATE device
            SET is_active = FALSE, updated_at = NOW()
            WHERE is_active AND factory_data_id = %s
            RETURNING device_id
        """
        with self._conn.cursor() as cursor:
            cursor.execute(sql, (factory_id,))
            return [row[0] for row in cursor.fetchall() if row[0] is not None]


class PostgresDeviceStateStore:
    """
    Implements DeviceStateStore protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize store with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    @contextmanager
    def transaction(self) -> Iterator[PostgresDeviceStateUnit]:
        """Yield a unit of work; commit on clean exit, roll back on any exception."""
        with self._pool.connection() as conn:
            try:
                yield PostgresDeviceStateUnit(conn)
            except Exception:
                conn.rollback()
                raise
            conn.commit()

    def find_factory_record(
        self,
        imei: str | None = None,
        serial_number: str | None = None,
        bssid: str | None = None,
    ) -> FactoryRecord | None:
        """
        Find the factory record matching every supplied identifier.

        Raises:
            ValueError: if no identifier is supplied
        """
        supplied = dict(zip(_LOOKUP_COLUMNS, (imei, serial_number, bssid)))
        conditions = [f"{column} = %s" for column, value in supplied.items() if value is not None]
        params = [value for value in supplied.values() if value is not None]
        if not conditions:
            raise ValueError("At least one of imei, serial_number or bssid is required")

        sql = f"SELECT {_FACTORY_COLUMNS} FROM factory_data WHERE {' AND '.join(conditions)} ORDER BY id LIMIT 1"
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, params)
            row = cursor.fetchone()
        return _factory_record(row) if row is not None else None

    def find_factory_record_by_id(self, factory_id: int) -> FactoryRecord | None:
        sql = f"SELECT {_FACTORY_COLUMNS} FROM factory_data WHERE id = %s"
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (factory_id,))
            row = cursor.fetchone()
        return _factory_record(row) if row is not None else None

    def find_association(self, serial_number: str) -> Association | None:
        sql = """
            SELECT d.vin, d.user_id, s.tran_id, s.tran_status
            FROM device_association d
            LEFT JOIN sim_details s ON s.association_id = d.id
            WHERE d.serial_number = %s
              AND d.association_status IN ('ASSOCIATED', 'ASSOCIATION_INITIATED')
            ORDER BY d.id DESC
            LIMIT 1
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (serial_number,))
            row = cursor.fetchone()
        if row is None:
            return None
        return Association(vin=row[0], user_id=row[1], transaction_id=row[2], transaction_status=row[3])

    def find_active_activation(self, factory_id: int) -> list[ActivationRecord]:
        sql = """
            SELECT id, device_id, passcode, factory_data_id, seed, vin, hw_version, sw_version, activated_at
            FROM device
            WHERE factory_data_id = %s AND is_active
            ORDER BY id
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (factory_id,))
            rows = cursor.fetchall()
        return [
            ActivationRecord(
                id=row[0],
                device_id=row[1],
                passcode=row[2],
                factory_id=row[3],
                seed=row[4],
                vin=row[5],
                hw_version=row[6],
                sw_version=row[7],
                activated_at=row[8],
                active=True,
            )
            for row in rows
        ]

    def count_active_psk(self, jit_act_id: str) -> int:
        sql = "SELECT COUNT(*) FROM device_activation WHERE jit_act_id = %s AND is_active"
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (jit_act_id,))
            return cursor.fetchone()[0]

    def find_active_psk(self, jit_act_id: str) -> list[PreSharedKeyActivation]:
        sql = """
            SELECT id, jit_act_id, device_id, passcode, device_type, activated_at
            FROM device_activation
            WHERE jit_act_id = %s AND is_active
            ORDER BY id
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (jit_act_id,))
            rows = cursor.fetchall()
        return [
            PreSharedKeyActivation(
                id=row[0],
                jit_act_id=row[1],
                device_id=row[2],
                passcode=row[3],
                device_type=row[4],
                activated_at=row[5],
                active=True,
            )
            for row in rows
        ]

    def find_readiness(self, serial_number: str) -> list[ActivationReadiness]:
        sql = """
            SELECT id, serial_number, activation_ready, initiated_by, initiated_on, deactivated_by, deactivated_on
            FROM device_activation_state
            WHERE serial_number = %s
            ORDER BY id
        """
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(sql, (serial_number,))
            rows = cursor.fetchall()
        return [ActivationReadiness(*row) for row in rows]

    def health_check(self) -> bool:
        try:
            with self._pool.connection() as conn:
                conn.execute("SELECT 1")
        except psycopg.Error as e:
            logger.error("Database health check failed: %s", e)
            return False
        return True


def run_migrations(pool: ConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration must be idempotent (IF NOT EXISTS everywhere).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    # Structure: src/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning("Migrations directory not found: %s", migrations_dir)
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))

    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info("Running %d migration(s)", len(sql_files))

    for sql_file in sql_files:
        logger.info("Executing migration: %s", sql_file.name)
        try:
            with pool.connection() as conn:
                conn.execute(sql_file.read_text())
                conn.commit()
            logger.info("Migration complete: %s", sql_file.name)
        except psycopg.Error as e:
            logger.error("Migration failed: %s - %s", sql_file.name, e)
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
