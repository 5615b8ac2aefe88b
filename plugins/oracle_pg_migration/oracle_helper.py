"""
Oracle Connection Helper

This module provides a lightweight Oracle hook built on python-oracledb and
BaseHook, so the Oracle provider package is not required on the workers.

Connection fields used:
- host, port (default 1521), login, password
- schema or extra.service_name: service name
- extra.sid: SID, for databases without a service name
- extra.dsn: full DSN or TNS alias, overrides host/port/service
"""

from typing import Any, Dict, Optional
from airflow.hooks.base import BaseHook
import oracledb
import logging

logger = logging.getLogger(__name__)

DEFAULT_ORACLE_PORT = 1521


class OracleConnectionHelper:
    """
    Helper class for Oracle connections that mimics a DB hook interface.

    Provides get_conn and release_conn on top of python-oracledb (thin
    mode, no Oracle client needed). Query execution is left to the callers,
    which hold the connection for a whole transfer session.
    """

    def __init__(self, oracle_conn_id: str):
        """
        Initialize the Oracle connection helper.

        Args:
            oracle_conn_id: Airflow connection ID for the Oracle database
        """
        self.conn_id = oracle_conn_id
        self._conn_config: Optional[Dict[str, Any]] = None

    def _get_connection_config(self) -> Dict[str, Any]:
        """
        Get python-oracledb connect() parameters from the Airflow connection.

        Returns:
            Dictionary with user, password and dsn
        """
        if self._conn_config is None:
            conn = BaseHook.get_connection(self.conn_id)
            extra = conn.extra_dejson or {}

            dsn = extra.get('dsn')
            if not dsn:
                port = conn.port or DEFAULT_ORACLE_PORT
                sid = extra.get('sid')
                if sid:
                    dsn = oracledb.makedsn(conn.host, port, sid=sid)
                else:
                    service_name = extra.get('service_name') or conn.schema
                    dsn = oracledb.makedsn(conn.host, port, service_name=service_name)

            self._conn_config = {
                'user': conn.login,
                'password': conn.password or '',
                'dsn': dsn,
            }

        return self._conn_config

    def get_conn(self) -> oracledb.Connection:
        """
        Open a new python-oracledb connection.

        Returns:
            oracledb Connection object
        """
        config = self._get_connection_config()
        logger.debug(f"Opening Oracle connection {self.conn_id} ({config['dsn']})")
        return oracledb.connect(**config)

    def release_conn(self, conn: Optional[oracledb.Connection]) -> None:
        if conn is None:
            return
        conn.close()

