"""
Database utilities for the supplier resolution pipeline
Provides YAML configuration, a psycopg2 connection pool and schema setup
"""

import os
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional, List
from contextlib import contextmanager
import psycopg2
from psycopg2 import pool
from psycopg2.extensions import ISOLATION_LEVEL_AUTOCOMMIT

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/db_config.yml"

# SOURCING_DB_<KEY> environment variables override YAML values
ENV_OVERRIDE_PREFIX = "SOURCING_DB_"
CONFIG_KEYS = ('host', 'port', 'database', 'user', 'password')


def resolve_config_path(config_path: Optional[str] = None) -> str:
    """Explicit path, else $DB_CONFIG_PATH, else the default location"""
    return config_path or os.environ.get('DB_CONFIG_PATH') or DEFAULT_CONFIG_PATH


class DatabaseConfig:
    """Database configuration loader"""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(resolve_config_path(config_path))
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load database configuration from YAML, then apply env overrides"""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path, 'r') as f:
            config = yaml.safe_load(f) or {}

        if 'database' not in config:
            raise ValueError(f"Config file {self.config_path} has no 'database' section")

        database = dict(config['database'])
        for key in CONFIG_KEYS:
            override = os.environ.get(f"{ENV_OVERRIDE_PREFIX}{key.upper()}")
            if override:
                database[key] = override

        missing = [key for key in CONFIG_KEYS if database.get(key) in (None, '')]
        if missing:
            raise ValueError(f"Database config missing keys: {', '.join(missing)}")

        return database

    def get_psycopg2_params(self) -> Dict[str, Any]:
        """Get parameters for psycopg2 connection"""
        return {
            'host': self.config['host'],
            'port': int(self.config['port']),
            'database': self.config['database'],
            'user': self.config['user'],
            'password': self.config['password']
        }


class DatabaseManager:
    """
    Manages pooled psycopg2 connections.

    get_connection() commits when the block exits cleanly and rolls back
    when it raises, so one `with` block is one transaction.
    """

    def __init__(self, config_path: Optional[str] = None, max_connections: int = 10):
        self.config = DatabaseConfig(config_path)
        self.max_connections = max_connections
        self._connection_pool: Optional[pool.ThreadedConnectionPool] = None

    def get_connection_pool(self) -> pool.ThreadedConnectionPool:
        """Get psycopg2 connection pool (lazy initialization)"""
        if self._connection_pool is None:
            params = self.config.get_psycopg2_params()
            self._connection_pool = pool.ThreadedConnectionPool(
                minconn=1,
                maxconn=self.max_connections,
                **params
            )
            logger.info("psycopg2 connection pool initialized")
        return self._connection_pool

    @contextmanager
    def get_connection(self):
        """Context manager for psycopg2 connection from pool"""
        conn_pool = self.get_connection_pool()
        conn = conn_pool.getconn()
        try:
            yield conn
            conn.commit()
        except Exception as e:
            conn.rollback()
            logger.error(f"Database error: {e}")
            raise
        finally:
            conn_pool.putconn(conn)

    @contextmanager
    def get_cursor(self, cursor_factory=None):
        """Context manager for database cursor"""
        with self.get_connection() as conn:
            cursor = conn.cursor(cursor_factory=cursor_factory)
            try:
                yield cursor
            finally:
                cursor.close()

    def execute_query(self, query: str, params: Optional[tuple] = None) -> List[tuple]:
        """Execute SELECT query and return results"""
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            return cursor.fetchall()

    def close(self):
        """Close all connections"""
        if self._connection_pool:
            self._connection_pool.closeall()
            self._connection_pool = None
            logger.info("Connection pool closed")


def apply_schema(config_path: Optional[str], schema_file: str) -> None:
    """
    Apply database schema from SQL file

    Args:
        config_path: Path to database config YAML
        schema_file: Path to SQL schema file
    """
    schema_path = Path(schema_file)

    if not schema_path.exists():
        raise FileNotFoundError(f"Schema file not found: {schema_file}")

    with open(schema_path, 'r', encoding='utf-8') as f:
        schema_sql = f.read()

    config = DatabaseConfig(config_path)
    params = config.get_psycopg2_params()

    conn = psycopg2.connect(**params)
    conn.set_isolation_level(ISOLATION_LEVEL_AUTOCOMMIT)

    try:
        with conn.cursor() as cur:
            cur.execute(schema_sql)
        logger.info(f"Schema applied from {schema_file}")
    except psycopg2.errors.DuplicateObject as e:
        # Indexes or other objects already exist - this is OK
        logger.warning(f"Some schema objects already exist (this is normal): {e}")
        logger.info(f"Schema validation complete - database is ready")
    except Exception as e:
        logger.error(f"Error applying schema: {e}")
        raise
    finally:
        conn.close()
