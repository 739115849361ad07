"""Database adapters implementing DatabasePort.

The hosted REST adapter is the production path; PostgreSQL and DuckDB
adapters serve direct connections and local/offline work.
"""

from src.adapters.database.duckdb_adapter import DuckDBAdapter
from src.adapters.database.offline_functions import OfflineFunctions
from src.adapters.database.postgresql_adapter import PostgreSQLAdapter
from src.adapters.database.rest_adapter import HostedDatabaseAdapter

__all__ = ["DuckDBAdapter", "HostedDatabaseAdapter", "OfflineFunctions", "PostgreSQLAdapter"]
