"""
Base Database Service Module

This module provides shared database utilities and connection management
for the sqlite-backed services in the application.
"""

import logging
import os
import sqlite3
from datetime import datetime
from typing import Any

# Configure logger for this module
logger = logging.getLogger(__name__)


class BaseDatabaseService:
    """
    Base class providing shared database utilities and connection management.

    This class handles connection management and data directory creation,
    and provides a query helper that specialized services build on.
    """

    def __init__(self, db_path: str = "data/reading_progress.db"):
        """
        Initialize the base database service.

        Args:
            db_path (str): Path to the SQLite database file. Defaults to "data/reading_progress.db"
                          The directory will be created if it doesn't exist.
        """
        self.db_path = db_path
        self._ensure_data_dir()

    def _ensure_data_dir(self):
        """
        Ensure the data directory exists for the database file.
        """
        data_dir = os.path.dirname(self.db_path)
        if data_dir and not os.path.exists(data_dir):
            os.makedirs(data_dir)

    def get_connection(self) -> sqlite3.Connection:
        """
        Get a database connection.

        Returns:
            sqlite3.Connection: Database connection object
        """
        return sqlite3.connect(self.db_path)

    def execute_query(
        self,
        query: str,
        params: tuple = (),
        fetch_one: bool = False,
    ) -> Any:
        """
        Execute a database query with error handling.

        Args:
            query (str): SQL query to execute
            params (tuple): Query parameters
            fetch_one (bool): Whether to fetch one result

        Returns:
            Any: The fetched row, the last row id for writes, or None if an error occurred
        """
        try:
            with self.get_connection() as conn:
                conn.row_factory = sqlite3.Row
                cursor = conn.execute(query, params)

                if fetch_one:
                    return cursor.fetchone()
                conn.commit()
                return cursor.lastrowid
        except Exception as e:
            logger.error(f"Database query error: {e}")
            return None

    def get_current_timestamp(self) -> str:
        """
        Get current timestamp for database operations.

        Returns:
            str: Current timestamp in SQLite format
        """
        return datetime.now().strftime("%Y-%m-%d %H:%M:%S")
