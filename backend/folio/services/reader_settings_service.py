"""
Reader Settings Service Module

Persists the reader preferences (page scale, margins, tap behaviour) in
SQLite so they survive between sessions. Settings are stored as a single
JSON document validated through the ReaderSettings model.
"""

import logging

from pydantic import ValidationError

from folio.models.reader_settings import ReaderSettings

from .base_database_service import BaseDatabaseService

# Configure logger for this module
logger = logging.getLogger(__name__)

_SETTINGS_KEY = "reader"


class ReaderSettingsService(BaseDatabaseService):
    """
    Service class for loading and saving ReaderSettings.

    Read failures fall back to defaults; write failures are logged and
    reported as False so the reader keeps working without persistence.
    """

    def __init__(self, db_path: str = "data/reading_progress.db"):
        """
        Initialize the reader settings service.

        Args:
            db_path (str): Path to the SQLite database file
        """
        super().__init__(db_path)
        self._init_table()

    def _init_table(self):
        """
        Initialize the reader settings table.
        """
        with self.get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS reader_settings (
                    key TEXT PRIMARY KEY,                   -- Settings group name
                    value TEXT NOT NULL,                    -- JSON encoded settings
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.commit()

    def load(self) -> ReaderSettings:
        """
        Load the stored settings, or defaults when none are stored or they are invalid.
        """
        row = self.execute_query(
            "SELECT value FROM reader_settings WHERE key = ?",
            (_SETTINGS_KEY,),
            fetch_one=True,
        )
        if row is None:
            return ReaderSettings()

        try:
            return ReaderSettings.model_validate_json(row["value"])
        except ValidationError as e:
            logger.warning(f"Ignoring invalid stored reader settings: {e}")
            return ReaderSettings()

    def save(self, settings: ReaderSettings) -> bool:
        """
        Save the settings, replacing any stored ones.

        Returns:
            bool: True if the settings were written
        """
        result = self.execute_query(
            """
            INSERT INTO reader_settings (key, value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (_SETTINGS_KEY, settings.model_dump_json(), self.get_current_timestamp()),
        )
        if result is None:
            logger.error("Failed to save reader settings")
            return False
        return True

    def save_page_scale(self, scale: float) -> bool:
        """
        Persist a newly applied page scale, keeping the other settings.
        """
        settings = self.load().model_copy(update={"page_scale": scale})
        saved = self.save(settings)
        if saved:
            logger.info(f"Saved page scale: {scale}")
        return saved
