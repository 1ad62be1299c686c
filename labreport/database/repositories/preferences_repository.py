from dataclasses import asdict, fields

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from labreport.config.preferences import BasePreferenceStore, UserPreferences
from labreport.database.connection import get_connection


class PreferencesRepository(BasePreferenceStore):
    """Preference store backed by the user_preferences key/value table."""

    def __init__(self, defaults: UserPreferences | None = None) -> None:
        self._defaults = defaults or UserPreferences()

    def load(self) -> UserPreferences:
        """Read stored keys over the defaults. Unknown keys are ignored."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("SELECT key, value FROM user_preferences")
                rows = cur.fetchall()
        known = {f.name for f in fields(UserPreferences)}
        stored = {row["key"]: row["value"] for row in rows if row["key"] in known}
        return UserPreferences(**{**asdict(self._defaults), **stored})

    def save(self, preferences: UserPreferences) -> None:
        with get_connection() as conn:
            with conn.cursor() as cur:
                for key, value in asdict(preferences).items():
                    cur.execute(
                        """
                        INSERT INTO user_preferences (key, value, updated_at)
                        VALUES (%s, %s, NOW())
                        ON CONFLICT (key)
                        DO UPDATE SET value = EXCLUDED.value, updated_at = NOW()
                        """,
                        (key, Jsonb(value)),
                    )
            conn.commit()
