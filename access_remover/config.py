# access_remover/config.py
import json
import logging
import re
from typing import Annotated, List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# Maps the API role names to the user-friendly names used in reports.
ROLE_MAP = {
    'reader': 'Viewer',
    'commenter': 'Commenter',
    'writer': 'Editor',
    'fileOrganizer': 'File Organizer',
    'organizer': 'Organizer',
    'owner': 'Owner'
}

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


class ConfigurationError(ValueError):
    """Raised when the target list cannot be used to start a run."""


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables (prefixed ACCESS_REMOVER_)
    or a .env file.
    """
    TARGET_EMAILS: Annotated[List[str], NoDecode] = []

    BATCH_SIZE: int = 15
    MAX_EXECUTION_TIME: float = 280.0  # seconds, kept below the 6 minute host cap
    RETRY_DELAY: float = 5.0           # seconds between chained batches
    MAX_LOG_SIZE: int = 8000           # serialized characters before the log is truncated
    INCLUDE_ALL_DRIVES: bool = False

    STATE_FILE: str = 'state/scan_state.json'
    REPORTS_DIR: str = 'reports'
    ARCHIVES_DIR: str = 'archives'
    CREDENTIALS_DIR: str = 'credentials'

    NOTIFICATION_EMAIL_ENABLED: bool = False
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    NOTIFICATION_FROM: Optional[str] = None
    NOTIFICATION_TO: Optional[str] = None

    model_config = SettingsConfigDict(env_prefix='ACCESS_REMOVER_', env_file='.env', extra='ignore')

    @field_validator('TARGET_EMAILS', mode='before')
    @classmethod
    def _split_emails(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            value = value.strip()
            if value.startswith('['):
                return json.loads(value)
            return [part.strip() for part in value.split(',') if part.strip()]
        return value


def validate_target_emails(target_emails, acting_email=None):
    """
    Checks the target list before a run begins.
    Raises ConfigurationError describing the first problem found.
    """
    if not target_emails:
        raise ConfigurationError("No target emails specified! Set ACCESS_REMOVER_TARGET_EMAILS.")

    if acting_email and acting_email.lower() in [e.lower() for e in target_emails]:
        raise ConfigurationError(f"Cannot include your own email ({acting_email}) in the target list!")

    invalid_emails = [email for email in target_emails if not EMAIL_PATTERN.match(email)]
    if invalid_emails:
        raise ConfigurationError(f"Invalid email format(s): {', '.join(invalid_emails)}")

    duplicates = sorted({e for e in target_emails if target_emails.count(e) > 1})
    if duplicates:
        logging.warning(f"Duplicate target email(s) will be scanned more than once: {', '.join(duplicates)}")

    logging.info(f"Configuration validated: {len(target_emails)} target email(s)")
    return True


settings = Settings()
