"""User settings persisted on the device."""

import json

from pydantic import BaseModel, ValidationError

from client.storage import KeyValueStore
from logging_config import get_logger

logger = get_logger()

SETTINGS_KEY = "@coffee_roast_settings"


class Settings(BaseModel):
    useFahrenheit: bool = False


class SettingsStore:
    def __init__(self, store: KeyValueStore):
        self.store = store

    async def load(self) -> Settings:
        """Load settings, falling back to defaults when nothing usable is stored."""
        raw = await self.store.get_item(SETTINGS_KEY)
        if not raw:
            return Settings()
        try:
            return Settings.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError):
            logger.warning("Stored settings are unreadable, using defaults")
            return Settings()

    async def save(self, settings: Settings):
        await self.store.set_item(SETTINGS_KEY, settings.model_dump_json())

    async def set_use_fahrenheit(self, value: bool) -> Settings:
        settings = (await self.load()).model_copy(update={"useFahrenheit": value})
        await self.save(settings)
        return settings
