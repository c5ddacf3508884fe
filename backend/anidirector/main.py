from __future__ import annotations
"""Ani-Director in-process entry point.

Opens the local store, builds the collaborator and the studio, loads the
roster and project list, and disposes of everything on exit:

    async with open_studio() as studio:
        await studio.generate_story_plan(config)
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from anidirector.config import Settings, get_settings
from anidirector.database import Database
from anidirector.services.providers import get_media_client
from anidirector.services.store import PersistenceStore
from anidirector.services.studio import Studio

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.DEBUG else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@asynccontextmanager
async def open_studio(settings: Settings | None = None, **studio_kwargs) -> AsyncIterator[Studio]:
    """Studio lifespan: init DB and load state on entry, close on exit."""
    settings = settings or get_settings()
    configure_logging(settings)
    logger.info("%s starting up...", settings.APP_NAME)
    logger.info("USE_MOCK_API: %s", settings.USE_MOCK_API)

    db = Database.from_settings(settings)
    client = get_media_client(settings)
    try:
        await db.init()
        studio = Studio(PersistenceStore(db), client, settings, **studio_kwargs)
        await studio.load()
        yield studio
    finally:
        aclose = getattr(client, "aclose", None)
        if aclose is not None:
            await aclose()
        await db.close()
        logger.info("%s shut down", settings.APP_NAME)
