"""Headless runner: builds the engine from configuration and logs what it shows."""
import asyncio
import logging
from typing import Optional

from config import BaseConfiguration, ConfigurationError, EnvironmentConfiguration

from .caption_client import CaptionClient
from .content_client import ContentAPIClient
from .preferences import JsonPreferencesStore
from .scheduler import AsyncioScheduler, Scheduler
from .slideshow_coordinator import SlideshowCoordinator
from .token_broker import OAuthTokenBroker, StaticTokenBroker, TokenBroker

logger = logging.getLogger(__name__)


def build_token_broker(config: BaseConfiguration) -> TokenBroker:
    if config.refresh_token and config.client_id:
        return OAuthTokenBroker(
            config.client_id,
            config.client_secret,
            config.refresh_token,
            token_url=config.token_url,
            user_agent=config.user_agent,
            timeout=config.request_timeout,
        )
    return StaticTokenBroker(config.access_token)


def build_coordinator(config: BaseConfiguration, scheduler: Scheduler) -> SlideshowCoordinator:
    content_client = ContentAPIClient(
        config.content_base_url,
        config.user_agent,
        timeout=config.request_timeout,
        shuffle=config.shuffle,
    )
    caption_client = CaptionClient(
        config.caption_api_url,
        config.caption_model,
        timeout=config.request_timeout,
    )
    return SlideshowCoordinator(
        content_client,
        caption_client,
        build_token_broker(config),
        JsonPreferencesStore(config.preferences_path),
        scheduler,
        default_caption_key=config.caption_api_key,
    )


async def run(config: BaseConfiguration, stop_event: Optional[asyncio.Event] = None) -> None:
    scheduler = AsyncioScheduler()
    coordinator = build_coordinator(config, scheduler)
    last_shown = {"item": None, "caption": None}

    def on_change() -> None:
        snap = coordinator.snapshot()
        if snap.item and snap.item.id != last_shown["item"]:
            last_shown["item"] = snap.item.id
            logger.info("Showing %d/%d: [r/%s] %s", (snap.position or 0) + 1, snap.total,
                        snap.item.channel, snap.item.title)
        if snap.caption.text and snap.caption.text != last_shown["caption"]:
            last_shown["caption"] = snap.caption.text
            logger.info("Caption: %s", snap.caption.text)

    coordinator.add_listener(on_change)
    coordinator.start()
    try:
        await (stop_event or asyncio.Event()).wait()
    finally:
        coordinator.stop()
        await scheduler.close()
        coordinator.content_client.close()
        coordinator.caption_client.close()


def main() -> int:
    try:
        config = EnvironmentConfiguration.from_env()
    except ConfigurationError as e:
        logging.basicConfig(level=logging.ERROR)
        logger.error(f"Invalid configuration: {e}")
        return 1

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    return 0
