"""
Feed registry adapters.

The pipeline only needs an ordered, read-only snapshot of feed
configurations per run. Two sources are provided: the built-in list of
gaming publishers, and the `feeds` table managed by the admin tooling.
"""

import logging
from typing import Optional

from sqlalchemy import select

from newsfeed.models.database import Database, DBFeed
from newsfeed.models.domain import FeedConfig, Language, PriorityTier
from newsfeed.services.ingestion.base import FeedRegistry

logger = logging.getLogger(__name__)

# Primary feeds are polled every 15 minutes, secondary every 60.
# needs_scraping marks publishers whose feed XML never carries usable images.
DEFAULT_FEEDS = [
    # Primary
    {"id": "4p", "url": "https://www.4p.de/feed", "name": "4P", "language": "de", "priority": "primary", "update_interval": 15},
    {"id": "game-informer", "url": "https://gameinformer.com/rss.xml", "name": "Game Informer", "language": "en", "priority": "primary", "update_interval": 15},
    {"id": "gamepro", "url": "https://www.gamepro.de/rss/gamepro.rss", "name": "GamePro", "language": "de", "priority": "primary", "update_interval": 15},
    {"id": "gamespot", "url": "https://www.gamespot.com/feeds/mashup", "name": "GameSpot", "language": "en", "priority": "primary", "update_interval": 15},
    {"id": "gamestar", "url": "https://www.gamestar.de/rss/gamestar.rss", "name": "GameStar", "language": "de", "priority": "primary", "update_interval": 15},
    {"id": "gematsu", "url": "https://www.gematsu.com/feed", "name": "Gematsu", "language": "en", "priority": "primary", "update_interval": 15, "needs_scraping": True},
    {"id": "ign-de", "url": "https://de.ign.com/feed.xml", "name": "IGN", "language": "de", "priority": "primary", "update_interval": 15},
    {"id": "kotaku", "url": "https://kotaku.com/rss", "name": "Kotaku", "language": "en", "priority": "primary", "update_interval": 15},
    {"id": "mein-mmo", "url": "https://mein-mmo.de/feed/", "name": "Mein-MMO", "language": "de", "priority": "primary", "update_interval": 15},
    {"id": "pc-gamer", "url": "https://www.pcgamer.com/rss/", "name": "PC Gamer", "language": "en", "priority": "primary", "update_interval": 15},
    {"id": "pc-games", "url": "https://www.pcgames.de/feed.cfm?menu_alias=home", "name": "PC Games", "language": "de", "priority": "primary", "update_interval": 15},
    {"id": "polygon", "url": "https://www.polygon.com/rss/news/index.xml", "name": "Polygon", "language": "en", "priority": "primary", "update_interval": 15},

    # Secondary
    {"id": "buffed", "url": "https://www.buffed.de/feed.cfm", "name": "Buffed", "language": "de", "priority": "secondary", "update_interval": 60},
    {"id": "computer-bild", "url": "https://www.computerbild.de/rssfeed_2261.html?node=12", "name": "Computer Bild", "language": "de", "priority": "secondary", "update_interval": 60},
    {"id": "computerbase", "url": "https://www.computerbase.de/rss/news.xml", "name": "ComputerBase", "language": "de", "priority": "secondary", "update_interval": 60},
    {"id": "destructoid", "url": "https://www.destructoid.com/feed/", "name": "Destructoid", "language": "en", "priority": "secondary", "update_interval": 60},
    {"id": "eurogamer-de", "url": "https://www.eurogamer.de/feed", "name": "Eurogamer", "language": "de", "priority": "secondary", "update_interval": 60},
    {"id": "gamersglobal", "url": "https://www.gamersglobal.de/feeds/all", "name": "GamersGlobal", "language": "de", "priority": "secondary", "update_interval": 60},
    {"id": "gamesradar+", "url": "https://www.gamesradar.com/feeds.xml", "name": "GamesRadar+", "language": "en", "priority": "secondary", "update_interval": 60},
    {"id": "gameswelt", "url": "https://www.gameswelt.ch/feeds/artikel/rss.xml", "name": "GamesWelt", "language": "de", "priority": "secondary", "update_interval": 60, "needs_scraping": True},
    {"id": "gameswirtschaft", "url": "https://www.gameswirtschaft.de/feed/", "name": "GamesWirtschaft", "language": "de", "priority": "secondary", "update_interval": 60},
    {"id": "gamezone", "url": "https://www.gamezone.de/feed.cfm?menu_alias=home/", "name": "GameZone", "language": "de", "priority": "secondary", "update_interval": 60},
    {"id": "giant-bomb", "url": "https://giantbomb.com/feeds/news", "name": "Giant Bomb", "language": "en", "priority": "secondary", "update_interval": 60},
    {"id": "giga-games", "url": "https://www.giga.de/games/feed/", "name": "GIGA Games", "language": "de", "priority": "secondary", "update_interval": 60},
    {"id": "golem", "url": "https://rss.golem.de/rss.php?feed=ATOM1.0&tp=games", "name": "Golem", "language": "de", "priority": "secondary", "update_interval": 60},
    {"id": "heise-online", "url": "https://www.heise.de/rss/heise-atom.xml", "name": "Heise Online", "language": "de", "priority": "secondary", "update_interval": 60},
    {"id": "jpgames", "url": "https://jpgames.de/feed/", "name": "JPGames", "language": "de", "priority": "secondary", "update_interval": 60, "needs_scraping": True},
    {"id": "nintendo-life", "url": "https://www.nintendolife.com/feeds/latest", "name": "Nintendo Life", "language": "en", "priority": "secondary", "update_interval": 60},
    {"id": "pc-games-hardware", "url": "https://www.pcgameshardware.de/feed.cfm?menu_alias=home", "name": "PC Games Hardware", "language": "de", "priority": "secondary", "update_interval": 60},
    {"id": "pcgamesn", "url": "https://pcgamesn.com/mainrss.xml", "name": "PCGamesN", "language": "en", "priority": "secondary", "update_interval": 60},
    {"id": "pixelcritics", "url": "https://pixelcritics.com/feed", "name": "PixelCritics", "language": "de", "priority": "secondary", "update_interval": 60, "needs_scraping": True},
    {"id": "play3", "url": "https://www.play3.de/feed/rss/", "name": "Play3", "language": "de", "priority": "secondary", "update_interval": 60, "needs_scraping": True},
    {"id": "playfront", "url": "https://playfront.de/feed/", "name": "PlayFront", "language": "de", "priority": "secondary", "update_interval": 60, "needs_scraping": True},
    {"id": "playstation-blog", "url": "https://blog.playstation.com/feed/", "name": "PlayStation.Blog", "language": "en", "priority": "secondary", "update_interval": 60, "needs_scraping": True},
    {"id": "playstationinfo", "url": "https://www.playstationinfo.de/feed/", "name": "PlayStationInfo", "language": "de", "priority": "secondary", "update_interval": 60, "needs_scraping": True},
    {"id": "rock-paper-shotgun", "url": "https://www.rockpapershotgun.com/feed", "name": "Rock Paper Shotgun", "language": "en", "priority": "secondary", "update_interval": 60},
    {"id": "vg247", "url": "https://vg247.com/feed", "name": "VG247", "language": "en", "priority": "secondary", "update_interval": 60},
    {"id": "video-games-zone", "url": "https://www.videogameszone.de/feed.cfm", "name": "Video Games Zone", "language": "de", "priority": "secondary", "update_interval": 60},
    {"id": "xbox-wire", "url": "https://news.xbox.com/feed/", "name": "Xbox Wire", "language": "en", "priority": "secondary", "update_interval": 60},
    {"id": "xboxdynasty", "url": "https://www.xboxdynasty.de/cip_xd.rss.xml", "name": "XboxDynasty", "language": "de", "priority": "secondary", "update_interval": 60, "needs_scraping": True},
]


def feed_from_record(record: dict) -> FeedConfig:
    """Build a FeedConfig from a registry record (static list or table row)."""
    return FeedConfig(
        id=record["id"],
        url=record["url"],
        display_name=record["name"],
        language=Language(record.get("language") or Language.EN.value),
        priority_tier=PriorityTier(record.get("priority") or PriorityTier.SECONDARY.value),
        poll_interval_minutes=record.get("update_interval") or 60,
        requires_scrape_fallback=bool(record.get("needs_scraping", False)),
    )


class StaticFeedRegistry(FeedRegistry):
    """Serves a fixed list of feeds, the built-in publishers by default."""

    def __init__(self, records: Optional[list[dict]] = None):
        self._feeds = [feed_from_record(r) for r in (records if records is not None else DEFAULT_FEEDS)]

    async def list_feeds(self) -> list[FeedConfig]:
        return list(self._feeds)


class SqlFeedRegistry(FeedRegistry):
    """Reads the `feeds` table, ordered by id."""

    def __init__(self, database: Database):
        self.database = database

    async def list_feeds(self) -> list[FeedConfig]:
        async with self.database.async_session() as session:
            result = await session.execute(select(DBFeed).order_by(DBFeed.id))
            rows = result.scalars().all()

        feeds = []
        for row in rows:
            try:
                feeds.append(feed_from_record({
                    "id": row.id,
                    "url": row.url,
                    "name": row.name,
                    "language": row.language,
                    "priority": row.priority,
                    "update_interval": row.update_interval,
                    "needs_scraping": row.needs_scraping,
                }))
            except ValueError as e:
                logger.warning(f"Skipping invalid feed row {row.id}: {e}")

        logger.debug(f"Loaded {len(feeds)} feeds from database")
        return feeds

    async def seed_defaults(self) -> int:
        """Insert the built-in feeds into an empty table. Returns count added."""
        async with self.database.async_session() as session:
            if (await session.execute(select(DBFeed.id).limit(1))).first() is not None:
                return 0
            added = 0
            for record in DEFAULT_FEEDS:
                session.add(DBFeed(
                    id=record["id"],
                    url=record["url"],
                    name=record["name"],
                    language=record["language"],
                    priority=record["priority"],
                    update_interval=record["update_interval"],
                    needs_scraping=record.get("needs_scraping", False),
                ))
                added += 1
            await session.commit()
        return added
