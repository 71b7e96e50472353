# FILE: app/og_metadata.py
# ==============================================================================
# Link-preview metadata for shared cabin pages. Social crawlers get a small
# HTML page carrying Open Graph and Twitter tags; everyone else gets JSON.
# ==============================================================================
import html
import logging
import re
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from . import cabins, config, models

CRAWLERS = [
    "facebookexternalhit",
    "Facebot",
    "Twitterbot",
    "LinkedInBot",
    "WhatsApp",
    "Slackbot",
    "TelegramBot",
    "Discordbot",
    "Pinterest",
    "Googlebot",
]
CABIN_PATH_RE = re.compile(r"^/cabin/([^/]+)$")

DEFAULT_TITLE = "NaOdludzie - Domki na odludziu"
DEFAULT_DESCRIPTION = "Odkryj domki w najbardziej odosobnionych zakątkach Polski."
SITE_DESCRIPTION = (
    "Odkryj domki w najbardziej odosobnionych zakątkach Polski. "
    "Znajdź idealne miejsce dzięki unikalnej Analizie NaOdludzie."
)
DEFAULT_IMAGE = "https://images.unsplash.com/photo-1449158743715-0a90ebb6d2d8?w=1200&q=80"
DESCRIPTION_MAX_LENGTH = 160


@dataclass
class OgPage:
    data: dict
    html: Optional[str] = None


def is_crawler(user_agent: Optional[str]) -> bool:
    agent = (user_agent or "").lower()
    return any(bot.lower() in agent for bot in CRAWLERS)


def truncate_description(text: Optional[str], max_length: int = DESCRIPTION_MAX_LENGTH) -> str:
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return text[:max_length - 3] + "..."


def default_payload(description: str = DEFAULT_DESCRIPTION) -> dict:
    return {
        "title": DEFAULT_TITLE,
        "description": description,
        "image": DEFAULT_IMAGE,
        "url": config.SITE_URL,
        "type": "website",
    }


def cabin_summary(cabin: models.Cabin) -> str:
    summary = f"{cabin.bedrooms} sypialnie • do {cabin.max_guests} osób • od {cabin.price_per_night} zł/noc"
    if cabin.voivodeship:
        summary += f" • {cabin.voivodeship}"
    return summary


def render_html(data: dict) -> str:
    title, description = data["title"], data["description"]
    image = html.escape(data["image"], quote=True)
    url = html.escape(data["url"], quote=True)
    return f"""<!DOCTYPE html>
<html lang="pl">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{title} | NaOdludzie</title>
  <meta name="description" content="{description}">
  <meta property="og:title" content="{title}">
  <meta property="og:description" content="{description}">
  <meta property="og:image" content="{image}">
  <meta property="og:url" content="{url}">
  <meta property="og:type" content="website">
  <meta property="og:site_name" content="NaOdludzie">
  <meta property="og:locale" content="pl_PL">
  <meta name="twitter:card" content="summary_large_image">
  <meta name="twitter:title" content="{title}">
  <meta name="twitter:description" content="{description}">
  <meta name="twitter:image" content="{image}">
  <link rel="canonical" href="{url}">
</head>
<body>
  <h1>{title}</h1>
  <p>{description}</p>
  <img src="{image}" alt="{title}">
  <a href="{url}">Zobacz ofertę na NaOdludzie</a>
</body>
</html>"""


async def build_og_metadata(db: AsyncSession, path: Optional[str], user_agent: Optional[str]) -> OgPage:
    crawler = is_crawler(user_agent)
    logging.info(f"OG: Metadata request for '{path}' (crawler={crawler}).")

    match = CABIN_PATH_RE.match(path or "")
    if not match:
        return OgPage(data=default_payload(SITE_DESCRIPTION))

    slug = match.group(1)
    result = await db.execute(
        select(models.Cabin).where(models.Cabin.slug == slug, models.Cabin.status == models.CabinStatus.ACTIVE)
    )
    cabin = result.scalar_one_or_none()
    if not cabin:
        logging.info(f"OG: Cabin '{slug}' not found.")
        return OgPage(data=default_payload())

    title = html.escape(cabin.title, quote=True)
    description = html.escape(truncate_description(cabin.description or cabin_summary(cabin)), quote=True)
    data = {
        "title": title,
        "description": description,
        "image": cabins.main_image_url(cabin.images) or DEFAULT_IMAGE,
        "url": f"{config.SITE_URL}/cabin/{slug}",
        "type": "website",
        "siteName": "NaOdludzie",
        "price": cabin.price_per_night,
        "location": cabin.voivodeship or cabin.address,
    }
    return OgPage(data=data, html=render_html(data) if crawler else None)
