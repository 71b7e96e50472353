# FILE: app/sitemap.py
# ==============================================================================
# XML sitemap of the static pages and every active listing.
# ==============================================================================
import datetime
import logging
from typing import List, Optional, Tuple
from xml.sax.saxutils import escape

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from . import config, models

# (path, priority, changefreq)
STATIC_PAGES: List[Tuple[str, str, str]] = [
    ("", "1.0", "daily"),
    ("/kontakt", "0.5", "monthly"),
    ("/faq", "0.5", "monthly"),
    ("/dla-wystawcow", "0.6", "weekly"),
    ("/polityka-prywatnosci", "0.3", "yearly"),
    ("/regulamin", "0.3", "yearly"),
]


def _url_entry(loc: str, lastmod: datetime.date, changefreq: str, priority: str) -> str:
    return (
        "  <url>\n"
        f"    <loc>{escape(loc)}</loc>\n"
        f"    <lastmod>{lastmod.isoformat()}</lastmod>\n"
        f"    <changefreq>{changefreq}</changefreq>\n"
        f"    <priority>{priority}</priority>\n"
        "  </url>\n"
    )


async def build_sitemap(db: AsyncSession, today: Optional[datetime.date] = None) -> str:
    today = today or datetime.date.today()
    result = await db.execute(
        select(models.Cabin.slug, models.Cabin.updated_at)
        .where(models.Cabin.status == models.CabinStatus.ACTIVE)
        .order_by(models.Cabin.updated_at.desc())
    )
    cabins = result.all()

    parts = ['<?xml version="1.0" encoding="UTF-8"?>\n',
             '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">\n']
    for path, priority, changefreq in STATIC_PAGES:
        parts.append(_url_entry(f"{config.SITE_URL}{path}", today, changefreq, priority))
    for slug, updated_at in cabins:
        lastmod = updated_at.date() if updated_at else today
        parts.append(_url_entry(f"{config.SITE_URL}/cabin/{slug}", lastmod, "weekly", "0.8"))
    parts.append("</urlset>")

    logging.info(f"SITEMAP: Generated with {len(STATIC_PAGES)} static pages and {len(cabins)} cabins.")
    return "".join(parts)
