"""Link previews for shared cabin pages."""

from app import models, og_metadata


def test_crawler_detection_is_case_insensitive():
    assert og_metadata.is_crawler("facebookexternalhit/1.1 (+http://www.facebook.com/externalhit_uatext.php)")
    assert og_metadata.is_crawler("Mozilla/5.0 (compatible; discordbot/2.0)")
    assert not og_metadata.is_crawler("Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0)")
    assert not og_metadata.is_crawler(None)


def test_long_descriptions_are_truncated():
    text = "a" * 200
    truncated = og_metadata.truncate_description(text)
    assert len(truncated) == 160
    assert truncated.endswith("...")
    assert og_metadata.truncate_description("krótki") == "krótki"


async def test_crawler_gets_html_page(db, make_cabin):
    await make_cabin(slug="chata-nad-jeziorem", title='Chata "Pod Lasem"',
                     images=[{"url": "https://cdn.example.com/1.webp", "is_main": True}])

    page = await og_metadata.build_og_metadata(db, "/cabin/chata-nad-jeziorem", "Twitterbot/1.0")

    assert page.html is not None
    assert '<meta property="og:title" content="Chata &quot;Pod Lasem&quot;">' in page.html
    assert '<meta property="og:image" content="https://cdn.example.com/1.webp">' in page.html
    assert '<link rel="canonical" href="https://naodludzie.pl/cabin/chata-nad-jeziorem">' in page.html


async def test_browser_gets_json_with_generated_summary(db, make_cabin):
    await make_cabin(slug="jurta", description=None, bedrooms=2, max_guests=4, price_per_night=300,
                     voivodeship="podlaskie")

    page = await og_metadata.build_og_metadata(db, "/cabin/jurta", "Mozilla/5.0")

    assert page.html is None
    assert page.data["description"] == "2 sypialnie • do 4 osób • od 300 zł/noc • podlaskie"
    assert page.data["image"] == og_metadata.DEFAULT_IMAGE
    assert page.data["price"] == 300


async def test_other_paths_get_site_defaults(db):
    page = await og_metadata.build_og_metadata(db, "/faq", "Twitterbot/1.0")
    assert page.html is None
    assert page.data["title"] == "NaOdludzie - Domki na odludziu"


async def test_inactive_cabins_are_not_previewed(db, make_cabin):
    await make_cabin(slug="ukryta", status=models.CabinStatus.PENDING)
    page = await og_metadata.build_og_metadata(db, "/cabin/ukryta", "Twitterbot/1.0")
    assert page.data["title"] == "NaOdludzie - Domki na odludziu"
    assert page.data["description"] == og_metadata.DEFAULT_DESCRIPTION
