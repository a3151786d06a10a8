from app.models.category import Category
from app.models.listing import Listing, ListingDailyStat, ListingPriceChange, ScrapedListing
from app.models.plan import ScrapePlan, ScrapeRun
from app.models.scrape_job import ScrapeJob

__all__ = [
    "Category",
    "Listing",
    "ListingDailyStat",
    "ListingPriceChange",
    "ScrapedListing",
    "ScrapePlan",
    "ScrapeRun",
    "ScrapeJob",
]
