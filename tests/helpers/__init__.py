from .fake_client import FakeHttpClient
from .html_pages import cities_page, offer_row, offers_page, universities_page
from .metric_delta import metric_delta, metric_increases

__all__ = [
    "FakeHttpClient",
    "cities_page",
    "metric_delta",
    "metric_increases",
    "offer_row",
    "offers_page",
    "universities_page",
]
