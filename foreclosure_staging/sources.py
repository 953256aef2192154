# foreclosure_staging/sources.py
"""Candidate sources: where scraped listings come from.

The ingestion orchestrator only knows the ``CandidateSource`` protocol. Two
adapters fetch the bank's direct-sale search page once per state, either via
the Firecrawl scrape API or through a local headless browser, and share one
best-effort HTML parser. Markup changes upstream break the parser, not the
pipeline.
"""
import re
from time import sleep
from typing import Any, Dict, Iterable, Iterator, List, Optional, Protocol, Sequence
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PWTimeout
from playwright.sync_api import sync_playwright

from .errors import ConfigurationError, SourceFetchError
from .settings import SourceSettings
from .utils import logger, retry

CAIXA_BASE_URL = "https://venda-imoveis.caixa.gov.br/sistema/"
# 35 = "Venda Direta Online"
SEARCH_URL = CAIXA_BASE_URL + "busca-imovel.asp?sltTipoBusca=imoveis&sltEstado={state}&hdnOrigem=index&hdnNumTipoVenda=35"
DETAIL_URL = CAIXA_BASE_URL + "detalhe-imovel.asp?hdnimovel={listing_id}"

PROPERTY_TYPE_MAP = {
    "apartamento": "apartamento",
    "apto": "apartamento",
    "casa": "casa",
    "terreno": "terreno",
    "lote": "terreno",
    "sala": "comercial",
    "comercial": "comercial",
    "loja": "comercial",
    "galpão": "comercial",
    "galpao": "comercial",
}
TYPE_LABELS = {"casa": "Casa", "apartamento": "Apartamento", "terreno": "Terreno", "comercial": "Comercial"}

_ID_RE = re.compile(r"hdnimovel=(\d+)|detalhe_imovel\((\d+)\)", re.I)
_PRICE_RE = re.compile(r"R\$\s*([\d.]+(?:,\d{1,2})?)")
_APPRAISAL_RE = re.compile(r"avalia[cç][aã]o[^R]*R\$\s*([\d.]+(?:,\d{1,2})?)", re.I)
_MIN_PRICE_RE = re.compile(r"(?:venda|m[ií]nimo)[^R]*R\$\s*([\d.]+(?:,\d{1,2})?)", re.I)
_DISCOUNT_RE = re.compile(r"desconto[^\d]*([\d]+(?:[.,]\d+)?)\s*%|([\d]+(?:[.,]\d+)?)\s*%\s*(?:desc|off|abaixo)", re.I)
_BEDROOMS_RE = re.compile(r"(\d+)\s*(?:quartos?|dormit[oó]rios?|qto)", re.I)
_BATHROOMS_RE = re.compile(r"(\d+)\s*(?:banheiros?|wc)", re.I)
_PARKING_RE = re.compile(r"(\d+)\s*(?:vagas?|garagens?)", re.I)
_AREA_RE = re.compile(r"([\d.]+(?:,\d+)?)\s*m[²2]", re.I)
_CITY_STATE_RE = re.compile(r"((?:[A-ZÀ-Ý][a-zà-ÿ']+ ?){1,4})\s*[-–/]\s*([A-Z]{2})\b")


class CandidateSource(Protocol):
    """Produces raw candidate dicts; each must carry a stable ``external_id``."""

    def fetch(self, states: Sequence[str]) -> Iterable[Dict[str, Any]]:
        ...


def parse_brl(text: Optional[str]) -> Optional[float]:
    """'1.234.567,89' -> 1234567.89"""
    if not text:
        return None
    cleaned = text.strip().replace(".", "").replace(",", ".")
    try:
        return float(cleaned)
    except ValueError:
        return None


def _first_int(pattern, text):
    m = pattern.search(text)
    return int(m.group(1)) if m else None


def _listing_block(anchor):
    """Walk up from a listing link to the element that holds the whole card."""
    node = anchor
    for _ in range(6):
        parent = node.parent
        if parent is None or parent.name in ("body", "html", "[document]"):
            break
        node = parent
        if node.name in ("li", "article", "tr") or len(node.get_text(" ", strip=True)) > 80:
            break
    return node


def _parse_block(listing_id: str, block, state: str) -> Dict[str, Any]:
    text = block.get_text(" ", strip=True)
    lower = text.lower()

    price = None
    m = _MIN_PRICE_RE.search(text)
    if m:
        price = parse_brl(m.group(1))
    if price is None:
        m = _PRICE_RE.search(text)
        price = parse_brl(m.group(1)) if m else None
    m = _APPRAISAL_RE.search(text)
    original_price = parse_brl(m.group(1)) if m else price

    discount = None
    m = _DISCOUNT_RE.search(text)
    if m:
        discount = float((m.group(1) or m.group(2)).replace(",", "."))
    elif price and original_price and original_price > price:
        discount = round((1 - price / original_price) * 100, 2)

    prop_type = None
    for keyword, mapped in PROPERTY_TYPE_MAP.items():
        if keyword in lower:
            prop_type = mapped
            break

    city = None
    address_state = state
    m = _CITY_STATE_RE.search(text)
    if m and m.group(2) == state:
        city = m.group(1).strip().title()

    m = _AREA_RE.search(text)
    area = parse_brl(m.group(1)) if m else None

    images = []
    for img in block.find_all("img"):
        src = img.get("src")
        if src and not src.startswith("data:"):
            images.append(urljoin(CAIXA_BASE_URL, src))

    bedrooms = _first_int(_BEDROOMS_RE, text)
    label = TYPE_LABELS.get(prop_type, "Imóvel")
    if bedrooms:
        label += f" {bedrooms} Quarto{'s' if bedrooms > 1 else ''}"
    title = f"{label} - {city or state}"

    return {
        "external_id": f"caixa-{listing_id}",
        "title": title,
        "type": prop_type,
        "price": price,
        "original_price": original_price,
        "discount": discount,
        "address_city": city,
        "address_state": address_state,
        "address": text[:300],
        "bedrooms": bedrooms,
        "bathrooms": _first_int(_BATHROOMS_RE, text),
        "parking_spaces": _first_int(_PARKING_RE, text),
        "area": area,
        "images": images,
        "accepts_fgts": "fgts" in lower,
        "accepts_financing": "financ" in lower,
        "modality": "Venda Direta",
        "source_link": DETAIL_URL.format(listing_id=listing_id),
        "description": f"Imóvel disponível pela Caixa Econômica Federal - Venda Direta. {text[:300]}",
    }


def parse_listing_page(html: str, state: str) -> List[Dict[str, Any]]:
    """Extract one candidate per distinct listing id found on a search page.

    Cards without a numeric listing id are dropped; an id built from the clock
    or the position on the page would change every run and defeat dedup.
    """
    if not html:
        return []
    soup = BeautifulSoup(html, "lxml")
    seen = set()
    out = []
    for tag in soup.find_all(["a", "button", "div", "span"]):
        ref = " ".join(filter(None, (tag.get("href"), tag.get("onclick"))))
        if not ref:
            continue
        m = _ID_RE.search(ref)
        if not m:
            continue
        listing_id = m.group(1) or m.group(2)
        if listing_id in seen:
            continue
        seen.add(listing_id)
        out.append(_parse_block(listing_id, _listing_block(tag), state))
    return out


def search_url(state: str) -> str:
    return SEARCH_URL.format(state=state)


class FirecrawlSource:
    """Fetches rendered search pages through the Firecrawl scrape API."""

    def __init__(self, settings: SourceSettings, client: Optional[httpx.Client] = None):
        if not settings.firecrawl_api_key:
            raise ConfigurationError("FIRECRAWL_API_KEY is not configured")
        self.settings = settings
        self.client = client or httpx.Client(timeout=settings.request_timeout)

    @retry(httpx.TransportError, tries=3, delay=2, backoff=2)
    def _post(self, url: str) -> httpx.Response:
        return self.client.post(
            self.settings.firecrawl_url,
            headers={"Authorization": f"Bearer {self.settings.firecrawl_api_key}"},
            json={"url": url, "formats": ["html"], "waitFor": 3000, "onlyMainContent": False},
        )

    def scrape_html(self, url: str) -> str:
        try:
            response = self._post(url)
        except httpx.TransportError as exc:
            raise SourceFetchError(f"{url}: {exc}") from exc
        if response.status_code != 200:
            raise SourceFetchError(f"{url}: firecrawl returned {response.status_code}: {response.text[:200]}")
        try:
            body = response.json()
        except ValueError as exc:
            raise SourceFetchError(f"{url}: firecrawl returned invalid JSON") from exc
        data = body.get("data") or {}
        return data.get("html") or body.get("html") or ""

    def fetch(self, states: Sequence[str]) -> Iterator[Dict[str, Any]]:
        emitted = 0
        for i, state in enumerate(states):
            if i and self.settings.delay_seconds:
                sleep(self.settings.delay_seconds)
            logger.info("Fetching listings for %s", state)
            try:
                html = self.scrape_html(search_url(state))
            except SourceFetchError as exc:
                logger.error("Skipping %s: %s", state, exc)
                continue
            listings = parse_listing_page(html, state)
            logger.info("Found %d listings in %s", len(listings), state)
            for item in listings:
                if emitted >= self.settings.max_items:
                    return
                emitted += 1
                yield item

    def close(self):
        self.client.close()


@retry(PlaywrightError, tries=3, delay=2, backoff=2)
def fetch_url_content(page, url, timeout_ms=60000):
    page.goto(url, timeout=timeout_ms)
    page.wait_for_load_state("networkidle", timeout=timeout_ms)
    return page.content()


class BrowserSource:
    """Renders search pages in a local headless Chromium via Playwright."""

    def __init__(self, settings: SourceSettings):
        self.settings = settings

    def fetch(self, states: Sequence[str]) -> Iterator[Dict[str, Any]]:
        timeout_ms = int(self.settings.request_timeout * 1000)
        emitted = 0
        with sync_playwright() as p:
            browser = p.chromium.launch(headless=self.settings.headless)
            context = browser.new_context()
            page = context.new_page()
            try:
                for i, state in enumerate(states):
                    if i and self.settings.delay_seconds:
                        sleep(self.settings.delay_seconds)
                    try:
                        html = fetch_url_content(page, search_url(state), timeout_ms)
                    except PWTimeout as e:
                        logger.warning("Timeout on %s: %s", state, e)
                        continue
                    except PlaywrightError as e:
                        logger.error("Failed to load %s: %s", state, e)
                        continue
                    listings = parse_listing_page(html, state)
                    logger.info("Found %d listings in %s", len(listings), state)
                    for item in listings:
                        if emitted >= self.settings.max_items:
                            return
                        emitted += 1
                        yield item
            finally:
                context.close()
                browser.close()


def build_source(settings: SourceSettings) -> CandidateSource:
    if settings.backend == "firecrawl":
        return FirecrawlSource(settings)
    if settings.backend == "browser":
        return BrowserSource(settings)
    raise ConfigurationError(f"Unknown SCRAPER_BACKEND {settings.backend!r}")
