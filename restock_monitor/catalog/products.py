"""Product catalog loaded from the products CSV.

The header row is matched loosely (case, whitespace, ``_`` and ``-`` are
ignored). Loading is all-or-nothing: a row without a name, URL or
derivable SPU id aborts the whole load with a :class:`ConfigurationError`.
"""

from __future__ import annotations

import csv
import io
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from restock_monitor.errors import ConfigurationError

logger = logging.getLogger(__name__)

NAME_COLUMNS = ("sp", "name", "product", "product_name")
URL_COLUMNS = ("url", "link")
SPU_COLUMNS = ("spuid", "spu_id")
SKU_SINGLE_COLUMNS = ("sku_single", "skuid_single", "sku_single_id")
SKU_SET_COLUMNS = ("skuid_set", "sku_set", "sku_set_id")
LIMIT_SINGLE_COLUMNS = ("limit_single",)
LIMIT_SET_COLUMNS = ("limit_set",)

_SPU_IN_URL = re.compile(r"products/(\d+)")
_HEADER_NOISE = re.compile(r"[\s_-]")
_SLUG_NOISE = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class Product:
    """One monitored product page."""

    name: str
    url: str
    spu_id: str
    sku_single_id: str | None = None
    sku_set_id: str | None = None
    limit_single: int | None = None
    limit_set: int | None = None
    purchase_title: str = ""


def slugify(value: str) -> str:
    return _SLUG_NOISE.sub("-", value.lower()).strip("-")


def derive_purchase_title(url: str, name: str) -> str:
    """Slug of the URL's last path segment, falling back to the product name."""
    try:
        segments = [s for s in urlparse(url).path.split("/") if s]
    except ValueError:
        segments = []
    if segments:
        return slugify(segments[-1])
    return slugify(name)


def extract_spu_id(url: str) -> str | None:
    """Return the numeric id from a ``/products/<id>`` URL path."""
    match = _SPU_IN_URL.search(url)
    return match.group(1) if match else None


def normalize_header(value: str) -> str:
    return _HEADER_NOISE.sub("", value).lower()


def find_column(headers: list[str], *candidates: str) -> int | None:
    """Index of the first header matching any candidate, or ``None``."""
    wanted = {normalize_header(c) for c in candidates}
    for index, header in enumerate(headers):
        if normalize_header(header) in wanted:
            return index
    return None


def parse_limit(value: str, *, row_number: int | None = None, column: str = "") -> int | None:
    """Parse a positive purchase limit; invalid values become ``None``."""
    trimmed = value.strip()
    if not trimmed:
        return None
    try:
        parsed = int(trimmed)
    except ValueError:
        parsed = 0
    if parsed <= 0:
        logger.warning(
            "Ignoring invalid %s value %r on row %s", column or "limit", value, row_number
        )
        return None
    return parsed


def parse_products(raw_csv: str, source: str = "Products.csv") -> list[Product]:
    """Parse the products CSV text.

    Raises ``ConfigurationError`` on a missing header column, an empty
    product list, or any invalid row.
    """
    rows = [row for row in csv.reader(io.StringIO(raw_csv)) if any(c.strip() for c in row)]
    if len(rows) < 2:
        raise ConfigurationError(f"{source} must contain at least one product row.")

    headers = [h.strip() for h in rows[0]]
    name_idx = find_column(headers, *NAME_COLUMNS)
    url_idx = find_column(headers, *URL_COLUMNS)
    if name_idx is None or url_idx is None:
        raise ConfigurationError(f'{source} header must contain "sp" and "url" columns.')

    spu_idx = find_column(headers, *SPU_COLUMNS)
    single_idx = find_column(headers, *SKU_SINGLE_COLUMNS)
    set_idx = find_column(headers, *SKU_SET_COLUMNS)
    limit_single_idx = find_column(headers, *LIMIT_SINGLE_COLUMNS)
    limit_set_idx = find_column(headers, *LIMIT_SET_COLUMNS)

    def cell(cells: list[str], index: int | None) -> str:
        if index is None or index >= len(cells):
            return ""
        return cells[index].strip()

    products: list[Product] = []
    for row_number, cells in enumerate(rows[1:], start=2):
        name = cell(cells, name_idx)
        url = cell(cells, url_idx)
        if not name or not url:
            raise ConfigurationError(
                f'Invalid row {row_number} in {source}. Expected values for "sp" and "url".',
                row=row_number,
            )

        spu_id = cell(cells, spu_idx) or extract_spu_id(url) or ""
        if not spu_id:
            raise ConfigurationError(
                f'Invalid row {row_number} in {source}. Provide "spuid" or ensure '
                "the URL contains the numeric product ID.",
                row=row_number,
            )

        products.append(
            Product(
                name=name,
                url=url,
                spu_id=spu_id,
                sku_single_id=cell(cells, single_idx) or None,
                sku_set_id=cell(cells, set_idx) or None,
                limit_single=parse_limit(
                    cell(cells, limit_single_idx), row_number=row_number, column="limit_single"
                ),
                limit_set=parse_limit(
                    cell(cells, limit_set_idx), row_number=row_number, column="limit_set"
                ),
                purchase_title=derive_purchase_title(url, name),
            )
        )

    return products


def load_products(path: str | Path) -> list[Product]:
    """Read and parse the products CSV file."""
    try:
        raw = Path(path).read_text(encoding="utf-8-sig")
    except OSError as exc:
        raise ConfigurationError(f"Unable to read {path}: {exc}") from exc

    products = parse_products(raw, source=Path(path).name)
    logger.info("Loaded %d products from %s", len(products), path)
    return products
