# cart_engine/services/product_client.py
import requests

from cart_engine.domain.errors import NotFoundError
from cart_engine.domain.schemas import PricingSnapshot
from cart_engine.utils.logging import get_logger
from cart_engine.utils.retry import http_retry
from cart_engine.utils.settings import PRODUCT_SERVICE_TIMEOUT, PRODUCT_SERVICE_URL

logger = get_logger(__name__)


class ProductClient:
    """
    Klient product-service, zrodlo cen do snapshotu pozycji koszyka.
    Ceny w katalogu sa w groszach.
    """

    def __init__(self, base_url: str | None = None, timeout: int | None = None):
        self.base_url = (base_url or PRODUCT_SERVICE_URL).rstrip("/")
        self.timeout = timeout or PRODUCT_SERVICE_TIMEOUT

    @http_retry()
    def fetch_product(self, product_id: str) -> dict | None:
        url = f"{self.base_url}/products/{product_id}"
        logger.info(f"ProductClient GET {url}")

        resp = requests.get(url, timeout=self.timeout)
        #404 to odpowiedz, nie blad transportu - bez retry
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()

    def resolve_snapshot(self, product_id: str, variant_id: str | None = None) -> PricingSnapshot:
        product = self.fetch_product(product_id)
        if product is None:
            raise NotFoundError(f"Produkt {product_id} nie istnieje")

        variant = None
        if variant_id is not None:
            variant = next(
                (v for v in product.get("variants") or [] if str(v.get("id")) == str(variant_id)),
                None,
            )
            if variant is None:
                raise NotFoundError(f"Wariant {variant_id} produktu {product_id} nie istnieje")

        #cena wariantu -> cena bazowa produktu -> 0
        price = None
        if variant is not None:
            price = variant.get("price")
        if price is None:
            price = product.get("base_price")
        if price is None:
            price = 0

        return PricingSnapshot(
            title=product["title"],
            variant_label=(variant.get("title") or variant.get("sku")) if variant else None,
            unit_price=int(price),
            image_url=product.get("image_url"),
        )
