from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from ..domain.models import CustomerPricingOverlay, PricingRules
from ..domain.registry import CustomerTypeRegistry
from ..domain.values import to_str
from ..engine.normalize import (
    overlay_from_document,
    overlay_to_document,
    pricing_rules_from_document,
    pricing_rules_to_document,
)
from ..errors import InvalidInput
from .document_store import DocumentStore


@dataclass(frozen=True)
class ShopSettings:
    shop_domain: str
    registry: CustomerTypeRegistry
    guest_pricing_type_id: Optional[str] = None
    app_name: str = "Wholesale Harmony"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "shopDomain": self.shop_domain,
            "customerTypes": self.registry.to_documents(),
            "guestPricingTypeId": self.guest_pricing_type_id,
            "appName": self.app_name,
        }


class PricingRepository:
    """
    Domain view over the document store. Every call takes the shop explicitly;
    documents are normalized here, once, on the way in and out.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    # -----------------
    # settings / registry
    # -----------------

    def load_settings(self, shop_domain: str) -> ShopSettings:
        doc = self.store.get_settings(shop_domain) or {}
        registry = CustomerTypeRegistry.from_documents(doc.get("customerTypes") or [])
        guest = to_str(doc.get("guestPricingTypeId")) or None
        return ShopSettings(
            shop_domain=shop_domain,
            registry=registry,
            guest_pricing_type_id=guest if registry.get(guest) is not None else None,
            app_name=to_str(doc.get("appName")) or "Wholesale Harmony",
        )

    def save_settings(
        self,
        shop_domain: str,
        customer_types: Iterable[Dict[str, Any]],
        *,
        guest_pricing_type_id: Optional[str] = None,
        app_name: Optional[str] = None,
    ) -> ShopSettings:
        registry = CustomerTypeRegistry.from_documents(list(customer_types))
        if guest_pricing_type_id and registry.get(guest_pricing_type_id) is None:
            raise InvalidInput(
                "UNKNOWN_CUSTOMER_TYPE",
                f"guestPricingTypeId does not match a customer type: {guest_pricing_type_id}",
                {"field": "guestPricingTypeId"},
            )
        current = self.load_settings(shop_domain)
        settings = ShopSettings(
            shop_domain=shop_domain,
            registry=registry,
            guest_pricing_type_id=guest_pricing_type_id or None,
            app_name=app_name or current.app_name,
        )
        self.store.put_settings(shop_domain, settings.as_dict())
        return settings

    def registry(self, shop_domain: str) -> CustomerTypeRegistry:
        return self.load_settings(shop_domain).registry

    # -----------------
    # pricing rules
    # -----------------

    def load_rules(self, shop_domain: str, registry: Optional[CustomerTypeRegistry] = None) -> PricingRules:
        doc = self.store.get_pricing_rules(shop_domain)
        return pricing_rules_from_document(doc, shop_domain, registry)

    def save_rules(self, rules: PricingRules) -> None:
        self.store.put_pricing_rules(rules.shop_domain, pricing_rules_to_document(rules))

    # -----------------
    # customer overlay
    # -----------------

    def load_overlay(self, shop_domain: str, customer_id: str) -> Optional[CustomerPricingOverlay]:
        doc = self.store.get_customer_pricing(shop_domain, str(customer_id))
        if doc is None:
            return None
        return overlay_from_document(doc)

    def get_or_create_overlay(self, shop_domain: str, customer_id: str) -> CustomerPricingOverlay:
        existing = self.load_overlay(shop_domain, customer_id)
        if existing is not None:
            return existing
        overlay = CustomerPricingOverlay(customer_id=str(customer_id), shop_domain=shop_domain)
        self.save_overlay(overlay)
        return overlay

    def save_overlay(self, overlay: CustomerPricingOverlay) -> None:
        self.store.put_customer_pricing(overlay.shop_domain, overlay.customer_id, overlay_to_document(overlay))
