# affiliate_system/sources/order_source.py
"""
External order source used by the commission sync.

An invoice comes back as an order-event payload:
    {invoice_code, invoice_amount, invoice_date, invoice_status,
     partner_reference, referred_customer_reference, is_first_order,
     voucher_code?, invoice_id?, customer_phone?, customer_name?, total_payment?}

Usage:
    source = HttpOrderSource.fromConfig()
    invoices = await source.fetchInvoices(["HD000123", "HD000124"])
    if invoices is not None:
        payload = invoices.get("HD000123")
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import aiohttp

from config import Config, ConfigurationError

logger = logging.getLogger(__name__)

InvoiceMap = Dict[str, Dict[str, Any]]


class OrderSource(ABC):
    """Read access to invoices in the upstream sales system."""

    @abstractmethod
    async def fetchInvoices(self, invoiceCodes: List[str]) -> Optional[InvoiceMap]:
        """
        Look up invoices by code.

        Returns:
            Mapping invoice_code -> payload for the invoices found,
            or None if the source is unavailable
        """


class HttpOrderSource(OrderSource):
    """Order source over a JSON HTTP API with bearer-token auth."""

    def __init__(self, baseUrl: str, token: Optional[str] = None, timeout: int = 30):
        self.baseUrl = baseUrl.rstrip("/")
        self.token = token
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    @classmethod
    def fromConfig(cls) -> "HttpOrderSource":
        """
        Raises:
            ConfigurationError: If ORDER_SOURCE_URL is not set
        """
        url = Config.get(Config.ORDER_SOURCE_URL)
        if not url:
            raise ConfigurationError("ORDER_SOURCE_URL is not configured")
        return cls(
            url,
            token=Config.get(Config.ORDER_SOURCE_TOKEN),
            timeout=int(Config.get(Config.ORDER_SOURCE_TIMEOUT, 30)),
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def fetchInvoices(self, invoiceCodes: List[str]) -> Optional[InvoiceMap]:
        if not invoiceCodes:
            return {}

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(
                        f"{self.baseUrl}/invoices",
                        params={"codes": ",".join(invoiceCodes)},
                        headers=self._headers()
                ) as response:
                    if response.status != 200:
                        logger.warning(f"Order source returned status {response.status}")
                        return None

                    data = await response.json()

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Order source client error: {e}")
            return None

        invoices = data.get("invoices", []) if isinstance(data, dict) else []
        found = {
            item["invoice_code"]: item
            for item in invoices
            if isinstance(item, dict) and item.get("invoice_code")
        }

        logger.info(f"✓ Fetched {len(found)}/{len(invoiceCodes)} invoices from order source")
        return found


class InMemoryOrderSource(OrderSource):
    """Order source backed by a dict. Used for dry runs and tests."""

    def __init__(self, invoices: Optional[InvoiceMap] = None):
        self.invoices: InvoiceMap = dict(invoices or {})
        self.available = True
        self.requests: List[List[str]] = []

    def put(self, payload: Dict[str, Any]):
        self.invoices[payload["invoice_code"]] = payload

    async def fetchInvoices(self, invoiceCodes: List[str]) -> Optional[InvoiceMap]:
        self.requests.append(list(invoiceCodes))
        if not self.available:
            return None
        return {code: self.invoices[code] for code in invoiceCodes if code in self.invoices}
