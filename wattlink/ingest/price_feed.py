"""Price oracle client over HTTP."""

import logging
from datetime import UTC, datetime

import httpx

from wattlink.errors import OracleUnavailable
from wattlink.models.common import parse_timestamp
from wattlink.models.predicate import PriceObservation

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8780"


class PriceFeedClient:
    """Reads the latest round from a price oracle gateway.

    ``GET {base_url}/prices/{oracle_ref}`` returns either
    ``{"price": 2450.1, "observed_at": "<iso>"}`` or a raw aggregator round
    ``{"answer": 245010000000, "decimals": 8, "updated_at": <unix seconds>}``.
    """

    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def current_price(self, oracle_ref: str) -> PriceObservation:
        url = f"{self.base_url}/prices/{oracle_ref}"
        try:
            resp = httpx.get(url, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPStatusError, httpx.RequestError) as e:
            logger.error("Price oracle error for %s: %s", oracle_ref, e)
            raise OracleUnavailable(f"Price oracle unreachable for {oracle_ref}: {e}") from e
        except ValueError as e:
            raise OracleUnavailable(f"Malformed oracle response for {oracle_ref}") from e
        return _parse_observation(oracle_ref, data)

    def ping(self) -> bool:
        try:
            resp = httpx.get(f"{self.base_url}/health", timeout=self.timeout)
            return resp.status_code == 200
        except httpx.RequestError:
            return False


def _parse_observation(oracle_ref: str, data: object) -> PriceObservation:
    if not isinstance(data, dict):
        raise OracleUnavailable(f"Malformed oracle response for {oracle_ref}")
    try:
        if "answer" in data:
            price = int(data["answer"]) / 10 ** int(data.get("decimals", 8))
            observed_at = datetime.fromtimestamp(int(data["updated_at"]), UTC)
        else:
            price = float(data["price"])
            observed_at = parse_timestamp(data.get("observed_at"))
            if observed_at is None:
                raise ValueError("missing observed_at")
    except (KeyError, TypeError, ValueError) as e:
        raise OracleUnavailable(f"Malformed oracle response for {oracle_ref}: {e}") from e
    if price <= 0:
        raise OracleUnavailable(f"Non-positive price from oracle {oracle_ref}: {price}")
    return PriceObservation(price=price, observed_at=observed_at)
