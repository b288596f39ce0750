"""
Shipment tracking provider client (DHL Unified Tracking API).

The provider returns a loosely-typed JSON document. It is validated into
dataclasses at this boundary; anything that does not match the expected
shape is rejected as UpstreamUnavailable rather than letting missing
fields leak into the assembler.

Only the fields the tracker uses are modelled:

    {
      "shipments": [{
        "id": "1234567890",
        "service": "express",
        "origin":      {"address": {"addressLocality": "...", "countryCode": "DE"}},
        "destination": {"address": {...}},
        "status": {"timestamp": "...", "statusCode": "transit", "status": "...",
                   "description": "...", "location": {"address": {...}}},
        "events": [ ...same shape as status, newest first... ],
        "details": {"product": {"productName": "..."}, "totalNumberOfPieces": 1}
      }]
    }
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

import requests

from atmosfault.config import config
from atmosfault.exceptions import UpstreamUnavailable

logger = logging.getLogger(__name__)


def _malformed(reason: str) -> UpstreamUnavailable:
    return UpstreamUnavailable(f'Malformed provider payload: {reason}', service='tracking')


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise _malformed(f'expected string, got {type(value).__name__}')
    return value.strip() or None


def _object(value: Any, name: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise _malformed(f'{name} is not an object')
    return value


@dataclass
class Address:
    locality: Optional[str] = None
    country_code: Optional[str] = None

    @classmethod
    def from_location(cls, location: Any, name: str) -> 'Address':
        """Parse a {"address": {...}} wrapper; absent parts stay None."""
        address = _object(_object(location, name).get('address'), f'{name}.address')
        return cls(
            locality=_optional_str(address.get('addressLocality')),
            country_code=_optional_str(address.get('countryCode')),
        )


@dataclass
class ShipmentEvent:
    """One checkpoint scan (also used for the shipment's overall status)."""
    timestamp: str
    status_code: str
    status: Optional[str] = None
    description: str = ''
    address: Address = field(default_factory=Address)

    @classmethod
    def from_dict(cls, data: Any, name: str = 'event') -> 'ShipmentEvent':
        data = _object(data, name)
        timestamp = data.get('timestamp')
        if not isinstance(timestamp, str) or not timestamp:
            raise _malformed(f'{name}.timestamp missing')

        status_code = data.get('statusCode')
        if not isinstance(status_code, str):
            raise _malformed(f'{name}.statusCode missing')

        return cls(
            timestamp=timestamp,
            status_code=status_code,
            status=_optional_str(data.get('status')),
            description=_optional_str(data.get('description')) or '',
            address=Address.from_location(data.get('location'), f'{name}.location'),
        )


@dataclass
class Shipment:
    id: str
    service: Optional[str]
    origin: Address
    destination: Address
    status: ShipmentEvent
    events: List[ShipmentEvent]
    product_name: Optional[str] = None
    total_pieces: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Any) -> 'Shipment':
        data = _object(data, 'shipment')
        shipment_id = data.get('id')
        if not isinstance(shipment_id, str) or not shipment_id:
            raise _malformed('shipment.id missing')

        events_raw = data.get('events') or []
        if not isinstance(events_raw, list):
            raise _malformed('shipment.events is not an array')

        details = _object(data.get('details'), 'shipment.details')
        product = _object(details.get('product'), 'shipment.details.product')
        pieces = details.get('totalNumberOfPieces')
        if pieces is not None and (isinstance(pieces, bool) or not isinstance(pieces, int)):
            raise _malformed('totalNumberOfPieces is not an integer')

        return cls(
            id=shipment_id,
            service=_optional_str(data.get('service')),
            origin=Address.from_location(data.get('origin'), 'shipment.origin'),
            destination=Address.from_location(data.get('destination'), 'shipment.destination'),
            status=ShipmentEvent.from_dict(data.get('status'), 'shipment.status'),
            events=[
                ShipmentEvent.from_dict(e, f'shipment.events[{i}]')
                for i, e in enumerate(events_raw)
            ],
            product_name=_optional_str(product.get('productName')),
            total_pieces=pieces,
        )


@dataclass
class ProviderResponse:
    """Validated provider document plus the raw blob it came from."""
    shipments: List[Shipment]
    raw: dict

    @classmethod
    def from_dict(cls, data: Any) -> 'ProviderResponse':
        """
        Validate a raw provider document.

        Raises:
            UpstreamUnavailable if the document does not have the expected shape
        """
        if not isinstance(data, dict):
            raise _malformed('document is not an object')
        shipments = data.get('shipments')
        if not isinstance(shipments, list):
            raise _malformed('shipments is not an array')
        return cls(
            shipments=[Shipment.from_dict(s) for s in shipments],
            raw=data,
        )


class TrackingProviderClient:
    """
    Client for the shipment tracking API.

    One GET per lookup, keyed by API key header, with a bounded timeout.
    Every failure mode surfaces as UpstreamUnavailable.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = 'https://api-eu.dhl.com/track/shipments',
        service: str = 'express',
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.service = service
        self.timeout = timeout
        self.session = session or requests.Session()

        if not self.api_key:
            logger.warning('DHL API key not configured - live tracking lookups disabled')

    @classmethod
    def from_config(cls) -> 'TrackingProviderClient':
        """Create client from application configuration."""
        return cls(
            api_key=config.provider.api_key,
            base_url=config.provider.base_url,
            service=config.provider.service,
            timeout=config.provider.timeout_seconds,
        )

    def fetch(self, tracking_number: str) -> dict:
        """
        Fetch the raw provider document for a tracking number.

        Raises:
            UpstreamUnavailable on missing credentials, network/HTTP errors,
            or a non-JSON body
        """
        if not self.api_key:
            raise UpstreamUnavailable('DHL API key not configured', service='tracking')

        params = {
            'trackingNumber': tracking_number,
            'service': self.service,
            'language': 'en',
            'offset': 0,
            'limit': 5,
        }

        try:
            response = self.session.get(
                self.base_url,
                params=params,
                headers={'DHL-API-Key': self.api_key},
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()
        except requests.exceptions.Timeout as e:
            logger.error(f'DHL API timeout for {tracking_number}')
            raise UpstreamUnavailable('DHL API timed out', service='tracking') from e
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status == 429:
                logger.warning('DHL API rate limit exceeded')
            else:
                logger.error(f'DHL API error for {tracking_number}: {status}')
            raise UpstreamUnavailable(
                f'DHL API returned {status}', service='tracking', status_code=status,
            ) from e
        except requests.exceptions.RequestException as e:
            logger.error(f'DHL API request failed for {tracking_number}: {e}')
            raise UpstreamUnavailable(f'DHL API request failed: {e}', service='tracking') from e
        except ValueError as e:
            raise UpstreamUnavailable('DHL API returned invalid JSON', service='tracking') from e

    def get_shipment_tracking(self, tracking_number: str) -> ProviderResponse:
        """Fetch and validate in one step."""
        return ProviderResponse.from_dict(self.fetch(tracking_number))
