from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

import geoip2.database
import geoip2.errors
import pytest


# Database type each geoip2.database.Reader method insists on.
METHOD_DATABASE_TYPES = {
    "country": "Country",
    "city": "City",
    "asn": "GeoLite2-ASN",
    "isp": "GeoIP2-ISP",
    "domain": "GeoIP2-Domain",
    "connection_type": "GeoIP2-Connection-Type",
    "anonymous_ip": "GeoIP2-Anonymous-IP",
}


class FakeModel:
    def __init__(self, raw: Dict[str, Any]) -> None:
        self._raw = raw

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._raw)


class FakeReader:
    """Stands in for geoip2.database.Reader, keyed by the address string."""

    def __init__(self, database_type: str, records: Dict[str, Any], ipv4_only: bool = False) -> None:
        self.database_type = database_type
        self.records = records
        self.ipv4_only = ipv4_only
        self.error: Optional[Exception] = None
        self.calls = 0
        self.closed = False

    def _lookup(self, method: str, ip: Any) -> FakeModel:
        if METHOD_DATABASE_TYPES[method] not in self.database_type:
            raise TypeError(f"The {method} method cannot be used with the {self.database_type} database")
        self.calls += 1
        if self.error is not None:
            raise self.error
        key = str(ip)
        if self.ipv4_only and ":" in key:
            raise ValueError(f"Error looking up {key}. You attempted to look up an IPv6 address in an IPv4-only database.")
        if key not in self.records:
            raise geoip2.errors.AddressNotFoundError(f"The address {key} is not in the database.")
        return FakeModel(self.records[key])

    def country(self, ip: Any) -> FakeModel:
        return self._lookup("country", ip)

    def city(self, ip: Any) -> FakeModel:
        return self._lookup("city", ip)

    def asn(self, ip: Any) -> FakeModel:
        return self._lookup("asn", ip)

    def isp(self, ip: Any) -> FakeModel:
        return self._lookup("isp", ip)

    def domain(self, ip: Any) -> FakeModel:
        return self._lookup("domain", ip)

    def connection_type(self, ip: Any) -> FakeModel:
        return self._lookup("connection_type", ip)

    def anonymous_ip(self, ip: Any) -> FakeModel:
        return self._lookup("anonymous_ip", ip)

    def close(self) -> None:
        self.closed = True


COUNTRY_RECORDS = {
    "8.8.8.8": {
        "continent": {"code": "NA", "geoname_id": 6255149, "names": {"en": "North America"}},
        "country": {"geoname_id": 6252001, "iso_code": "US", "names": {"en": "United States", "ja": "アメリカ"}},
        "registered_country": {"geoname_id": 6252001, "iso_code": "US", "names": {"en": "United States"}},
    },
    "1.1.1.1": {
        "country": {"iso_code": "AU", "names": {"en": "Australia"}},
    },
}

CITY_RECORDS = {
    "8.8.8.8": {
        "city": {"geoname_id": 5375480, "names": {"en": "Mountain View", "ja": "マウンテンビュー"}},
        "country": {"iso_code": "US", "names": {"en": "United States"}},
        "location": {"accuracy_radius": 1000, "latitude": 37.386, "longitude": -122.0838, "time_zone": "America/Los_Angeles"},
        "subdivisions": [{"geoname_id": 5332921, "iso_code": "CA", "names": {"en": "California"}}],
    },
    "1.1.1.1": {
        "country": {"iso_code": "AU", "names": {"en": "Australia"}},
    },
}

ASN_RECORDS = {
    "8.8.8.8": {"autonomous_system_number": 15169, "autonomous_system_organization": "Google LLC"},
    "1.1.1.1": {"autonomous_system_number": 13335, "autonomous_system_organization": "Cloudflare, Inc."},
}


@pytest.fixture(autouse=True)
def home(tmp_path, monkeypatch) -> Path:
    """Point ~ at an empty directory so real config files are never read."""
    home_dir = tmp_path / "home"
    home_dir.mkdir()
    monkeypatch.setenv("HOME", str(home_dir))
    return home_dir


@pytest.fixture
def readers() -> Dict[str, FakeReader]:
    return {
        "country.mmdb": FakeReader("GeoLite2-Country", COUNTRY_RECORDS),
        "city.mmdb": FakeReader("GeoLite2-City", CITY_RECORDS),
        "asn.mmdb": FakeReader("GeoLite2-ASN", ASN_RECORDS, ipv4_only=True),
        "domain.mmdb": FakeReader("GeoIP2-Domain", {"8.8.8.8": {"domain": "google.com"}}),
    }


@pytest.fixture
def fake_databases(monkeypatch, readers) -> Dict[str, FakeReader]:
    """Route geoip2.database.Reader to the fake readers by file name."""

    def open_reader(fileish: str, locales: Any = None, mode: int = 0) -> FakeReader:
        name = Path(fileish).name
        if name not in readers:
            raise FileNotFoundError(2, "No such file or directory", fileish)
        return readers[name]

    monkeypatch.setattr(geoip2.database, "Reader", open_reader)
    return readers
