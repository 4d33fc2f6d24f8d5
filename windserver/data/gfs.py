"""
GFS analysis download from the NOAA NOMADS GRIB filter.

Each 6-hourly GFS run publishes an analysis file (``f000``) roughly 3.5
hours after the cycle time. The NOMADS filter lets us request only the
variables we serve: 10 m U/V wind and surface temperature over the whole
globe at 1 degree resolution.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict

import requests

from windserver.errors import TransportError
from windserver.grid import Stamp
from windserver.resilience import with_retry

logger = logging.getLogger(__name__)


class SnapshotFetcher(ABC):
    """Retrieves the raw bytes of one snapshot."""

    @abstractmethod
    def fetch(self, stamp: Stamp) -> bytes:
        """
        Download the raw snapshot for ``stamp``.

        Raises:
            TransportError: network failure, non-2xx status or an empty body
        """
        pass


class NomadsFetcher(SnapshotFetcher):
    """Fetches the 1 degree GFS analysis through the NOMADS GRIB filter."""

    NOMADS_URL = "https://nomads.ncep.noaa.gov/cgi-bin/filter_gfs_1p00.pl"

    # Anything smaller is an HTML error page, not a GRIB2 message
    MIN_PAYLOAD_BYTES = 100

    def __init__(
        self,
        base_url: str = NOMADS_URL,
        timeout: float = 60.0,
        max_attempts: int = 2,
        session: requests.Session = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", "windserver/1.0")
        self._get = with_retry(
            max_attempts=max_attempts,
            min_wait=1.0,
            max_wait=10.0,
            exceptions=(requests.ConnectionError, requests.Timeout),
        )(self._request)

    def query_params(self, stamp: Stamp) -> Dict[str, str]:
        """GRIB filter parameters for the analysis of ``stamp``'s cycle."""
        return {
            "file": f"gfs.t{stamp.hour_str}z.pgrb2.1p00.f000",
            "lev_10_m_above_ground": "on",
            "lev_surface": "on",
            "var_TMP": "on",
            "var_UGRD": "on",
            "var_VGRD": "on",
            "leftlon": "0",
            "rightlon": "360",
            "toplat": "90",
            "bottomlat": "-90",
            "dir": f"/gfs.{stamp.date_str}/{stamp.hour_str}/atmos",
        }

    def _request(self, stamp: Stamp) -> requests.Response:
        return self.session.get(self.base_url, params=self.query_params(stamp), timeout=self.timeout)

    def fetch(self, stamp: Stamp) -> bytes:
        try:
            resp = self._get(stamp)
        except requests.RequestException as e:
            logger.error(f"Unable to retrieve GFS {stamp}: {e}")
            raise TransportError(stamp, f"request failed: {e}") from e

        logger.info(f"NOMADS response for {stamp}: HTTP {resp.status_code}")
        if resp.status_code != 200:
            raise TransportError(stamp, f"HTTP {resp.status_code}", status=resp.status_code)

        data = resp.content
        if len(data) < self.MIN_PAYLOAD_BYTES:
            raise TransportError(
                stamp, f"payload too small ({len(data)} bytes)", status=resp.status_code
            )
        return data
