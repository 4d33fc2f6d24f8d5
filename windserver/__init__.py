"""
windserver - GFS wind snapshot harvester and lookup engine.

Harvests 6-hourly GFS analysis grids from NOAA NOMADS, converts them to
JSON with grib2json and serves the latest / nearest snapshot over HTTP.
"""

__version__ = "1.0.0"
