"""Catalog domain - track metadata, favourites and stream resolution."""

from .client import HttpCatalog, decode_manifest
from .provider import CatalogProvider

__all__ = ["CatalogProvider", "HttpCatalog", "decode_manifest"]
