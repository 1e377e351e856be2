"""Client singletons for external HTTP interactions."""
from bidetmap.clients.source_client import SourceClient
from bidetmap.clients.geocoder_client import GeocoderClient

__all__ = ["SourceClient", "GeocoderClient"]
