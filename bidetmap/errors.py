"""
Pipeline error hierarchy.

All pipeline-level exceptions inherit from PipelineError, which provides:
- message: technical detail (for logs)
- user_message: safe string for the CLI summary
- recoverable: whether the pipeline can carry on with reduced data
"""


class PipelineError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, user_message: str, recoverable: bool = True):
        self.message = message
        self.user_message = user_message
        self.recoverable = recoverable
        super().__init__(message)


class FetchError(PipelineError):
    """A source (sheet tab or KML export) could not be fetched."""

    def __init__(self, source: str, detail: str):
        super().__init__(
            f"Fetch failed for {source}: {detail}",
            f"Could not download {source}; continuing with cached or partial data.",
            recoverable=True,
        )
        self.source = source


class GeocodeError(PipelineError):
    """A reverse-geocoding lookup failed."""

    def __init__(self, lat: float, lng: float, detail: str):
        super().__init__(
            f"Reverse geocode failed for ({lat}, {lng}): {detail}",
            "Address lookup unavailable for this location.",
            recoverable=True,
        )


class EmptyCollectionError(PipelineError):
    """Merge produced no locations after at least one source fetch failed."""

    def __init__(self, failed_sources):
        self.failed_sources = list(failed_sources)
        super().__init__(
            f"Merged collection is empty; failed sources: {', '.join(self.failed_sources)}",
            "No locations could be produced. Check the source URLs and network access.",
            recoverable=False,
        )
