"""
Error taxonomy shared by the ingestion job and the query service.
"""


class FoodTruckError(RuntimeError):
    """Base error for ingestion and retrieval failures."""


class SourceFetchError(FoodTruckError):
    """Upstream CSV data could not be read."""


class SchemaError(FoodTruckError):
    """Storage initialization failed or the backend is unsupported."""


class ResolutionError(FoodTruckError):
    """A natural-key upsert was rejected or violated a constraint."""

    def __init__(self, message: str, *, natural_key: object = None):
        super().__init__(f"{message} (key={natural_key!r})" if natural_key is not None else message)
        self.natural_key = natural_key


class ProviderError(FoodTruckError):
    """Embedding or chat provider failure."""

    PROVIDER_ERROR = "provider_error"  # provider answered with an explicit error
    EMPTY_RESPONSE = "empty_response"  # no vectors / no candidates / wrong shape
    TRANSPORT = "transport"  # timeout or network failure

    def __init__(
        self,
        message: str,
        *,
        kind: str = PROVIDER_ERROR,
        code: object = None,
        item: str | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.code = code
        self.item = item


class SearchError(FoodTruckError):
    """Similarity search or relational expansion failed in storage."""


class NoMatchError(FoodTruckError):
    """Retrieval found no approved truck for the query. Not a failure."""
