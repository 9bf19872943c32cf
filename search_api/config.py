import logging
import os
from typing import Any

import boto3
import orjson
from dotenv import load_dotenv
from opensearchpy import OpenSearch, Urllib3AWSV4SignerAuth
from opensearchpy.serializer import JSONSerializer

from enhanced_search.bulk import DEFAULT_SIZE_LIMIT, BulkChunkingConnection
from enhanced_search.fuzziness import resolve_fuzziness
from enhanced_search.models import SearchMode, SearchSettings

load_dotenv()

logger = logging.getLogger(__name__)


class OrjsonSerializer(JSONSerializer):
    """JSON serializer using orjson.

    orjson keeps non-ASCII text unescaped, which keeps request bodies (and so
    bulk request sizes) as small as possible.
    """

    def dumps(self, data: Any) -> str:
        if isinstance(data, str):
            return data
        # orjson.dumps returns bytes, opensearch-py expects str
        return orjson.dumps(data).decode("utf-8")

    def loads(self, data: str | bytes) -> Any:
        if isinstance(data, str):
            data = data.encode("utf-8")
        return orjson.loads(data)


def _json_env(name: str, default: Any) -> Any:
    """Read an environment variable holding JSON, or a bare scalar."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError:
        return raw.strip()


class Config:
    """Application configuration loaded from environment variables."""

    OPENSEARCH_HOST: str = os.getenv("OPENSEARCH_HOST", "localhost")
    OPENSEARCH_PORT: int = int(os.getenv("OPENSEARCH_PORT", "9200"))
    OPENSEARCH_INDEX: str = os.getenv("OPENSEARCH_INDEX", "posts")
    OPENSEARCH_USE_SSL: bool = os.getenv("OPENSEARCH_USE_SSL", "false").lower() == "true"
    OPENSEARCH_VERIFY_CERTS: bool = os.getenv("OPENSEARCH_VERIFY_CERTS", "true").lower() == "true"
    OPENSEARCH_USER: str | None = os.getenv("OPENSEARCH_USER")
    OPENSEARCH_PASSWORD: str | None = os.getenv("OPENSEARCH_PASSWORD")
    OPENSEARCH_AWS_REGION: str | None = os.getenv("OPENSEARCH_AWS_REGION")

    SEARCH_MODE: str = os.getenv("SEARCH_MODE", "simple")
    SEARCH_STRICT: bool = os.getenv("SEARCH_STRICT", "true").lower() == "true"
    SEARCH_FIELD_BOOST: Any = _json_env("SEARCH_FIELD_BOOST", {})
    SEARCH_FUZZINESS: Any = _json_env("SEARCH_FUZZINESS", None)
    SEARCH_AUTOSUGGEST: bool = os.getenv("SEARCH_AUTOSUGGEST", "false").lower() == "true"
    SEARCH_ALGORITHM_VERSION: str = os.getenv("SEARCH_ALGORITHM_VERSION", "4.0")

    BULK_REQUEST_SIZE_LIMIT: int = int(os.getenv("BULK_REQUEST_SIZE_LIMIT", str(DEFAULT_SIZE_LIMIT)))
    INSTANT_RESULTS_TEMPLATE: str | None = os.getenv("INSTANT_RESULTS_TEMPLATE")

    API_HOST: str = os.getenv("API_HOST", "127.0.0.1")
    API_PORT: int = int(os.getenv("API_PORT", "8000"))


def get_search_settings(config: type[Config] = Config) -> SearchSettings:
    """Build the search settings passed to the query enhancer."""
    try:
        mode = SearchMode(config.SEARCH_MODE.lower())
    except ValueError:
        logger.warning("Unknown search mode %r, using simple", config.SEARCH_MODE)
        mode = SearchMode.SIMPLE

    field_boost = config.SEARCH_FIELD_BOOST
    if not isinstance(field_boost, dict):
        logger.warning("SEARCH_FIELD_BOOST must be a JSON object, ignoring %r", field_boost)
        field_boost = {}

    return SearchSettings(
        mode=mode,
        strict=config.SEARCH_STRICT,
        field_boost=field_boost,
        fuzziness=resolve_fuzziness(config.SEARCH_FUZZINESS),
        algorithm_version=config.SEARCH_ALGORITHM_VERSION,
    )


def get_opensearch_client() -> OpenSearch:
    """
    Create and return an OpenSearch client instance.

    Bulk requests over ``BULK_REQUEST_SIZE_LIMIT`` bytes are split by the
    connection class. Requests are SigV4-signed when
    ``OPENSEARCH_AWS_REGION`` is set.

    Returns:
        OpenSearch: Configured OpenSearch client
    """
    config = Config()

    http_auth = None
    if config.OPENSEARCH_USER and config.OPENSEARCH_PASSWORD:
        http_auth = (config.OPENSEARCH_USER, config.OPENSEARCH_PASSWORD)

    if config.OPENSEARCH_AWS_REGION:
        # Signs every request the connection sends, each bulk chunk included
        credentials = boto3.Session().get_credentials()
        http_auth = Urllib3AWSV4SignerAuth(credentials, config.OPENSEARCH_AWS_REGION, "es")

    return OpenSearch(
        hosts=[{"host": config.OPENSEARCH_HOST, "port": config.OPENSEARCH_PORT}],
        use_ssl=config.OPENSEARCH_USE_SSL,
        verify_certs=config.OPENSEARCH_VERIFY_CERTS,
        ssl_show_warn=False,
        http_auth=http_auth,
        serializer=OrjsonSerializer(),
        connection_class=BulkChunkingConnection,
        bulk_size_limit=config.BULK_REQUEST_SIZE_LIMIT,
    )


# Global client instance (reused across requests)
opensearch_client = get_opensearch_client()
index_name = Config.OPENSEARCH_INDEX
search_settings = get_search_settings()
