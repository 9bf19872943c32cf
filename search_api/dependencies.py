from opensearchpy import OpenSearch

from enhanced_search.models import SearchSettings
from search_api.config import Config, index_name, opensearch_client, search_settings
from search_api.services.search import load_template


def get_client() -> OpenSearch:
    return opensearch_client


def get_index() -> str:
    return index_name


def get_settings() -> SearchSettings:
    return search_settings


def autosuggest_enabled() -> bool:
    return Config.SEARCH_AUTOSUGGEST


def get_instant_results_template() -> str | None:
    return load_template(Config.INSTANT_RESULTS_TEMPLATE)
