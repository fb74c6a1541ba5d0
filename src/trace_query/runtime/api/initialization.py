# api/initialization.py
import asyncio
import logging

from elasticsearch import AsyncElasticsearch
from opensearchpy import AsyncOpenSearch

from trace_query.config import Settings, settings as default_settings
from trace_query.logger import setup_logger
from trace_query.runtime.storage.elasticsearch_span_store import ElasticsearchSpanStore
from trace_query.runtime.storage.search_call_factory import SearchCallFactory, SearchClient

logger = logging.getLogger(__name__)

_shared_clients: dict[str, SearchClient] = {}
_clients_lock = asyncio.Lock()


def get_client_key(host: str, username: str, store_type: str) -> str:
    """Generate client key"""
    return f"{store_type}:{host}:{username}"


def create_es_client(host: str, username: str, password: str, ca_cert_path: str | None = None) -> AsyncElasticsearch:
    if host.startswith('https://'):
        config = {
            "hosts": [host],
            "basic_auth": (username, password),
            "verify_certs": True if ca_cert_path else False,
            "ssl_show_warn": False,
            "request_timeout": 30
        }
        if ca_cert_path:
            config["ca_certs"] = ca_cert_path
        return AsyncElasticsearch(**config)

    if not host.startswith('http://'):
        host = f"http://{host}"
    return AsyncElasticsearch(
        hosts=[host],
        basic_auth=(username, password)
    )


def create_os_client(host: str, username: str, password: str, ca_cert_path: str | None = None) -> AsyncOpenSearch:
    if host.startswith('https://'):
        config = {
            "hosts": [host],
            "http_auth": (username, password),
            "use_ssl": True,
            "verify_certs": True if ca_cert_path else False,
            "ssl_show_warn": False,
            "timeout": 30
        }
        if ca_cert_path:
            config["ca_certs"] = ca_cert_path
        return AsyncOpenSearch(**config)

    return AsyncOpenSearch(
        hosts=[host],
        http_auth=(username, password),
        use_ssl=False,
        verify_certs=False,
        ssl_show_warn=False,
        timeout=30
    )


async def get_or_create_client(settings: Settings = default_settings) -> SearchClient:
    """Get or create the shared search client for the configured store type"""
    if settings.STORE_TYPE == "opensearch":
        host, username, password = settings.OS_HOST, settings.OS_USERNAME, settings.OS_PASSWORD
    else:
        host, username, password = settings.ES_HOST, settings.ES_USERNAME, settings.ES_PASSWORD
    client_key = get_client_key(host, username, settings.STORE_TYPE)

    if client_key in _shared_clients:
        return _shared_clients[client_key]

    async with _clients_lock:
        if client_key in _shared_clients:
            return _shared_clients[client_key]

        logger.info(f"Creating {settings.STORE_TYPE} client for {host}")
        if settings.STORE_TYPE == "opensearch":
            client = create_os_client(host, username, password, settings.CA_CERT_PATH)
        else:
            client = create_es_client(host, username, password, settings.CA_CERT_PATH)

        _shared_clients[client_key] = client
        return client


async def create_span_store(
    settings: Settings = default_settings,
    client: SearchClient | None = None,
) -> ElasticsearchSpanStore:
    """Wire a span store to the given client, or to the shared client of the configured backend"""
    setup_logger(settings.LOG_LEVEL)
    if client is None:
        client = await get_or_create_client(settings)

    config = settings.span_store_config()
    store = ElasticsearchSpanStore(SearchCallFactory(client, max_hits=config.max_hits), config)
    logger.info(
        f"Span store ready: index={config.index} strict_trace_id={config.strict_trace_id} "
        f"names_lookback={config.names_lookback}"
    )
    return store


async def close_clients() -> None:
    async with _clients_lock:
        for client_key, client in list(_shared_clients.items()):
            logger.info(f"Closing client {client_key}")
            await client.close()
        _shared_clients.clear()
