import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from pydantic import ValidationError

from trace_query.config import Settings
from trace_query.runtime.api import initialization
from trace_query.runtime.storage.elasticsearch_span_store import ElasticsearchSpanStore
from tests.fake_search_client import FakeSearchClient


class TestSettings(unittest.TestCase):

    def test_span_store_config(self):
        settings = Settings(INDEX_PREFIX="traces", STRICT_TRACE_ID=False, NAMES_LOOKBACK=3_600_000, SEARCH_MAX_HITS=50)
        config = settings.span_store_config()
        self.assertEqual(config.index, "traces")
        self.assertFalse(config.strict_trace_id)
        self.assertEqual(config.names_lookback, 3_600_000)
        self.assertEqual(config.max_hits, 50)

    def test_names_lookback_must_be_positive(self):
        with self.assertRaises(ValidationError):
            Settings(NAMES_LOOKBACK=0).span_store_config()

    def test_max_hits_within_result_window(self):
        self.assertEqual(Settings(SEARCH_MAX_HITS=10_000).span_store_config().max_hits, 10_000)
        with self.assertRaises(ValidationError):
            Settings(SEARCH_MAX_HITS=10_001).span_store_config()


class TestInitialization(unittest.IsolatedAsyncioTestCase):

    async def asyncTearDown(self):
        initialization._shared_clients.clear()

    async def test_create_span_store_with_client(self):
        settings = Settings(STRICT_TRACE_ID=False)
        store = await initialization.create_span_store(settings, client=FakeSearchClient())
        self.assertIsInstance(store, ElasticsearchSpanStore)
        self.assertFalse(store.strict_trace_id)

    async def test_shared_client_per_backend(self):
        es_client, os_client = MagicMock(close=AsyncMock()), MagicMock(close=AsyncMock())
        with patch.object(initialization, "create_es_client", return_value=es_client) as create_es, \
                patch.object(initialization, "create_os_client", return_value=os_client) as create_os:
            es_settings = Settings(STORE_TYPE="elasticsearch")
            os_settings = Settings(STORE_TYPE="opensearch")

            self.assertIs(await initialization.get_or_create_client(es_settings), es_client)
            self.assertIs(await initialization.get_or_create_client(es_settings), es_client)
            self.assertIs(await initialization.get_or_create_client(os_settings), os_client)
            self.assertEqual(create_es.call_count, 1)
            self.assertEqual(create_os.call_count, 1)

            await initialization.close_clients()

        es_client.close.assert_awaited_once()
        os_client.close.assert_awaited_once()
        self.assertEqual(initialization._shared_clients, {})


if __name__ == '__main__':
    unittest.main()
