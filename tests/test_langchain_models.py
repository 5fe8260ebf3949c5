"""Test model selection for Langchain"""

import unittest

from langchain_core.embeddings import DeterministicFakeEmbedding

from lmo.config.config import EmbeddingSettings, LanguageModelSettings
from lmo.language_models.langchain.message_iterator import (
    yield_constant_message,
    yield_message,
)
from lmo.language_models.langchain.models import (
    DEBUG_EMBEDDING_SIZE,
    create_embedding_model_from_settings,
    create_embedding_model_from_spec,
    create_model_from_settings,
    langchain_embeddings,
    langchain_models,
)


# reset at end of testing
def reset_langchain_factory():
    """Reset the langchain factory to empty"""
    langchain_models.clear()
    langchain_embeddings.clear()


class TestModelFactory(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        reset_langchain_factory()

    @classmethod
    def tearDownClass(cls):
        reset_langchain_factory()

    def test_hashability(self):
        settings1 = LanguageModelSettings(
            model="OpenAI/gpt-4o-mini", provider_params={"top_p": 0.9}
        )
        settings2 = LanguageModelSettings(
            model="OpenAI/gpt-4o-mini", provider_params={"top_p": 0.9}
        )
        settings3 = LanguageModelSettings(
            model="OpenAI/gpt-4o-mini", provider_params={"top_p": 0.8}
        )
        self.assertEqual(hash(settings1), hash(settings2))
        self.assertNotEqual(hash(settings1), hash(settings3))

    def test_create_openai(self):
        settings = LanguageModelSettings(
            model="OpenAI/gpt-4o", api_key="sk-test", temperature=0.2
        )
        model = create_model_from_settings(settings)
        self.assertEqual(model.get_name(), "ChatOpenAI")
        model_count = len(langchain_models)

        # previously cached
        same = create_model_from_settings(
            LanguageModelSettings(
                model="OpenAI/gpt-4o", api_key="sk-test", temperature=0.2
            )
        )
        self.assertIs(model, same)
        self.assertEqual(len(langchain_models), model_count)

        # new model
        other = create_model_from_settings(
            settings.from_instance(temperature=0.7)
        )
        self.assertIsNot(model, other)
        self.assertEqual(len(langchain_models), model_count + 1)

    def test_zero_parameters_left_to_provider(self):
        model = create_model_from_settings(
            LanguageModelSettings(
                model="OpenAI/gpt-4o-mini",
                api_key="sk-test",
                temperature=0.0,
                max_tokens=0,
            )
        )
        self.assertIsNone(model.temperature)
        self.assertIsNone(model.max_tokens)

        model = create_model_from_settings(
            LanguageModelSettings(
                model="OpenAI/gpt-4o-mini",
                api_key="sk-test",
                temperature=0.3,
                max_tokens=100,
            )
        )
        self.assertEqual(model.temperature, 0.3)
        self.assertEqual(model.max_tokens, 100)

    def test_debug_model(self):
        model = create_model_from_settings(
            LanguageModelSettings(model="Debug/counter")
        )
        first = model.invoke("hello")
        second = model.invoke("hello")
        self.assertTrue(str(first.content).startswith("Message "))
        self.assertNotEqual(first.content, second.content)

    def test_debug_constant_model(self):
        model = create_model_from_settings(
            LanguageModelSettings(
                model="Debug/constant", provider_params={"message": "ok"}
            )
        )
        self.assertEqual(model.invoke("hello").content, "ok")
        self.assertEqual(model.invoke("again").content, "ok")

    def test_debug_embeddings(self):
        embeddings = create_embedding_model_from_settings(
            EmbeddingSettings(dense_model="Debug/fake")
        )
        self.assertIsInstance(embeddings, DeterministicFakeEmbedding)
        vector = embeddings.embed_query("query")
        self.assertEqual(len(vector), DEBUG_EMBEDDING_SIZE)
        self.assertEqual(vector, embeddings.embed_query("query"))
        self.assertIs(embeddings, create_embedding_model_from_spec("Debug/fake"))

    def test_invalid_embedding_source(self):
        with self.assertRaises(ValueError):
            create_embedding_model_from_spec("LocalAI/model")


class TestMessageIterator(unittest.TestCase):

    def test_yield_message(self):
        iterator = yield_message("Alert")
        self.assertEqual(next(iterator), "Alert 1")
        self.assertEqual(next(iterator), "Alert 2")
        self.assertIs(iter(iterator), iterator)

    def test_independent_iterators(self):
        first = yield_message()
        second = yield_message()
        next(first)
        self.assertEqual(next(first), "Message 2")
        self.assertEqual(next(second), "Message 1")

    def test_yield_constant_message(self):
        iterator = yield_constant_message("Alert")
        self.assertEqual([next(iterator) for _ in range(3)], ["Alert"] * 3)


if __name__ == "__main__":
    unittest.main()
