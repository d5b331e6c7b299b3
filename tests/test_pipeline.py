"""
Pipeline Tests
==============
Retrieval, prompt assembly, casual-chat detection, structured completion
and per-turn dispatch, with the completion backend replaced by an
in-memory fake.

Run with: python -m pytest tests/test_pipeline.py -v
Or:       python tests/test_pipeline.py
"""

from __future__ import annotations

import json
import random
import sys
import tempfile
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from medibot_fakes import (
    MEDICATION_JSON,
    PRECAUTION_JSON,
    TRIAGE_JSON,
    FakeOpenAI,
    system_text,
    user_text,
)

from medibot.casual_chat import (
    CHAT_FALLBACK_REPLIES,
    FAREWELL_REPLIES,
    GREETING_REPLIES,
    THANKS_REPLIES,
    CasualChatClassifier,
    CasualClass,
    canned_reply,
    load_patterns,
)
from medibot.completion_client import (
    SYSTEM_ERROR_SOURCE,
    CompletionClient,
    CompletionError,
    strip_code_fences,
)
from medibot.mode_dispatcher import DEFAULT_GREETING, INVALID_MODE_REPLY, ModeDispatcher
from medibot.prompt_builder import DISCLAIMER, NO_CONTEXT_MARKER, PromptBuilder
from medibot.retriever import Retriever, retrieve
from medibot.schemas import (
    AppMode,
    ChatReply,
    ImagePayload,
    MedicationResult,
    PrecautionResult,
    TriageResult,
    UrgencyLevel,
)


class TestRetriever(unittest.TestCase):
    """Keyword lookup over the built-in knowledge base."""

    def setUp(self):
        self.retriever = Retriever()

    def test_diabetes_query_returns_diabetes_article(self):
        context = self.retriever.retrieve("How do I prevent Diabetes?")
        self.assertTrue(context.startswith("Disease Name: Diabetes Mellitus"))

    def test_multi_word_keyword(self):
        context = self.retriever.retrieve("tips for high blood pressure")
        self.assertIn("Hypertension", context)

    def test_no_match_returns_empty_string(self):
        self.assertEqual(self.retriever.retrieve("broken ankle"), "")
        self.assertEqual(self.retriever.retrieve(""), "")

    def test_first_article_in_store_order_wins(self):
        # Mentions both diabetes and a cold; diabetes is earlier in the store
        article = self.retriever.find_article("diabetic with a cold")
        self.assertEqual(article.id, "diabetes-01")

    def test_module_level_retrieve(self):
        self.assertIn("Common Cold", retrieve("my runny nose won't stop"))


class TestPromptBuilder(unittest.TestCase):
    """System/user prompt assembly per mode."""

    def setUp(self):
        self.builder = PromptBuilder()

    def test_triage_prompt_contains_disclaimer_and_schema(self):
        prompt = self.builder.build_prompt(AppMode.TRIAGE, "en", "lump in my neck")
        self.assertIn(DISCLAIMER, prompt.system_prompt)
        self.assertIn('"urgencyLevel"', prompt.system_prompt)
        self.assertIn("Language: English", prompt.system_prompt)
        self.assertIn('"lump in my neck"', prompt.user_prompt)

    def test_response_language_follows_ui_locale(self):
        prompt = self.builder.build_prompt(AppMode.PHARMACY, "es", "ibuprofeno")
        self.assertIn("Language: Español", prompt.system_prompt)
        self.assertIn('"medicationName"', prompt.system_prompt)

    def test_image_hint_only_when_image_attached(self):
        with_image = self.builder.build_prompt(AppMode.PHARMACY, "en", "", has_image=True)
        without = self.builder.build_prompt(AppMode.PHARMACY, "en", "aspirin")
        self.assertIn("[IMAGE PROVIDED]", with_image.user_prompt)
        self.assertNotIn("[IMAGE PROVIDED]", without.user_prompt)

    def test_precautions_prompt_embeds_context(self):
        context = Retriever().retrieve("diabetes")
        prompt = self.builder.build_prompt(AppMode.PRECAUTIONS, "en", "diabetes", retrieved_context=context)
        self.assertIn(context, prompt.system_prompt)
        self.assertIn("ONLY the context", prompt.system_prompt)
        self.assertNotIn(NO_CONTEXT_MARKER, prompt.system_prompt)

    def test_precautions_prompt_without_context_uses_marker(self):
        prompt = self.builder.build_prompt(AppMode.PRECAUTIONS, "fr", "broken ankle", retrieved_context="")
        self.assertIn(NO_CONTEXT_MARKER, prompt.system_prompt)
        self.assertIn("Language: Français", prompt.system_prompt)

    def test_translation_prompt_names_target_language(self):
        prompt = self.builder.build_translation_prompt("kn", "Drink water.")
        self.assertIn("Kannada", prompt.system_prompt)
        self.assertEqual(prompt.user_prompt, "Drink water.")


class TestCasualChat(unittest.TestCase):
    """Segment-based small-talk classification and canned replies."""

    def setUp(self):
        self.classifier = CasualChatClassifier()

    def test_single_class_inputs(self):
        self.assertEqual(self.classifier.classify("Hello!"), {CasualClass.GREETING})
        self.assertEqual(self.classifier.classify("thank you so much"), {CasualClass.THANKS})
        self.assertEqual(self.classifier.classify("Goodbye."), {CasualClass.FAREWELL})
        self.assertEqual(self.classifier.classify("who are you?"), {CasualClass.META})

    def test_combined_classes(self):
        self.assertEqual(
            self.classifier.classify("thanks, bye"),
            {CasualClass.THANKS, CasualClass.FAREWELL},
        )
        self.assertEqual(
            self.classifier.classify("hi and thank you"),
            {CasualClass.GREETING, CasualClass.THANKS},
        )

    def test_greeting_with_medical_content_is_not_casual(self):
        self.assertEqual(self.classifier.classify("hi, I have chest pain"), set())
        self.assertEqual(self.classifier.classify("hello I have a cough"), set())
        self.assertEqual(self.classifier.classify("how to prevent diabetes"), set())

    def test_canned_reply_priority_order(self):
        reply = canned_reply({CasualClass.THANKS, CasualClass.FAREWELL}, random.Random(1))
        thanks_part = next(r for r in THANKS_REPLIES if reply.startswith(r))
        self.assertIn(reply[len(thanks_part) + 1:], FAREWELL_REPLIES)

    def test_canned_reply_single_class(self):
        self.assertIn(canned_reply({CasualClass.GREETING}), GREETING_REPLIES)

    def test_meta_only_uses_generic_fallback(self):
        self.assertIn(canned_reply({CasualClass.META}), CHAT_FALLBACK_REPLIES)

    def test_custom_pattern_table_from_json(self):
        table = {"greeting": {"phrases": ["namaste"], "patterns": []}}
        with tempfile.NamedTemporaryFile("w", suffix=".json", delete=False, encoding="utf-8") as fh:
            json.dump(table, fh)
        classifier = CasualChatClassifier(load_patterns(fh.name))
        self.assertEqual(classifier.classify("Namaste!"), {CasualClass.GREETING})
        self.assertEqual(classifier.classify("hello"), set())
        Path(fh.name).unlink()

    def test_unknown_class_in_table_rejected(self):
        with tempfile.NamedTemporaryFile("w", suffix=".json", delete=False, encoding="utf-8") as fh:
            json.dump({"smalltalk": {"phrases": ["sup"]}}, fh)
        with self.assertRaises(ValueError):
            load_patterns(fh.name)
        Path(fh.name).unlink()


class TestCompletionClient(unittest.IsolatedAsyncioTestCase):
    """Structured parsing and fallback behavior."""

    def _prompt(self, mode=AppMode.TRIAGE):
        return PromptBuilder().build_prompt(mode, "en", "persistent lump in neck")

    def test_strip_code_fences(self):
        self.assertEqual(strip_code_fences('```json\n{"a": 1}\n```'), '{"a": 1}')
        self.assertEqual(strip_code_fences('```\n{"a": 1}```'), '{"a": 1}')
        self.assertEqual(strip_code_fences('  {"a": 1}  '), '{"a": 1}')

    async def test_parses_fenced_triage_json(self):
        fake = FakeOpenAI(f"```json\n{TRIAGE_JSON}\n```")
        client = CompletionClient(openai_client=fake, model="test-model")
        result = await client.complete(self._prompt(), AppMode.TRIAGE)

        self.assertIsInstance(result, TriageResult)
        self.assertEqual(result.urgency_level, UrgencyLevel.PRIORITY)
        self.assertEqual(result.drug_interactions[0].drugs, "Warfarin + Aspirin")
        call = fake.calls[0]
        self.assertEqual(call["temperature"], 0.2)
        self.assertEqual(call["response_format"], {"type": "json_object"})

    async def test_pharmacy_uses_lower_temperature(self):
        fake = FakeOpenAI(MEDICATION_JSON)
        client = CompletionClient(openai_client=fake)
        result = await client.complete(self._prompt(AppMode.PHARMACY), AppMode.PHARMACY)
        self.assertIsInstance(result, MedicationResult)
        self.assertEqual(result.dosage_information.adult, "500 mg twice daily with meals")
        self.assertEqual(fake.calls[0]["temperature"], 0.15)

    async def test_urgency_casing_is_normalized(self):
        data = json.loads(TRIAGE_JSON)
        data["urgencyLevel"] = "SELF-CARE"
        client = CompletionClient(openai_client=FakeOpenAI(json.dumps(data)))
        result = await client.complete(self._prompt(), AppMode.TRIAGE)
        self.assertEqual(result.urgency_level, UrgencyLevel.SELF_CARE)

    async def test_transport_error_returns_triage_fallback(self):
        client = CompletionClient(openai_client=FakeOpenAI(ConnectionError("network down")))
        result = await client.complete(self._prompt(), AppMode.TRIAGE)

        self.assertIsInstance(result, TriageResult)
        self.assertEqual(result.urgency_level, UrgencyLevel.ROUTINE)
        self.assertIn(DISCLAIMER, result.explanation)
        self.assertEqual(result.cited_sources, [SYSTEM_ERROR_SOURCE])
        self.assertEqual(result.drug_interactions, [])

    async def test_non_json_returns_fallback(self):
        client = CompletionClient(openai_client=FakeOpenAI("Sorry, I can't help with that."))
        result = await client.complete(self._prompt(AppMode.PHARMACY), AppMode.PHARMACY)
        self.assertEqual(result.medication_name, "Medication Information Currently Unavailable")

    async def test_schema_mismatch_returns_fallback(self):
        client = CompletionClient(openai_client=FakeOpenAI(json.dumps({"diseaseName": "Flu"})))
        result = await client.complete(self._prompt(AppMode.PRECAUTIONS), AppMode.PRECAUTIONS)
        self.assertIsInstance(result, PrecautionResult)
        self.assertEqual(result.disease_name, "Health Information Currently Unavailable")

    async def test_precaution_fallback_wording_depends_on_context(self):
        client = CompletionClient(openai_client=FakeOpenAI(""))
        with_context = await client.complete(self._prompt(AppMode.PRECAUTIONS), AppMode.PRECAUTIONS, context_found=True)
        without = await client.complete(self._prompt(AppMode.PRECAUTIONS), AppMode.PRECAUTIONS)
        self.assertIn("relevant health information", with_context.overview)
        self.assertIn("don't have specific information", without.overview)

    async def test_unknown_mode_returns_triage_fallback(self):
        fake = FakeOpenAI(TRIAGE_JSON)
        client = CompletionClient(openai_client=fake)
        result = await client.complete(self._prompt(), "radiology")

        self.assertIsInstance(result, TriageResult)
        self.assertEqual(result.urgency_level, UrgencyLevel.ROUTINE)
        self.assertEqual(result.cited_sources, [SYSTEM_ERROR_SOURCE])
        self.assertEqual(fake.calls, [])

    async def test_image_is_sent_as_data_uri(self):
        fake = FakeOpenAI(MEDICATION_JSON)
        client = CompletionClient(openai_client=fake)
        image = ImagePayload(mime_type="image/png", data="aGVsbG8=")
        await client.complete(self._prompt(AppMode.PHARMACY), AppMode.PHARMACY, image=image)

        content = fake.calls[0]["messages"][1]["content"]
        self.assertEqual(content[1]["image_url"]["url"], "data:image/png;base64,aGVsbG8=")

    async def test_generate_text_raises_on_empty_answer(self):
        client = CompletionClient(openai_client=FakeOpenAI("   "))
        with self.assertRaises(CompletionError):
            await client.generate_text(self._prompt(), temperature=0.5, max_tokens=10)

    async def test_check_availability(self):
        self.assertTrue(await CompletionClient(openai_client=FakeOpenAI("ok")).check_availability())
        failing = CompletionClient(openai_client=FakeOpenAI(TimeoutError("slow")))
        self.assertFalse(await failing.check_availability())


class TestModeDispatcher(unittest.IsolatedAsyncioTestCase):
    """One user turn end to end."""

    def _dispatcher(self, responder):
        self.fake = FakeOpenAI(responder)
        return ModeDispatcher(
            completion_client=CompletionClient(openai_client=self.fake),
            classifier=CasualChatClassifier(),
            rng=random.Random(7),
        )

    async def test_empty_input_gets_default_greeting(self):
        dispatcher = self._dispatcher("unused")
        reply = await dispatcher.handle_turn("triage", "   ")
        self.assertEqual(reply, ChatReply(text=DEFAULT_GREETING))
        self.assertEqual(self.fake.calls, [])

    async def test_casual_input_uses_chat_reply(self):
        dispatcher = self._dispatcher("Hi! How can I help today? 😊")
        reply = await dispatcher.handle_turn("pharmacy", "hello")

        self.assertIsInstance(reply, ChatReply)
        self.assertEqual(reply.text, "Hi! How can I help today? 😊")
        call = self.fake.calls[0]
        self.assertEqual(call["temperature"], 0.8)
        self.assertNotIn("response_format", call)

    async def test_casual_backend_failure_falls_back_to_canned_combination(self):
        dispatcher = self._dispatcher(ConnectionError("offline"))
        reply = await dispatcher.handle_turn("triage", "thanks, bye")

        self.assertIsInstance(reply, ChatReply)
        thanks_part = next(r for r in THANKS_REPLIES if reply.text.startswith(r))
        self.assertIn(reply.text[len(thanks_part) + 1:], FAREWELL_REPLIES)

    async def test_casual_is_checked_before_mode(self):
        dispatcher = self._dispatcher(ConnectionError("offline"))
        reply = await dispatcher.handle_turn("not-a-mode", "hi")
        self.assertIn(reply.text, GREETING_REPLIES)

    async def test_invalid_mode(self):
        dispatcher = self._dispatcher(TRIAGE_JSON)
        reply = await dispatcher.handle_turn("radiology", "lump in my neck")
        self.assertEqual(reply, ChatReply(text=INVALID_MODE_REPLY))
        self.assertEqual(self.fake.calls, [])

    async def test_triage_turn(self):
        dispatcher = self._dispatcher(TRIAGE_JSON)
        result = await dispatcher.handle_turn(AppMode.TRIAGE, "hi, I have a painless lump in my neck")
        self.assertIsInstance(result, TriageResult)
        self.assertIn("MediBot-Onco", system_text(self.fake.calls[0]))

    async def test_image_only_turn_skips_casual_detection(self):
        dispatcher = self._dispatcher(MEDICATION_JSON)
        image = ImagePayload(mime_type="image/jpeg", data="/9j/4AAQ")
        result = await dispatcher.handle_turn("pharmacy", "", image=image)
        self.assertIsInstance(result, MedicationResult)
        self.assertIn("[IMAGE PROVIDED]", user_text(self.fake.calls[0]))

    async def test_precautions_uses_retrieved_article(self):
        dispatcher = self._dispatcher(PRECAUTION_JSON)
        result = await dispatcher.handle_turn("precautions", "How can I prevent diabetes?", locale="en")

        self.assertIsInstance(result, PrecautionResult)
        self.assertEqual(result.disease_name, "Diabetes Mellitus")
        self.assertIn("Disease Name: Diabetes Mellitus", system_text(self.fake.calls[0]))

    async def test_precautions_without_match_sends_marker(self):
        dispatcher = self._dispatcher(PRECAUTION_JSON)
        await dispatcher.handle_turn("precautions", "broken ankle recovery")
        self.assertIn(NO_CONTEXT_MARKER, system_text(self.fake.calls[0]))


if __name__ == "__main__":
    unittest.main()
