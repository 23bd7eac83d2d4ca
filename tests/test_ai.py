"""Tests for generative-AI helpers with the model endpoint mocked."""

import json
import logging
import os
import typing
from datetime import date
from types import SimpleNamespace
from unittest import TestCase
from unittest.mock import Mock, patch

from openai import OpenAIError

from fop_tax_calculator import ai
from fop_tax_calculator.config import ChatMessage, FopGroup, UserProfile
from fop_tax_calculator.errors import DocumentScanError


class TestGenerativeAi(TestCase):
    """Test client configuration and request shape."""

    def test_client_requires_api_key(self) -> None:
        """Test missing key raises library error."""
        with patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(OpenAIError):
                ai.GenerativeAi.client()

    def test_model_uses_env_override(self) -> None:
        """Test model name resolution."""
        with patch.dict(os.environ, {"FOP_TAX_CALCULATOR_AI_MODEL": "custom"}):
            self.assertEqual(ai.GenerativeAi.model(), "custom")
        with patch.dict(os.environ, {}, clear=True):
            self.assertEqual(ai.GenerativeAi.model(), "gemini-2.5-flash")

    def test_complete_sends_system_and_user_messages(self) -> None:
        """Test chat-completions call arguments."""
        create = Mock(
            return_value=SimpleNamespace(
                choices=[SimpleNamespace(message=SimpleNamespace(content="ok"))]
            )
        )
        client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
        with patch.object(ai.GenerativeAi, "client", return_value=client):
            answer = ai.GenerativeAi.complete("sys", "hello", max_tokens=10, json_output=True)
        self.assertEqual(answer, "ok")
        kwargs = create.call_args.kwargs
        self.assertEqual(kwargs["messages"][0], {"role": "system", "content": "sys"})
        self.assertEqual(kwargs["messages"][1], {"role": "user", "content": "hello"})
        self.assertEqual(kwargs["max_tokens"], 10)
        self.assertEqual(kwargs["response_format"], {"type": "json_object"})
        self.assertNotIn("temperature", kwargs)


class TestExtractIncome(TestCase):
    """Test document scan parsing and failure handling."""

    def test_extract_parses_fenced_json(self) -> None:
        """Test extraction answer is cleaned and validated."""
        payload = {
            "amount": "1 200,50",
            "currency": "usd",
            "date": "2026-03-10",
            "description": " Розробка ПЗ ",
        }
        answer = f"```json\n{json.dumps(payload, ensure_ascii=False)}\n```"
        with patch.object(ai.GenerativeAi, "complete", return_value=answer) as complete:
            extracted = ai.extract_income_from_image(b"img", "image/png")
        self.assertEqual(
            extracted,
            ai.ExtractedIncome(1200.5, "USD", date(2026, 3, 10), "Розробка ПЗ"),
        )
        content = complete.call_args.args[1]
        self.assertTrue(content[0]["image_url"]["url"].startswith("data:image/png;base64,"))

    def test_extract_drops_unknown_currency_and_bad_date(self) -> None:
        """Test unrecognized fields become None."""
        answer = '{"amount": null, "currency": "GBP", "date": "10.03.2026", "description": null}'
        with patch.object(ai.GenerativeAi, "complete", return_value=answer):
            extracted = ai.extract_income_from_image(b"img")
        self.assertEqual(extracted, ai.ExtractedIncome())

    def test_extract_failures_raise_scan_error(self) -> None:
        """Test empty, malformed and failed answers raise scan error."""
        effects: list[object] = [
            {"return_value": ""},
            {"return_value": "not json"},
            {"return_value": "[1, 2]"},
            {"side_effect": OpenAIError("no key")},
        ]
        for effect in effects:
            with patch.object(ai.GenerativeAi, "complete", **effect):  # type: ignore[arg-type]
                with self.assertRaises(DocumentScanError):
                    ai.extract_income_from_image(b"img")


class TestTextGeneration(TestCase):
    """Test advice, reports and chat answers with fallbacks."""

    def test_tax_advice_prompt_contains_limit_usage(self) -> None:
        """Test advice prompt and answer passthrough."""
        profile = UserProfile(group=FopGroup.GROUP_3, tax_rate=0.05)
        with patch.object(ai.GenerativeAi, "complete", return_value="Все добре.") as complete:
            advice = ai.generate_tax_advice(profile, 1_009_104.9)
        self.assertEqual(advice, "Все добре.")
        prompt = complete.call_args.args[1]
        self.assertIn("Використано ліміту: 10.00%", prompt)
        self.assertIn("Військовий збір (1%)", prompt)
        self.assertEqual(complete.call_args.kwargs["max_tokens"], 150)

    def test_tax_advice_fallbacks(self) -> None:
        """Test empty and failed advice answers."""
        profile = UserProfile(group=FopGroup.GROUP_1)
        with patch.object(ai.GenerativeAi, "complete", return_value=""):
            self.assertEqual(ai.generate_tax_advice(profile, 0.0), ai.ADVICE_EMPTY)
        with patch.object(ai.GenerativeAi, "complete", side_effect=OpenAIError("x")):
            self.assertEqual(ai.generate_tax_advice(profile, 0.0), ai.ADVICE_FALLBACK)

    def test_report_content_fallbacks(self) -> None:
        """Test report text passthrough and fallbacks."""
        with patch.object(ai.GenerativeAi, "complete", return_value="Звіт"):
            self.assertEqual(ai.generate_report_content("Звіт_ЄСВ", "data"), "Звіт")
        with patch.object(ai.GenerativeAi, "complete", return_value=""):
            self.assertEqual(ai.generate_report_content("Звіт_ЄСВ", "data"), ai.REPORT_EMPTY)
        with patch.object(ai.GenerativeAi, "complete", side_effect=OSError("down")):
            self.assertEqual(ai.generate_report_content("Звіт_ЄСВ", "data"), ai.REPORT_FALLBACK)

    def test_answer_question_uses_recent_history_and_strips_bold(self) -> None:
        """Test only the last six messages are sent and markdown bold is removed."""
        history = [
            ChatMessage(id=str(i), role="user" if i % 2 else "assistant", content=f"m{i}",
                        timestamp=i)
            for i in range(8)
        ]
        with patch.object(
            ai.GenerativeAi, "complete", return_value="**Відповідь** тут"
        ) as complete:
            answer = ai.answer_question(UserProfile(), history, "Питання?")
        self.assertEqual(answer, "Відповідь тут")
        prompt = complete.call_args.args[1]
        self.assertNotIn("m1", prompt)
        self.assertIn("m2", prompt)
        self.assertIn("Нове запитання користувача: Питання?", prompt)
        self.assertEqual(complete.call_args.kwargs["temperature"], 0.7)

    def test_answer_question_with_attachment_sends_parts(self) -> None:
        """Test attachments become inline image parts before prompt text."""
        with patch.object(ai.GenerativeAi, "complete", return_value="ok") as complete:
            ai.answer_question(UserProfile(), [], "Що це?", [("image/jpeg", b"x")])
        content = complete.call_args.args[1]
        self.assertEqual(content[0]["type"], "image_url")
        self.assertEqual(content[-1]["type"], "text")

    def test_answer_question_failures(self) -> None:
        """Test chat error text and empty-answer fallback."""
        with patch.object(ai.GenerativeAi, "complete", side_effect=OpenAIError("Key missing")):
            self.assertEqual(ai.answer_question(UserProfile(), [], "q"), "Key missing")
        with patch.object(ai.GenerativeAi, "complete", side_effect=ValueError()):
            self.assertEqual(ai.answer_question(UserProfile(), [], "q"), ai.CHAT_FALLBACK)
        with patch.object(ai.GenerativeAi, "complete", return_value=""):
            self.assertEqual(ai.answer_question(UserProfile(), [], "q"), ai.CHAT_EMPTY)


class TestModuleSetup(TestCase):
    """Test module-level declarations."""

    def test_extracted_income_type_hints_resolve(self) -> None:
        """Test the date field annotation refers to the datetime type."""
        hints = typing.get_type_hints(ai.ExtractedIncome)
        self.assertEqual(hints["date"], date | None)
        self.assertIsNone(ai.ExtractedIncome().date)

    def test_failures_log_warnings_to_null_handler(self) -> None:
        """Test fallback failures are not printed through the last-resort handler."""
        self.assertTrue(
            any(isinstance(handler, logging.NullHandler) for handler in ai.logger.handlers)
        )
        with patch.object(ai.GenerativeAi, "complete", side_effect=OpenAIError("no key")):
            with self.assertLogs(ai.logger, level="WARNING") as captured:
                ai.generate_tax_advice(UserProfile(), 0.0)
        self.assertEqual(captured.records[0].levelno, logging.WARNING)
        self.assertIn("Tax advice request failed", captured.output[0])
