"""Generative-AI helpers for document scanning, reports and tax advice."""

import json
import logging
import os
import re
from base64 import b64encode
from collections.abc import Sequence
from dataclasses import dataclass
import datetime as dt
from typing import Any

from openai import OpenAI, OpenAIError

from fop_tax_calculator.config import (
    CURRENCIES,
    FLAT_TAX,
    FOP_LIMITS,
    MILITARY_LEVY_FIXED,
    MILITARY_LEVY_RATE_G3,
    MONTHLY_ESV,
    ChatMessage,
    FopGroup,
    UserProfile,
)
from fop_tax_calculator.errors import DocumentScanError
from fop_tax_calculator.validators import clean_number

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

_AI_EXCEPTIONS = (OpenAIError, OSError, ValueError, LookupError, TypeError)

ADVICE_FALLBACK = "Система працює. Слідкуйте за лімітами."
ADVICE_EMPTY = "Статус нормальний."
REPORT_FALLBACK = "Сервіс звітності тимчасово недоступний."
REPORT_EMPTY = "Помилка генерації звіту."
CHAT_FALLBACK = "Вибачте, сталася помилка. Перевірте налаштування API ключа."
CHAT_EMPTY = "Вибачте, не вдалося отримати відповідь."
SCAN_FAILED = "Не вдалося обробити документ."

SYSTEM_INSTRUCTION_OCR = """Ти спеціалізований AI-асистент для розпізнавання українських податкових документів (ФОП).
Проаналізуй надане зображення (інвойс, чек або банківську виписку).
Витягни наступні поля строго у форматі JSON:
- "amount": number (загальна сума)
- "currency": string (одне з "UAH", "USD", "EUR")
- "date": string (формат YYYY-MM-DD)
- "description": string (короткий опис послуги чи товару українською мовою)

Якщо документ нечіткий, поверни null для полів. Не додавай markdown блоків. Тільки чистий JSON."""

_RULES_2026 = f"""Правила 2026 року:
- 1 група: ЄП {FLAT_TAX[FopGroup.GROUP_1]:.2f} грн/міс, ЄСВ {MONTHLY_ESV:.2f} грн/міс, ВЗ {MILITARY_LEVY_FIXED:.2f} грн/міс. Ліміт доходу: {FOP_LIMITS[FopGroup.GROUP_1]:,.0f} грн/рік.
- 2 група: ЄП {FLAT_TAX[FopGroup.GROUP_2]:.0f} грн/міс, ЄСВ {MONTHLY_ESV:.2f} грн/міс, ВЗ {MILITARY_LEVY_FIXED:.2f} грн/міс. Ліміт доходу: {FOP_LIMITS[FopGroup.GROUP_2]:,.0f} грн/рік.
- 3 група: ЄП 5% (або 3% з ПДВ) від доходу + ВЗ 1% від доходу + ЄСВ {MONTHLY_ESV:.2f} грн/міс. Ліміт доходу: {FOP_LIMITS[FopGroup.GROUP_3]:,.0f} грн/рік."""

SYSTEM_INSTRUCTION_ADVISOR = f"""Ти Taxify AI, експертний податковий консультант для ФОП (Україна) на 2026 рік.
Твій тон: професійний, лаконічний, доброзичливий. Спілкуйся виключно українською мовою.

{_RULES_2026}

Пояснюй податкові ситуації простою мовою. Наводь конкретні приклади розрахунків."""

SYSTEM_INSTRUCTION_REPORT = (
    "Ти генератор податкових звітів для ФОП. Створи детальний, структурований звіт "
    "українською мовою на основі наданих даних. Використовуй офіційний діловий стиль. "
    "Враховуй ставки 2026 року (Військовий збір)."
)

_JSON_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


@dataclass(frozen=True, slots=True)
class ExtractedIncome:
    """Fields recognized on a scanned document; unrecognized fields are None."""

    amount: float | None = None
    currency: str | None = None
    date: dt.date | None = None
    description: str | None = None


class GenerativeAi:
    """Singleton class wrapping an OpenAI-compatible chat-completions endpoint."""

    _api_key_env_var_name = "GEMINI_API_KEY"
    _base_url_env_var_name = "FOP_TAX_CALCULATOR_AI_BASE_URL"
    _model_env_var_name = "FOP_TAX_CALCULATOR_AI_MODEL"
    _default_base_url = "https://generativelanguage.googleapis.com/v1beta/openai/"
    _default_model = "gemini-2.5-flash"

    @classmethod
    def model(cls) -> str:
        """Return configured model name."""
        return os.environ.get(cls._model_env_var_name) or cls._default_model

    @classmethod
    def client(cls) -> OpenAI:
        """Build client from environment configuration."""
        api_key = os.environ.get(cls._api_key_env_var_name)
        if not api_key:
            raise OpenAIError(f"API key not found. Set {cls._api_key_env_var_name}.")
        return OpenAI(
            api_key=api_key,
            base_url=os.environ.get(cls._base_url_env_var_name) or cls._default_base_url,
        )

    @classmethod
    def complete(
        cls,
        system_instruction: str,
        content: str | list[dict[str, Any]],
        max_tokens: int | None = None,
        temperature: float | None = None,
        json_output: bool = False,
    ) -> str:
        """Send one system+user exchange and return the answer text."""
        kwargs: dict[str, Any] = {}
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        if temperature is not None:
            kwargs["temperature"] = temperature
        if json_output:
            kwargs["response_format"] = {"type": "json_object"}
        response = cls.client().chat.completions.create(
            model=cls.model(),
            messages=[
                {"role": "system", "content": system_instruction},
                {"role": "user", "content": content},
            ],
            **kwargs,
        )
        return response.choices[0].message.content or ""


def _image_part(image: bytes, mime_type: str) -> dict[str, Any]:
    """Build inline image content part."""
    encoded = b64encode(image).decode("ascii")
    return {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{encoded}"}}


def _parse_extracted_income(text: str) -> ExtractedIncome:
    """Parse model JSON answer into extracted income fields."""
    payload = json.loads(_JSON_FENCE.sub("", text.strip()))
    if not isinstance(payload, dict):
        raise ValueError("Extraction answer is not a JSON object.")
    amount = payload.get("amount")
    currency = str(payload.get("currency") or "").upper()
    raw_date = payload.get("date")
    try:
        parsed_date = dt.date.fromisoformat(str(raw_date)) if raw_date else None
    except ValueError:
        parsed_date = None
    description = payload.get("description")
    return ExtractedIncome(
        amount=clean_number(amount) if amount is not None else None,
        currency=currency if currency in CURRENCIES else None,
        date=parsed_date,
        description=str(description).strip() if description else None,
    )


def extract_income_from_image(image: bytes, mime_type: str = "image/jpeg") -> ExtractedIncome:
    """Recognize amount, currency, date and description on a document image."""
    try:
        text = GenerativeAi.complete(
            SYSTEM_INSTRUCTION_OCR,
            [_image_part(image, mime_type)],
            json_output=True,
        )
        if not text:
            raise ValueError("No text returned from AI.")
        return _parse_extracted_income(text)
    except _AI_EXCEPTIONS as error:
        logger.warning("Document scan failed: %s", error)
        raise DocumentScanError(SCAN_FAILED) from error


def _tax_context(profile: UserProfile, total_income: float) -> str:
    """Describe estimated taxes for the advice prompt."""
    if profile.group == FopGroup.GROUP_3:
        single_tax = total_income * profile.tax_rate
        military_levy = total_income * MILITARY_LEVY_RATE_G3
        return (
            f"Єдиний податок: {single_tax:.0f} грн. "
            f"Військовий збір (1%): {military_levy:.0f} грн."
        )
    return f"Фіксований Військовий збір: {MILITARY_LEVY_FIXED} грн/міс."


def _user_context(profile: UserProfile) -> str:
    """Describe the user profile for prompts."""
    return (
        f"Користувач: {profile.name}, Група ФОП: {int(profile.group)}, "
        f"Ставка податку: {profile.tax_rate * 100:.0f}%, "
        f"Наявність співробітників: {'Так' if profile.has_employees else 'Ні'}"
    )


def generate_tax_advice(profile: UserProfile, total_income: float) -> str:
    """Return a short status about taxes and limit usage, or a fallback text."""
    limit = FOP_LIMITS[profile.group]
    prompt = f"""Профіль користувача (2026 рік):
- Група ФОП: {int(profile.group)}
- Ставка податку: {profile.tax_rate * 100:g}%
- Наявність співробітників: {'Так' if profile.has_employees else 'Ні'}

Поточний стан:
- Загальний дохід (з початку року): {total_income} UAH
- Розрахункові податки: {_tax_context(profile, total_income)}
- Ліміт групи: {limit:.0f} UAH
- Використано ліміту: {total_income / limit * 100:.2f}%

Надай короткий (2 речення) статус українською мовою.
Якщо ліміт близький (>80%), попередь ввічливо."""
    try:
        answer = GenerativeAi.complete(SYSTEM_INSTRUCTION_ADVISOR, prompt, max_tokens=150)
    except _AI_EXCEPTIONS as error:
        logger.warning("Tax advice request failed: %s", error)
        return ADVICE_FALLBACK
    return answer or ADVICE_EMPTY


def generate_report_content(report_type: str, data_summary: str) -> str:
    """Return AI-written report text, or a fallback text."""
    prompt = (
        f'Згенеруй текст для звіту: "{report_type}".\n'
        f"Дані для звіту:\n{data_summary}\n\n"
        "Сформуй це як офіційний текстовий документ з заголовками та підсумками."
    )
    try:
        return GenerativeAi.complete(SYSTEM_INSTRUCTION_REPORT, prompt) or REPORT_EMPTY
    except _AI_EXCEPTIONS as error:
        logger.warning("Report generation failed: %s", error)
        return REPORT_FALLBACK


def answer_question(
    profile: UserProfile,
    history: Sequence[ChatMessage],
    question: str,
    attachments: Sequence[tuple[str, bytes]] = (),
) -> str:
    """Return advisor answer for a question within the recent conversation."""
    conversation = "\n".join(
        f"{'Користувач' if message.role == 'user' else 'Асистент'}: {message.content}"
        for message in history[-6:]
    )
    history_block = f"Історія розмови:\n{conversation}\n\n" if conversation else ""
    prompt = (
        f"{_user_context(profile)}\n\n"
        f"{history_block}"
        f"Нове запитання користувача: {question}\n\n"
        "Дай детальну, професійну відповідь українською мовою. Будь конкретним та корисним. "
        "Якщо потрібно, наведи приклади розрахунків."
    )
    content: str | list[dict[str, Any]] = prompt
    if attachments:
        content = [
            *(_image_part(data, mime_type) for mime_type, data in attachments),
            {"type": "text", "text": prompt},
        ]
    try:
        answer = GenerativeAi.complete(
            SYSTEM_INSTRUCTION_ADVISOR,
            content,
            max_tokens=5048,
            temperature=0.7,
        )
    except _AI_EXCEPTIONS as error:
        logger.warning("Advisor chat request failed: %s", error)
        return str(error) or CHAT_FALLBACK
    return (answer or CHAT_EMPTY).replace("**", "")
