"""UI helpers for questionary prompts and terminal interaction."""

import contextlib
import functools
import os
import sys
import termios
import threading
import time
import traceback
from dataclasses import dataclass
from datetime import date
from io import UnsupportedOperation
from pathlib import Path
from typing import Any, Callable, Generator, Literal, ParamSpec, TypeVar, cast

import questionary
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.key_binding.key_bindings import merge_key_bindings
from prompt_toolkit.key_binding.key_processor import KeyPressEvent
from prompt_toolkit.shortcuts import clear as prompt_toolkit_clear
from questionary.prompts.path import GreatUXPathCompleter
from questionary.question import Question
from tabulate import tabulate

from fop_tax_calculator.ai import ExtractedIncome
from fop_tax_calculator.config import (
    CURRENCIES,
    TAX_RATE_3,
    TAX_RATE_5,
    Chat,
    FopGroup,
    Income,
    Period,
    PeriodSummary,
    TransactionBreakdown,
    UserProfile,
)
from fop_tax_calculator.rates import NbuRate
from fop_tax_calculator.reports import REPORT_TYPES
from fop_tax_calculator.validators import (
    validate_amount,
    validate_date,
    validate_email,
    validate_optional_date,
    validate_required,
)

ParamsT = ParamSpec("ParamsT")
ResultT = TypeVar("ResultT")
MainMenuAction = Literal[
    "dashboard", "add", "scan", "ls", "edit", "rm", "reports", "advisor", "profile", "exit_app"
]
BackAction = Literal["__back__"]
IMAGE_EXTENSIONS = {".jpg": "image/jpeg", ".jpeg": "image/jpeg", ".png": "image/png"}


@dataclass(frozen=True, slots=True)
class IncomeForm:
    """Raw income form answers."""

    amount: str
    currency: str
    date: str
    description: str
    client_or_project: str
    category: str
    comment: str


@dataclass(frozen=True, slots=True)
class TransactionFilters:
    """Transaction list filter answers."""

    month: str | None
    from_date: date | None
    to_date: date | None
    descending: bool


@contextlib.contextmanager
def _disable_tty_input_echo() -> Generator[None, None, None]:
    """Disable terminal input echo to avoid loader line corruption."""
    try:
        fd = sys.stdin.fileno()
    except (AttributeError, OSError, UnsupportedOperation):
        yield
        return
    if not os.isatty(fd):
        yield
        return
    old = termios.tcgetattr(fd)
    new = termios.tcgetattr(fd)
    new[3] &= ~(termios.ECHO | termios.ICANON)
    termios.tcsetattr(fd, termios.TCSANOW, new)
    termios.tcflush(fd, termios.TCIFLUSH)
    try:
        yield
    finally:
        termios.tcsetattr(fd, termios.TCSANOW, old)
        termios.tcflush(fd, termios.TCIFLUSH)


def _ask(
    question: Question,
    disable_escape_back: bool = False,
    block_typed_input: bool = False,
) -> Any:
    """Run a Questionary prompt with built-in ESC back handling."""
    if not disable_escape_back:
        escape_bindings = KeyBindings()

        @escape_bindings.add("escape", eager=True)
        def _(_event: KeyPressEvent) -> None:
            """Exit prompt immediately and return a back sentinel."""
            _event.app.exit(result="__back__")

        question.application.key_bindings = merge_key_bindings(
            [escape_bindings, question.application.key_bindings]
        )
    if block_typed_input:
        readonly_bindings = KeyBindings()

        def _ignore_keypress(_event: KeyPressEvent) -> None:
            """Ignore blocked key presses for read-only back prompts."""
            return

        readonly_bindings.add("enter", eager=True)(_ignore_keypress)
        for codepoint in range(32, 127):
            readonly_bindings.add(chr(codepoint), eager=True)(_ignore_keypress)
        question.application.key_bindings = merge_key_bindings(
            [readonly_bindings, question.application.key_bindings]
        )
    question.application.ttimeoutlen = 0
    question.application.timeoutlen = 0
    return question.unsafe_ask()


def clear_terminal_viewport() -> None:
    """Clear terminal viewport and scrollback, then reset cursor to top-left."""
    prompt_toolkit_clear()
    sys.stdout.write("\x1b[3J\x1b[2J\x1b[H")
    sys.stdout.flush()


def prompt_for_main_menu_action(has_incomes: bool) -> MainMenuAction:
    """Prompt for one main-menu action and return selected command key."""
    disabled = None if has_incomes else "No transactions yet"
    question = questionary.select(
        "FOP Tax Calculator",
        choices=[
            questionary.Choice("Dashboard", "dashboard"),
            questionary.Choice("Add income", "add"),
            questionary.Choice("Scan document", "scan"),
            questionary.Choice("List transactions", "ls", disabled=disabled),
            questionary.Choice("Edit transaction", "edit", disabled=disabled),
            questionary.Choice("Remove transactions", "rm", disabled=disabled),
            questionary.Choice("Reports", "reports"),
            questionary.Choice("Tax advisor", "advisor"),
            questionary.Choice("Profile", "profile"),
            questionary.Choice("Exit", "exit_app"),
        ],
        erase_when_done=True,
    )
    return cast(MainMenuAction, _ask(question, disable_escape_back=True))


def prompt_for_login() -> tuple[str, str] | BackAction:
    """Prompt for email and display name."""
    email = _ask(
        questionary.text("Email [esc to exit]:", validate=validate_email, erase_when_done=True)
    )
    if email == "__back__":
        return "__back__"
    name = _ask(questionary.text("Name (optional):", erase_when_done=True))
    if name == "__back__":
        return "__back__"
    return str(email).strip(), str(name).strip()


def prompt_for_profile(profile: UserProfile) -> UserProfile | None:
    """Prompt for group, tax rate and employees flag; return updated profile."""
    group = _ask(
        questionary.select(
            "FOP group [esc to back]:",
            choices=[
                questionary.Choice("Group 1", FopGroup.GROUP_1),
                questionary.Choice("Group 2", FopGroup.GROUP_2),
                questionary.Choice("Group 3", FopGroup.GROUP_3),
            ],
            default=FopGroup(profile.group),
            erase_when_done=True,
        )
    )
    if group == "__back__":
        return None
    tax_rate = profile.tax_rate
    if group == FopGroup.GROUP_3:
        tax_rate = _ask(
            questionary.select(
                "Single tax rate [esc to back]:",
                choices=[
                    questionary.Choice("5%", TAX_RATE_5),
                    questionary.Choice("3% (VAT payer)", TAX_RATE_3),
                ],
                erase_when_done=True,
            )
        )
        if tax_rate == "__back__":
            return None
    has_employees = _ask(
        questionary.confirm(
            "Do you have employees?",
            default=profile.has_employees,
            erase_when_done=True,
        )
    )
    if has_employees == "__back__":
        return None
    return UserProfile(
        name=profile.name,
        email=profile.email,
        photo_url=profile.photo_url,
        group=FopGroup(group),
        tax_rate=float(tax_rate),
        has_employees=bool(has_employees),
        is_onboarded=True,
    )


def prompt_for_period(default: Period = "year") -> Period | BackAction:
    """Prompt for dashboard period."""
    question = questionary.select(
        "Period [esc to back]:",
        choices=[questionary.Choice("Month", "month"), questionary.Choice("Year", "year")],
        default=default,
        erase_when_done=True,
    )
    return cast(Period | BackAction, _ask(question))


def prompt_for_income_form(
    initial: Income | ExtractedIncome | None = None,
    error: str | None = None,
) -> IncomeForm | None:
    """Collect income form answers, prefilled from an edited or scanned record."""
    if error:
        print(f"\x1b[31m{error}\x1b[0m", flush=True)
    amount = getattr(initial, "amount", None)
    initial_date = getattr(initial, "date", None) or date.today()
    text_fields: list[tuple[str, str, Callable[[str], bool | str] | None, str]] = [
        ("amount", "Amount", validate_amount, "" if amount is None else repr(float(amount))),
        ("date", "Date (YYYY-MM-DD)", validate_date, initial_date.isoformat()),
        ("description", "Description", None, getattr(initial, "description", None) or ""),
        (
            "client_or_project",
            "Client / project",
            None,
            getattr(initial, "client_or_project", None) or "",
        ),
        ("category", "Category", None, getattr(initial, "category", None) or ""),
        ("comment", "Comment", None, getattr(initial, "comment", None) or ""),
    ]
    answers: dict[str, str] = {}
    currency = _ask(
        questionary.select(
            "Currency [esc to back]:",
            choices=list(CURRENCIES),
            default=getattr(initial, "currency", None) or CURRENCIES[0],
            erase_when_done=True,
        )
    )
    if currency == "__back__":
        return None
    answers["currency"] = str(currency)
    for name, label, validate, default in text_fields:
        kwargs: dict[str, Any] = {"default": default, "erase_when_done": True}
        if validate is not None:
            kwargs["validate"] = validate
        answer = _ask(questionary.text(f"{label} [esc to back]:", **kwargs))
        if answer == "__back__":
            return None
        answers[name] = str(answer).strip()
    return IncomeForm(**answers)


def prompt_for_image_path() -> Path | BackAction:
    """Prompt for a document image path."""

    def _file_filter(raw: str) -> bool:
        path = Path(raw).expanduser().resolve()
        return path.is_dir() or (path.is_file() and path.suffix.lower() in IMAGE_EXTENSIONS)

    def _validate(raw: str) -> bool | str:
        if not (text := raw.strip()):
            return "This field is required."
        if not (path := Path(text).expanduser().resolve()).is_file():
            return "Path must be a file."
        if path.suffix.lower() not in IMAGE_EXTENSIONS:
            return f"Only {', '.join(sorted(IMAGE_EXTENSIONS))} files are supported."
        return True

    question = questionary.text(
        "Document image [esc to back]:",
        validate=_validate,
        completer=GreatUXPathCompleter(file_filter=_file_filter, expanduser=True),
        erase_when_done=True,
    )
    answer = _ask(question)
    if answer == "__back__":
        return "__back__"
    return Path(str(answer).strip()).expanduser().resolve()


def prompt_for_transaction_filters(months: list[str]) -> TransactionFilters | BackAction:
    """Prompt for month, date range and amount ordering."""
    month = _ask(
        questionary.select(
            "Month [esc to back]:",
            choices=[questionary.Choice("All months", "all"), *months],
            erase_when_done=True,
        )
    )
    if month == "__back__":
        return "__back__"
    bounds: list[date | None] = []
    for label in ("From date (YYYY-MM-DD, optional)", "To date (YYYY-MM-DD, optional)"):
        raw = _ask(
            questionary.text(f"{label}:", validate=validate_optional_date, erase_when_done=True)
        )
        if raw == "__back__":
            return "__back__"
        bounds.append(date.fromisoformat(raw.strip()) if str(raw).strip() else None)
    order = _ask(
        questionary.select(
            "Sort by amount [esc to back]:",
            choices=[
                questionary.Choice("Largest first", True),
                questionary.Choice("Smallest first", False),
            ],
            erase_when_done=True,
        )
    )
    if order == "__back__":
        return "__back__"
    return TransactionFilters(
        month=None if month == "all" else str(month),
        from_date=bounds[0],
        to_date=bounds[1],
        descending=bool(order),
    )


def _income_label(income: Income) -> str:
    """Return one-line income label for selection prompts."""
    return (
        f"#{income.id} {income.date.isoformat()} {income.amount:,.2f} {income.currency} "
        f"{income.description}".rstrip()
    )


def prompt_for_income(incomes: list[Income]) -> Income | BackAction:
    """Prompt for one income record."""
    question = questionary.select(
        "Select transaction [esc to back]:",
        choices=[questionary.Choice(_income_label(x), x) for x in incomes],
        erase_when_done=True,
    )
    return cast(Income | BackAction, _ask(question))


def prompt_for_income_ids_to_remove(incomes: list[Income]) -> list[str] | BackAction:
    """Prompt for income ids to remove."""
    question = questionary.checkbox(
        "Select transactions to remove [esc to back]:",
        choices=[questionary.Choice(_income_label(x), x.id) for x in incomes],
        erase_when_done=True,
    )
    return cast(list[str] | BackAction, _ask(question))


def prompt_for_report_action() -> str | BackAction:
    """Prompt for report type or CSV export."""
    question = questionary.select(
        "Reports [esc to back]:",
        choices=[
            *(questionary.Choice(f"{label} (AI)", key) for key, label in REPORT_TYPES.items()),
            questionary.Choice("Book of income (CSV)", "csv"),
        ],
        erase_when_done=True,
    )
    return cast(str | BackAction, _ask(question))


def prompt_for_output_dir() -> Path | BackAction:
    """Prompt for directory where exported files are written."""
    question = questionary.path(
        "Output directory [esc to back]:",
        default=str(Path.cwd()),
        only_directories=True,
        erase_when_done=True,
    )
    answer = _ask(question)
    if answer == "__back__":
        return "__back__"
    return Path(str(answer).strip()).expanduser().resolve()


def prompt_for_chat(chats: list[Chat]) -> str | BackAction:
    """Prompt for existing chat id or a new chat."""
    question = questionary.select(
        "Advisor chats [esc to back]:",
        choices=[
            questionary.Choice("New chat", "__new__"),
            *(questionary.Choice(chat.title, chat.id) for chat in chats),
            *([questionary.Choice("Delete a chat", "__delete__")] if chats else []),
        ],
        erase_when_done=True,
    )
    return cast(str | BackAction, _ask(question))


def prompt_for_chat_to_delete(chats: list[Chat]) -> str | BackAction:
    """Prompt for chat id to delete."""
    question = questionary.select(
        "Delete chat [esc to back]:",
        choices=[questionary.Choice(chat.title, chat.id) for chat in chats],
        erase_when_done=True,
    )
    return cast(str | BackAction, _ask(question))


def prompt_for_question() -> str | BackAction:
    """Prompt for advisor question."""
    question = questionary.text(
        "Your question [esc to back]:",
        validate=validate_required,
        erase_when_done=True,
    )
    return cast(str | BackAction, _ask(question))


def prompt_for_question_attachment() -> Path | None:
    """Offer one document image to send along with the advisor question."""
    if not confirm("Attach a document image?"):
        return None
    path = prompt_for_image_path()
    return None if path == "__back__" else path


def confirm(message: str) -> bool:
    """Ask yes/no confirmation; ESC counts as no."""
    answer = _ask(questionary.confirm(message, default=False, erase_when_done=True))
    return answer is True


def with_prepare_animation(
    method: Callable[ParamsT, ResultT],
) -> Callable[ParamsT, ResultT]:
    """Decorator that runs method body with prepare animation and tty guard."""

    @functools.wraps(method)
    def _wrapped(*args: ParamsT.args, **kwargs: ParamsT.kwargs) -> ResultT:
        stop_event = threading.Event()

        def _run_prepare_animation() -> None:
            """Render a bouncing-star loader with cycling dot suffix."""
            spinner = "|/-\\"
            bar_width = 18
            index = 0
            while not stop_event.is_set():
                bounce = index % (2 * bar_width - 2)
                position = bounce if bounce < bar_width else (2 * bar_width - 2 - bounce)
                track = ["-"] * bar_width
                track[position] = "*"
                dots = "." * (index % 3 + 1)
                message = (
                    f"\rWaiting for AI{dots.ljust(3)} "
                    f"{spinner[index % len(spinner)]} [{''.join(track)}]"
                )
                sys.stdout.write(message)
                sys.stdout.flush()
                index += 1
                time.sleep(0.12)
            sys.stdout.write("\r\x1b[2K")
            sys.stdout.flush()

        loader_thread = threading.Thread(target=_run_prepare_animation, daemon=True)
        with _disable_tty_input_echo():
            loader_thread.start()
            try:
                return method(*args, **kwargs)
            finally:
                stop_event.set()
                loader_thread.join()

    return _wrapped


def wait_for_back_navigation() -> None:
    """Display read-only back prompt and wait until user dismisses it."""
    question = questionary.text("[esc to back]", erase_when_done=True)
    _ask(question, block_typed_input=True)


def print_logs(logs: list[str]) -> None:
    """Print pending user-visible log lines."""
    if logs:
        print("\n".join(logs), flush=True)


def print_incomes(incomes: list[Income]) -> None:
    """Render and print one table with income records."""
    table = tabulate(
        [
            [
                income.id,
                income.date.isoformat(),
                f"{income.amount:,.2f}",
                income.currency,
                "" if income.amount_uah is None else f"{income.amount_uah:,.2f}",
                income.description,
                income.client_or_project or "",
                income.source,
            ]
            for income in incomes
        ],
        headers=["ID", "Date", "Amount", "Currency", "UAH", "Description", "Client", "Source"],
        tablefmt="simple_outline",
        disable_numparse=True,
        colalign=("left", "left", "right", "left", "right", "left", "left", "left"),
    )
    print(table, flush=True)


def print_transaction(income: Income, breakdown: TransactionBreakdown) -> None:
    """Render one transaction with its tax estimate."""
    rows = [
        ["Date", income.date.isoformat()],
        ["Amount", f"{income.amount:,.2f} {income.currency}"],
        [
            "Amount UAH",
            "not converted" if income.amount_uah is None else f"{income.amount_uah:,.2f}",
        ],
        ["Description", income.description],
        ["Client / project", income.client_or_project or ""],
        ["Category", income.category or ""],
        ["Comment", income.comment or ""],
        ["Source", income.source],
        ["Attachments", str(len(income.attachments))],
        ["Estimated tax", f"{breakdown.tax_amount:,.2f}"],
        ["Net income", f"{breakdown.net_income:,.2f}"],
    ]
    print(tabulate(rows, tablefmt="simple_outline", disable_numparse=True), flush=True)


def print_summary(
    summary: PeriodSummary,
    logs: list[str],
    rates: list[NbuRate],
    advice: str | None = None,
) -> None:
    """Render dashboard summary output and print it."""
    df = summary.to_dataframe()
    table = tabulate(
        df,
        headers="keys",
        tablefmt="simple_outline",
        showindex=True,
        disable_numparse=True,
        colalign=("left", "right"),
    )
    lines = [*logs, table]
    if rates:
        lines.append(
            "NBU: " + ", ".join(f"{x.code} {x.rate:.4f} ({x.date:%d.%m.%Y})" for x in rates)
        )
    if summary.limit_alert:
        lines.append(
            f"\x1b[33mLimit usage is {summary.limit_status.percent_used:.1f}% of "
            f"{summary.limit_status.ceiling:,.0f} UAH.\x1b[0m"
        )
    if summary.unconverted_income:
        lines.append(
            "\x1b[33mNot counted (no NBU rate): "
            + ", ".join(
                f"{amount:,.2f} {code}" for code, amount in summary.unconverted_income.items()
            )
            + "\x1b[0m"
        )
    if advice:
        lines.append(advice)
    print("\n".join(lines), flush=True)


def print_chat(chat: Chat) -> None:
    """Print chat conversation."""
    for message in chat.messages:
        color = "36" if message.role == "user" else "32"
        print(f"\x1b[{color}m{message.role}\x1b[0m: {message.content}", flush=True)


def print_error(error: Exception) -> None:
    """Render and print framed red traceback for command errors."""
    traceback_text = "".join(
        traceback.format_exception(type(error), error, error.__traceback__)
    ).rstrip("\n")
    error_lines = traceback_text.splitlines()
    width = max(len(line) for line in error_lines)
    framed_error = "\n".join(
        [
            f"┌{'─' * (width + 2)}┐",
            *[f"│ {line.ljust(width)} │" for line in error_lines],
            f"└{'─' * (width + 2)}┘",
        ]
    )
    print(f"\x1b[31m{framed_error}\x1b[0m", flush=True)
