"""Interactive console application for FOP income and tax tracking."""

import sys
import time
from dataclasses import replace
from datetime import datetime
from pathlib import Path

from fop_tax_calculator import ai, ui
from fop_tax_calculator.auth import Identity, build_user_profile, identity_from_email
from fop_tax_calculator.calculator import summarize, transaction_breakdown
from fop_tax_calculator.config import AppLogs, Chat, ChatMessage, Income, Period, UserProfile
from fop_tax_calculator.errors import DocumentScanError, IncomeValidationError
from fop_tax_calculator.incomes import (
    build_income,
    filter_transactions,
    month_options,
    new_id,
)
from fop_tax_calculator.rates import ExchangeRateResolver
from fop_tax_calculator.reports import (
    INCOME_BOOK_FILENAME,
    income_book_csv,
    report_context,
    report_filename,
    write_report,
)
from fop_tax_calculator.store import DocumentStore

_COMMAND_EXCEPTIONS = (
    ArithmeticError,
    AttributeError,
    LookupError,
    OSError,
    RuntimeError,
    TypeError,
    UnicodeError,
    ValueError,
)


class App:
    """Stateful interactive console app; lists are re-fetched after every write."""

    def __init__(self) -> None:
        """Initialize signed-out session state."""
        self.identity: Identity | None = None
        self.profile = UserProfile()
        self.incomes: list[Income] = []
        self.logs = AppLogs()
        self.period: Period = "year"

    @property
    def user_id(self) -> str | None:
        """Return signed-in user key."""
        return self.identity.user_id if self.identity else None

    def run(self) -> None:
        """Sign in, onboard and run interactive command loop."""
        if not self.login():
            return
        if not self.profile.is_onboarded:
            self.profile_settings()
        while True:
            ui.clear_terminal_viewport()
            action = ui.prompt_for_main_menu_action(bool(self.incomes))
            if action == "exit_app":
                self.exit_app()
            command = "profile_settings" if action == "profile" else action
            try:
                getattr(self, command)()
            except _COMMAND_EXCEPTIONS as error:
                self._show_error(error)

    def login(self) -> bool:
        """Resolve identity and load profile and incomes."""
        answer = ui.prompt_for_login()
        if answer == "__back__":
            return False
        email, name = answer
        self.identity = identity_from_email(email, name)
        stored = DocumentStore.get_profile(self.user_id)
        self.profile = build_user_profile(self.identity, stored)
        if self.profile != stored:
            DocumentStore.save_profile(self.user_id, self.profile)
        self._refresh()
        return True

    def profile_settings(self) -> None:
        """CLI command: complete onboarding or change tax profile."""
        profile = ui.prompt_for_profile(self.profile)
        if profile is None:
            return
        DocumentStore.save_profile(self.user_id, profile)
        self.profile = DocumentStore.get_profile(self.user_id)

    def dashboard(self) -> None:
        """CLI command: show period totals, taxes, limit usage and AI status."""
        period = ui.prompt_for_period(self.period)
        if period == "__back__":
            return
        self.period = period
        self._refresh()
        summary = summarize(self.incomes, self.profile, period)
        annual = summarize(self.incomes, self.profile, "year")

        @ui.with_prepare_animation
        def _prepare_dashboard() -> tuple[list, str]:
            rates = ExchangeRateResolver.get_today_rates()
            advice = ai.generate_tax_advice(self.profile, annual.total_income)
            return rates, advice

        rates, advice = _prepare_dashboard()
        ui.print_summary(summary, list(self.logs), rates, advice)
        self.logs.clear()
        ui.wait_for_back_navigation()

    def add(self) -> None:
        """CLI command: add income from manual form."""
        self._save_from_form(None)

    def scan(self) -> None:
        """CLI command: extract income from a document image, then edit and save it."""
        path = ui.prompt_for_image_path()
        if path == "__back__":
            return
        image = path.read_bytes()
        mime_type = ui.IMAGE_EXTENSIONS[path.suffix.lower()]

        @ui.with_prepare_animation
        def _extract() -> ai.ExtractedIncome:
            return ai.extract_income_from_image(image, mime_type)

        try:
            extracted = _extract()
        except DocumentScanError:
            self._save_from_form(
                None,
                error="Could not recognize the document. Please enter the data manually.",
            )
            return
        self._save_from_form(extracted, original_document=str(path))

    def ls(self) -> None:
        """CLI command: list and filter transactions, then show one in detail."""
        self._refresh()
        filters = ui.prompt_for_transaction_filters(month_options(self.incomes))
        if filters == "__back__":
            return
        incomes = filter_transactions(
            self.incomes,
            month=filters.month,
            from_date=filters.from_date,
            to_date=filters.to_date,
            descending=filters.descending,
        )
        ui.print_incomes(incomes)
        if not incomes:
            ui.wait_for_back_navigation()
            return
        income = ui.prompt_for_income(incomes)
        if income == "__back__":
            return
        ui.print_transaction(income, transaction_breakdown(income, self.profile))
        ui.wait_for_back_navigation()

    def edit(self) -> None:
        """CLI command: edit one transaction, keeping its id and source."""
        self._refresh()
        income = ui.prompt_for_income(self.incomes)
        if income == "__back__":
            return
        self._save_from_form(income)

    def rm(self) -> None:
        """CLI command: remove one or more transactions."""
        self._refresh()
        income_ids = ui.prompt_for_income_ids_to_remove(self.incomes)
        if income_ids == "__back__" or not income_ids:
            return
        if not ui.confirm(f"Delete {len(income_ids)} transaction(s)?"):
            return
        for income_id in income_ids:
            DocumentStore.delete_income(self.user_id, income_id)
        self._refresh()

    def reports(self) -> None:
        """CLI command: generate AI report or export book of income."""
        action = ui.prompt_for_report_action()
        if action == "__back__":
            return
        directory = ui.prompt_for_output_dir()
        if directory == "__back__":
            return
        self._refresh()
        if action == "csv":
            path = write_report(directory, INCOME_BOOK_FILENAME, income_book_csv(self.incomes))
        else:
            context = report_context(action, self.profile, self.incomes)

            @ui.with_prepare_animation
            def _generate() -> str:
                return ai.generate_report_content(action, context)

            content = _generate()
            path = write_report(directory, report_filename(action, datetime.now().date()), content)
        print(f"Saved {path}", flush=True)
        ui.wait_for_back_navigation()

    def advisor(self) -> None:
        """CLI command: chat with the AI tax advisor."""
        chats = DocumentStore.get_chats(self.user_id)
        choice = ui.prompt_for_chat(chats)
        if choice == "__back__":
            return
        if choice == "__delete__":
            chat_id = ui.prompt_for_chat_to_delete(chats)
            if chat_id != "__back__":
                DocumentStore.delete_chat(self.user_id, chat_id)
            return
        if choice == "__new__":
            chat = Chat(id=new_id(), title="New chat", timestamp=self._now_ms())
        else:
            chat = next(x for x in chats if x.id == choice)
        while True:
            ui.clear_terminal_viewport()
            ui.print_chat(chat)
            question = ui.prompt_for_question()
            if question == "__back__":
                return
            attachment = ui.prompt_for_question_attachment()
            chat = self._ask_advisor(chat, question.strip(), attachment)
            DocumentStore.save_chat(self.user_id, chat)

    def exit_app(self) -> None:
        """Exit interactive run loop."""
        self.logs.clear()
        sys.exit(0)

    def _ask_advisor(self, chat: Chat, question: str, attachment: Path | None = None) -> Chat:
        """Append question and advisor answer to chat, sending an optional image."""
        attachments: list[tuple[str, bytes]] = []
        content = question
        if attachment is not None:
            mime_type = ui.IMAGE_EXTENSIONS[attachment.suffix.lower()]
            attachments.append((mime_type, attachment.read_bytes()))
            content = f"{question}\n[{attachment.name}]"
        user_message = ChatMessage(new_id(), "user", content, self._now_ms())
        title = question[:40] if not chat.messages else chat.title

        @ui.with_prepare_animation
        def _answer() -> str:
            return ai.answer_question(self.profile, chat.messages, question, attachments)

        answer = ChatMessage(new_id(), "assistant", _answer(), self._now_ms())
        return replace(
            chat,
            title=title,
            messages=(*chat.messages, user_message, answer),
            timestamp=answer.timestamp,
        )

    def _save_from_form(
        self,
        initial: Income | ai.ExtractedIncome | None,
        original_document: str | None = None,
        error: str | None = None,
    ) -> None:
        """Prompt for income form until it validates, then persist the record."""
        editing = initial if isinstance(initial, Income) else None
        while True:
            form = ui.prompt_for_income_form(initial, error)
            if form is None:
                return
            try:
                income = build_income(
                    form.amount,
                    form.currency,
                    form.date,
                    form.description,
                    income_id=editing.id if editing else None,
                    source=editing.source if editing else None,
                    original_document=(
                        editing.original_document if editing else original_document
                    ),
                    client_or_project=form.client_or_project,
                    comment=form.comment,
                    category=form.category,
                    attachments=editing.attachments if editing else (),
                    logs=self.logs,
                )
            except IncomeValidationError as validation_error:
                error = str(validation_error)
                continue
            break
        if editing:
            DocumentStore.update_income(self.user_id, income)
        else:
            DocumentStore.add_income(self.user_id, income)
        self._refresh()
        if self.logs:
            ui.print_logs(list(self.logs))
            self.logs.clear()
            ui.wait_for_back_navigation()

    def _refresh(self) -> None:
        """Re-fetch income list from the store."""
        self.incomes = DocumentStore.get_incomes(self.user_id)

    @staticmethod
    def _now_ms() -> int:
        """Return current timestamp in milliseconds."""
        return int(time.time() * 1000)

    def _show_error(self, error: Exception) -> None:
        """Display framed error for a failed command."""
        ui.print_error(error)
        ui.wait_for_back_navigation()


def main() -> None:
    """CLI entrypoint with clean Ctrl-C exit code."""
    app = App()
    try:
        app.run()
    except KeyboardInterrupt:
        app.exit_app()


if __name__ == "__main__":
    main()
