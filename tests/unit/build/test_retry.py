"""Unit tests for the bounded test/fix loop."""

from unittest.mock import MagicMock

import pytest

from shipyard.build.models import (
    BuildOptions,
    ImplementationResult,
    TestResult,
    Ticket,
    TicketType,
    TokenUsage,
)
from shipyard.build.retry import RetryCoordinator, build_corrective_ticket


@pytest.fixture
def web_test_ticket():
    return Ticket(
        id="WEB-TEST-1",
        title="Login flow",
        description="User can log in",
        type=TicketType.WEB_TEST,
    )


@pytest.fixture
def options(tmp_path):
    return BuildOptions(workspace=tmp_path)


def failing(output="button missing"):
    return TestResult(
        success=False, output=output, tokens_used=TokenUsage(input=10), error=output
    )


def passing():
    return TestResult(success=True, output="all good", tokens_used=TokenUsage(input=10))


def fixed():
    return ImplementationResult(success=True, tokens_used=TokenUsage(output=5), fix_count=1)


class TestBuildCorrectiveTicket:
    """Test corrective ticket synthesis."""

    def test_web_test_fix(self, web_test_ticket):
        corrective = build_corrective_ticket(web_test_ticket, 1, "button missing")

        assert corrective.id == "WEB-TEST-1-FIX-1"
        assert corrective.type == TicketType.FRONTEND
        assert "button missing" in corrective.description
        assert "User can log in" in corrective.description

    def test_db_test_fix_is_schema_work(self):
        ticket = Ticket(id="DB-TEST-1", title="Tables", type=TicketType.DB_TEST)

        assert build_corrective_ticket(ticket, 2, "").type == TicketType.SCHEMA


class TestRetryCoordinator:
    """Test RetryCoordinator attempt accounting."""

    def test_invalid_max_attempts(self):
        with pytest.raises(ValueError):
            RetryCoordinator(MagicMock(), MagicMock(), max_attempts=0)

    def test_passes_first_time(self, web_test_ticket, options):
        implementer = MagicMock()
        tester = MagicMock()
        tester.test.return_value = passing()

        result = RetryCoordinator(implementer, tester).run(web_test_ticket, options)

        assert result.success
        assert result.attempts == 1
        assert result.corrective_tickets == []
        implementer.implement.assert_not_called()

    def test_always_fails_exhausts_budget(self, web_test_ticket, options):
        """Three tester calls and two corrective implementations, never more."""
        implementer = MagicMock()
        implementer.implement.return_value = fixed()
        tester = MagicMock()
        tester.test.return_value = failing()

        result = RetryCoordinator(implementer, tester, max_attempts=3).run(
            web_test_ticket, options
        )

        assert not result.success
        assert result.attempts == 3
        assert tester.test.call_count == 3
        assert implementer.implement.call_count == 2
        assert [t.id for t in result.corrective_tickets] == [
            "WEB-TEST-1-FIX-1",
            "WEB-TEST-1-FIX-2",
        ]
        assert result.error == "button missing"
        assert result.tokens_used == TokenUsage(input=30, output=10)

    def test_fails_twice_then_passes(self, web_test_ticket, options):
        implementer = MagicMock()
        implementer.implement.return_value = fixed()
        tester = MagicMock()
        tester.test.side_effect = [failing(), failing(), passing()]

        result = RetryCoordinator(implementer, tester).run(web_test_ticket, options)

        assert result.success
        assert result.attempts == 3
        assert len(result.corrective_tickets) == 2
        assert result.fixes_applied == 2

    def test_corrective_ticket_sent_to_workspace(self, web_test_ticket, options):
        implementer = MagicMock()
        implementer.implement.return_value = fixed()
        tester = MagicMock()
        tester.test.side_effect = [failing(), passing()]

        RetryCoordinator(implementer, tester).run(web_test_ticket, options)

        corrective, workspace = implementer.implement.call_args.args
        assert corrective.id == "WEB-TEST-1-FIX-1"
        assert workspace == options.workspace

    def test_tester_exception_counts_as_failed_attempt(self, web_test_ticket, options):
        implementer = MagicMock()
        implementer.implement.return_value = fixed()
        tester = MagicMock()
        tester.test.side_effect = [RuntimeError("browser crashed"), passing()]

        result = RetryCoordinator(implementer, tester).run(web_test_ticket, options)

        assert result.success
        assert result.attempts == 2

    def test_implementer_exception_keeps_looping(self, web_test_ticket, options):
        implementer = MagicMock()
        implementer.implement.side_effect = RuntimeError("claude unavailable")
        tester = MagicMock()
        tester.test.return_value = failing()

        result = RetryCoordinator(implementer, tester).run(web_test_ticket, options)

        assert not result.success
        assert tester.test.call_count == 3

    def test_single_attempt_budget(self, web_test_ticket, options):
        implementer = MagicMock()
        tester = MagicMock()
        tester.test.return_value = failing()

        result = RetryCoordinator(implementer, tester, max_attempts=1).run(
            web_test_ticket, options
        )

        assert result.attempts == 1
        implementer.implement.assert_not_called()

    def test_status_messages(self, web_test_ticket, options):
        implementer = MagicMock()
        implementer.implement.return_value = fixed()
        tester = MagicMock()
        tester.test.side_effect = [failing(), passing()]
        messages = []

        RetryCoordinator(implementer, tester).run(
            web_test_ticket, options, on_status=messages.append
        )

        assert messages == [
            "Test attempt 1/3 for WEB-TEST-1",
            "Applying corrective ticket WEB-TEST-1-FIX-1",
            "Test attempt 2/3 for WEB-TEST-1",
        ]

    def test_tester_receives_test_prompt(self, web_test_ticket, options):
        tester = MagicMock()
        tester.test.return_value = passing()

        RetryCoordinator(MagicMock(), tester).run(web_test_ticket, options)

        prompt, ticket = tester.test.call_args.args
        assert "Login flow" in prompt
        assert ticket is web_test_ticket

    def test_cancel_check_raises_through(self, web_test_ticket, options):
        tester = MagicMock()

        def cancelled():
            raise KeyboardInterrupt

        with pytest.raises(KeyboardInterrupt):
            RetryCoordinator(MagicMock(), tester).run(
                web_test_ticket, options, check_cancelled=cancelled
            )
        tester.test.assert_not_called()
