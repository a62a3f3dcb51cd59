"""Unit tests for prompt construction."""

from shipyard.build.models import Ticket, TicketType
from shipyard.core.prompts import PromptBuilder, build_test_prompt


class TestBuildTestPrompt:
    """Test selection between web and database test prompts."""

    def test_web_test_prompt(self):
        ticket = Ticket(
            id="WEB-TEST-1", title="Login", description="User logs in", type=TicketType.WEB_TEST
        )

        prompt = build_test_prompt(ticket)

        assert prompt.startswith("Test the following feature implementation")
        assert "User logs in" in prompt

    def test_db_test_prompt(self):
        ticket = Ticket(
            id="DB-TEST-1", title="Tables", description="users table", type=TicketType.DB_TEST
        )

        prompt = build_test_prompt(ticket)

        assert prompt.startswith("Validate the database schema implementation")
        assert "users table" in prompt


class TestPromptBuilder:
    """Test PromptBuilder templates."""

    def test_implementation_prompt(self):
        ticket = Ticket(
            id="BACKEND-1",
            title="Add API",
            description="Expose /users",
            category="api",
        )

        prompt = PromptBuilder().build_implementation(ticket)

        assert "**Ticket ID:** BACKEND-1" in prompt
        assert "**Category:** api" in prompt
        assert "Expose /users" in prompt
        assert '"files_changed": 3' in prompt

    def test_review_prompt(self):
        prompt = PromptBuilder().build_review(Ticket(id="BACKEND-1", title="Add API"))

        assert "git diff" in prompt
        assert '"issues_found"' in prompt

    def test_test_prompt_headed(self):
        prompt = PromptBuilder().build_test(
            "Check login", Ticket(id="WEB-TEST-1", title="Login"), headless=False
        )

        assert "Check login" in prompt
        assert "**Browser mode:** headed" in prompt
        assert "Target URL" not in prompt
