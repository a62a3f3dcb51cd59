"""Prompt construction for Claude CLI invocation."""

from __future__ import annotations

from typing import Optional

from shipyard.build.models import Ticket, TicketType


def build_web_test_prompt(ticket: Ticket) -> str:
    """Generate a structured end-to-end web test prompt from a ticket."""
    return f"""Test the following feature implementation:

**Feature:** {ticket.title}

**Requirements:**
{ticket.description}

**Testing Instructions:**
1. Navigate to the relevant page(s) for this feature
2. Verify all functionality described in the requirements works correctly
3. Check for any console errors or warnings
4. Confirm the implementation matches the ticket description
5. Test both happy path and edge cases

**Success Criteria:**
- All functionality works as described
- No console errors
- Feature behaves correctly in different scenarios

Return a clear success or failure status with details about what was tested and any issues found."""


def build_db_test_prompt(ticket: Ticket) -> str:
    """Generate a structured database validation prompt from a ticket."""
    return f"""Validate the database schema implementation:

**Ticket:** {ticket.title}

**Requirements:**
{ticket.description}

**Validation Instructions:**
1. Connect to the database
2. Verify all tables mentioned in requirements exist
3. Check table structure (column names and types)
4. Validate constraints and indexes if specified
5. Ensure no errors or inconsistencies

**Success Criteria:**
- All required tables exist
- Tables have correct structure
- No schema errors or warnings

Return a clear success or failure status with details about what was validated."""


def build_test_prompt(ticket: Ticket) -> str:
    """Pick the database or web test prompt for a test ticket."""
    if ticket.type == TicketType.DB_TEST:
        return build_db_test_prompt(ticket)
    return build_web_test_prompt(ticket)


JSON_RESULT_INSTRUCTIONS = """
## Output Requirements

When you are done, you MUST end your reply with a JSON object with this structure:

```json
{json_shape}
```

The JSON MUST be valid and parseable. You can include other text in your output,
but the JSON object must be clearly identifiable (enclosed in braces).
"""


class PromptBuilder:
    """Constructs prompts for the implement, review and test collaborators."""

    def build_implementation(self, ticket: Ticket) -> str:
        """Construct the implementation prompt for one ticket.

        Args:
            ticket: Ticket to implement (corrective tickets included)

        Returns:
            Complete prompt string for Claude CLI execution
        """
        category = f"\n**Category:** {ticket.category}" if ticket.category else ""
        return f"""You are implementing a single ticket in the current repository.

**Ticket ID:** {ticket.id}
**Title:** {ticket.title}
**Type:** {ticket.type.value}{category}

## Requirements

{ticket.description}

## Your Task

1. Explore the codebase to understand existing patterns
2. Implement all requirements of the ticket, following those patterns
3. Keep changes minimal and focused on this ticket
4. Do NOT commit; changes are committed after validation
""" + JSON_RESULT_INSTRUCTIONS.format(
            json_shape='{"success": true, "files_changed": 3, "error": null}'
        )

    def build_review(self, ticket: Ticket) -> str:
        """Construct the git-diff review prompt for one ticket."""
        return f"""You are reviewing uncommitted changes made for a ticket.

**Ticket ID:** {ticket.id}
**Title:** {ticket.title}

## Ticket Intent

{ticket.description}

## Your Task

1. Run `git diff` and `git status` to see the uncommitted changes
2. Check the changes against the ticket intent and existing conventions
3. Fix every issue you find directly in the working tree
4. Do NOT commit
""" + JSON_RESULT_INSTRUCTIONS.format(
            json_shape='{"issues_found": 2, "fixes_applied": 2}'
        )

    def build_test(
        self,
        test_prompt: str,
        ticket: Ticket,
        url: Optional[str] = None,
        headless: bool = True,
    ) -> str:
        """Wrap a test prompt with target and reporting instructions."""
        target = f"\n**Target URL:** {url}" if url else ""
        mode = "headless" if headless else "headed"
        return f"""You are an end-to-end tester for ticket {ticket.id}.{target}
**Browser mode:** {mode}

{test_prompt}
""" + JSON_RESULT_INSTRUCTIONS.format(
            json_shape='{"success": false, "output": "What was tested and what failed"}'
        )
