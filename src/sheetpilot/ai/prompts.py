"""Prompt templates and fixed conversational phrases for the spreadsheet agent."""

from __future__ import annotations

from typing import Iterable

# Fixed conversational phrases appended to the log around tool outcomes.
CONTINUE_PROMPT = "What next?"
DENIAL_PROMPT = "I do not want to proceed with this tool call."
FALLBACK_REPLY = "I received your message."
TRUNCATION_NOTICE = (
    "[Your previous response was cut off because it reached the output token limit. "
    "Any tool calls it contained have been honored. Please continue where you left off.]"
)

SUMMARY_OPEN_TAG = "<summary>"
SUMMARY_CLOSE_TAG = "</summary>"


def system_prompt(*, spreadsheet_id: str | None = None, tool_names: Iterable[str] = ()) -> str:
    """Return the system prompt for spreadsheet conversations."""

    tools = ", ".join(sorted(tool_names)) or "none"
    target = f"The active spreadsheet id is {spreadsheet_id}." if spreadsheet_id else ""
    return f"""You are a careful assistant that helps people work with a Google Sheets spreadsheet.
{target}

## Tools
Available tools: {tools}.
- Read before you write: inspect ranges or sheet metadata before changing data.
- Use A1 notation for ranges (e.g. "Sheet1!A1:C10").
- write_range, append_row, clear_range and create_chart change the spreadsheet. They only run
  after the user approves them, so describe the intended change plainly when you request one.
- If the user declines a change, do not retry it unless they ask again.

## Answers
Keep replies short and concrete. Quote cell values exactly when they matter."""


def summary_request_prompt() -> str:
    """Instruction asking the engine to condense the conversation so far."""

    return f"""You have been working on the task described above but have not yet completed it. Write a continuation summary that will allow you (or another instance of yourself) to resume work efficiently in a future context window where the conversation history will be replaced with this summary. Your summary should be structured, concise, and actionable. Include:

1. **Task Overview**
   - The user's core request and success criteria
   - Any clarifications or constraints they specified

2. **Current State**
   - What has been completed so far
   - Sheets, ranges and values read or changed
   - Key outputs or artifacts produced

3. **Important Discoveries**
   - Technical constraints or requirements uncovered
   - Decisions made and their rationale
   - Errors encountered and how they were resolved
   - Approaches that did not work and why

4. **Next Steps**
   - Specific actions needed to complete the task
   - Any blockers or open questions to resolve
   - Priority order if multiple steps remain

5. **Context to Preserve**
   - User preferences or formatting requirements
   - Domain-specific details that aren't obvious
   - Any promises made to the user

Be concise but complete. Err on the side of including information that would prevent duplicate work or repeated mistakes. Write in a way that enables immediate resumption of the task.

Wrap your summary in {SUMMARY_OPEN_TAG}{SUMMARY_CLOSE_TAG} tags."""


def summary_placeholder(message_count: int) -> str:
    return f"[Previous conversation context: {message_count} messages about working with the spreadsheet]"


def partial_summary_note(covered: int, total: int) -> str:
    return f"[Note: This summary covers {covered} of {total} excluded messages]"


__all__ = [
    "CONTINUE_PROMPT",
    "DENIAL_PROMPT",
    "FALLBACK_REPLY",
    "SUMMARY_CLOSE_TAG",
    "SUMMARY_OPEN_TAG",
    "TRUNCATION_NOTICE",
    "partial_summary_note",
    "summary_placeholder",
    "summary_request_prompt",
    "system_prompt",
]
