"""Interactive UI components for choosing settlements and members."""

import logging
from typing import Any

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from .models import Member, Settlement

logger = logging.getLogger(__name__)


def fuzzy_match(query: str, text: str) -> bool:
    """
    Fuzzy match: all characters in query must appear in order in text.

    Example:
        query="aln" matches "alice (Alice Nakamura)"
    """
    query_idx = 0
    for char in text:
        if query_idx < len(query) and char == query[query_idx]:
            query_idx += 1
    return query_idx == len(query)


class MemberCompleter(Completer):
    """Fuzzy search completer for household members."""

    def __init__(self, members: list[Member]):
        """Initialize the completer with the household's members."""
        self.members = members

        # Build searchable labels and label-to-id mapping
        self.label_to_id = {}
        for member in members:
            self.label_to_id[member_label(member)] = member.id

    def get_completions(self, document: Document, complete_event: Any):
        """Get fuzzy-matched completions."""
        query = document.text.lower()

        for label in self.label_to_id:
            if not query or fuzzy_match(query, label.lower()):
                yield Completion(
                    text=label,
                    start_position=-len(document.text),
                    display=label,
                )


def member_label(member: Member) -> str:
    return f"{member.id} ({member.name})"


def select_member_interactive(members: list[Member], prompt: str = "Member: ") -> str | None:
    """
    Interactive member selection with fuzzy search.

    Args:
        members: Members to choose from
        prompt: Prompt text

    Returns:
        Selected member id, or None to skip
    """
    if not members:
        print("\nNo members registered for this household")
        return None

    print("   Type to search, press Enter to confirm, Ctrl+C to cancel\n")

    completer = MemberCompleter(members)
    session: PromptSession[str] = PromptSession(completer=completer)
    known_ids = {m.id for m in members}

    try:
        while True:
            result = session.prompt(prompt, complete_while_typing=True).strip()

            if not result:
                return None

            # Accept a completed label or a bare member id
            member_id = completer.label_to_id.get(result)
            if member_id is None and result in known_ids:
                member_id = result
            if member_id:
                logger.info(f"User selected member: {member_id}")
                return member_id

            print("Invalid member. Please select from the list or press Tab to complete.")

    except (KeyboardInterrupt, EOFError):
        print("\nCancelled")
        return None


def confirm_finalize(settlement: Settlement, acting_member_id: str) -> bool:
    """
    Yes/no confirmation before locking a settlement.

    Returns:
        True if confirmed, False otherwise
    """
    print(
        f"\nFinalize settlement {settlement.id} for {settlement.month} "
        f"({len(settlement.lines)} transfers) as {acting_member_id}?"
    )
    print("   Finalized settlements can no longer be recomputed or deleted.")

    try:
        response = input("   Confirm? [y/N] ").strip().lower()
    except (KeyboardInterrupt, EOFError):
        return False

    return response in ("y", "yes")
