# history.py
from typing import List, Optional, Sequence

from models import ChatTurn, UpstreamContent
from validation import escape

HISTORY_WINDOW = 10


def role_for(sender: Optional[str]) -> str:
    # Anything that is not exactly "user" is treated as the model's turn.
    return "user" if sender == "user" else "model"


def window(history: Sequence[ChatTurn], current_message: str) -> List[UpstreamContent]:
    """Reshape prior turns into upstream contents, oldest first.

    Only the last HISTORY_WINDOW entries are considered; turns missing a
    sender or text are dropped after slicing. ``current_message`` is expected
    to be escaped already and is appended as the final user entry.
    """
    contents: List[UpstreamContent] = []
    for turn in list(history)[-HISTORY_WINDOW:]:
        if turn.sender is None or turn.text is None:
            continue
        contents.append(UpstreamContent(role=role_for(turn.sender), text=escape(turn.text)))

    contents.append(UpstreamContent(role="user", text=current_message))
    return contents
