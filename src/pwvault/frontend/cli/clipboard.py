"""``pwvault find --copy`` support."""

from __future__ import annotations

import pyperclip


def copy_to_clipboard(secret: str) -> None:
    # Raises pyperclip.PyperclipException when no copy mechanism exists
    # (headless session, missing xclip/xsel); the caller reports it.
    pyperclip.copy(secret)
