"""Tiny terminal UI helpers (prompt_toolkit-based).

Interactive prompts used by ``statement-recon categorize``. They are kept
apart from the categorization logic so they can be tested in isolation with a
pipe input.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggest, Suggestion
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.styles import Style
from prompt_toolkit.validation import ValidationError, Validator

from .categories import validate_label

CREATE_SENTINEL = "+ Create new category..."
_CREATE_HINT_PREFIX = "  [Create "


class CreateCategoryRequest:
    """Selector result meaning "create this label" (name may be empty)."""

    __slots__ = ("name",)

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:  # pragma: no cover - trivial repr
        return f"CreateCategoryRequest(name={self.name!r})"


def _session(session: PromptSession | None, kb: KeyBindings) -> PromptSession:
    if session is None:
        return PromptSession(key_bindings=kb)
    return PromptSession(
        input=getattr(session, "input", None),
        output=getattr(session, "output", None),
        key_bindings=kb,
    )


class _SuggestOrCreate(AutoSuggest):
    """Grey inline completion of a known label, or a creation hint."""

    def __init__(self, vocab: Sequence[str], allow_create: bool) -> None:
        self._vocab = list(vocab)
        self._allow_create = allow_create

    def get_suggestion(self, buffer, document):
        text = document.text
        if not text:
            return None
        lower = text.lower()
        if any(w.lower() == lower for w in self._vocab):
            return None
        for w in self._vocab:
            if w.lower().startswith(lower):
                remainder = w[len(text) :]
                return Suggestion(remainder) if remainder else None
        if self._allow_create:
            return Suggestion(f"{_CREATE_HINT_PREFIX}'{text}'?]")
        return None


def select_category_or_create(
    categories: Sequence[str] | Iterable[str],
    *,
    default: str = "",
    message: str = "Category (Enter to accept): ",
    session: PromptSession | None = None,
    allow_create: bool = True,
) -> str | CreateCategoryRequest:
    """Prompt for a category label; optionally offer creating a new one.

    Returns the chosen label, ``""`` when the user accepts an empty buffer with
    no default (skip), or a ``CreateCategoryRequest`` when the typed value is
    not a known label or the explicit create option was picked.
    """

    labels = list(categories)
    words = labels + [CREATE_SENTINEL] if allow_create else list(labels)
    canonical = {w.lower(): w for w in labels}

    completer = WordCompleter(words, ignore_case=True, match_middle=True, sentence=False)
    auto_suggest = _SuggestOrCreate(labels, allow_create)

    kb = KeyBindings()
    menu_index = -1

    def _prefix_remainder(text: str) -> str | None:
        if not text:
            return None
        lower = text.lower()
        for w in labels:
            wl = w.lower()
            if wl == lower:
                return None
            if wl.startswith(lower):
                return w[len(text) :]
        return None

    def _visible_suggestion(b) -> str | None:
        s = getattr(getattr(b, "suggestion", None), "text", None)
        if s and s.startswith(_CREATE_HINT_PREFIX):
            s = None
        return s or _prefix_remainder(b.document.text)

    def _open_or_advance(b) -> None:
        nonlocal menu_index
        if b.complete_state is None:
            b.start_completion(select_first=True)
            menu_index = 0
        else:
            b.complete_next()
            menu_index += 1

    @kb.add("down", eager=True)
    def _(event) -> None:  # pragma: no cover - integration path
        _open_or_advance(event.app.current_buffer)

    @kb.add("tab", eager=True)
    def _(event) -> None:
        b = event.app.current_buffer
        remainder = _visible_suggestion(b)
        if remainder:
            b.insert_text(remainder)
        else:
            _open_or_advance(b)

    @kb.add("enter", eager=True)
    def _(event) -> None:
        b = event.app.current_buffer
        cs = b.complete_state
        if cs is not None and cs.current_completion is not None:
            b.apply_completion(cs.current_completion)
        else:
            remainder = _visible_suggestion(b)
            if remainder:
                b.insert_text(remainder)
            elif menu_index >= 0 and not b.document.text and words:
                # Headless terminals may not render the menu; commit the
                # highlighted entry directly.
                b.insert_text(words[min(menu_index, len(words) - 1)])
        b.validate_and_handle()

    result = _session(session, kb).prompt(
        message,
        completer=completer,
        default=default or "",
        key_bindings=kb,
        auto_suggest=auto_suggest,
        style=Style.from_dict({"auto-suggestion": "fg:#888888"}),
    )

    result = result.strip()
    if not result:
        return default or ""
    if allow_create and result == CREATE_SENTINEL:
        return CreateCategoryRequest("")
    if result.lower() in canonical:
        return canonical[result.lower()]
    if allow_create:
        return CreateCategoryRequest(result)
    return result


def prompt_new_category_name(
    *,
    initial: str = "",
    session: PromptSession | None = None,
    message: str = "New category (Enter to save • Esc or Ctrl+C to cancel): ",
    error_prefix: str = "",
) -> str | None:
    """Collect a new category label with inline validation.

    Returns the entered label, or ``None`` when canceled via Esc or Ctrl+C.
    """

    kb = KeyBindings()

    @kb.add("escape")
    def _(event) -> None:  # pragma: no cover - exercised indirectly
        event.app.exit(result=None)

    @kb.add("c-c", eager=True)
    def _(event) -> None:  # pragma: no cover - exercised indirectly
        event.app.exit(result=None)

    class _V(Validator):
        def validate(self, document) -> None:
            v = validate_label(document.text)
            if not v.ok:
                raise ValidationError(message=error_prefix + (v.reason or "Invalid category"))

    return _session(session, kb).prompt(
        message,
        default=initial,
        validator=_V(),
        validate_while_typing=False,
        key_bindings=kb,
    )


__all__ = [
    "select_category_or_create",
    "prompt_new_category_name",
    "CreateCategoryRequest",
    "CREATE_SENTINEL",
]
