"""Custom plotfrag exception and warning classes."""

from difflib import get_close_matches as _get_close_matches
from typing import Sequence

# -----------------------------------------------------------------------------


def _did_you_mean(name: str, candidates: Sequence[str]) -> str:
    """Returns a "Did you mean" hint or an empty string"""
    matches = _get_close_matches(name, [str(c) for c in candidates], n=5)
    if not matches:
        return ""
    return f"Did you mean: {', '.join(matches)} ? "


# -----------------------------------------------------------------------------


class PlotfragError(Exception):
    """Base class for all plotfrag-related errors"""


class PlotfragWarning(UserWarning):
    """Base class for all plotfrag-related warnings"""


# Fragments ...................................................................


class FragmentError(PlotfragError):
    """Base class for errors in fragment construction"""


class InvalidCategory(FragmentError, ValueError):
    """Raised when a fragment is constructed with an unrecognized category"""

    def __init__(self, category, *, valid: Sequence[str] = None):
        if valid is None:
            # Re-created from a full message, e.g. when YAML error hints are
            # appended upon loading a file
            self.category = None
            self.valid = ()
            super().__init__(category)
            return

        self.category = category
        self.valid = tuple(valid)

        hint = ""
        if isinstance(category, str):
            hint = _did_you_mean(category, self.valid)
        super().__init__(
            f"Invalid fragment category {repr(category)}! {hint}"
            f"Valid categories are:  {', '.join(self.valid)}"
        )


class InvalidPayload(FragmentError, TypeError):
    """Raised upon a fragment payload that does not have the structure
    required by its category"""


class InvalidExpression(PlotfragError, ValueError):
    """Raised when the text of a deferred expression could not be parsed"""


# Composition .................................................................


class CompositionError(PlotfragError):
    """Base class for errors during composition of fragment sequences"""


class CyclicSequenceError(CompositionError, ValueError):
    """Raised when a fragment sequence (directly or indirectly) contains
    itself"""


class InvalidSequenceEntry(CompositionError, TypeError):
    """Raised when a fragment sequence contains an object that is neither a
    fragment, a nested sequence, nor an absent marker"""


class ScaleOverrideWarning(PlotfragWarning):
    """Issued when a scale fragment targets a channel whose scale was already
    set explicitly. Composition continues; the later scale wins."""

    def __init__(self, channel: str, *, previous=None, new=None):
        self.channel = channel
        self.previous = previous
        self.new = new
        super().__init__(
            f"Scale for '{channel}' is already present; adding another scale "
            f"for '{channel}', which will replace the existing scale."
        )


# Resolution ..................................................................


class ResolutionError(PlotfragError):
    """Base class for errors during resolution of deferred expressions.

    Carries the ``channel`` the expression belongs to, if known.
    """

    channel = None


class UnboundVariable(ResolutionError, NameError):
    """Raised if an identifier was found neither in the data nor in any scope
    of the environment chain"""

    def __init__(
        self,
        name: str,
        *,
        channel: str = None,
        columns: Sequence[str] = (),
        scopes: Sequence[str] = (),
    ):
        # NameError.__init__ sets the name attribute itself, thus call it first
        super().__init__(name)
        self.name = name
        self.channel = channel
        self.columns = tuple(columns)
        self.scopes = tuple(scopes)

    def __str__(self) -> str:
        where = f" (channel '{self.channel}')" if self.channel else ""
        _cols = ", ".join(str(c) for c in self.columns) or "none"
        _scopes = " -> ".join(self.scopes) or "none"
        return (
            f"Object '{self.name}' not found{where}! "
            f"{_did_you_mean(self.name, self.columns)}"
            f"It is neither a column of the data (available: {_cols}) nor "
            f"bound in any scope of the environment (searched: {_scopes})."
        )


class TypeMismatch(ResolutionError, TypeError):
    """Raised if resolved operands are incompatible with the operation that
    is to be applied to them"""

    def __init__(self, msg: str, *, channel: str = None, operands=()):
        self.channel = channel
        self.operands = tuple(operands)
        super().__init__(msg)


class FunctionCallError(ResolutionError, RuntimeError):
    """Raised if a function that was provided by a scope raised an error while
    being evaluated as part of an expression"""

    def __init__(self, name: str, *, channel: str = None, error=None):
        self.name = name
        self.channel = channel
        self.error = error
        where = f" (channel '{channel}')" if channel else ""
        super().__init__(
            f"Function '{name}'{where} raised "
            f"{type(error).__name__}: {error}"
        )


# Configuration ...............................................................


class PlotConfigError(PlotfragError, ValueError):
    """Raised when there were errors in the plot configuration"""
