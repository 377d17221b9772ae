"""Implements scopes and scope chains, used to resolve the free identifiers of
deferred expressions that are not columns of the data.

Scopes hold their bindings *by reference*: an :py:class:`.Environment`
created from a dict observes all later changes to that dict. This is what
makes deferred evaluation "late": the value of a variable is looked up when an
expression is resolved, not when it is written down.
"""

import logging
import types
from typing import Any, Iterator, Mapping, Sequence, Tuple

log = logging.getLogger(__name__)

# -----------------------------------------------------------------------------


class Scope:
    """A named frame of name-to-value bindings.

    The given mapping is *not* copied; reading from a scope always reflects
    the current state of the underlying mapping.
    """

    __slots__ = ("_bindings", "_name")

    def __init__(self, bindings: Mapping = None, *, name: str = None):
        """Sets up a scope.

        Args:
            bindings (Mapping, optional): The mapping to look names up in. If
                not given, a new empty dict is used.
            name (str, optional): A name for this scope, used in error
                messages and representations.
        """
        self._bindings = bindings if bindings is not None else dict()
        self._name = name if name else f"scope@{id(self._bindings):x}"

    def __repr__(self) -> str:
        return f"<Scope '{self.name}' with {len(self)} binding(s)>"

    @property
    def name(self) -> str:
        return self._name

    @property
    def bindings(self) -> Mapping:
        """The underlying mapping (not a copy)"""
        return self._bindings

    def __contains__(self, name: str) -> bool:
        return name in self._bindings

    def __getitem__(self, name: str) -> Any:
        return self._bindings[name]

    def __setitem__(self, name: str, value: Any):
        self._bindings[name] = value

    def __len__(self) -> int:
        return len(self._bindings)

    def __iter__(self) -> Iterator[str]:
        return iter(self._bindings)

    def __deepcopy__(self, memo) -> "Scope":
        # Scopes are shared by reference, also within copied structures
        return self

    def __copy__(self) -> "Scope":
        return self


class Environment:
    """An ordered chain of :py:class:`.Scope` objects, innermost first and
    outermost last. Name lookup walks the chain from the front and returns
    the first binding it finds.

    Environments themselves are immutable: adding a scope creates a new
    environment that shares the existing scopes.
    """

    __slots__ = ("_scopes",)

    def __init__(self, *scopes):
        """Sets up a scope chain.

        Args:
            *scopes: The scopes, innermost first. Mappings that are not
                :py:class:`.Scope` objects are wrapped (by reference).
        """
        self._scopes = tuple(
            s if isinstance(s, Scope) else Scope(s) for s in scopes
        )

    def __repr__(self) -> str:
        _names = " -> ".join(s.name for s in self._scopes) or "empty"
        return f"<Environment {_names}>"

    def __eq__(self, other) -> bool:
        """Environments are equal if they consist of the very same scopes"""
        if not isinstance(other, Environment):
            return NotImplemented
        return len(self._scopes) == len(other._scopes) and all(
            a is b for a, b in zip(self._scopes, other._scopes)
        )

    def __hash__(self) -> int:
        return hash(tuple(id(s) for s in self._scopes))

    def __len__(self) -> int:
        return len(self._scopes)

    def __iter__(self) -> Iterator[Scope]:
        return iter(self._scopes)

    def __deepcopy__(self, memo) -> "Environment":
        return self

    def __copy__(self) -> "Environment":
        return self

    @property
    def scopes(self) -> Tuple[Scope]:
        return self._scopes

    @property
    def scope_names(self) -> Tuple[str]:
        return tuple(s.name for s in self._scopes)

    # .........................................................................

    def lookup(self, name: str) -> Tuple[bool, Any]:
        """Looks up a name, innermost scope first.

        Returns:
            Tuple[bool, Any]: Whether the name was found and, if so, the value
                it is bound to (None otherwise)
        """
        for scope in self._scopes:
            if name in scope:
                log.trace("Found '%s' in %s.", name, scope)
                return True, scope[name]
        return False, None

    def __contains__(self, name: str) -> bool:
        return self.lookup(name)[0]

    def child(self, scope=None, *, name: str = None) -> "Environment":
        """Returns a new environment with an additional innermost scope.

        Args:
            scope (optional): The new innermost scope or a mapping to wrap
                into one. If not given, a new empty scope is created.
            name (str, optional): Name of the new scope, if it is created here
        """
        if not isinstance(scope, Scope):
            scope = Scope(scope, name=name)
        return Environment(scope, *self._scopes)

    def chain(self, other: "Environment") -> "Environment":
        """Returns a new environment with the scopes of ``other`` appended as
        outer scopes. Scopes that are already part of this chain are skipped.
        """
        if other is None:
            return self
        known = {id(s) for s in self._scopes}
        extra = [s for s in other if id(s) not in known]
        return Environment(*self._scopes, *extra)

    def freeze(self) -> "Environment":
        """Returns a read-only snapshot of this environment.

        The snapshot no longer observes changes of the original bindings and
        can safely be shared between concurrently running compositions.
        """
        return Environment(
            *(
                Scope(
                    types.MappingProxyType(dict(s.bindings)),
                    name=f"{s.name} (frozen)",
                )
                for s in self._scopes
            )
        )

    @classmethod
    def from_frame(cls, frame: types.FrameType) -> "Environment":
        """Creates an environment from a Python frame: its local scope first,
        its global scope second. For module-level frames, where locals and
        globals coincide, only a single scope is created.
        """
        code_name = frame.f_code.co_name
        module = frame.f_globals.get("__name__", "?")

        if frame.f_locals is frame.f_globals:
            return cls(Scope(frame.f_globals, name=f"{module}"))

        return cls(
            Scope(frame.f_locals, name=f"{module}.{code_name}"),
            Scope(frame.f_globals, name=f"{module}"),
        )


EMPTY_ENVIRONMENT = Environment()
"""An environment without any scopes"""


def as_environment(env) -> Environment:
    """Converts the argument into an :py:class:`.Environment`.

    Accepts None (empty environment), environments, single scopes or mappings,
    and sequences of scopes or mappings (innermost first).
    """
    if env is None:
        return EMPTY_ENVIRONMENT

    elif isinstance(env, Environment):
        return env

    elif isinstance(env, (Scope, Mapping)):
        return Environment(env)

    elif isinstance(env, Sequence) and not isinstance(env, str):
        return Environment(*env)

    raise TypeError(
        "Expected an Environment, a Scope, a mapping or a sequence of scopes, "
        f"got {type(env)} with value {repr(env)}!"
    )
