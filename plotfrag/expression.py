"""Implements deferred expressions: references to variables (or small
expressions over variables) that are written down when a plot is declared but
only evaluated once a data context and a scope chain are available.

There are three ways to create a :py:class:`.DeferredExpression`, all leading
to the same representation:

.. code-block:: python

    expr("displ / cyl")             # from text
    formula("~ displ / cyl")        # from a one-sided formula literal
    capture("displ / cyl")          # from text, capturing the caller's scope

Parsing is done with sympy; evaluation is element-wise via numpy.
"""

import ast
import enum
import logging
import sys
from typing import Any, Callable, Dict, Hashable, Mapping, Tuple, Union

import numpy as np
import sympy
from sympy.core.function import AppliedUndef
from sympy.parsing.sympy_parser import parse_expr as _parse_expr

from .env import Environment, as_environment
from .exceptions import (
    FunctionCallError,
    InvalidExpression,
    ResolutionError,
    TypeMismatch,
    UnboundVariable,
)

log = logging.getLogger(__name__)

# -----------------------------------------------------------------------------

FUNCTIONS: Dict[str, Callable] = {
    "abs": sympy.Abs,
    "ceiling": sympy.ceiling,
    "cos": sympy.cos,
    "exp": sympy.exp,
    "floor": sympy.floor,
    "log": sympy.log,
    "sin": sympy.sin,
    "sqrt": sympy.sqrt,
    "tan": sympy.tan,
}
"""Functions that are available in every expression. Any other function that
is called within an expression is looked up in the scope chain."""

NUMERIC_KINDS: str = "biufcmM"
"""numpy dtype kinds that are accepted as operands of compound expressions"""

FORMULA_PREFIX: str = "~"


# -----------------------------------------------------------------------------


def _parse(text: str) -> Tuple[str, sympy.Basic, tuple, tuple]:
    """Parses expression text into a sympy tree.

    Returns:
        Tuple[str, sympy.Basic, tuple, tuple]: The normalized text, the tree,
            the free identifiers, and the names of scope-provided functions
    """
    text = text.strip()
    if text.startswith(FORMULA_PREFIX):
        text = text[len(FORMULA_PREFIX) :].strip()

    if not text:
        raise InvalidExpression("Got an empty expression!")

    # A bare name always refers to a single variable, even if it happens to be
    # a Python keyword (e.g. a column called "class")
    if text.isidentifier():
        return text, sympy.Symbol(text), (text,), ()

    try:
        node = ast.parse(text, mode="eval")

    except SyntaxError as err:
        raise InvalidExpression(
            f"Failed parsing expression '{text}'! {err.msg}. Make sure it is "
            "a valid arithmetic expression over variable names."
        ) from err

    called = {
        n.func.id
        for n in ast.walk(node)
        if isinstance(n, ast.Call) and isinstance(n.func, ast.Name)
    }
    names = {n.id for n in ast.walk(node) if isinstance(n, ast.Name)}

    # Every name is declared explicitly; this keeps names that have a special
    # meaning in sympy (e.g. ``E``, ``S``, ``beta``) plain symbols.
    local_dict = dict()
    for name in names:
        if name in called:
            local_dict[name] = FUNCTIONS.get(name, sympy.Function(name))
        else:
            local_dict[name] = sympy.Symbol(name)

    try:
        tree = _parse_expr(text, local_dict=local_dict, evaluate=False)

    except Exception as exc:
        raise InvalidExpression(
            f"Failed parsing expression '{text}'! Got a "
            f"{exc.__class__.__name__}: {exc}"
        ) from exc

    identifiers = tuple(sorted(names - called))
    functions = tuple(sorted(called - set(FUNCTIONS)))
    return text, tree, identifiers, functions


def _inspect_tree(tree: sympy.Basic) -> Tuple[tuple, tuple]:
    """Extracts identifiers and scope-provided function names from a tree"""
    identifiers = tuple(sorted(str(s) for s in tree.free_symbols))
    functions = tuple(
        sorted({type(f).__name__ for f in tree.atoms(AppliedUndef)})
    )
    return identifiers, functions


# -----------------------------------------------------------------------------


class DeferredExpression:
    """An unevaluated reference to a variable or an expression over variables,
    optionally tagged with the environment that was active where it was
    written down.

    Objects of this class are immutable values: copying returns the same
    object, such that a captured environment is always shared by reference.
    """

    __slots__ = ("_text", "_tree", "_identifiers", "_functions", "_env", "_f")

    yaml_tag = "!expr"

    def __init__(
        self,
        expr: Union[str, sympy.Basic, "DeferredExpression"],
        *,
        env: Union[Environment, Mapping, None] = None,
    ):
        """Sets up a deferred expression. Parsing happens here; resolution
        happens only via :py:func:`.resolve`.

        Args:
            expr (Union[str, sympy.Basic, DeferredExpression]): The expression
                text (optionally in formula notation, i.e. with a leading
                ``~``), a sympy expression, or another deferred expression.
            env (Union[Environment, Mapping, None], optional): The captured
                environment. If ``expr`` is a deferred expression and this is
                not given, its environment is carried over.

        Raises:
            InvalidExpression: If the text could not be parsed
            TypeError: On invalid ``expr`` type
        """
        if isinstance(expr, DeferredExpression):
            self._text = expr._text
            self._tree = expr._tree
            self._identifiers = expr._identifiers
            self._functions = expr._functions
            env = env if env is not None else expr._env

        elif isinstance(expr, str):
            (
                self._text,
                self._tree,
                self._identifiers,
                self._functions,
            ) = _parse(expr)

        elif isinstance(expr, sympy.Basic):
            self._text = str(expr)
            self._tree = expr
            self._identifiers, self._functions = _inspect_tree(expr)

        else:
            raise TypeError(
                "A DeferredExpression can only be created from a string, a "
                f"sympy expression or another DeferredExpression, but got "
                f"{type(expr)} with value {repr(expr)}!"
            )

        self._env = as_environment(env) if env is not None else None
        self._f = None

    # .........................................................................

    def __eq__(self, other) -> bool:
        if type(other) is not type(self):
            return False
        return self._tree == other._tree and self._env == other._env

    def __hash__(self) -> int:
        return hash((self._tree, self._env))

    def __repr__(self) -> str:
        if self._env is None:
            return f"<DeferredExpression {self._text}>"
        return f"<DeferredExpression {self._text}, env: {repr(self._env)}>"

    def __str__(self) -> str:
        return f"{FORMULA_PREFIX}{self._text}"

    def __copy__(self) -> "DeferredExpression":
        return self

    def __deepcopy__(self, memo) -> "DeferredExpression":
        return self

    # .........................................................................

    @property
    def text(self) -> str:
        """The normalized expression text, without formula prefix"""
        return self._text

    @property
    def tree(self) -> sympy.Basic:
        return self._tree

    @property
    def identifiers(self) -> Tuple[str]:
        """The free identifiers of this expression, sorted by name"""
        return self._identifiers

    @property
    def functions(self) -> Tuple[str]:
        """Names of called functions that need to be provided by a scope"""
        return self._functions

    @property
    def env(self) -> Union[Environment, None]:
        """The captured environment or None, if nothing was captured"""
        return self._env

    @property
    def is_symbol(self) -> bool:
        """Whether this expression is a reference to a single variable"""
        return isinstance(self._tree, sympy.Symbol)

    def with_env(self, env) -> "DeferredExpression":
        """Returns a copy of this expression with a different environment"""
        return type(self)(self, env=as_environment(env))

    # .........................................................................

    def _compile(self, functions: Dict[str, Callable]) -> Callable:
        """Creates an element-wise numpy function of the identifiers. Without
        scope-provided functions, the result is cached.
        """
        if not functions and self._f is not None:
            return self._f

        f = sympy.lambdify(
            sorted(self._tree.free_symbols, key=str),
            self._tree,
            modules=[functions, "numpy"],
        )
        if not functions:
            self._f = f
        return f

    # YAML representation . . . . . . . . . . . . . . . . . . . . . . . . . . .

    @classmethod
    def from_yaml(cls, constructor, node):
        """Construct a DeferredExpression from a scalar YAML node"""
        return cls(str(constructor.construct_scalar(node)))

    @classmethod
    def to_yaml(cls, representer, node):
        """Represents the expression text as scalar; the captured environment
        is not part of the representation."""
        return representer.represent_scalar(cls.yaml_tag, node._text)


# -----------------------------------------------------------------------------
# Construction surface


def expr(
    expression: Union[str, sympy.Basic, DeferredExpression], *, env=None
) -> DeferredExpression:
    """Creates a deferred expression from text or a sympy expression.

    The text may be a single name (``"displ"``), an arithmetic expression
    (``"displ / cyl"``) or a one-sided formula (``"~ displ / cyl"``).
    """
    return DeferredExpression(expression, env=env)


def formula(text: str, *, env=None) -> DeferredExpression:
    """Creates a deferred expression from a one-sided formula literal, i.e.
    a string starting with ``~``.

    Raises:
        InvalidExpression: If ``text`` is not a one-sided formula
    """
    if not isinstance(text, str) or not text.strip().startswith(
        FORMULA_PREFIX
    ):
        raise InvalidExpression(
            f"Expected a one-sided formula of the form '~ <expression>', "
            f"got {repr(text)}!"
        )
    return DeferredExpression(text, env=env)


def capture(
    expression: Union[str, sympy.Basic], *, depth: int = 1
) -> DeferredExpression:
    """Creates a deferred expression that captures the scope of the calling
    function (its locals, then its globals).

    Args:
        expression (Union[str, sympy.Basic]): The expression
        depth (int, optional): Which frame to capture; 1 is the direct caller
            of this function. Wrapper functions that forward an expression on
            behalf of *their* caller can use ``depth=2``.
    """
    frame = sys._getframe(depth)
    try:
        env = Environment.from_frame(frame)
    finally:
        del frame

    log.trace("Captured %s for expression %s.", env, expression)
    return DeferredExpression(expression, env=env)


def as_expression(obj: Any) -> DeferredExpression:
    """Converts strings and sympy expressions into deferred expressions;
    deferred expressions are passed through.

    Raises:
        TypeError: For objects that cannot be interpreted as expression
    """
    if isinstance(obj, DeferredExpression):
        return obj

    elif isinstance(obj, (str, sympy.Basic)):
        return DeferredExpression(obj)

    raise TypeError(
        f"Cannot interpret {type(obj).__name__} {repr(obj)} as a deferred "
        "expression! Use a string, a sympy expression or a "
        "DeferredExpression."
    )


# -----------------------------------------------------------------------------
# Resolution


def _data_columns(data) -> Tuple[str]:
    """Tries to determine the column names of a data context"""
    if data is None:
        return ()

    for attr in ("columns", "data_vars"):
        if hasattr(data, attr):
            return tuple(str(c) for c in getattr(data, attr))

    try:
        return tuple(str(k) for k in data.keys())

    except Exception:
        return ()


def _lookup_column(data, name: str) -> Tuple[bool, Any]:
    """Looks up a column by name in a data context"""
    if data is None:
        return False, None

    try:
        if name in data:
            return True, data[name]

    except TypeError:
        pass

    return False, None


def _guard_call(
    name: str, func: Callable, *, channel: str = None
) -> Callable:
    """Wraps a scope-provided function such that any error it raises becomes
    a :py:class:`~plotfrag.exceptions.FunctionCallError`"""

    def guarded(*args, **kwargs):
        try:
            return func(*args, **kwargs)

        except ResolutionError:
            raise

        except Exception as exc:
            raise FunctionCallError(name, channel=channel, error=exc) from exc

    return guarded


def resolve(
    expression: Union[DeferredExpression, str],
    data=None,
    environment=None,
    *,
    channel: str = None,
) -> np.ndarray:
    """Resolves a deferred expression, producing a concrete value series.

    Each free identifier is first looked up in ``data``; if it is not a
    column there, the scope chain is searched from the innermost scope
    outwards. The scope chain consists of the scopes captured by the
    expression (if any), followed by those of ``environment``.

    Args:
        expression (Union[DeferredExpression, str]): The expression to resolve
        data (optional): The data context, supporting ``in`` and ``[]``
            with column names, e.g. a dict of sequences or a data frame
        environment (optional): The plot-level environment
        channel (str, optional): The channel this expression belongs to; used
            for error messages only.

    Returns:
        np.ndarray: The resolved values

    Raises:
        UnboundVariable: If an identifier could not be bound
        TypeMismatch: If the bound operands are incompatible with the
            operations of the expression
        FunctionCallError: If a scope-provided function raised an error
    """
    expression = as_expression(expression)
    environment = as_environment(environment)
    if expression.env is not None:
        environment = expression.env.chain(environment)

    def unbound(name: str) -> UnboundVariable:
        return UnboundVariable(
            name,
            channel=channel,
            columns=_data_columns(data),
            scopes=environment.scope_names,
        )

    # Bind identifiers: data first, then the scope chain
    bound = dict()
    for name in expression.identifiers:
        found, value = _lookup_column(data, name)
        if not found:
            found, value = environment.lookup(name)
        if not found:
            raise unbound(name)
        bound[name] = value

    # Functions are never taken from the data
    functions = dict()
    for name in expression.functions:
        found, func = environment.lookup(name)
        if not found:
            raise unbound(name)
        elif not callable(func):
            raise TypeMismatch(
                f"Cannot call '{name}' in expression '{expression.text}' "
                f"because it is bound to a non-callable {type(func).__name__}"
                f" object: {repr(func)}",
                channel=channel,
                operands=(name,),
            )
        functions[name] = _guard_call(name, func, channel=channel)

    if expression.is_symbol:
        return np.asarray(bound[expression.identifiers[0]])

    values = [np.asarray(bound[n]) for n in expression.identifiers]

    if not functions:
        bad = [
            n
            for n, v in zip(expression.identifiers, values)
            if v.dtype.kind not in NUMERIC_KINDS + "O"
        ]
        if bad:
            _bad = ", ".join(
                f"'{n}' ({bound[n].__class__.__name__} of "
                f"{np.asarray(bound[n]).dtype})"
                for n in bad
            )
            raise TypeMismatch(
                f"Non-numeric operand(s) {_bad} in expression "
                f"'{expression.text}'"
                + (f" (channel '{channel}')" if channel else "")
                + "!",
                channel=channel,
                operands=bad,
            )

    f = expression._compile(functions)
    try:
        return np.asarray(f(*values))

    except (ArithmeticError, TypeError, ValueError) as exc:
        raise TypeMismatch(
            f"Failed evaluating expression '{expression.text}'"
            + (f" (channel '{channel}')" if channel else "")
            + f"! Got {exc.__class__.__name__}: {exc}. Check that the "
            "operands "
            + ", ".join(
                f"'{n}' ({v.dtype}, shape {v.shape})"
                for n, v in zip(expression.identifiers, values)
            )
            + " are compatible.",
            channel=channel,
            operands=expression.identifiers,
        ) from exc


# -----------------------------------------------------------------------------


class ResolutionState(enum.Enum):
    """The states of a :py:class:`.Resolution`"""

    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"
    FAILED = "failed"


class Resolution:
    """Keeps track of the resolution of a single deferred expression within a
    single resolution pass.

    A resolution starts out ``UNRESOLVED`` and, once run, ends up either
    ``RESOLVED`` (holding a value) or ``FAILED`` (holding the error). Both are
    terminal; a resolution cannot be run again.
    """

    __slots__ = ("_channel", "_expr", "_state", "_value", "_error")

    def __init__(self, expression: DeferredExpression, *, channel=None):
        self._channel = channel
        self._expr = as_expression(expression)
        self._state = ResolutionState.UNRESOLVED
        self._value = None
        self._error = None

    def __repr__(self) -> str:
        return (
            f"<Resolution of {self._expr.text} for channel "
            f"{repr(self._channel)}: {self._state.value}>"
        )

    @property
    def channel(self):
        return self._channel

    @property
    def expression(self) -> DeferredExpression:
        return self._expr

    @property
    def state(self) -> ResolutionState:
        return self._state

    @property
    def ok(self) -> bool:
        return self._state is ResolutionState.RESOLVED

    @property
    def value(self) -> np.ndarray:
        """The resolved value

        Raises:
            ResolutionError: The error of a failed resolution
            RuntimeError: If the resolution was not run yet
        """
        if self._state is ResolutionState.FAILED:
            raise self._error
        elif self._state is ResolutionState.UNRESOLVED:
            raise RuntimeError(f"{self} was not run yet!")
        return self._value

    @property
    def error(self) -> Union[ResolutionError, None]:
        return self._error

    def run(self, data=None, environment=None) -> "Resolution":
        """Attempts the resolution; see :py:func:`.resolve`.

        Raises:
            RuntimeError: If this resolution was already attempted
        """
        if self._state is not ResolutionState.UNRESOLVED:
            raise RuntimeError(
                f"{self} was already attempted; resolutions are not retried."
            )

        channel = self._channel
        if isinstance(channel, tuple):
            channel = ".".join(str(k) for k in channel)

        try:
            self._value = resolve(
                self._expr, data, environment, channel=channel
            )

        except ResolutionError as err:
            log.debug("Resolution failed: %s", err)
            self._state = ResolutionState.FAILED
            self._error = err

        else:
            self._state = ResolutionState.RESOLVED

        return self


def resolve_all(
    expressions: Mapping[Hashable, DeferredExpression],
    data=None,
    environment=None,
    *,
    collect_errors: bool = True,
) -> Dict[Hashable, Resolution]:
    """Resolves multiple expressions independently of each other.

    Args:
        expressions (Mapping[Hashable, DeferredExpression]): The expressions
            to resolve, keyed by channel
        data (optional): The data context
        environment (optional): The plot-level environment
        collect_errors (bool, optional): If True, failed resolutions are
            returned alongside the successful ones. If False, the error of the
            first failed resolution is raised.

    Returns:
        Dict[Hashable, Resolution]: The finished resolutions, keyed by channel
    """
    results = dict()
    for channel, expression in expressions.items():
        res = Resolution(expression, channel=channel).run(data, environment)
        if not res.ok and not collect_errors:
            raise res.error
        results[channel] = res

    num_failed = sum(1 for r in results.values() if not r.ok)
    log.remark(
        "Resolved %d expression(s), %d of which failed.",
        len(results),
        num_failed,
    )
    return results
