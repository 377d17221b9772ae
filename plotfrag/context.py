"""Implements the PlotContext, the accumulated state of one plot under
construction."""

import copy
import logging
from typing import Dict, Hashable, Mapping, Sequence, Tuple, Union

import numpy as np
from paramspace.tools import recursive_collect

from .env import Environment, as_environment
from .exceptions import InvalidCategory, InvalidPayload
from .expression import (
    DeferredExpression,
    Resolution,
    as_expression,
    resolve,
    resolve_all,
)
from .fragment import CATEGORIES, _normalize_payload
from .tools import recursive_equal

log = logging.getLogger(__name__)

# -----------------------------------------------------------------------------


def _check_overrides(overrides: dict) -> dict:
    """Checks the structure of the per-category overrides of a context and
    brings layer and scale payloads into the form fragments have them in.

    Raises:
        InvalidCategory: For unrecognized categories
        InvalidPayload: For mapping deltas (which belong into the mapping) and
            for layers or scales with an invalid structure
    """
    for category, payload in list(overrides.items()):
        if category not in CATEGORIES:
            raise InvalidCategory(category, valid=CATEGORIES)

        elif category == "mapping-delta":
            raise InvalidPayload(
                "Mapping deltas are not stored as overrides; pass the base "
                "mapping via the `mapping` argument instead."
            )

        elif category == "layer":
            if not isinstance(payload, (list, tuple)):
                raise InvalidPayload(
                    "The layer overrides need to be a list of layer "
                    f"specifications, got {type(payload).__name__}: "
                    f"{repr(payload)}"
                )
            overrides["layer"] = [
                _normalize_payload("layer", spec) for spec in payload
            ]

        elif category == "scale":
            overrides["scale"] = _normalize_payload("scale", payload)

    return overrides


# -----------------------------------------------------------------------------


class PlotContext:
    """The state of a single plot under construction: its data, its base
    mapping of visual channels to deferred expressions, the environment that
    all expressions of this plot are resolved in, and the effective payload of
    each fragment category.

    Contexts are not changed after construction; composing fragments onto a
    context (see :py:func:`~plotfrag.composer.compose` or the ``+`` operator)
    creates a new context.
    """

    __slots__ = (
        "_data",
        "_mapping",
        "_env",
        "_overrides",
        "_user_scales",
        "_warnings",
    )

    def __init__(
        self,
        data=None,
        mapping: Mapping[str, Union[DeferredExpression, str]] = None,
        *,
        environment=None,
        overrides: Mapping[str, object] = None,
        user_scales: Sequence[str] = (),
        warnings: Sequence[Warning] = (),
    ):
        """Sets up a plot context.

        Args:
            data (optional): The data context; anything that supports ``in``
                and ``[]`` with column names. It is not copied.
            mapping (Mapping[str, Union[DeferredExpression, str]], optional):
                The base mapping of channel names to expressions
            environment (optional): The environment; converted via
                :py:func:`~plotfrag.env.as_environment`
            overrides (Mapping[str, object], optional): Initial per-category
                payloads. These are regarded as defaults.
            user_scales (Sequence[str], optional): Channels whose scale was
                set by an explicit user choice
            warnings (Sequence[Warning], optional): Diagnostics of the
                composition that produced this context

        Raises:
            InvalidCategory: For overrides of unrecognized categories
            InvalidPayload: For overrides with an invalid structure
        """
        self._data = data
        self._mapping = {
            str(ch): as_expression(e) for ch, e in (mapping or {}).items()
        }
        self._env = as_environment(environment)
        self._overrides = _check_overrides(
            copy.deepcopy(dict(overrides or {}))
        )
        self._user_scales = frozenset(user_scales)
        self._warnings = tuple(warnings)

    def __repr__(self) -> str:
        _mapping = ", ".join(f"{k}={v.text}" for k, v in self._mapping.items())
        return (
            f"<PlotContext mapping: ({_mapping}), "
            f"categories: {sorted(self._overrides)}, "
            f"{len(self.layers)} layer(s)>"
        )

    def __eq__(self, other) -> bool:
        """Structural equality; the diagnostic warnings are not compared and
        the data is compared by identity."""
        if not isinstance(other, PlotContext):
            return NotImplemented
        return (
            self._data is other._data
            and self._mapping == other._mapping
            and self._env == other._env
            and recursive_equal(self._overrides, other._overrides)
            and self._user_scales == other._user_scales
        )

    __hash__ = None

    def __add__(self, other) -> "PlotContext":
        """Composes a fragment or a sequence of fragments onto this context"""
        from .composer import compose

        return compose(self, other)

    # .........................................................................

    @property
    def data(self):
        return self._data

    @property
    def mapping(self) -> Dict[str, DeferredExpression]:
        """The base mapping (a copy)"""
        return dict(self._mapping)

    @property
    def environment(self) -> Environment:
        return self._env

    @property
    def overrides(self) -> dict:
        """The effective payload per category (a deep copy)"""
        return copy.deepcopy(self._overrides)

    @property
    def user_scales(self) -> frozenset:
        return self._user_scales

    @property
    def warnings(self) -> Tuple[Warning]:
        return self._warnings

    @property
    def layers(self) -> list:
        """The layer specifications, in order (a copy)"""
        return copy.deepcopy(self._overrides.get("layer", []))

    def get(self, category: str, default=None):
        """Returns (a copy of) the effective payload of a category"""
        return copy.deepcopy(self._overrides.get(category, default))

    def evolve(self, **changes) -> "PlotContext":
        """Returns a new context with some attributes changed. Accepts the
        same arguments as the constructor."""
        kwargs = dict(
            data=self._data,
            mapping=self._mapping,
            environment=self._env,
            overrides=self._overrides,
            user_scales=self._user_scales,
            warnings=(),
        )
        kwargs.update(changes)
        return type(self)(**kwargs)

    # .........................................................................

    def layer_mapping(self, idx: int) -> Dict[str, DeferredExpression]:
        """The effective mapping of a layer: the base mapping, updated by the
        layer's own mapping (unless the layer sets ``inherit: false``).
        """
        spec = self._overrides.get("layer", [])[idx]
        if not isinstance(spec, Mapping):
            return dict(self._mapping)

        mapping = dict(self._mapping) if spec.get("inherit", True) else {}
        for ch, e in (spec.get("mapping") or {}).items():
            if e is None:
                mapping.pop(ch, None)
            else:
                mapping[ch] = as_expression(e)
        return mapping

    def expressions(self) -> Dict[tuple, DeferredExpression]:
        """Collects all deferred expressions of this context, keyed by their
        path: ``("mapping", <channel>)`` for the base mapping and the key path
        within the overrides for all others, e.g.
        ``("layer", 0, "mapping", "y")`` or ``("facet-spec", "rows", 0)``.
        """
        is_expr = lambda obj: isinstance(obj, DeferredExpression)
        exprs = {("mapping", ch): e for ch, e in self._mapping.items()}
        exprs.update(
            recursive_collect(
                self._overrides,
                select_func=is_expr,
                prepend_info=("keys",),
                stop_recursion_types=(bytes, np.ndarray),
            )
        )
        return exprs

    def resolve(self, channel: str, *, layer: int = None) -> np.ndarray:
        """Resolves the expression mapped to a channel against this context's
        data and environment.

        Args:
            channel (str): The channel name
            layer (int, optional): If given, uses the effective mapping of the
                layer with this index instead of the base mapping

        Raises:
            KeyError: If no expression is mapped to the channel
        """
        mapping = self._mapping if layer is None else self.layer_mapping(layer)
        try:
            expression = mapping[channel]

        except KeyError as err:
            raise KeyError(
                f"No expression mapped to channel '{channel}'! Mapped "
                f"channels: {', '.join(mapping) or 'none'}"
            ) from err

        return resolve(
            expression, self._data, self._env, channel=channel
        )

    def resolve_all(
        self, *, layer: int = None, collect_errors: bool = True
    ) -> Dict[Hashable, Resolution]:
        """Resolves all channels of the base mapping (or of a layer's
        effective mapping) independently.

        See :py:func:`~plotfrag.expression.resolve_all`.
        """
        mapping = self._mapping if layer is None else self.layer_mapping(layer)
        return resolve_all(
            mapping,
            self._data,
            self._env,
            collect_errors=collect_errors,
        )

    def resolve_expressions(
        self, *, collect_errors: bool = True
    ) -> Dict[tuple, Resolution]:
        """Resolves every deferred expression of this context, including those
        in layer mappings and facet specifications; see :py:meth:`.expressions`.
        """
        return resolve_all(
            self.expressions(),
            self._data,
            self._env,
            collect_errors=collect_errors,
        )
