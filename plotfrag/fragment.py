"""Implements the Fragment, the unit that plots are composed of, and the
marker for absent fragments."""

import copy
import logging
from typing import Any, Mapping

from .exceptions import InvalidCategory, InvalidPayload
from .expression import as_expression

log = logging.getLogger(__name__)

# -----------------------------------------------------------------------------

CATEGORIES: tuple = (
    "layer",
    "mapping-delta",
    "scale",
    "coordinate-system",
    "facet-spec",
    "theme-delta",
)
"""All recognized fragment categories"""

DEFAULT_REPLACE: dict = {
    "layer": False,
    "mapping-delta": False,
    "scale": True,
    "coordinate-system": True,
    "facet-spec": True,
    "theme-delta": False,
}
"""Per category, whether fragments replace the previous value by default"""


# -----------------------------------------------------------------------------


class _AbsentType:
    """The type of the :py:data:`.ABSENT` marker; there is only one instance.
    """

    __slots__ = ()
    _instance = None

    yaml_tag = "!absent"

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self):
        return "ABSENT"

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self

    @classmethod
    def from_yaml(cls, constructor, node):
        return ABSENT

    @classmethod
    def to_yaml(cls, representer, node):
        return representer.represent_scalar(cls.yaml_tag, "")


ABSENT = _AbsentType()
"""Marks an entry of a fragment sequence that contributes nothing, e.g. an
optional component that was switched off"""


def is_absent(obj: Any) -> bool:
    """Whether the object is an absent marker, i.e. ABSENT or None"""
    return obj is None or obj is ABSENT


# -----------------------------------------------------------------------------


class Fragment:
    """An immutable, composable plot-building unit.

    A fragment belongs to one of the :py:data:`.CATEGORIES` and carries a
    payload. When it is applied, it either replaces the previous value of its
    category or is merged into it, depending on the ``replace`` flag.
    """

    __slots__ = ("_category", "_payload", "_replace", "_default")

    yaml_tag = "!fragment"

    def __init__(
        self,
        category: str,
        payload: Any = None,
        replace: bool = None,
        *,
        default: bool = False,
    ):
        """Sets up a fragment. Use :py:func:`.make_fragment` to create one.

        Args:
            category (str): The fragment category
            payload (Any, optional): The configuration for this category. It
                is deep-copied.
            replace (bool, optional): Whether the fragment replaces the
                previous value of its category. If None, the category's
                default from :py:data:`.DEFAULT_REPLACE` is used.
            default (bool, optional): Whether this fragment represents a
                default rather than an explicit user choice

        Raises:
            InvalidCategory: For an unrecognized category
            InvalidPayload: For a payload not matching the category
        """
        if category not in CATEGORIES:
            raise InvalidCategory(category, valid=CATEGORIES)

        if replace is None:
            replace = DEFAULT_REPLACE[category]

        set_attr = super().__setattr__
        set_attr("_category", category)
        set_attr("_payload", _normalize_payload(category, payload))
        set_attr("_replace", bool(replace))
        set_attr("_default", bool(default))

    def __setattr__(self, name, value):
        raise AttributeError(f"{type(self).__name__} objects are immutable!")

    def __delattr__(self, name):
        raise AttributeError(f"{type(self).__name__} objects are immutable!")

    def __eq__(self, other) -> bool:
        from .tools import recursive_equal

        if type(other) is not type(self):
            return False
        return (
            self._category == other._category
            and self._replace == other._replace
            and self._default == other._default
            and recursive_equal(self._payload, other._payload)
        )

    __hash__ = None

    def __repr__(self) -> str:
        return "<Fragment {}{}{}: {}>".format(
            self._category,
            ", replace" if self._replace else "",
            ", default" if self._default else "",
            repr(self._payload),
        )

    def __copy__(self) -> "Fragment":
        return self

    def __deepcopy__(self, memo) -> "Fragment":
        return self

    # .........................................................................

    @property
    def category(self) -> str:
        return self._category

    @property
    def payload(self) -> Any:
        """A (deep) copy of the payload"""
        return copy.deepcopy(self._payload)

    @property
    def replace(self) -> bool:
        return self._replace

    @property
    def default(self) -> bool:
        return self._default

    @property
    def channels(self) -> tuple:
        """The channels a ``mapping-delta`` or ``scale`` fragment targets;
        empty for all other categories."""
        if self._category in ("mapping-delta", "scale"):
            return tuple(self._payload.keys())
        return ()

    # YAML representation . . . . . . . . . . . . . . . . . . . . . . . . . . .

    @classmethod
    def from_yaml(cls, constructor, node):
        """Constructs a fragment from a YAML mapping node"""
        return make_fragment(**constructor.construct_mapping(node, deep=True))

    @classmethod
    def to_yaml(cls, representer, node):
        d = dict(category=node._category, payload=node._payload)
        if node._replace != DEFAULT_REPLACE[node._category]:
            d["replace"] = node._replace
        if node._default:
            d["default"] = True
        return representer.represent_mapping(cls.yaml_tag, d)


def _normalize_payload(category: str, payload: Any) -> Any:
    """Checks the payload structure of a category and returns a deep copy of
    it. Mapping deltas have their values converted to deferred expressions.
    """
    if category == "mapping-delta":
        if payload is None:
            payload = {}

        if not isinstance(payload, Mapping):
            raise InvalidPayload(
                "The payload of a mapping-delta fragment needs to be a "
                "mapping of channel names to expressions, got "
                f"{type(payload).__name__}: {repr(payload)}"
            )

        try:
            return {
                str(ch): (as_expression(e) if e is not None else None)
                for ch, e in payload.items()
            }

        except TypeError as err:
            raise InvalidPayload(
                f"Invalid mapping-delta payload {repr(payload)}! {err}"
            ) from err

    elif category == "scale":
        if not isinstance(payload, Mapping) or not all(
            isinstance(spec, Mapping) or spec is None
            for spec in payload.values()
        ):
            raise InvalidPayload(
                "The payload of a scale fragment needs to be a mapping of "
                "channel names to scale specifications (mappings), got "
                f"{type(payload).__name__}: {repr(payload)}"
            )
        return {
            str(ch): (dict(copy.deepcopy(spec)) if spec is not None else {})
            for ch, spec in payload.items()
        }

    payload = copy.deepcopy(payload)

    # Layer-local mappings are deferred, just as the plot mapping
    if (
        category == "layer"
        and isinstance(payload, dict)
        and isinstance(payload.get("mapping"), Mapping)
    ):
        payload["mapping"] = _normalize_payload(
            "mapping-delta", payload["mapping"]
        )

    return payload


def make_fragment(
    category: str,
    payload: Any = None,
    replace: bool = None,
    *,
    default: bool = False,
) -> Fragment:
    """Creates a :py:class:`.Fragment`. Inputs are never mutated.

    Args:
        category (str): One of :py:data:`.CATEGORIES`
        payload (Any, optional): The configuration for this category
        replace (bool, optional): Whether to replace rather than merge. If not
            given, uses the category default, see :py:data:`.DEFAULT_REPLACE`
        default (bool, optional): Whether this fragment represents a default
            rather than an explicit user choice

    Raises:
        InvalidCategory: For an unrecognized category
    """
    frag = Fragment(category, payload, replace, default=default)
    log.trace("Created %s", frag)
    return frag
