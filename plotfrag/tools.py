"""This module implements tools that are generally useful in plotfrag"""

import collections
import logging
from typing import List

import numpy as np

log = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Import private yaml module, where everything is configured

from ._yaml import load_yml, write_yml, yaml, yaml_dumps

# -----------------------------------------------------------------------------
# Dictionary operations


def recursive_update(d: dict, u: dict) -> dict:
    """Recursively updates the Mapping-like object ``d`` with the Mapping-like
    object ``u`` and returns it. Note that this does *not* create a copy of
    ``d``, but changes it mutably!

    Based on: http://stackoverflow.com/a/32357112/1827608

    Args:
        d (dict): The mapping to update
        u (dict): The mapping whose values are used to update ``d``

    Returns:
        dict: The updated dict ``d``
    """
    for k, v in u.items():
        if isinstance(d, collections.abc.Mapping):
            # Already a Mapping
            if isinstance(v, collections.abc.Mapping):
                # Already a Mapping, continue recursion
                d[k] = recursive_update(d.get(k, {}), v)
                # This already creates a mapping if the key was not available
            else:
                # Not a mapping -> at leaf -> update value
                d[k] = v  # ... which is just u[k]

        else:
            # Not a mapping -> create one
            d = {k: u[k]}
    return d


def recursive_equal(a, b) -> bool:
    """Compares two (nested) objects for equality without relying on their
    ``__eq__`` returning a single boolean.

    Mappings, lists and tuples are compared entry by entry. numpy arrays are
    compared via :py:func:`numpy.array_equal`, objects with an ``equals``
    method (e.g. data frames) via that method. Other objects whose comparison
    does not yield an unambiguous boolean are only regarded as equal if they
    are identical.

    Args:
        a: The first object
        b: The second object

    Returns:
        bool: Whether the objects are equal
    """
    if a is b:
        return True

    try:
        if isinstance(a, np.ndarray) or isinstance(b, np.ndarray):
            return bool(np.array_equal(a, b))

    except (TypeError, ValueError):
        return False

    if isinstance(a, collections.abc.Mapping):
        if not isinstance(b, collections.abc.Mapping) or len(a) != len(b):
            return False
        return all(
            k in b and recursive_equal(v, b[k]) for k, v in a.items()
        )

    elif isinstance(a, (list, tuple)):
        if type(a) is not type(b) or len(a) != len(b):
            return False
        return all(recursive_equal(_a, _b) for _a, _b in zip(a, b))

    try:
        if callable(getattr(a, "equals", None)):
            return bool(a.equals(b))
        return bool(a == b)

    except (TypeError, ValueError):
        # Ambiguous truth value or element-wise comparison failed
        return False


# -----------------------------------------------------------------------------
# Terminal messaging


def make_columns(
    items: List[str],
    *,
    wrap_width: int = 79,
    fstr: str = "  {item:<{width:}s}  ",
) -> str:
    """Given a sequence of string items, returns a string with these items
    spread out over several columns. Iteration is first within the row and
    then into the next row.

    The number of columns is determined automatically from the wrap width, the
    length of the longest item in the items list, and the length of the
    evaluated format string.

    Args:
        items (List[str]): The string items to represent in columns.
        wrap_width (int, optional): The maximum width of each full row.
        fstr (str, optional): The format string to use. Needs to accept the
            keys ``item`` and ``width``, the latter of which will be used for
            padding.
    """
    if not items:
        return ""

    max_item_width = max(len(item) for item in items)
    item_str_width = len(
        fstr.format(item=" " * max_item_width, width=max_item_width)
    )
    num_cols = max(wrap_width // item_str_width, 1)

    rows = []
    for i, item in enumerate(items):
        item_str = fstr.format(item=item, width=max_item_width)

        # New row or new column?
        if i % num_cols == 0:
            rows.append(item_str)
        else:
            rows[-1] += item_str

    return "\n".join(rows) + "\n"
