"""A module containing tools for generating plots from configurations, e.g.
as loaded from a YAML file:

.. code-block:: yaml

    presets:
      log_axes:
        - !fragment {category: scale, payload: {x: {trans: log10}}, replace: false}
        - !fragment {category: scale, payload: {y: {trans: log10}}, replace: false}

    plot:
      mapping:
        x: !expr displ
        y: !expr hwy
      defaults:
        theme-delta: {base_size: 11}
      fragments:
        - !fragment
          category: layer
          payload: {geom: point}
        - based_on: log_axes
        - !absent

Entries of the ``fragments`` list can be fragments, dicts with a
``category`` key (passed on to :py:func:`~plotfrag.fragment.make_fragment`),
nested lists, absent markers, or ``based_on`` entries that refer to named
presets.
"""

import logging
from difflib import get_close_matches as _get_close_matches
from itertools import chain as _chain
from typing import Mapping, Sequence, Tuple

from .composer import compose
from .context import PlotContext
from .exceptions import InvalidCategory, PlotConfigError
from .fragment import CATEGORIES, Fragment, is_absent, make_fragment
from .tools import load_yml, make_columns

log = logging.getLogger(__name__)

FRAGMENT_KEYS: tuple = ("category", "payload", "replace", "default")
"""Keys allowed in a dict-based fragment entry"""

PLOT_CFG_KEYS: tuple = ("mapping", "defaults", "fragments", "presets")
"""Keys allowed in a plot configuration"""

# -----------------------------------------------------------------------------


def _check_visited(
    visited: Sequence[str], *, next_visit: str
) -> Tuple[str]:
    """Performs cycle detection on the sequence of visited presets and raises
    an error if there will be a cycle. Otherwise, returns the new visiting
    sequence by appending the ``next_visit`` to the given sequence of
    ``visited`` entries.
    """
    if next_visit in visited:
        _loop = " <- ".join(_chain(visited, (next_visit,)))
        raise PlotConfigError(
            "While resolving the fragment presets, detected a circular "
            f"dependency:  {_loop}  (with arrows denoting dependency). "
            "Check the `based_on` entries of the involved presets."
        )
    return tuple(visited) + (next_visit,)


def _find_preset(name: str, *, presets: Mapping) -> list:
    """Looks up a preset in the given pool"""
    try:
        return presets[name]

    except KeyError:
        pass

    matches = _get_close_matches(name, list(presets), n=5)
    _dym = f"Did you mean: {', '.join(matches)} ?\n" if matches else ""
    raise PlotConfigError(
        f"Did not find a fragment preset named '{name}'! {_dym}"
        f"Available presets:\n{make_columns(list(presets))}"
    )


def _parse_entry(entry, *, presets: Mapping, _visited: Tuple[str]):
    """Parses a single entry of a fragment sequence configuration"""
    if is_absent(entry) or isinstance(entry, Fragment):
        return entry

    elif isinstance(entry, (list, tuple)):
        return fragments_from_cfg(entry, presets=presets, _visited=_visited)

    elif not isinstance(entry, Mapping):
        raise PlotConfigError(
            f"Invalid fragment sequence entry of type {type(entry).__name__}:"
            f" {repr(entry)}! Expected a fragment, a mapping with a "
            "`category` or `based_on` key, a list, or an absent marker."
        )

    if "based_on" in entry:
        if len(entry) > 1:
            raise PlotConfigError(
                "A `based_on` entry may not contain any other keys, but got: "
                f"{', '.join(k for k in entry if k != 'based_on')}"
            )

        based_on = entry["based_on"]
        if isinstance(based_on, str):
            based_on = (based_on,)

        resolved = []
        for name in based_on:
            log.debug("Resolving based_on: '%s' ...", name)
            visited = _check_visited(_visited, next_visit=name)
            resolved.append(
                fragments_from_cfg(
                    _find_preset(name, presets=presets),
                    presets=presets,
                    _visited=visited,
                )
            )
        return resolved

    bad_keys = [k for k in entry if k not in FRAGMENT_KEYS]
    if "category" not in entry or bad_keys:
        raise PlotConfigError(
            f"Invalid fragment entry {repr(dict(entry))}! Needs a `category` "
            f"key and may only contain the keys: {', '.join(FRAGMENT_KEYS)}."
        )

    return make_fragment(**entry)


def fragments_from_cfg(
    entries,
    *,
    presets: Mapping = None,
    _visited: Tuple[str] = (),
) -> list:
    """Turns a fragment sequence configuration into a fragment sequence.

    Args:
        entries: The configuration entries; a single entry is also accepted
        presets (Mapping, optional): Named fragment sequence configurations
            that can be referred to via ``based_on`` entries

    Returns:
        list: The (still nested) fragment sequence

    Raises:
        PlotConfigError: On invalid entries, missing or circular presets
    """
    presets = presets if presets is not None else {}
    if not isinstance(entries, (list, tuple)):
        entries = [entries]

    return [
        _parse_entry(entry, presets=presets, _visited=_visited)
        for entry in entries
    ]


def context_from_cfg(
    cfg: Mapping,
    *,
    data=None,
    environment=None,
    presets: Mapping = None,
) -> PlotContext:
    """Builds a plot context from a plot configuration.

    Args:
        cfg (Mapping): The plot configuration with the (optional) keys
            ``mapping``, ``defaults`` (category -> payload, applied as
            default overrides), ``fragments`` (the fragment sequence) and
            ``presets`` (named fragment sequences)
        data (optional): The data context
        environment (optional): The plot environment
        presets (Mapping, optional): Further presets; those defined in
            ``cfg`` take precedence

    Raises:
        PlotConfigError: On invalid configuration
        InvalidCategory: On invalid categories in ``defaults``
    """
    bad_keys = [k for k in cfg if k not in PLOT_CFG_KEYS]
    if bad_keys:
        raise PlotConfigError(
            f"Invalid plot configuration key(s): {', '.join(bad_keys)}! "
            f"Allowed keys are: {', '.join(PLOT_CFG_KEYS)}"
        )

    _presets = dict(presets if presets else {})
    _presets.update(cfg.get("presets") or {})

    defaults = dict(cfg.get("defaults") or {})
    for category in defaults:
        if category not in CATEGORIES:
            raise InvalidCategory(category, valid=CATEGORIES)

        elif category == "mapping-delta":
            raise PlotConfigError(
                "Default mappings need to be given via the `mapping` key, not "
                "as `mapping-delta` entry of the `defaults`."
            )

    if not isinstance(defaults.get("layer", []), list):
        raise PlotConfigError(
            "Default layers need to be given as a list of layer "
            f"specifications, got: {repr(defaults['layer'])}"
        )

    base = PlotContext(
        data,
        cfg.get("mapping"),
        environment=environment,
        overrides=defaults,
    )
    sequence = fragments_from_cfg(
        cfg.get("fragments") or [], presets=_presets
    )
    return compose(base, sequence)


def load_plot_cfg(
    path: str, *, name: str = None, **context_kwargs
) -> PlotContext:
    """Loads a plot configuration from a YAML file and builds the context.

    Args:
        path (str): Path to the YAML file
        name (str, optional): If given, the plot configuration is read from
            this top-level key; ``presets`` on the top level are shared by
            all plots of the file.
        **context_kwargs: Passed to :py:func:`.context_from_cfg`
    """
    log.note(
        "Loading plot configuration %s from %s ...",
        repr(name) if name is not None else "(whole file)",
        path,
    )
    cfg = load_yml(path)
    if name is None:
        return context_from_cfg(cfg, **context_kwargs)

    try:
        plot_cfg = cfg[name]

    except KeyError as err:
        _avail = ", ".join(k for k in cfg if k != "presets")
        raise PlotConfigError(
            f"No plot configuration '{name}' in {path}! Available: {_avail}"
        ) from err

    presets = dict(context_kwargs.pop("presets", None) or {})
    presets.update(cfg.get("presets") or {})
    return context_from_cfg(plot_cfg, presets=presets, **context_kwargs)
