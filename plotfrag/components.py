"""Functions producing fragments, the building blocks of a plot.

These are meant to be called and combined by user-defined wrapper functions:
a wrapper may return a single fragment or a list of fragments (which may
contain further lists or absent markers), and the composer takes care of the
rest.

.. code-block:: python

    def mean_plot(*, se=True, **shared):
        return [
            summary_layers(se=se, **shared),
            scale("y", limits=(0, None)),
        ]

    ctx = PlotContext(mpg, aes(x="class", y="hwy").payload) + mean_plot()

Arguments that configure a fragment directly (e.g. the parameters of a layer)
are evaluated immediately, while everything given as mapping is deferred and
only resolved against the data when the plot is built.
"""

import copy
import logging
from typing import Dict, Mapping, Sequence, Union

from .expression import DeferredExpression, as_expression
from .fragment import ABSENT, Fragment, make_fragment
from .tools import recursive_update

log = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Parameter handling


def merge_params(*configs: Mapping) -> dict:
    """Merges configuration mappings from left to right into a new dict; later
    entries win, nested mappings are merged recursively. ``None`` entries are
    skipped. None of the arguments are changed.
    """
    merged = dict()
    for cfg in configs:
        if cfg is None:
            continue
        merged = recursive_update(merged, copy.deepcopy(dict(cfg)))
    return merged


def dispatch_params(shared: Mapping = None, **groups: Mapping) -> Dict[str, dict]:
    """Merges the ``shared`` parameters into each of the named parameter
    groups, independently of each other. Group-specific values win.

    .. code-block:: python

        dispatch_params(dict(colour="k"), bar=dict(fill="grey"), errorbar={})
        # {'bar': {'colour': 'k', 'fill': 'grey'},
        #  'errorbar': {'colour': 'k'}}
    """
    return {
        name: merge_params(shared, group) for name, group in groups.items()
    }


def _as_mapping(mapping: Union[Mapping, Fragment, None]) -> dict:
    """Extracts a channel mapping from a mapping or a mapping-delta fragment"""
    if mapping is None:
        return {}

    elif isinstance(mapping, Fragment):
        if mapping.category != "mapping-delta":
            raise TypeError(
                "Expected a mapping-delta fragment as mapping, got a "
                f"{mapping.category} fragment!"
            )
        return mapping.payload

    return {ch: as_expression(e) for ch, e in mapping.items()}


# -----------------------------------------------------------------------------
# Fragment producers


def aes(x=None, y=None, *, unset: Sequence[str] = (), **channels) -> Fragment:
    """Creates a mapping-delta fragment, mapping visual channels to deferred
    expressions.

    Values may be strings (``"displ / cyl"``, ``"~ displ"``), sympy
    expressions, or :py:class:`~plotfrag.expression.DeferredExpression`
    objects, e.g. from :py:func:`~plotfrag.expression.capture`.

    Args:
        x (optional): Expression for the ``x`` channel
        y (optional): Expression for the ``y`` channel
        unset (Sequence[str], optional): Channels to remove from the mapping
        **channels: Expressions for further channels; ``None`` values are
            skipped
    """
    payload = dict()
    for ch, e in dict(x=x, y=y, **channels).items():
        if e is not None:
            payload[ch] = as_expression(e)

    for ch in unset:
        payload[ch] = None

    return make_fragment("mapping-delta", payload)


def layer(
    geom: str,
    *,
    stat: str = "identity",
    mapping: Union[Mapping, Fragment] = None,
    data=None,
    inherit: bool = True,
    **params,
) -> Fragment:
    """Creates a layer fragment.

    Args:
        geom (str): Name of the geometry, e.g. ``point`` or ``bar``
        stat (str, optional): Name of the statistical transformation
        mapping (Union[Mapping, Fragment], optional): Layer-specific channel
            mapping, either a mapping or a mapping-delta fragment from
            :py:func:`.aes`. It is deferred, like the plot mapping.
        data (optional): Layer-specific data
        inherit (bool, optional): Whether the layer inherits the plot mapping
        **params: Further layer parameters, evaluated immediately
    """
    spec = dict(geom=geom, stat=stat, params=params)

    _mapping = _as_mapping(mapping)
    if _mapping:
        spec["mapping"] = _mapping
    if data is not None:
        spec["data"] = data
    if not inherit:
        spec["inherit"] = False

    return make_fragment("layer", spec)


def scale(channel: str, *, default: bool = False, **params) -> Fragment:
    """Creates a scale fragment for a single channel, e.g.
    ``scale("x", trans="log10")``. It is merged channel-wise into the scales
    of the plot.

    Args:
        channel (str): The visual channel this scale applies to
        default (bool, optional): Whether this is a default scale. Overriding
            a default scale does not trigger a warning.
        **params: The scale specification
    """
    return make_fragment(
        "scale", {channel: params}, replace=False, default=default
    )


def coord(system: str = "cartesian", **params) -> Fragment:
    """Creates a coordinate-system fragment, replacing the previous one"""
    return make_fragment("coordinate-system", dict(system=system, **params))


def facet(
    rows: Union[str, DeferredExpression, Sequence] = None,
    cols: Union[str, DeferredExpression, Sequence] = None,
    *,
    wrap: Union[str, DeferredExpression, Sequence] = None,
    **params,
) -> Fragment:
    """Creates a facet-spec fragment. Faceting variables are deferred
    expressions; they may be given as a single expression or a sequence.
    """

    def as_vars(v) -> list:
        if v is None:
            return []
        elif isinstance(v, (list, tuple)):
            return [as_expression(e) for e in v]
        return [as_expression(v)]

    if wrap is not None and (rows is not None or cols is not None):
        raise ValueError(
            "Cannot specify both `wrap` and `rows` or `cols` for faceting!"
        )

    if wrap is not None:
        spec = dict(type="wrap", wrap=as_vars(wrap), **params)
    else:
        spec = dict(type="grid", rows=as_vars(rows), cols=as_vars(cols))
        spec.update(params)

    return make_fragment("facet-spec", spec)


def theme(*, replace: bool = False, **elements) -> Fragment:
    """Creates a theme-delta fragment; by default, it is merged recursively
    into the current theme settings."""
    return make_fragment("theme-delta", elements, replace=replace)


# -----------------------------------------------------------------------------
# Composite components


def summary_layers(
    *,
    se: bool = True,
    bar_params: Mapping = None,
    errorbar_params: Mapping = None,
    **shared,
) -> list:
    """A component consisting of multiple fragments: a bar layer showing the
    mean and, optionally, an error bar layer showing the standard error.

    The ``shared`` parameters are passed to both layers, while the
    ``bar_params`` and ``errorbar_params`` only affect their layer and take
    precedence over the shared ones.

    Args:
        se (bool, optional): Whether to include the error bar layer; if not,
            its place in the returned list is taken by an absent marker
        bar_params (Mapping, optional): Parameters for the bar layer
        errorbar_params (Mapping, optional): Parameters for the error bars
        **shared: Parameters for both layers

    Returns:
        list: The bar layer and the error bar layer (or an absent marker)
    """
    params = dispatch_params(
        shared, bar=bar_params, errorbar=errorbar_params
    )
    bar_cfg = merge_params(
        dict(fun="mean", fill="grey70"), params["bar"]
    )
    errorbar_cfg = merge_params(
        dict(fun="mean_se", width=0.4), params["errorbar"]
    )

    bar = layer("bar", stat="summary", **bar_cfg)
    errorbar = layer("errorbar", stat="summary", **errorbar_cfg)

    return [bar, errorbar if se else ABSENT]
