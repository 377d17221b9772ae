"""Tests the plotfrag.components module"""

import numpy as np
import pytest

from plotfrag import (
    ABSENT,
    Fragment,
    aes,
    capture,
    compose,
    coord,
    dispatch_params,
    facet,
    layer,
    merge_params,
    scale,
    summary_layers,
    theme,
)
from plotfrag.expression import expr

from ._fixtures import *

# -- Some wrappers, as users would write them ---------------------------------


def mean_plot(*, se: bool = True, log_y: bool = False, **shared) -> list:
    """A wrapper combining a component and an optional scale"""
    return [
        summary_layers(se=se, **shared),
        scale("y", trans="log10") if log_y else None,
    ]


def scaled(var: str, *, factor: float):
    """A wrapper whose arguments end up in a deferred expression"""
    return aes(y=capture(f"{var} * factor"))


# -----------------------------------------------------------------------------


def test_merge_params():
    """Tests merging of parameter mappings"""
    a = dict(foo=1, bar=dict(a=1, b=2))
    b = dict(bar=dict(b=3), baz=4)

    merged = merge_params(a, None, b)
    assert merged == dict(foo=1, bar=dict(a=1, b=3), baz=4)

    # Inputs not changed
    assert a == dict(foo=1, bar=dict(a=1, b=2))
    assert b == dict(bar=dict(b=3), baz=4)

    merged["bar"]["a"] = 10
    assert a["bar"]["a"] == 1

    assert merge_params() == {}
    assert merge_params(None) == {}


def test_dispatch_params():
    """Shared parameters are given to each group independently"""
    shared = dict(colour="k", size=dict(a=1))
    params = dispatch_params(
        shared, bar=dict(fill="grey"), errorbar=dict(colour="r"), other=None
    )
    assert params == dict(
        bar=dict(colour="k", size=dict(a=1), fill="grey"),
        errorbar=dict(colour="r", size=dict(a=1)),
        other=dict(colour="k", size=dict(a=1)),
    )

    params["bar"]["size"]["a"] = 2
    assert params["errorbar"]["size"]["a"] == 1
    assert shared["size"]["a"] == 1

    assert dispatch_params(None, foo=dict(a=1)) == dict(foo=dict(a=1))


def test_aes():
    """Tests the mapping-delta producer"""
    frag = aes("displ", "hwy / cyl", colour="drv", size=None)
    assert isinstance(frag, Fragment)
    assert frag.category == "mapping-delta"
    assert frag.payload == dict(
        x=expr("displ"), y=expr("hwy / cyl"), colour=expr("drv")
    )

    frag = aes(y="~ cty", unset=("colour",))
    assert frag.payload == dict(y=expr("cty"), colour=None)

    assert aes().payload == {}


def test_layer():
    """Tests the layer producer"""
    frag = layer("point")
    assert frag.category == "layer"
    assert frag.payload == dict(geom="point", stat="identity", params={})

    frag = layer(
        "smooth",
        stat="smooth",
        mapping=aes(colour="drv"),
        data="other",
        inherit=False,
        method="lm",
    )
    assert frag.payload == dict(
        geom="smooth",
        stat="smooth",
        params=dict(method="lm"),
        mapping=dict(colour=expr("drv")),
        data="other",
        inherit=False,
    )

    assert layer("text", mapping=dict(label="class")).payload["mapping"] == {
        "label": expr("class")
    }

    with pytest.raises(TypeError, match="mapping-delta fragment"):
        layer("point", mapping=scale("x"))


def test_scale_coord_theme():
    """Tests the remaining simple producers"""
    frag = scale("x", trans="log10", breaks=[1, 10])
    assert frag.category == "scale"
    assert frag.payload == dict(x=dict(trans="log10", breaks=[1, 10]))
    assert not frag.replace
    assert not frag.default
    assert scale("y", default=True).default

    frag = coord("polar", theta="x")
    assert frag.category == "coordinate-system"
    assert frag.payload == dict(system="polar", theta="x")
    assert frag.replace
    assert coord().payload == dict(system="cartesian")

    frag = theme(base_size=11, text=dict(colour="black"))
    assert frag.category == "theme-delta"
    assert not frag.replace
    assert theme(replace=True).replace


def test_facet():
    """Tests the facet-spec producer"""
    frag = facet(rows="drv")
    assert frag.category == "facet-spec"
    assert frag.payload == dict(type="grid", rows=[expr("drv")], cols=[])

    frag = facet(cols=["drv", "cyl"], scales="free")
    assert frag.payload == dict(
        type="grid", rows=[], cols=[expr("drv"), expr("cyl")], scales="free"
    )

    frag = facet(wrap="class", ncol=3)
    assert frag.payload == dict(type="wrap", wrap=[expr("class")], ncol=3)

    with pytest.raises(ValueError, match="both `wrap` and `rows`"):
        facet(rows="drv", wrap="class")


# -----------------------------------------------------------------------------


def test_summary_layers():
    """Tests the composite component"""
    bar, errorbar = summary_layers()
    assert bar.payload == dict(
        geom="bar",
        stat="summary",
        params=dict(fun="mean", fill="grey70"),
    )
    assert errorbar.payload == dict(
        geom="errorbar",
        stat="summary",
        params=dict(fun="mean_se", width=0.4),
    )

    # Without standard error, there is an absent marker in its place
    bar, errorbar = summary_layers(se=False)
    assert errorbar is ABSENT

    # Parameters are dispatched
    bar, errorbar = summary_layers(
        colour="black",
        bar_params=dict(fill="white"),
        errorbar_params=dict(width=0.2),
    )
    assert bar.payload["params"] == dict(
        fun="mean", fill="white", colour="black"
    )
    assert errorbar.payload["params"] == dict(
        fun="mean_se", width=0.2, colour="black"
    )


def test_wrappers(base, mpg):
    """Tests user-defined wrappers, which return nested sparse sequences"""
    ctx = compose(base, mean_plot())
    assert [l["geom"] for l in ctx.layers] == ["bar", "errorbar"]
    assert ctx.get("scale") is None

    ctx = base + mean_plot(se=False, log_y=True, colour="black")
    assert [l["geom"] for l in ctx.layers] == ["bar"]
    assert ctx.layers[0]["params"]["colour"] == "black"
    assert ctx.get("scale") == dict(y=dict(trans="log10"))

    # Wrappers capturing their arguments in deferred expressions
    ctx = base + scaled("hwy", factor=2)
    assert np.allclose(ctx.resolve("y"), 2 * mpg["hwy"])

    # Each call captures its own scope
    a, b = scaled("cty", factor=3), scaled("cty", factor=4)
    assert np.allclose((base + a).resolve("y"), 3 * mpg["cty"])
    assert np.allclose((base + b).resolve("y"), 4 * mpg["cty"])
