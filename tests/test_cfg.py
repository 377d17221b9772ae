"""Tests the plotfrag._cfg module, i.e. creating plots from configurations"""

import os

import numpy as np
import pytest

from plotfrag import (
    ABSENT,
    context_from_cfg,
    flatten,
    fragments_from_cfg,
    load_plot_cfg,
    make_fragment,
)
from plotfrag.exceptions import *
from plotfrag.expression import DeferredExpression, expr
from plotfrag.tools import load_yml, write_yml, yaml, yaml_dumps

from . import TEST_CFG_DIR
from ._fixtures import *

PLOTS_CFG = os.path.join(TEST_CFG_DIR, "plots.yml")

# -----------------------------------------------------------------------------


def test_yaml_tags():
    """Tests that plotfrag objects can be loaded from YAML"""
    cfg = load_yml(PLOTS_CFG)

    mapping = cfg["scatter"]["mapping"]
    assert isinstance(mapping["x"], DeferredExpression)
    assert mapping["x"] == expr("displ")
    assert mapping["y"] == expr("hwy / cyl")

    log_axes = cfg["presets"]["log_axes"]
    assert log_axes[0] == make_fragment(
        "scale", dict(x=dict(trans="log10")), replace=False
    )

    fragments = cfg["scatter"]["fragments"]
    assert fragments[1] is ABSENT
    assert fragments[2][1] is None

    # Formulas need the tilde
    with pytest.raises(InvalidExpression, match="one-sided formula"):
        yaml.load("!formula hwy / cyl")

    # Invalid fragments are already caught when loading
    with pytest.raises(InvalidCategory):
        yaml.load("!fragment {category: scales, payload: {}}")


def test_yaml_dump(tmpdir):
    """Tests that plotfrag objects can be written to YAML"""
    frags = [
        make_fragment("mapping-delta", dict(x="displ / cyl")),
        make_fragment("theme-delta", dict(base_size=11), replace=True),
        make_fragment("scale", dict(y=dict(trans="sqrt")), default=True),
        ABSENT,
    ]
    s = yaml_dumps(frags)
    assert "!fragment" in s
    assert "!expr" in s
    assert "!absent" in s
    assert yaml.load(s) == frags

    # The captured environment is not part of the representation
    e = expr("hwy * k", env=dict(k=2))
    assert yaml.load(yaml_dumps(e)) == expr("hwy * k")

    path = tmpdir.join("sub", "frags.yml")
    write_yml(frags, path=str(path))
    assert load_yml(str(path)) == frags


def test_load_yml_hints(tmpdir):
    """Errors upon loading YAML files come with hints"""
    path = tmpdir.join("bad_category.yml")
    with open(path, "x") as f:
        f.write("---\nfragments:\n")
        f.write("  - !fragment {category: scales, payload: {}}\n")

    with pytest.raises(InvalidCategory, match=r"Hint\(s\)") as exc_info:
        load_yml(str(path))
    assert "Did you mean: scale" in str(exc_info.value)
    assert "with the keys `category`" in str(exc_info.value)

    # Without hints, the original error is raised
    with pytest.raises(InvalidCategory) as exc_info:
        load_yml(str(path), improve_errors=False)
    assert exc_info.value.category == "scales"
    assert "Hint(s)" not in str(exc_info.value)

    # Formulas without a tilde
    path = tmpdir.join("bad_formula.yml")
    with open(path, "x") as f:
        f.write("---\nmapping: {y: !formula hwy / cyl}\n")

    with pytest.raises(InvalidExpression, match="start with a tilde"):
        load_plot_cfg(str(path))


# -----------------------------------------------------------------------------


def test_fragments_from_cfg():
    """Tests parsing of fragment sequence configurations"""
    frag = make_fragment("layer", dict(geom="point"))
    presets = dict(
        pts=[dict(category="layer", payload=dict(geom="point"))],
        both=[dict(based_on=["pts", "lines"])],
        lines=dict(category="layer", payload=dict(geom="line")),
    )

    seq = fragments_from_cfg(
        [frag, None, ABSENT, [dict(category="theme-delta")]],
        presets=presets,
    )
    assert seq == [frag, None, ABSENT, [make_fragment("theme-delta")]]

    assert fragments_from_cfg(frag) == [frag]

    seq = fragments_from_cfg([dict(based_on="both")], presets=presets)
    assert flatten(seq) == [frag, make_fragment("layer", dict(geom="line"))]


def test_fragments_from_cfg_errors():
    """Tests errors when parsing fragment sequence configurations"""
    presets = dict(
        foo=[dict(based_on="bar")],
        bar=[dict(based_on="spam")],
        spam=[dict(based_on="foo")],
        selfref=[dict(based_on="selfref")],
    )

    with pytest.raises(PlotConfigError, match="foo <- bar <- spam <- foo"):
        fragments_from_cfg([dict(based_on="foo")], presets=presets)

    with pytest.raises(PlotConfigError, match="circular dependency"):
        fragments_from_cfg(dict(based_on="selfref"), presets=presets)

    with pytest.raises(PlotConfigError, match="Did you mean: spam"):
        fragments_from_cfg([dict(based_on="spamm")], presets=presets)

    with pytest.raises(PlotConfigError, match="may not contain any other"):
        fragments_from_cfg(
            [dict(based_on="foo", category="layer")], presets=presets
        )

    with pytest.raises(PlotConfigError, match="Needs a `category`"):
        fragments_from_cfg([dict(payload=dict(geom="point"))])

    with pytest.raises(PlotConfigError, match="Needs a `category`"):
        fragments_from_cfg([dict(category="layer", foo="bar")])

    with pytest.raises(PlotConfigError, match="type int"):
        fragments_from_cfg([42])

    with pytest.raises(InvalidCategory):
        fragments_from_cfg([dict(category="foo")])

    # Non-circular repeated use of presets is fine
    presets = dict(a=[dict(category="layer")], b=[dict(based_on="a")])
    seq = fragments_from_cfg(
        [dict(based_on=["a", "b"]), dict(based_on="b")], presets=presets
    )
    assert len(seq) == 2


# -----------------------------------------------------------------------------


def test_context_from_cfg(mpg):
    """Tests creating a plot context from a configuration"""
    cfg = dict(
        mapping=dict(x="displ", y="hwy / k"),
        defaults={"theme-delta": dict(base_size=11)},
        fragments=[
            dict(category="layer", payload=dict(geom="point")),
            dict(based_on="log_x"),
        ],
        presets=dict(
            log_x=[
                dict(
                    category="scale",
                    payload=dict(x=dict(trans="log10")),
                    replace=False,
                )
            ]
        ),
    )
    ctx = context_from_cfg(cfg, data=mpg, environment=dict(k=2))

    assert ctx.data is mpg
    assert ctx.mapping == dict(x=expr("displ"), y=expr("hwy / k"))
    assert ctx.get("theme-delta") == dict(base_size=11)
    assert ctx.get("scale") == dict(x=dict(trans="log10"))
    assert [l["geom"] for l in ctx.layers] == ["point"]
    assert ctx.user_scales == {"x"}
    assert np.allclose(ctx.resolve("y"), mpg["hwy"] / 2)

    # Presets in the configuration take precedence
    other = dict(log_x=[dict(category="scale", payload=dict(x=None))])
    assert context_from_cfg(cfg, data=mpg, presets=other) == context_from_cfg(
        cfg, data=mpg
    )

    # Empty configuration
    ctx = context_from_cfg({})
    assert ctx.mapping == {}
    assert ctx.overrides == {}


def test_context_from_cfg_errors():
    """Tests invalid plot configurations"""
    with pytest.raises(PlotConfigError, match="Invalid plot configuration"):
        context_from_cfg(dict(mapping={}, foo="bar"))

    with pytest.raises(InvalidCategory, match="Did you mean: theme-delta"):
        context_from_cfg(dict(defaults={"theme_delta": {}}))

    with pytest.raises(PlotConfigError, match="need to be given via"):
        context_from_cfg(dict(defaults={"mapping-delta": dict(x="displ")}))

    with pytest.raises(PlotConfigError, match="list of layer"):
        context_from_cfg(dict(defaults=dict(layer=dict(geom="point"))))


def test_load_plot_cfg(mpg):
    """Tests loading plots from a YAML file"""
    ctx = load_plot_cfg(PLOTS_CFG, name="scatter", data=mpg)

    assert ctx.mapping == dict(x=expr("displ"), y=expr("hwy / cyl"))
    assert ctx.layers == [
        dict(geom="point", stat="identity", params=dict(alpha=0.5))
    ]
    assert ctx.get("scale") == dict(
        x=dict(trans="log10"), y=dict(trans="log10")
    )
    assert ctx.get("theme-delta") == dict(
        base_size=11, text=dict(colour="black", size=9)
    )
    assert ctx.user_scales == {"x", "y"}
    assert ctx.warnings == ()
    assert np.allclose(ctx.resolve("y"), mpg["hwy"] / mpg["cyl"])

    # Defaults are regarded as such
    ctx = load_plot_cfg(PLOTS_CFG, name="faceted", data=mpg)
    assert ctx.warnings == ()
    assert [l["geom"] for l in ctx.layers] == ["blank", "point"]
    assert ctx.get("scale") == dict(x=dict(trans="reverse"))
    assert ctx.get("facet-spec") == dict(type="wrap", wrap=[expr("class")])

    res = ctx.resolve_expressions()
    assert all(r.ok for r in res.values())
    assert np.array_equal(
        res[("facet-spec", "wrap", 0)].value, mpg["class"]
    )

    # Circular presets
    with pytest.raises(PlotConfigError, match="foo <- bar <- foo"):
        load_plot_cfg(PLOTS_CFG, name="circular")

    # Missing plot
    with pytest.raises(PlotConfigError, match="Available: scatter, faceted"):
        load_plot_cfg(PLOTS_CFG, name="foo")

    # Without a name, the whole file is a single plot configuration
    with pytest.raises(PlotConfigError, match="Invalid plot configuration"):
        load_plot_cfg(PLOTS_CFG)
