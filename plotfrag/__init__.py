""":py:mod:`plotfrag` builds declarative plot specifications from reusable,
parameterized fragments.

It is built around three parts:

- **fragments**: immutable plot-building units (layers, mapping deltas,
  scales, coordinate systems, facet specs, theme deltas)
- **composition**: flattening nested, sparse sequences of fragments and
  applying them, in order, to a plot context
- **deferred expressions**: channel mappings that are evaluated only once the
  data and the scope chain of the plot are known
"""

__version__ = "0.1.0"
"""Package version"""

# Set up the root logger such that the logging configuration is applied
from .logging import getLogger as _getLogger

_log = _getLogger(__name__)

# -- Most important plotfrag classes and functions ----------------------------
from ._cfg import context_from_cfg, fragments_from_cfg, load_plot_cfg
from .components import (
    aes,
    coord,
    dispatch_params,
    facet,
    layer,
    merge_params,
    scale,
    summary_layers,
    theme,
)
from .composer import compose, flatten
from .context import PlotContext
from .env import Environment, Scope
from .expression import (
    DeferredExpression,
    Resolution,
    ResolutionState,
    capture,
    expr,
    formula,
    resolve,
    resolve_all,
)
from .fragment import ABSENT, CATEGORIES, Fragment, make_fragment
