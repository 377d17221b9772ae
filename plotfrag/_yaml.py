"""Takes care of all YAML-related imports and configuration

The ``ruamel.yaml.YAML`` object used here is imported from :py:mod:`yayaml`
and specialized such that it can load and dump plotfrag classes: deferred
expressions (``!expr``), fragments (``!fragment``) and the absent marker
(``!absent``).
"""

import logging

from yayaml import (
    add_yaml_error_hint,
    is_constructor,
    load_yml,
    write_yml,
    yaml,
    yaml_dumps,
)

from .exceptions import FragmentError, InvalidExpression
from .expression import DeferredExpression, formula
from .fragment import Fragment, _AbsentType

log = logging.getLogger(__name__)

# -- YAML configuration -------------------------------------------------------

yaml.default_flow_style = False

# -- Class registration -------------------------------------------------------
# NOTE This replaces the yayaml constructor for the ``!expr`` tag, which would
#      evaluate the expression right away.
yaml.register_class(DeferredExpression)
yaml.register_class(Fragment)
yaml.register_class(_AbsentType)


# Special constructors ........................................................
# .. One-sided formulas, e.g. ``!formula "~ displ / cyl"`` . . . . . . . . . .
@is_constructor("!formula")
def formula_constructor(loader, node) -> DeferredExpression:
    return formula(str(loader.construct_scalar(node)))


# -- Error hints --------------------------------------------------------------

add_yaml_error_hint(
    lambda e: isinstance(e, FragmentError),
    "Fragments need to be given as a mapping with the keys `category` and "
    "(optionally) `payload`, `replace` and `default`.",
)
add_yaml_error_hint(
    lambda e: isinstance(e, InvalidExpression),
    "The !expr and !formula tags need an arithmetic expression over "
    "variable names; formulas additionally start with a tilde (~).",
)
