"""The composer turns a (possibly nested, possibly sparse) sequence of
fragments into a flat build plan and applies it to a plot context.

Fragments are applied strictly in order; within each category the last write
wins. Whether a fragment replaces the previous value of its category or is
merged into it is determined by its ``replace`` flag:

=====================  ===========================  ==========================
category               ``replace=False``            ``replace=True``
=====================  ===========================  ==========================
``mapping-delta``      update channel by channel    replace the whole mapping
``layer``              append the layer             drop all previous layers
``scale``              update channel by channel    replace all scales
others                 recursive key-wise update    replace the payload
=====================  ===========================  ==========================
"""

import logging
import warnings
from typing import Callable, Dict, List, Mapping

from .context import PlotContext
from .exceptions import (
    CyclicSequenceError,
    InvalidSequenceEntry,
    ScaleOverrideWarning,
)
from .fragment import Fragment, is_absent
from .tools import recursive_update

log = logging.getLogger(__name__)

# -----------------------------------------------------------------------------


def flatten(sequence) -> List[Fragment]:
    """Flattens a fragment sequence depth-first, preserving the order of the
    entries. Absent markers are dropped.

    Args:
        sequence: A list or tuple of fragments, nested sequences, and absent
            markers (``ABSENT`` or ``None``). A single fragment or absent
            marker is also accepted.

    Returns:
        List[Fragment]: The flat, ordered list of fragments

    Raises:
        CyclicSequenceError: If a sequence contains itself
        InvalidSequenceEntry: For entries of any other type
    """
    if not isinstance(sequence, (list, tuple)):
        sequence = [sequence]

    fragments = []
    iters = [iter(sequence)]
    open_seqs = [sequence]

    while iters:
        try:
            entry = next(iters[-1])

        except StopIteration:
            iters.pop()
            open_seqs.pop()
            continue

        if is_absent(entry):
            continue

        elif isinstance(entry, Fragment):
            fragments.append(entry)

        elif isinstance(entry, (list, tuple)):
            if any(entry is s for s in open_seqs):
                raise CyclicSequenceError(
                    f"Fragment sequence at nesting depth {len(open_seqs)} "
                    "contains itself! Sequences of fragments need to be "
                    "free of cycles."
                )
            iters.append(iter(entry))
            open_seqs.append(entry)

        else:
            raise InvalidSequenceEntry(
                f"Got invalid entry of type {type(entry).__name__} in a "
                f"fragment sequence: {repr(entry)}! Allowed entries are "
                "fragments, nested lists or tuples of fragments, and absent "
                "markers (ABSENT or None)."
            )

    return fragments


# -----------------------------------------------------------------------------


class _CompositionState:
    """The working copies that fragments are applied to"""

    def __init__(self, base: PlotContext, *, warn: bool):
        self.mapping = base.mapping
        self.overrides = base.overrides
        self.user_scales = set(base.user_scales)
        self.warnings = []
        self.warn = warn


def _apply_mapping_delta(state: _CompositionState, frag: Fragment):
    if frag.replace:
        state.mapping = dict()

    for channel, expression in frag.payload.items():
        if expression is None:
            state.mapping.pop(channel, None)
        else:
            state.mapping[channel] = expression


def _apply_layer(state: _CompositionState, frag: Fragment):
    layers = [] if frag.replace else state.overrides.get("layer", [])
    layers.append(frag.payload)
    state.overrides["layer"] = layers


def _apply_scale(state: _CompositionState, frag: Fragment):
    scales = {} if frag.replace else state.overrides.get("scale", {})
    previous = state.overrides.get("scale", {})
    payload = frag.payload

    if not frag.default:
        for channel in payload:
            if channel not in state.user_scales:
                continue

            w = ScaleOverrideWarning(
                channel, previous=previous.get(channel), new=payload[channel]
            )
            log.caution("%s", w)
            state.warnings.append(w)
            if state.warn:
                warnings.warn(w, stacklevel=4)

    if frag.replace:
        state.user_scales.clear()

    scales.update(payload)
    state.overrides["scale"] = scales

    if frag.default:
        state.user_scales.difference_update(payload)
    else:
        state.user_scales.update(payload)


def _apply_generic(state: _CompositionState, frag: Fragment):
    old = state.overrides.get(frag.category)
    new = frag.payload

    if frag.replace or not isinstance(old, Mapping):
        state.overrides[frag.category] = new

    elif not isinstance(new, Mapping):
        log.debug(
            "Cannot merge non-mapping payload into %s; replacing it.",
            frag.category,
        )
        state.overrides[frag.category] = new

    else:
        state.overrides[frag.category] = recursive_update(old, new)


_APPLY_FUNCS: Dict[str, Callable] = {
    "mapping-delta": _apply_mapping_delta,
    "layer": _apply_layer,
    "scale": _apply_scale,
    "coordinate-system": _apply_generic,
    "facet-spec": _apply_generic,
    "theme-delta": _apply_generic,
}


def compose(base: PlotContext, sequence, *, warn: bool = True) -> PlotContext:
    """Composes a sequence of fragments onto a plot context.

    The sequence is flattened (see :py:func:`.flatten`) and the fragments are
    applied in order. ``base`` is not changed; a new context is returned.

    If a scale fragment targets a channel whose scale was already set by an
    explicit (non-default) fragment, a
    :py:class:`~plotfrag.exceptions.ScaleOverrideWarning` is recorded in the
    ``warnings`` of the resulting context; composition continues.

    Args:
        base (PlotContext): The context to start from
        sequence: The fragment sequence
        warn (bool, optional): Whether to additionally issue recorded
            warnings via :py:func:`warnings.warn`

    Returns:
        PlotContext: The new context
    """
    fragments = flatten(sequence)
    log.debug("Composing %d fragment(s) ...", len(fragments))

    state = _CompositionState(base, warn=warn)
    for frag in fragments:
        log.trace("Applying %s ...", frag)
        _APPLY_FUNCS[frag.category](state, frag)

    if state.warnings:
        log.remark(
            "Composition finished with %d warning(s).", len(state.warnings)
        )

    return base.evolve(
        mapping=state.mapping,
        overrides=state.overrides,
        user_scales=state.user_scales,
        warnings=state.warnings,
    )
