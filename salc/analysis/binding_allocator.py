"""Assign binding slots and locations per resource class.

Each resource class (vertex attributes, constant buffers, textures,
outputs) is numbered independently from 0. Explicit ``Order(n)`` slots are
reserved first; the remaining entities take the smallest free slot in
declaration order. ``relocate_program`` then renumbers buffers and
textures across the files of a batch so every stage of a program binds a
shared resource at the same slot.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from salc.errors import SlotCollisionError
from salc.builtins.types import location_count
from salc.analysis.model import FileModel

logger = logging.getLogger(__name__)

VERTEX_ATTRIBUTE = "vertex attribute"
CONSTANT_BUFFER = "constant buffer"
TEXTURE = "texture"
OUTPUT = "output"


@dataclass(frozen=True)
class SlotRequest:
    name: str
    order: Optional[int]
    decl_index: int
    line: int = 0
    column: int = 0
    width: int = 1   # consecutive slots taken, e.g. matrix columns


def allocate_slots(requests: Sequence[SlotRequest], resource_class: str = "",
                   file: str = "") -> dict[str, int]:
    claimed: dict[int, list[SlotRequest]] = {}
    for req in requests:
        if req.order is not None:
            for slot in range(req.order, req.order + req.width):
                claimed.setdefault(slot, []).append(req)
    for slot in sorted(claimed):
        owners = claimed[slot]
        if len(owners) > 1:
            at = owners[1]
            raise SlotCollisionError(
                slot, [r.name for r in owners], resource_class, file, at.line, at.column
            )

    slots = {req.name: req.order for req in requests if req.order is not None}
    next_slot = 0
    for req in sorted(requests, key=lambda r: r.decl_index):
        if req.order is not None:
            continue
        while any(s in claimed for s in range(next_slot, next_slot + req.width)):
            next_slot += 1
        slots[req.name] = next_slot
        next_slot += req.width
    return slots


def _request(name, order, decl_index, loc, width=1) -> SlotRequest:
    if loc is None:
        return SlotRequest(name, order, decl_index, width=width)
    return SlotRequest(name, order, decl_index, loc.line, loc.column, width)


def assign_bindings(model: FileModel) -> None:
    file = model.file

    if model.vertex_format is not None:
        vf = model.vertex_format
        slots = allocate_slots(
            [_request(i.name, i.order, i.index, vf.loc, location_count(i.type)) for i in vf.inputs],
            VERTEX_ATTRIBUTE, file,
        )
        for inp in vf.inputs:
            inp.location = slots[inp.name]

    slots = allocate_slots(
        [_request(cb.name, cb.order, cb.decl_index, cb.loc) for cb in model.constant_buffers],
        CONSTANT_BUFFER, file,
    )
    for cb in model.constant_buffers:
        cb.binding = slots[cb.name]

    slots = allocate_slots(
        [_request(t.name, None, t.decl_index, t.loc) for t in model.textures],
        TEXTURE, file,
    )
    for tex in model.textures:
        tex.binding = slots[tex.name]

    slots = allocate_slots(
        [_request(o.name, o.order, o.decl_index, o.loc) for o in model.outputs],
        OUTPUT, file,
    )
    for out in model.outputs:
        out.location = slots[out.name]

    logger.debug(
        "%s: assigned %d buffer(s), %d texture(s), %d output(s)",
        file, len(model.constant_buffers), len(model.textures), len(model.outputs),
    )


def _where(model: FileModel, ent) -> tuple[int, int]:
    # imported entities carry their defining file's location
    if ent.loc is None or getattr(ent, "origin", model.file) != model.file:
        return 0, 0
    return ent.loc.line, ent.loc.column


def _relocate(models: Sequence[FileModel], entities, order_of, resource_class: str) -> None:
    pinned: dict[str, tuple[int, str]] = {}
    owners: dict[int, str] = {}
    for model in models:
        for ent in entities(model):
            order = order_of(ent)
            if order is None:
                continue
            line, column = _where(model, ent)
            if ent.name in pinned and pinned[ent.name][0] != order:
                slot, first = pinned[ent.name]
                raise SlotCollisionError(
                    order, [ent.name], resource_class, model.file, line, column,
                    detail=f"'{first}' binds it to slot {slot}",
                )
            if owners.get(order, ent.name) != ent.name:
                raise SlotCollisionError(
                    order, [owners[order], ent.name], resource_class, model.file, line, column,
                )
            pinned.setdefault(ent.name, (order, model.file))
            owners[order] = ent.name

    slots = {name: slot for name, (slot, _) in pinned.items()}
    next_slot = 0
    for model in models:
        for ent in sorted(entities(model), key=lambda e: e.decl_index):
            if ent.name in slots:
                continue
            while next_slot in owners:
                next_slot += 1
            slots[ent.name] = next_slot
            owners[next_slot] = ent.name

    for model in models:
        for ent in entities(model):
            ent.binding = slots[ent.name]


def relocate_program(models: Sequence[FileModel]) -> None:
    """Renumber buffers and textures so the stages of one program agree.

    A name gets the same binding in every model that declares or imports
    it. Explicit orders are kept; the remaining names take the smallest
    free slot in first-encounter order (model order, then declaration
    order). Vertex attributes and outputs stay per stage.
    """
    _relocate(models, lambda m: m.constant_buffers, lambda cb: cb.order, CONSTANT_BUFFER)
    _relocate(models, lambda m: m.textures, lambda tex: None, TEXTURE)
    logger.debug("relocated bindings across %d stage(s)", len(models))
