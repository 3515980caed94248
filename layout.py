from __future__ import annotations

import logging
import threading
from typing import Iterable, Sequence

from cards import CARD_IDS
from schemas import DashboardLayoutEntry
from storage import LayoutStore

logger = logging.getLogger(__name__)


def default_layout(known_ids: Sequence[str]) -> list[DashboardLayoutEntry]:
    return [
        DashboardLayoutEntry(id=card_id, order=index, visible=True)
        for index, card_id in enumerate(known_ids)
    ]


def reconcile(
    entries: Iterable[DashboardLayoutEntry], known_ids: Sequence[str]
) -> list[DashboardLayoutEntry]:
    """Merge a stored layout with the cards this version knows about.

    Stored entries are kept untouched, including ids no longer known, so a
    later version can bring them back. Known ids missing from the layout are
    appended after the highest stored order, visible, in registry order.
    """
    merged: list[DashboardLayoutEntry] = []
    seen: set[str] = set()
    for entry in entries:
        if entry.id in seen:
            continue
        seen.add(entry.id)
        merged.append(entry)

    next_order = max((e.order for e in merged), default=-1) + 1
    for card_id in known_ids:
        if card_id in seen:
            continue
        merged.append(DashboardLayoutEntry(id=card_id, order=next_order, visible=True))
        seen.add(card_id)
        next_order += 1
    return merged


class LayoutReconciler:
    """User ordering and visibility of dashboard cards.

    Subscribes to the store on construction so layout writes made through
    the same store elsewhere are picked up; call ``close`` to unsubscribe.
    """

    def __init__(
        self, store: LayoutStore, known_ids: Sequence[str] = CARD_IDS
    ) -> None:
        self.store = store
        self.known_ids = tuple(known_ids)
        self._known = frozenset(self.known_ids)
        self._lock = threading.Lock()
        self._entries: tuple[DashboardLayoutEntry, ...] = ()
        self._unsubscribe = store.subscribe(self._on_change)
        self._entries = tuple(self._load())

    def __enter__(self) -> "LayoutReconciler":
        return self

    def __exit__(self, *_exc) -> None:
        self.close()

    def close(self) -> None:
        self._unsubscribe()

    @property
    def entries(self) -> tuple[DashboardLayoutEntry, ...]:
        return self._entries

    def _load(self) -> list[DashboardLayoutEntry]:
        stored = self.store.load()
        merged = reconcile(stored, self.known_ids)
        stale = [e.id for e in merged if e.id not in self._known]
        if stale:
            logger.warning(f"layout_reconcile: stale_ids={stale}")
        if merged != stored:
            added = len(merged) - len(stored)
            logger.info(f"layout_reconcile: appended={added}")
            merged = self.store.update(lambda current: reconcile(current, self.known_ids))
        return merged

    def _on_change(self, entries: list[DashboardLayoutEntry]) -> None:
        self._entries = tuple(reconcile(entries, self.known_ids))

    def ordered_visible_ids(self) -> list[str]:
        visible = sorted(
            (e for e in self._entries if e.visible), key=lambda e: e.order
        )
        return [e.id for e in visible if e.id in self._known]

    def reorder(self, new_ids: Sequence[str]) -> list[str]:
        new_ids = list(new_ids)
        if len(set(new_ids)) != len(new_ids):
            raise ValueError("Duplicate card ids in reorder")
        unknown = [card_id for card_id in new_ids if card_id not in self._known]
        if unknown:
            raise ValueError(f"Unknown card ids: {', '.join(unknown)}")
        positions = {card_id: index for index, card_id in enumerate(new_ids)}

        def apply(current: list[DashboardLayoutEntry]) -> list[DashboardLayoutEntry]:
            return [
                entry.model_copy(update={"order": positions[entry.id]})
                if entry.id in positions
                else entry
                for entry in reconcile(current, self.known_ids)
            ]

        with self._lock:
            self._entries = tuple(self.store.update(apply))
        logger.info(f"layout_reorder: ids={new_ids}")
        return self.ordered_visible_ids()

    def set_visibility(self, card_id: str, visible: bool) -> DashboardLayoutEntry:
        if card_id not in self._known:
            raise KeyError(card_id)

        def apply(current: list[DashboardLayoutEntry]) -> list[DashboardLayoutEntry]:
            return [
                entry.model_copy(update={"visible": visible})
                if entry.id == card_id
                else entry
                for entry in reconcile(current, self.known_ids)
            ]

        with self._lock:
            self._entries = tuple(self.store.update(apply))
        logger.info(f"layout_visibility: id={card_id} visible={visible}")
        return next(e for e in self._entries if e.id == card_id)

    def reset(self) -> list[str]:
        with self._lock:
            self._entries = tuple(
                self.store.update(lambda _current: default_layout(self.known_ids))
            )
        logger.info("layout_reset")
        return self.ordered_visible_ids()
