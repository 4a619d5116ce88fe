"""Controller manager: watch polling, event routing and worker threads.

Two controllers run side by side:

- the profile controller, keyed by :class:`ResourceKey`, driving
  :class:`ProfileReconciler`
- the shared list controller, keyed by :class:`SharedRef`, driving one
  :class:`ListReconciler` per list kind

Each has its own :class:`WorkQueue` and ``workers`` threads. One poller thread
tails the store's change log and routes events to the queues: a profile change
enqueues the profile and the lists it touches, a list, secret or config map
change enqueues every dependent profile. Status-only writes are ignored so a
reconcile never re-triggers itself.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Hashable, Mapping
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from nextdns_operator.domain.model import (
    LIST_TYPE_BY_CATEGORY,
    SHARED_LIST_KINDS,
    Kind,
    ListCategory,
    NextDNSProfile,
    ResourceKey,
    SharedRef,
)
from nextdns_operator.domain.ports import EventType, ResourceNotFoundError, StoreError

from .workqueue import WorkQueue

if TYPE_CHECKING:
    from nextdns_operator.config import ControllerConfig
    from nextdns_operator.domain.ports import ResourceStore, WatchEvent
    from nextdns_operator.domain.reconciliation import (
        DependentIndex,
        ListReconciler,
        ProfileReconciler,
        ReconcileResult,
    )

log = getLogger(__name__)

_CATEGORY_BY_KIND: dict[Kind, ListCategory] = {category.kind: category for category in ListCategory}


@dataclass(slots=True)
class Controller[K: Hashable]:
    """A work queue plus the function that reconciles one of its keys."""

    name: str
    queue: WorkQueue[K]
    reconcile: Callable[[K, int], ReconcileResult]
    threads: list[threading.Thread] = field(default_factory=list)

    def process_next(self, timeout: float | None = None) -> bool:
        """Reconcile one key; returns ``False`` when nothing was ready."""

        key = self.queue.get(timeout=timeout)
        if key is None:
            return False
        try:
            attempt = self.queue.num_requeues(key)
            try:
                result = self.reconcile(key, attempt)
            except Exception:
                log.exception("%s: unexpected error reconciling %s", self.name, key)
                self.queue.add_rate_limited(key)
                return True
            self._handle_result(key, result)
        finally:
            self.queue.done(key)
        return True

    def _handle_result(self, key: K, result: ReconcileResult) -> None:
        if result.backoff:
            delay = self.queue.add_rate_limited(key)
            log.debug("%s: %s backing off %.1fs (%s)", self.name, key, delay, result.failure)
            return
        self.queue.forget(key)
        if result.requeue_after:
            self.queue.add_after(key, result.requeue_after)


class Manager:
    def __init__(
        self,
        store: ResourceStore,
        profiles: ProfileReconciler,
        lists: Mapping[ListCategory, ListReconciler],
        index: DependentIndex,
        config: ControllerConfig,
    ) -> None:
        self._store = store
        self._lists = dict(lists)
        self._index = index
        self._config = config
        self.profile_controller: Controller[ResourceKey] = Controller(
            name="profile",
            queue=WorkQueue(
                name="profile", base_delay=config.backoff_base, max_delay=config.backoff_max
            ),
            reconcile=profiles.reconcile,
        )
        self.list_controller: Controller[SharedRef] = Controller(
            name="list",
            queue=WorkQueue(
                name="list", base_delay=config.backoff_base, max_delay=config.backoff_max
            ),
            reconcile=self._reconcile_list,
        )
        self._stop = threading.Event()
        self._poller: threading.Thread | None = None
        self._cursor = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        self._cursor = self._store.latest_sequence()
        self.enqueue_all()
        for controller in (self.profile_controller, self.list_controller):
            for index in range(self._config.workers):
                thread = threading.Thread(
                    target=self._work,
                    args=(controller,),
                    name=f"{controller.name}-worker-{index}",
                    daemon=True,
                )
                controller.threads.append(thread)
                thread.start()
        self._poller = threading.Thread(target=self._poll, name="watch-poller", daemon=True)
        self._poller.start()
        log.info(
            "Manager started with %d worker(s) per controller, watching from sequence %d",
            self._config.workers,
            self._cursor,
        )

    def stop(self, timeout: float = 10.0) -> None:
        self._stop.set()
        for controller in (self.profile_controller, self.list_controller):
            controller.queue.shut_down()
        threads = [*self.profile_controller.threads, *self.list_controller.threads]
        if self._poller is not None:
            threads.append(self._poller)
        for thread in threads:
            thread.join(timeout)
        log.info("Manager stopped")

    def run_once(self, *, max_rounds: int = 10) -> int:
        """Reconcile everything once without threads; returns the keys processed.

        Each round routes the changes the previous round wrote, so list statuses
        catch up with profile changes. Delayed requeues are left pending.
        """

        self._cursor = self._store.latest_sequence()
        self.enqueue_all()
        processed = 0
        for _ in range(max_rounds):
            drained = 0
            for controller in (self.profile_controller, self.list_controller):
                while controller.process_next(timeout=0):
                    drained += 1
            processed += drained
            if not self.poll_once() and not drained:
                break
        return processed

    def wait(self) -> None:
        """Block until :meth:`stop` is called from another thread or a signal handler."""

        while not self._stop.wait(1.0):
            pass

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def enqueue_all(self) -> None:
        for profile in self._store.list(NextDNSProfile):
            self.profile_controller.queue.add(profile.key)
        for model in LIST_TYPE_BY_CATEGORY.values():
            for shared in self._store.list(model):
                self.list_controller.queue.add(shared.ref)

    def poll_once(self) -> int:
        """Route every change recorded since the last poll; returns the event count."""

        events = self._store.watch(None, self._cursor)
        for event in events:
            self.handle_event(event)
            self._cursor = max(self._cursor, event.sequence)
        return len(events)

    def handle_event(self, event: WatchEvent) -> None:
        if event.status_only:
            return
        log.debug("Routing %s %s %s", event.event_type, event.kind, event.key)
        if event.kind is Kind.PROFILE:
            self._route_profile(event)
            return
        ref = SharedRef(event.kind, event.key.namespace, event.key.name)
        if event.kind in SHARED_LIST_KINDS:
            self.list_controller.queue.add(ref)
        dependents = self._index.find_dependents(ref)
        for key in dependents:
            self.profile_controller.queue.add(key)
        if dependents:
            log.info("%s changed; re-triggering %d dependent profile(s)", ref, len(dependents))

    def _route_profile(self, event: WatchEvent) -> None:
        self.profile_controller.queue.add(event.key)
        profile: NextDNSProfile | None = None
        if event.event_type is not EventType.DELETED:
            try:
                profile = self._store.get(NextDNSProfile, event.key)
            except ResourceNotFoundError:
                profile = None
        for ref in self._index.find_lists_for_profile(event.key, profile):
            self.list_controller.queue.add(ref)

    def _reconcile_list(self, ref: SharedRef, attempt: int) -> ReconcileResult:
        reconciler = self._lists[_CATEGORY_BY_KIND[ref.kind]]
        return reconciler.reconcile(ref.key, attempt)

    # ------------------------------------------------------------------
    # Threads
    # ------------------------------------------------------------------

    def _work(self, controller: Controller[ResourceKey] | Controller[SharedRef]) -> None:
        while not self._stop.is_set():
            if not controller.process_next(timeout=1.0) and controller.queue.shutting_down:
                return

    def _poll(self) -> None:
        while not self._stop.is_set():
            try:
                self.poll_once()
            except StoreError:
                log.exception("Polling the resource store failed; retrying")
            self._stop.wait(self._config.watch_poll_interval)
