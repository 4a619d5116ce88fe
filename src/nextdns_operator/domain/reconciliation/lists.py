"""Status reconciler for the shared allowlist, denylist and TLD list resources.

Shared lists have no remote counterpart; their status is a derived view that
records how many entries are active, which profiles reference the list, and
whether every entry is syntactically valid. Shared lists carry no finalizer, so
deleting a referenced list surfaces on its dependents as a broken reference.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from nextdns_operator.domain.model import (
    LIST_TYPE_BY_CATEGORY,
    ListCategory,
    ListStatus,
    NextDNSProfile,
    ResourceKeyRef,
    set_condition,
)
from nextdns_operator.domain.model.conditions import IN_USE, VALID
from nextdns_operator.domain.ports import ResourceConflictError, ResourceNotFoundError

from .errors import FailureKind, ReconcileResult
from .validation import is_valid_domain, is_valid_tld

if TYPE_CHECKING:
    from nextdns_operator.domain.model import ResourceKey
    from nextdns_operator.domain.ports import ResourceStore

log = getLogger(__name__)


class ListReconciler:
    """Keep ``count``, ``profileRefs`` and the ``Valid``/``InUse`` conditions current."""

    def __init__(
        self,
        store: ResourceStore,
        category: ListCategory,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._category = category
        self._model = LIST_TYPE_BY_CATEGORY[category]
        self._is_valid = is_valid_tld if category is ListCategory.TLDS else is_valid_domain
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def category(self) -> ListCategory:
        return self._category

    def reconcile(self, key: ResourceKey, attempt: int = 0) -> ReconcileResult:
        try:
            shared = self._store.get(self._model, key)
        except ResourceNotFoundError:
            log.debug("%s %s is gone; nothing to do", self._model.KIND, key)
            return ReconcileResult()
        if shared.metadata.deletion_timestamp is not None:
            return ReconcileResult()

        entries = list(shared.spec.entries)
        invalid = [entry.identifier for entry in entries if not self._is_valid(entry.identifier)]
        referrers = self._referencing_profiles(key)
        now = self._clock()
        generation = shared.metadata.generation

        status = ListStatus(
            count=sum(1 for entry in entries if entry.is_active),
            profile_refs=[ResourceKeyRef.from_key(ref) for ref in referrers],
            conditions=[condition.model_copy() for condition in shared.status.conditions],
        )
        if invalid:
            set_condition(
                status.conditions,
                VALID,
                False,
                "InvalidEntries",
                f"Invalid entries: {', '.join(invalid)}",
                observed_generation=generation,
                now=now,
            )
        else:
            set_condition(
                status.conditions,
                VALID,
                True,
                "Valid",
                f"All {len(entries)} entries are valid",
                observed_generation=generation,
                now=now,
            )
        if referrers:
            set_condition(
                status.conditions,
                IN_USE,
                True,
                "ReferencedByProfiles",
                f"Referenced by {len(referrers)} profile(s)",
                observed_generation=generation,
                now=now,
            )
        else:
            set_condition(
                status.conditions,
                IN_USE,
                False,
                "NotReferenced",
                "No profile references this list",
                observed_generation=generation,
                now=now,
            )

        if status.to_payload() == shared.status.to_payload():
            return ReconcileResult()
        try:
            self._store.update_status(shared.model_copy(update={"status": status}))
        except ResourceConflictError:
            log.debug("%s %s changed while updating status; retrying", self._model.KIND, key)
            return ReconcileResult(backoff=True, failure=FailureKind.CONFLICT)
        except ResourceNotFoundError:
            return ReconcileResult()
        log.info(
            "Updated %s %s status: count=%d, profiles=%d, valid=%s",
            self._model.KIND,
            key,
            status.count,
            len(referrers),
            not invalid,
        )
        return ReconcileResult()

    def _referencing_profiles(self, key: ResourceKey) -> list[ResourceKey]:
        referrers: list[ResourceKey] = []
        for profile in self._store.list(NextDNSProfile):
            if profile.metadata.deletion_timestamp is not None:
                continue
            namespace = profile.metadata.namespace
            if any(
                reference.name == key.name
                and reference.resolve_namespace(namespace) == key.namespace
                for reference in profile.spec.refs_for(self._category)
            ):
                referrers.append(profile.key)
        return sorted(referrers)
