"""Reconcile state machine for ``NextDNSProfile`` resources.

One call of :meth:`ProfileReconciler.reconcile` is one full pass:

- ``Deleting``: delete the remote profile the controller created, then release
  the finalizer
- ``Pending``: make sure the finalizer is present
- ``Resolving``: apply the optional config import, validate, resolve references
  and look up credentials (no external calls so far)
- ``Syncing``: create or adopt the remote profile, then diff and apply every
  collection
- ``Ready`` / ``Error``: write status and tell the queue when to come back

Failures never escape as exceptions for the kinds listed in
:data:`~.errors.RECONCILE_ERRORS`; they become status conditions and a
:class:`~.errors.ReconcileResult`.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from nextdns_operator.domain.model import (
    AggregatedCounts,
    CollectionStatus,
    ConfigMap,
    NextDNSProfile,
    ProfilePhase,
    ProfileStatus,
    ReferencedResources,
    ReferencedResourceStatus,
    ResourceKey,
    set_condition,
)
from nextdns_operator.domain.model.conditions import READY, REFERENCES_RESOLVED, SYNCED
from nextdns_operator.domain.ports import (
    CredentialsNotFoundError,
    PolicyAPIError,
    PolicyNotFoundError,
    ResourceConflictError,
    ResourceNotFoundError,
    StoreError,
)

from .config_import import ConfigImportError, merge_import, parse_import
from .deadline import Deadline, calculate_sync_interval
from .desired import build_desired_state
from .errors import (
    RECONCILE_ERRORS,
    FailureKind,
    ReconcileResult,
    classify,
    failure_reason,
    result_for_failure,
)
from .executor import Collection, SyncExecutor
from .resolve import ReferenceNotFoundError, ReferenceResolver, Resolution
from .validation import validate_document, validate_profile_spec

if TYPE_CHECKING:
    from nextdns_operator.config import ControllerConfig
    from nextdns_operator.domain.model import ProfileSpec
    from nextdns_operator.domain.ports import (
        CredentialLookup,
        PolicyAPI,
        ResourceStore,
    )
    from nextdns_operator.domain.ports.policy_api import PolicyAPIFactory

    from .executor import SyncReport

log = getLogger(__name__)

FINALIZER = "nextdns.io/finalizer"
FINGERPRINT_SUFFIX = ".dns.nextdns.io"
STATUS_WRITE_ATTEMPTS = 3

_LIST_COLLECTIONS: dict[Collection, str] = {
    Collection.ALLOWLIST: "allowlist_domains",
    Collection.DENYLIST: "denylist_domains",
    Collection.TLDS: "blocked_tlds",
}


def fingerprint_for(profile_id: str) -> str:
    return f"{profile_id}{FINGERPRINT_SUFFIX}"


class ProfileReconciler:
    def __init__(
        self,
        store: ResourceStore,
        credentials: CredentialLookup,
        api_factory: PolicyAPIFactory,
        config: ControllerConfig,
        *,
        clock: Callable[[], datetime] | None = None,
        sync_interval: Callable[[float], float] = calculate_sync_interval,
    ) -> None:
        self._store = store
        self._credentials = credentials
        self._api_factory = api_factory
        self._config = config
        self._resolver = ReferenceResolver(store)
        self._clock = clock or (lambda: datetime.now(UTC))
        self._sync_interval = sync_interval

    def reconcile(self, key: ResourceKey, attempt: int = 0) -> ReconcileResult:
        try:
            profile = self._store.get(NextDNSProfile, key)
        except ResourceNotFoundError:
            log.debug("Profile %s is gone; nothing to do", key)
            return ReconcileResult()

        deadline = Deadline.after(self._config.reconcile_timeout)
        if profile.metadata.deletion_timestamp is not None:
            return self._finalize(profile, deadline)

        if FINALIZER not in profile.metadata.finalizers:
            try:
                profile = self._add_finalizer(profile)
            except ResourceConflictError:
                return ReconcileResult(backoff=True, failure=FailureKind.CONFLICT)
            except ResourceNotFoundError:
                return ReconcileResult()

        return self._reconcile_live(profile, attempt, deadline)

    # ------------------------------------------------------------------
    # Create / update
    # ------------------------------------------------------------------

    def _reconcile_live(
        self, profile: NextDNSProfile, attempt: int, deadline: Deadline
    ) -> ReconcileResult:
        status = profile.status.model_copy(deep=True)
        log.debug("Profile %s: %s -> %s", profile.key, status.phase, ProfilePhase.RESOLVING)
        status.phase = ProfilePhase.RESOLVING
        try:
            spec, import_warnings = self._effective_spec(profile)
            validate_profile_spec(spec)
            resolution = self._resolver.resolve(profile.model_copy(update={"spec": spec}))
            validate_document(resolution.document)
            api_key = self._api_key(profile)
        except RECONCILE_ERRORS as exc:
            return self._fail(profile, status, exc, attempt)

        status.import_warnings = import_warnings
        status.referenced_resources = _referenced_resources(resolution)
        set_condition(
            status.conditions,
            REFERENCES_RESOLVED,
            True,
            "Resolved",
            f"{len(resolution.references)} reference(s) resolved",
            observed_generation=profile.metadata.generation,
            now=self._clock(),
        )

        desired = build_desired_state(spec, resolution.document)
        log.debug("Profile %s: %s -> %s", profile.key, status.phase, ProfilePhase.SYNCING)
        status.phase = ProfilePhase.SYNCING
        try:
            with self._api_factory(api_key, deadline) as api:
                profile, status, profile_id = self._ensure_remote_profile(
                    api, profile, status, deadline
                )
                report = SyncExecutor(api, replace_threshold=self._config.replace_threshold).sync(
                    profile_id, desired
                )
        except RECONCILE_ERRORS as exc:
            return self._fail(profile, status, exc, attempt)

        counts = (status.aggregated_counts or AggregatedCounts()).model_copy()
        for collection, field_name in _LIST_COLLECTIONS.items():
            if report.synced(collection):
                setattr(counts, field_name, len(getattr(desired, collection.value)))
        status.aggregated_counts = counts
        status.collections = {
            outcome.collection.value: CollectionStatus(
                synced=outcome.synced, message=outcome.message
            )
            for outcome in report.outcomes.values()
        }

        error = report.first_error
        if error is None:
            return self._succeed(profile, status, report)
        return self._fail(profile, status, error, attempt, report=report)

    def _effective_spec(self, profile: NextDNSProfile) -> tuple[ProfileSpec, list[str]]:
        ref = profile.spec.config_import_ref
        if ref is None:
            return profile.spec, []
        namespace = profile.metadata.namespace
        try:
            config_map = self._store.get(ConfigMap, ResourceKey(namespace, ref.name))
        except ResourceNotFoundError as exc:
            raise ReferenceNotFoundError("configImport", ref.name, namespace) from exc
        raw = config_map.data.get(ref.key)
        if raw is None:
            raise ConfigImportError([f"ConfigMap {namespace}/{ref.name} has no key {ref.key!r}"])
        result = parse_import(raw, source=f"ConfigMap {namespace}/{ref.name}[{ref.key}]")
        for warning in result.warnings:
            log.warning("Profile %s: %s", profile.key, warning)
        return merge_import(profile.spec, result.config), result.warnings

    def _api_key(self, profile: NextDNSProfile) -> str:
        selector = profile.spec.credentials_ref
        return self._credentials.get_secret_value(
            profile.metadata.namespace, selector.name, selector.key
        )

    def _ensure_remote_profile(
        self,
        api: PolicyAPI,
        profile: NextDNSProfile,
        status: ProfileStatus,
        deadline: Deadline,
    ) -> tuple[NextDNSProfile, ProfileStatus, str]:
        declared = profile.spec.profile_id
        recorded = status.profile_id
        if recorded and (not declared or declared == recorded):
            status.fingerprint = fingerprint_for(recorded)
            return profile, status, recorded

        if declared:
            api.get_profile(declared)
            profile_id = declared
            log.info("Profile %s adopted remote profile %s", profile.key, declared)
        else:
            profile_id = api.create_profile(profile.spec.name)
            log.info("Profile %s created remote profile %s", profile.key, profile_id)
        status.profile_id = profile_id
        status.fingerprint = fingerprint_for(profile_id)
        if declared:
            profile = self._write_status(profile, status)
        else:
            # Record the id before syncing so a failure later in this pass cannot
            # lead to a second remote profile being created.
            profile = self._record_created_id(profile, status, deadline)
        return profile, profile.status.model_copy(deep=True), profile_id

    def _succeed(
        self, profile: NextDNSProfile, status: ProfileStatus, report: SyncReport
    ) -> ReconcileResult:
        now = self._clock()
        generation = profile.metadata.generation
        set_condition(
            status.conditions,
            SYNCED,
            True,
            "SyncSucceeded",
            "All collections synced",
            observed_generation=generation,
            now=now,
        )
        set_condition(
            status.conditions,
            READY,
            True,
            "Ready",
            "Profile is in sync",
            observed_generation=generation,
            now=now,
        )
        status.phase = ProfilePhase.READY
        status.last_sync_time = now
        status.observed_generation = generation
        try:
            self._write_status(profile, status)
        except ResourceNotFoundError:
            return ReconcileResult()
        except ResourceConflictError:
            return ReconcileResult(backoff=True, failure=FailureKind.CONFLICT)
        log.info(
            "Profile %s synced to %s with %d mutation(s)",
            profile.key,
            status.profile_id,
            report.mutations,
        )
        interval = self._sync_interval(self._config.sync_period)
        return ReconcileResult(requeue_after=interval or None)

    # ------------------------------------------------------------------
    # Failure
    # ------------------------------------------------------------------

    def _fail(
        self,
        profile: NextDNSProfile,
        status: ProfileStatus,
        exc: Exception,
        attempt: int,
        *,
        report: SyncReport | None = None,
    ) -> ReconcileResult:
        kind = classify(exc)
        if kind is FailureKind.CONFLICT:
            log.debug("Profile %s changed during reconcile; retrying: %s", profile.key, exc)
            return ReconcileResult(backoff=True, failure=kind)
        if kind is FailureKind.NOT_FOUND:
            log.debug("Profile %s disappeared during reconcile", profile.key)
            return ReconcileResult()

        now = self._clock()
        generation = profile.metadata.generation
        reason = failure_reason(kind, attempt=attempt, max_retries=self._config.max_retries)
        message = str(exc)
        if report is not None:
            failed = ", ".join(outcome.collection.value for outcome in report.failures)
            message = f"Failed collections: {failed}: {message}"
            set_condition(
                status.conditions,
                SYNCED,
                False,
                "SyncFailed",
                message,
                observed_generation=generation,
                now=now,
            )
        if kind is FailureKind.REFERENCE and isinstance(exc, ReferenceNotFoundError):
            set_condition(
                status.conditions,
                REFERENCES_RESOLVED,
                False,
                reason,
                message,
                observed_generation=generation,
                now=now,
            )
        set_condition(
            status.conditions,
            READY,
            False,
            reason,
            message,
            observed_generation=generation,
            now=now,
        )
        status.phase = ProfilePhase.ERROR

        if kind is FailureKind.VALIDATION:
            log.error("Profile %s is invalid and will not be retried: %s", profile.key, message)
        else:
            log.warning(
                "Profile %s failed (%s, attempt %d): %s", profile.key, reason, attempt + 1, message
            )
        try:
            self._write_status(profile, status)
        except ResourceNotFoundError:
            return ReconcileResult()
        except ResourceConflictError:
            return ReconcileResult(backoff=True, failure=FailureKind.CONFLICT)
        return result_for_failure(kind, auth_retry_interval=self._config.auth_retry_interval)

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def _finalize(self, profile: NextDNSProfile, deadline: Deadline) -> ReconcileResult:
        if FINALIZER not in profile.metadata.finalizers:
            return ReconcileResult()
        log.debug("Profile %s: %s -> %s", profile.key, profile.status.phase, ProfilePhase.DELETING)
        profile_id = profile.status.profile_id
        if profile_id and profile.spec.profile_id:
            log.info(
                "Profile %s adopted remote profile %s; leaving it in place", profile.key, profile_id
            )
        elif profile_id:
            try:
                api_key = self._api_key(profile)
            except CredentialsNotFoundError as exc:
                log.warning(
                    "Profile %s: cannot delete remote profile %s without credentials (%s); "
                    "releasing finalizer",
                    profile.key,
                    profile_id,
                    exc,
                )
            else:
                try:
                    with self._api_factory(api_key, deadline) as api:
                        api.delete_profile(profile_id)
                except PolicyNotFoundError:
                    log.info("Remote profile %s was already deleted", profile_id)
                except PolicyAPIError as exc:
                    return self._deletion_failed(profile, exc)
                else:
                    log.info("Deleted remote profile %s for %s", profile_id, profile.key)

        finalizers = [name for name in profile.metadata.finalizers if name != FINALIZER]
        metadata = profile.metadata.model_copy(update={"finalizers": finalizers})
        try:
            self._store.update(profile.model_copy(update={"metadata": metadata}))
        except ResourceNotFoundError:
            return ReconcileResult()
        except ResourceConflictError:
            return ReconcileResult(backoff=True, failure=FailureKind.CONFLICT)
        log.info("Profile %s finalized", profile.key)
        return ReconcileResult()

    def _deletion_failed(self, profile: NextDNSProfile, exc: PolicyAPIError) -> ReconcileResult:
        kind = classify(exc)
        log.warning("Profile %s: deleting remote profile failed: %s", profile.key, exc)
        status = profile.status.model_copy(deep=True)
        status.phase = ProfilePhase.DELETING
        set_condition(
            status.conditions,
            READY,
            False,
            "DeletionFailed",
            str(exc),
            observed_generation=profile.metadata.generation,
            now=self._clock(),
        )
        try:
            self._write_status(profile, status)
        except ResourceNotFoundError:
            return ReconcileResult()
        except ResourceConflictError:
            return ReconcileResult(backoff=True, failure=FailureKind.CONFLICT)
        return result_for_failure(kind, auth_retry_interval=self._config.auth_retry_interval)

    # ------------------------------------------------------------------
    # Store writes
    # ------------------------------------------------------------------

    def _add_finalizer(self, profile: NextDNSProfile) -> NextDNSProfile:
        metadata = profile.metadata.model_copy(
            update={"finalizers": [*profile.metadata.finalizers, FINALIZER]}
        )
        updated = self._store.update(profile.model_copy(update={"metadata": metadata}))
        log.debug("Added finalizer to profile %s", profile.key)
        return updated

    def _record_created_id(
        self, profile: NextDNSProfile, status: ProfileStatus, deadline: Deadline
    ) -> NextDNSProfile:
        """Store a newly created remote id, retrying conflicts until ``deadline``.

        An id that still cannot be stored leaves an orphaned remote profile; it is
        logged at error level so it can be adopted through ``profileID``.
        """

        while True:
            try:
                return self._write_status(profile, status)
            except ResourceConflictError as exc:
                if deadline.expired:
                    self._log_orphan(profile, status, exc)
                    raise
            except StoreError as exc:
                self._log_orphan(profile, status, exc)
                raise

    def _log_orphan(self, profile: NextDNSProfile, status: ProfileStatus, exc: Exception) -> None:
        log.error(
            "Profile %s: could not record remote profile %s (%s); adopt it by setting "
            "spec.profileID or delete it by hand",
            profile.key,
            status.profile_id,
            exc,
        )

    def _write_status(self, profile: NextDNSProfile, status: ProfileStatus) -> NextDNSProfile:
        """Write ``status``, re-reading the profile when a spec edit raced the write."""

        current = profile
        attempts_left = STATUS_WRITE_ATTEMPTS
        while True:
            try:
                return self._store.update_status(current.model_copy(update={"status": status}))
            except ResourceConflictError:
                attempts_left -= 1
                if attempts_left == 0:
                    raise
                current = self._store.get(NextDNSProfile, profile.key)


def _referenced_resources(resolution: Resolution) -> ReferencedResources:
    referenced = ReferencedResources()
    for reference in resolution.references:
        referenced.for_category(reference.category).append(
            ReferencedResourceStatus(
                name=reference.name,
                namespace=reference.namespace,
                ready=reference.ready,
                count=reference.count,
            )
        )
    return referenced
