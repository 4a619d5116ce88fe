"""Push desired state to a remote profile one collection at a time.

Each collection is read, diffed and written through the ``PolicyAPI`` methods.
A failed collection or sub-step is recorded in the report and the remaining
collections still run, so status can show partial progress.

Collections are independent and not transactional with each other. Within one
collection, operations run in the order the differencer emitted them and stop at
the first failure.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from nextdns_operator.domain.ports import PolicyAPIError, PolicyNotFoundError

from .diff import Add, Patch, Remove, Replace, SyncMode, diff, diff_flags

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from nextdns_operator.domain.ports import FlagValues, PolicyAPI, RemoteEntry

    from .desired import DesiredParentalControl, DesiredPrivacy, DesiredSettings, DesiredState
    from .diff import Operation

log = getLogger(__name__)


class Collection(StrEnum):
    PROFILE = "profile"
    SECURITY = "security"
    PRIVACY = "privacy"
    PARENTAL_CONTROL = "parentalControl"
    DENYLIST = "denylist"
    ALLOWLIST = "allowlist"
    TLDS = "tlds"
    SETTINGS = "settings"


@dataclass(frozen=True, slots=True)
class CollectionTarget:
    """Write methods of one remote collection.

    ``add`` and ``remove`` are absent for collections that only accept a whole
    replacement; such targets are always diffed in replace mode.
    """

    name: str
    replace: Callable[[str, tuple[RemoteEntry, ...]], None]
    add: Callable[[str, RemoteEntry], None] | None = None
    remove: Callable[[str, str], None] | None = None

    @property
    def mode(self) -> SyncMode:
        if self.add is not None and self.remove is not None:
            return SyncMode.GRANULAR
        return SyncMode.REPLACE


@dataclass(slots=True)
class CollectionOutcome:
    collection: Collection
    mutations: int = 0
    errors: list[PolicyAPIError] = field(default_factory=list)

    @property
    def synced(self) -> bool:
        return not self.errors

    @property
    def message(self) -> str:
        return "; ".join(str(error) for error in self.errors)


@dataclass(slots=True)
class SyncReport:
    outcomes: dict[Collection, CollectionOutcome] = field(default_factory=dict)

    @property
    def mutations(self) -> int:
        return sum(outcome.mutations for outcome in self.outcomes.values())

    @property
    def failures(self) -> list[CollectionOutcome]:
        return [outcome for outcome in self.outcomes.values() if not outcome.synced]

    @property
    def succeeded(self) -> bool:
        return not self.failures

    @property
    def first_error(self) -> PolicyAPIError | None:
        for outcome in self.failures:
            return outcome.errors[0]
        return None

    def synced(self, collection: Collection) -> bool:
        outcome = self.outcomes.get(collection)
        return outcome is not None and outcome.synced


class SyncExecutor:
    """Apply desired state to one remote profile, collection by collection."""

    def __init__(self, api: PolicyAPI, *, replace_threshold: int | None = None) -> None:
        self._api = api
        self._replace_threshold = replace_threshold
        self._targets = self._build_targets(api)

    @staticmethod
    def _build_targets(api: PolicyAPI) -> dict[str, CollectionTarget]:
        targets = [
            CollectionTarget(
                name="denylist",
                replace=api.sync_denylist,
                add=api.add_denylist_entry,
                remove=api.delete_denylist_entry,
            ),
            CollectionTarget(
                name="allowlist",
                replace=api.sync_allowlist,
                add=api.add_allowlist_entry,
                remove=api.delete_allowlist_entry,
            ),
            CollectionTarget(
                name="tlds",
                replace=lambda pid, entries: api.sync_security_tlds(pid, _ids(entries)),
                add=lambda pid, entry: api.add_security_tld(pid, entry.identifier),
                remove=api.delete_security_tld,
            ),
            CollectionTarget(
                name="privacy.blocklists",
                replace=lambda pid, entries: api.sync_privacy_blocklists(pid, _ids(entries)),
            ),
            CollectionTarget(
                name="privacy.natives",
                replace=lambda pid, entries: api.sync_privacy_natives(pid, _ids(entries)),
            ),
            CollectionTarget(
                name="parentalControl.categories",
                replace=api.sync_parental_categories,
            ),
            CollectionTarget(
                name="parentalControl.services",
                replace=api.sync_parental_services,
            ),
        ]
        return {target.name: target for target in targets}

    def apply(
        self, profile_id: str, target: CollectionTarget, operations: Sequence[Operation]
    ) -> int:
        """Apply ``operations`` in order and return how many mutations were issued."""

        applied = 0
        for operation in operations:
            match operation:
                case Add(entry=entry) if target.add is not None:
                    target.add(profile_id, entry)
                case Remove(identifier=identifier) if target.remove is not None:
                    try:
                        target.remove(profile_id, identifier)
                    except PolicyNotFoundError:
                        log.debug(
                            "%s entry %s already absent on %s", target.name, identifier, profile_id
                        )
                case Replace(entries=entries):
                    target.replace(profile_id, entries)
                case _:
                    raise TypeError(f"{type(operation).__name__} is not supported by {target.name}")
            applied += 1
        if applied:
            log.info(
                "Applied %d operation(s) to %s of profile %s", applied, target.name, profile_id
            )
        return applied

    def sync(self, profile_id: str, desired: DesiredState) -> SyncReport:
        report = SyncReport()
        report.outcomes[Collection.PROFILE] = self._run(
            Collection.PROFILE,
            lambda outcome: self._sync_profile(profile_id, desired.name, outcome),
        )
        if desired.security is not None:
            security = desired.security
            report.outcomes[Collection.SECURITY] = self._run(
                Collection.SECURITY,
                lambda outcome: self._sync_flags(
                    profile_id,
                    outcome,
                    security,
                    self._api.get_security(profile_id),
                    self._api.update_security,
                ),
            )
        if desired.privacy is not None:
            privacy = desired.privacy
            report.outcomes[Collection.PRIVACY] = self._run(
                Collection.PRIVACY, lambda outcome: self._sync_privacy(profile_id, privacy, outcome)
            )
        if desired.parental_control is not None:
            parental = desired.parental_control
            report.outcomes[Collection.PARENTAL_CONTROL] = self._run(
                Collection.PARENTAL_CONTROL,
                lambda outcome: self._sync_parental_control(profile_id, parental, outcome),
            )
        for collection, entries, fetch in (
            (Collection.DENYLIST, desired.denylist, self._api.get_denylist),
            (Collection.ALLOWLIST, desired.allowlist, self._api.get_allowlist),
            (Collection.TLDS, desired.tlds, self._api.get_security_tlds),
        ):
            target = self._targets[collection.value]
            report.outcomes[collection] = self._run(
                collection,
                lambda outcome, target=target, entries=entries, fetch=fetch: self._sync_entries(
                    profile_id, target, entries, fetch(profile_id), outcome
                ),
            )
        if desired.settings is not None:
            settings = desired.settings
            report.outcomes[Collection.SETTINGS] = self._run(
                Collection.SETTINGS,
                lambda outcome: self._sync_settings(profile_id, settings, outcome),
            )
        return report

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    @staticmethod
    def _run(
        collection: Collection, body: Callable[[CollectionOutcome], None]
    ) -> CollectionOutcome:
        outcome = CollectionOutcome(collection)
        try:
            body(outcome)
        except PolicyAPIError as exc:
            log.warning("Syncing %s failed: %s", collection, exc)
            outcome.errors.append(exc)
        return outcome

    @staticmethod
    def _step(outcome: CollectionOutcome, name: str, body: Callable[[], None]) -> None:
        """Run one sub-step, recording its failure without stopping its siblings."""

        try:
            body()
        except PolicyAPIError as exc:
            log.warning("Syncing %s failed: %s", name, exc)
            outcome.errors.append(exc)

    def _sync_profile(self, profile_id: str, name: str, outcome: CollectionOutcome) -> None:
        remote = self._api.get_profile(profile_id)
        if remote.name != name:
            self._api.update_profile(profile_id, name)
            outcome.mutations += 1
            log.info("Renamed profile %s to %r", profile_id, name)

    def _sync_flags(
        self,
        profile_id: str,
        outcome: CollectionOutcome,
        desired: FlagValues,
        remote: FlagValues,
        update: Callable[[str, FlagValues], None],
    ) -> None:
        for operation in diff_flags(desired, remote):
            if isinstance(operation, Patch):
                update(profile_id, operation.values)
                outcome.mutations += 1

    def _sync_entries(
        self,
        profile_id: str,
        target: CollectionTarget,
        desired: Iterable[RemoteEntry],
        remote: Iterable[RemoteEntry],
        outcome: CollectionOutcome,
    ) -> None:
        operations = diff(
            desired,
            remote,
            mode=target.mode,
            replace_threshold=self._replace_threshold,
        )
        outcome.mutations += self.apply(profile_id, target, operations)

    def _sync_privacy(
        self, profile_id: str, desired: DesiredPrivacy, outcome: CollectionOutcome
    ) -> None:
        snapshot = self._api.get_privacy(profile_id)
        self._step(
            outcome,
            "privacy flags",
            lambda: self._sync_flags(
                profile_id, outcome, desired.flags, snapshot.flags, self._api.update_privacy
            ),
        )
        blocklists = desired.blocklists
        if blocklists is not None:
            self._step(
                outcome,
                "privacy blocklists",
                lambda: self._sync_entries(
                    profile_id,
                    self._targets["privacy.blocklists"],
                    blocklists,
                    snapshot.blocklists,
                    outcome,
                ),
            )
        natives = desired.natives
        if natives is not None:
            self._step(
                outcome,
                "privacy natives",
                lambda: self._sync_entries(
                    profile_id, self._targets["privacy.natives"], natives, snapshot.natives, outcome
                ),
            )

    def _sync_parental_control(
        self, profile_id: str, desired: DesiredParentalControl, outcome: CollectionOutcome
    ) -> None:
        snapshot = self._api.get_parental_control(profile_id)
        self._step(
            outcome,
            "parental control flags",
            lambda: self._sync_flags(
                profile_id,
                outcome,
                desired.flags,
                snapshot.flags,
                self._api.update_parental_control,
            ),
        )
        categories = desired.categories
        if categories is not None:
            self._step(
                outcome,
                "parental control categories",
                lambda: self._sync_entries(
                    profile_id,
                    self._targets["parentalControl.categories"],
                    categories,
                    snapshot.categories,
                    outcome,
                ),
            )
        services = desired.services
        if services is not None:
            self._step(
                outcome,
                "parental control services",
                lambda: self._sync_entries(
                    profile_id,
                    self._targets["parentalControl.services"],
                    services,
                    snapshot.services,
                    outcome,
                ),
            )

    def _sync_settings(
        self, profile_id: str, desired: DesiredSettings, outcome: CollectionOutcome
    ) -> None:
        snapshot = self._api.get_settings(profile_id)
        for name, wanted, current, update in (
            ("logs", desired.logs, snapshot.logs, self._api.update_settings_logs),
            (
                "block page",
                desired.block_page,
                snapshot.block_page,
                self._api.update_settings_block_page,
            ),
            (
                "performance",
                desired.performance,
                snapshot.performance,
                self._api.update_settings_performance,
            ),
        ):
            self._step(
                outcome,
                f"settings {name}",
                lambda wanted=wanted, current=current, update=update: self._sync_flags(
                    profile_id, outcome, wanted, current, update
                ),
            )
        if desired.web3 is not None:
            web3 = desired.web3
            self._step(
                outcome,
                "settings web3",
                lambda: self._sync_flags(
                    profile_id,
                    outcome,
                    {"web3": web3},
                    {"web3": snapshot.web3},
                    self._api.update_settings,
                ),
            )


def _ids(entries: Iterable[RemoteEntry]) -> list[str]:
    return [entry.identifier for entry in entries]
