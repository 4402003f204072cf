"""
Reconciliation rules for tracked files.

A single decision function, decide(), interprets what is known about one
name. Both the push path (one event at a time) and the poll path (full
directory snapshot) end in decide(), so they cannot diverge.

Rule priority (a name gets at most one transition per decision):
    1. FAILED_OBSERVED     present in the failed location → failed
    2. IMPORTED            newly settled in an import location → processing
    3. PUBLISHED_INFERRED  was processing, now absent everywhere → published
    4. TIMED_OUT           timer fired, still processing and still in import

Publication is never observed directly. It is inferred from absence, so rule 3
only applies when absence is trustworthy (every location was readable, and on
the event path after the grace window has let a competing "added to failed"
event land).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple

from .models import FileStatus, TrackedFile, TrackerConfig
from .scanner import DirectorySnapshot


class Rule(str, Enum):
    FAILED_OBSERVED = "failed-observed"
    IMPORTED = "imported"
    PUBLISHED_INFERRED = "published-inferred"
    TIMED_OUT = "timed-out"


RULE_PRIORITY = {
    Rule.FAILED_OBSERVED: 0,
    Rule.IMPORTED: 1,
    Rule.PUBLISHED_INFERRED: 2,
    Rule.TIMED_OUT: 3,
}


# Legal (from, to) pairs. None means "not tracked yet".
_TRANSITIONS: Set[Tuple[Optional[FileStatus], FileStatus]] = {
    (None, FileStatus.PROCESSING),
    (FileStatus.PROCESSING, FileStatus.FAILED),
    (FileStatus.PROCESSING, FileStatus.PUBLISHED),
    (FileStatus.PROCESSING, FileStatus.TIMED_OUT),
    (FileStatus.PUBLISHED, FileStatus.FAILED),
    (FileStatus.TIMED_OUT, FileStatus.FAILED),
    # Re-import
    (FileStatus.PUBLISHED, FileStatus.PROCESSING),
    (FileStatus.FAILED, FileStatus.PROCESSING),
    (FileStatus.TIMED_OUT, FileStatus.PROCESSING),
}


def can_transition(previous: Optional[FileStatus], status: FileStatus) -> bool:
    return (previous, status) in _TRANSITIONS


@dataclass(frozen=True)
class Observation:
    """
    What is currently known about one name across all watched locations.

    in_import: present in any import location (settled or not)
    import_settled: present, past the quiet period and a monitored extension
    newly_added: the name was not in the last-known import set
    absence_confirmed: absence from import/failed can be trusted
    """

    name: str
    in_import: bool = False
    import_settled: bool = False
    in_failed: bool = False
    newly_added: bool = False
    absence_confirmed: bool = True
    import_source: Optional[str] = None
    failed_source: Optional[str] = None


@dataclass(frozen=True)
class Transition:
    name: str
    rule: Rule
    previous: Optional[FileStatus]
    status: FileStatus
    source: Optional[str] = None

    def describe(self) -> str:
        previous = self.previous.value if self.previous else "untracked"
        return f"{self.name}: {previous} -> {self.status.value} ({self.rule.value})"


def decide(record: Optional[TrackedFile], obs: Observation) -> Optional[Transition]:
    """
    Apply the reconciliation rules to one name.

    Returns the transition to commit, or None when the stored record already
    agrees with the observation.
    """
    current = record.status if record else None

    # Rule 1: failure beats everything else
    if obs.in_failed:
        if record is None or current == FileStatus.FAILED:
            return None
        return Transition(
            name=obs.name,
            rule=Rule.FAILED_OBSERVED,
            previous=current,
            status=FileStatus.FAILED,
            source=obs.failed_source,
        )

    # Rule 2: new or re-imported file
    if obs.in_import:
        if not obs.import_settled:
            return None
        reimport = current in (FileStatus.PUBLISHED, FileStatus.FAILED) or (
            current == FileStatus.TIMED_OUT and obs.newly_added
        )
        if record is None or reimport:
            return Transition(
                name=obs.name,
                rule=Rule.IMPORTED,
                previous=current,
                status=FileStatus.PROCESSING,
                source=obs.import_source,
            )
        return None

    # Rule 3: inferred publication
    if current == FileStatus.PROCESSING and obs.absence_confirmed:
        return Transition(
            name=obs.name,
            rule=Rule.PUBLISHED_INFERRED,
            previous=current,
            status=FileStatus.PUBLISHED,
        )

    return None


def decide_timeout(record: Optional[TrackedFile], still_in_import: bool) -> Optional[Transition]:
    """Rule 4: time out a file that is still processing and still in import."""
    if record is None or record.status != FileStatus.PROCESSING or not still_in_import:
        return None
    return Transition(
        name=record.name,
        rule=Rule.TIMED_OUT,
        previous=FileStatus.PROCESSING,
        status=FileStatus.TIMED_OUT,
    )


@dataclass(frozen=True)
class SnapshotView:
    """
    Combined view of every watched location from one reconciliation pass.

    import_present / import_settled map name → label of the first import
    location (in configured order) that holds it.
    """

    import_present: Mapping[str, str]
    import_settled: Mapping[str, str]
    failed_names: FrozenSet[str]
    failed_label: str
    complete: bool

    def observe(self, name: str, previous_import: Set[str]) -> Observation:
        return Observation(
            name=name,
            in_import=name in self.import_present,
            import_settled=name in self.import_settled,
            in_failed=name in self.failed_names,
            newly_added=name not in previous_import,
            absence_confirmed=self.complete,
            import_source=self.import_present.get(name),
            failed_source=self.failed_label,
        )


def build_view(
    import_snapshots: Iterable[DirectorySnapshot],
    failed_snapshot: DirectorySnapshot,
    config: TrackerConfig,
) -> SnapshotView:
    present: Dict[str, str] = {}
    settled: Dict[str, str] = {}
    complete = failed_snapshot.available

    for snap in import_snapshots:
        complete = complete and snap.available
        for name in snap.names:
            present.setdefault(name, snap.location.name)
        for name in snap.settled:
            if config.accepts_extension(name):
                settled.setdefault(name, snap.location.name)

    return SnapshotView(
        import_present=present,
        import_settled=settled,
        failed_names=failed_snapshot.names,
        failed_label=failed_snapshot.location.name,
        complete=complete,
    )


def plan_snapshot(
    records: Mapping[str, TrackedFile],
    view: SnapshotView,
    previous_import: Set[str],
) -> List[Transition]:
    """
    Compute every transition implied by a full snapshot.

    Candidates are every observed name plus every record still processing
    (those are the only records an absence can change).
    """
    names = set(view.import_present) | set(view.failed_names)
    names.update(
        name for name, record in records.items()
        if record.status == FileStatus.PROCESSING
    )

    transitions = []
    for name in names:
        transition = decide(records.get(name), view.observe(name, previous_import))
        if transition is not None:
            transitions.append(transition)

    transitions.sort(key=lambda t: (RULE_PRIORITY[t.rule], t.name))
    return transitions
