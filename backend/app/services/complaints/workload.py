"""
Workload Index

Pure read-side computation: how many active complaints each staff
member carries. Recomputed on every call, never cached.
"""
from typing import Dict, Iterable, List

from ...models.domain import WorkloadSnapshot
from .store import ComplaintStore


class WorkloadIndex:
    """Counts PENDING and IN_PROGRESS complaints per assignee."""

    def __init__(self, store: ComplaintStore):
        self.store = store

    def counts(self, staff_ids: Iterable[str]) -> Dict[str, int]:
        """
        Active complaint count for each of `staff_ids`.

        Staff with no complaints appear with 0. Unassigned complaints
        count toward nobody.
        """
        staff_ids = list(staff_ids)
        counts = {staff_id: 0 for staff_id in staff_ids}
        if not staff_ids:
            return counts

        for complaint in self.store.list_active_assigned(staff_ids):
            counts[complaint.assignee_id] += 1
        return counts

    def snapshot(self, staff_ids: Iterable[str]) -> List[WorkloadSnapshot]:
        """Counts plus percentage of the busiest member, sorted by load then id."""
        return self.to_snapshots(self.counts(staff_ids))

    @staticmethod
    def to_snapshots(counts: Dict[str, int]) -> List[WorkloadSnapshot]:
        busiest = max(max(counts.values(), default=0), 1)
        snapshots = [
            WorkloadSnapshot(
                staff_id=staff_id,
                active_complaint_count=count,
                workload_percentage=round(count / busiest * 100, 2),
            )
            for staff_id, count in counts.items()
        ]
        snapshots.sort(key=lambda s: (s.active_complaint_count, s.staff_id))
        return snapshots

    @staticmethod
    def least_loaded(counts: Dict[str, int]) -> str:
        """Lowest count wins; ties go to the smallest staff_id."""
        return min(counts, key=lambda staff_id: (counts[staff_id], staff_id))
