"""
Availability-zone distribution for scale-out batches.

distribute_az assigns each pending instance slot an AZ so that, together
with the instances already in the pool, the pool ends up as evenly spread
across the candidate AZs as possible.

The assignment is a greedy round-robin over the candidates sorted by their
current count. Instead of re-sorting after every assignment, a cursor walks
forward while the current AZ has overtaken its neighbour and falls back to
the start once it catches up with the least-loaded AZ. This approximates
"always pick the minimum" and can differ from it at distribution boundaries.

Counts for AZs that are not candidates are ignored.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from nova_autoscaler.types import AvailabilityZone, InstanceSlot


@dataclass
class _ZoneCount:
    name: AvailabilityZone
    count: int


def distribute_az(
    candidates: Sequence[AvailabilityZone],
    current_counts: Mapping[AvailabilityZone, int],
    slots: Sequence[InstanceSlot],
) -> None:
    """
    Assign an availability zone to every slot, in place.

    Args:
        candidates: AZs new instances may be placed in, in preference order.
        current_counts: Pool members per AZ from this cycle's inventory scan.
        slots: Pending instances; their availability_zone is overwritten.

    With no candidates the slots are left untouched and the provider picks
    the AZ.

    Example:
        >>> slots = [InstanceSlot(name=f"n{i}", random_uuid="") for i in range(5)]
        >>> distribute_az(["A", "B", "C"], {"A": 5, "B": 1, "C": 3}, slots)
        >>> [s.availability_zone for s in slots]
        ['B', 'B', 'B', 'C', 'B']
    """
    zones = [_ZoneCount(name, current_counts.get(name, 0)) for name in candidates]
    # list.sort is stable, ties keep candidate order
    zones.sort(key=lambda z: z.count)

    if not zones:
        return

    last = len(zones) - 1
    cursor = 0
    for slot in slots:
        zone = zones[cursor]
        slot.availability_zone = zone.name
        zone.count += 1

        # The most loaded AZ got one more; start over from the least loaded
        if cursor == last:
            cursor = 0
            continue

        if zone.count > zones[cursor + 1].count:
            cursor += 1
        elif cursor != 0 and zone.count >= zones[0].count:
            cursor = 0


def final_distribution(
    current_counts: Mapping[AvailabilityZone, int],
    slots: Sequence[InstanceSlot],
) -> dict[AvailabilityZone, int]:
    """Combine existing counts with assigned slots (for logging and tests)."""
    result = dict(current_counts)
    for slot in slots:
        result[slot.availability_zone] = result.get(slot.availability_zone, 0) + 1
    return result
