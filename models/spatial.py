"""
Spatial Index Model for Bloodstream Simulation

This module provides the 3D spatial representation of the vessel segment:
coordinates, boundary handling, and an octree index answering the radius
and nearest-neighbour queries used by the immune, phage, pharmacology and
horizontal gene transfer (HGT) interactions.

The index is rebuilt from scratch every tick. Entity counts are bounded by
the engine caps (a few thousand), so a full rebuild keeps the "index holds
exactly the alive entities" invariant trivial to reason about.
"""

import math
import heapq
import logging
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class BoundaryCondition(Enum):
    """Boundary conditions for one axis of the world volume."""
    CLOSED = "closed"  # Entities are clamped at the boundary
    PERIODIC = "periodic"  # Wrap-around (blood keeps circulating)
    REFLECTIVE = "reflective"  # Entities bounce off the vessel wall


# Flow runs along x; y and z are bounded by the vessel wall
VESSEL_BOUNDARIES: Tuple[BoundaryCondition, BoundaryCondition, BoundaryCondition] = (
    BoundaryCondition.PERIODIC,
    BoundaryCondition.REFLECTIVE,
    BoundaryCondition.REFLECTIVE,
)


@dataclass
class Vector3:
    """Represents a 3D coordinate (µm) or velocity (µm/h)."""
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def distance_to(self, other: 'Vector3') -> float:
        """Calculate Euclidean distance to another coordinate."""
        return math.sqrt(
            (self.x - other.x) ** 2 + (self.y - other.y) ** 2 + (self.z - other.z) ** 2
        )

    def is_within_distance(self, other: 'Vector3', distance: float) -> bool:
        """Check if another coordinate is within specified distance."""
        return self.distance_to(other) <= distance

    def as_tuple(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.z)

    def copy(self) -> 'Vector3':
        return Vector3(self.x, self.y, self.z)

    def step_toward(self, target: 'Vector3', max_step: float) -> None:
        """Move toward ``target`` by at most ``max_step`` without overshooting."""
        distance = self.distance_to(target)
        if distance <= max_step or distance == 0.0:
            self.x, self.y, self.z = target.x, target.y, target.z
            return
        scale = max_step / distance
        self.x += (target.x - self.x) * scale
        self.y += (target.y - self.y) * scale
        self.z += (target.z - self.z) * scale


def apply_boundaries(
    position: Vector3,
    velocity: Optional[Vector3],
    size: Tuple[float, float, float],
    conditions: Tuple[BoundaryCondition, ...] = VESSEL_BOUNDARIES
) -> None:
    """
    Keep a position inside the world box, in place.

    Args:
        position: Position to correct
        velocity: Velocity whose component is reversed on reflection (optional)
        size: World extents along x, y, z
        conditions: Boundary condition per axis
    """
    for axis, (extent, condition) in enumerate(zip(size, conditions)):
        name = "xyz"[axis]
        value = getattr(position, name)
        if 0.0 <= value <= extent:
            continue
        if condition == BoundaryCondition.PERIODIC:
            value = value % extent
        elif condition == BoundaryCondition.REFLECTIVE:
            # Fold back into range; large overshoots are clamped
            value = -value if value < 0.0 else 2.0 * extent - value
            value = min(max(value, 0.0), extent)
            if velocity is not None:
                setattr(velocity, name, -getattr(velocity, name))
        else:
            value = min(max(value, 0.0), extent)
        setattr(position, name, value)


class OctreeNode:
    """
    One axis-aligned box of the octree.

    Leaves hold ``(entity_id, x, y, z)`` entries; internal nodes hold exactly
    eight children, one per octant around ``center``.
    """

    __slots__ = ("center", "half", "depth", "entries", "children")

    def __init__(self, center: Tuple[float, float, float], half: Tuple[float, float, float], depth: int):
        self.center = center
        self.half = half
        self.depth = depth
        self.entries: List[Tuple[int, float, float, float]] = []
        self.children: Optional[List['OctreeNode']] = None

    @property
    def is_leaf(self) -> bool:
        return self.children is None

    def contains(self, x: float, y: float, z: float) -> bool:
        cx, cy, cz = self.center
        hx, hy, hz = self.half
        return (cx - hx <= x <= cx + hx and
                cy - hy <= y <= cy + hy and
                cz - hz <= z <= cz + hz)

    def box_distance_sq(self, x: float, y: float, z: float) -> float:
        """Squared distance from a point to the closest point of this box."""
        total = 0.0
        for p, c, h in ((x, self.center[0], self.half[0]),
                        (y, self.center[1], self.half[1]),
                        (z, self.center[2], self.half[2])):
            excess = abs(p - c) - h
            if excess > 0.0:
                total += excess * excess
        return total

    def child_index(self, x: float, y: float, z: float) -> int:
        cx, cy, cz = self.center
        return (1 if x >= cx else 0) | (2 if y >= cy else 0) | (4 if z >= cz else 0)

    def subdivide(self) -> None:
        hx, hy, hz = (h / 2.0 for h in self.half)
        cx, cy, cz = self.center
        self.children = []
        for index in range(8):
            offset = (
                hx if index & 1 else -hx,
                hy if index & 2 else -hy,
                hz if index & 4 else -hz,
            )
            self.children.append(
                OctreeNode((cx + offset[0], cy + offset[1], cz + offset[2]), (hx, hy, hz), self.depth + 1)
            )
        entries, self.entries = self.entries, []
        for entry in entries:
            self.children[self.child_index(entry[1], entry[2], entry[3])].entries.append(entry)


class SpatialIndex:
    """
    Octree over the world volume.

    Provides insertion, full rebuild, radius and nearest queries. Leaves split
    when they exceed ``max_entities`` entries unless ``max_depth`` is reached,
    which bounds recursion when many entities share a position.
    """

    def __init__(
        self,
        size: Tuple[float, float, float],
        max_entities: int = 8,
        max_depth: int = 6,
        origin: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    ):
        if max_entities < 1:
            raise ValueError("max_entities must be at least 1")
        if max_depth < 0:
            raise ValueError("max_depth cannot be negative")
        if any(extent <= 0 for extent in size):
            raise ValueError(f"Index extents must be positive: {size}")

        self.max_entities = max_entities
        self.max_depth = max_depth
        self.origin = origin
        self.size = size
        self._count = 0
        self._ids: Set[int] = set()
        self.root = self._make_root()

    def _make_root(self) -> OctreeNode:
        half = tuple(extent / 2.0 for extent in self.size)
        center = tuple(o + h for o, h in zip(self.origin, half))
        return OctreeNode(center, half, 0)

    def __len__(self) -> int:
        return self._count

    def ids(self) -> Set[int]:
        """Ids currently held by the index."""
        return set(self._ids)

    def clear(self) -> None:
        self.root = self._make_root()
        self._count = 0
        self._ids = set()

    def insert(self, entity_id: int, position: Vector3) -> bool:
        """
        Insert one entity.

        Returns:
            False if the position lies outside the indexed volume
        """
        x, y, z = position.x, position.y, position.z
        if not self.root.contains(x, y, z):
            logger.warning(f"Position outside spatial index for entity {entity_id}: ({x:.1f}, {y:.1f}, {z:.1f})")
            return False

        node = self.root
        while not node.is_leaf:
            node = node.children[node.child_index(x, y, z)]
        node.entries.append((entity_id, x, y, z))
        if len(node.entries) > self.max_entities and node.depth < self.max_depth:
            node.subdivide()
            # Coincident points may all land in one child; keep splitting to the depth bound
            self._split_overfull(node)

        self._count += 1
        self._ids.add(entity_id)
        return True

    def _split_overfull(self, node: OctreeNode) -> None:
        stack = list(node.children)
        while stack:
            child = stack.pop()
            if len(child.entries) > self.max_entities and child.depth < self.max_depth:
                child.subdivide()
                stack.extend(child.children)

    def rebuild(self, entities: Iterable[Tuple[int, Vector3]]) -> int:
        """
        Discard the current structure and index the given entities.

        Args:
            entities: Iterable of (entity_id, position)

        Returns:
            Number of entities rejected as out of bounds
        """
        self.clear()
        rejected = 0
        for entity_id, position in entities:
            if not self.insert(entity_id, position):
                rejected += 1
        return rejected

    def expand_to_fit(self, positions: Iterable[Vector3], padding: float = 1.0) -> None:
        """Grow the indexed volume so that every position fits, then clear."""
        low = list(self.origin)
        high = [o + s for o, s in zip(self.origin, self.size)]
        for position in positions:
            for axis, value in enumerate(position.as_tuple()):
                low[axis] = min(low[axis], value - padding)
                high[axis] = max(high[axis], value + padding)
        self.origin = tuple(low)
        self.size = tuple(h - l for l, h in zip(low, high))
        logger.info(f"Expanded spatial index volume to origin={self.origin} size={self.size}")
        self.clear()

    def contains_exactly(self, entity_ids: Iterable[int]) -> bool:
        """Check the index holds exactly the given ids, no stale or missing entries."""
        expected = set(entity_ids)
        return self._count == len(expected) and self._ids == expected

    def query_radius(self, center: Vector3, radius: float) -> Set[int]:
        """
        Find all entities within ``radius`` of ``center`` (inclusive).

        Equivalent to a brute-force distance scan over all indexed entities.
        """
        found: Set[int] = set()
        if radius < 0:
            return found
        x, y, z = center.x, center.y, center.z
        radius_sq = radius * radius
        stack = [self.root]
        while stack:
            node = stack.pop()
            if node.box_distance_sq(x, y, z) > radius_sq:
                continue
            if node.is_leaf:
                for entity_id, ex, ey, ez in node.entries:
                    dx, dy, dz = ex - x, ey - y, ez - z
                    if dx * dx + dy * dy + dz * dz <= radius_sq:
                        found.add(entity_id)
            else:
                stack.extend(node.children)
        return found

    def nearest(
        self,
        center: Vector3,
        max_radius: float = math.inf,
        predicate: Optional[Callable[[int], bool]] = None
    ) -> Optional[int]:
        """
        Find the closest entity to ``center`` within ``max_radius``.

        Args:
            center: Query point
            max_radius: Search cutoff (inclusive)
            predicate: Optional filter on entity ids

        Returns:
            Closest matching id (lowest id on ties), or None
        """
        x, y, z = center.x, center.y, center.z
        best_sq = max_radius * max_radius if max_radius != math.inf else math.inf
        best_id: Optional[int] = None
        counter = 0
        heap = [(self.root.box_distance_sq(x, y, z), counter, self.root)]
        while heap:
            box_sq, _, node = heapq.heappop(heap)
            if box_sq > best_sq:
                break
            if node.is_leaf:
                for entity_id, ex, ey, ez in node.entries:
                    dx, dy, dz = ex - x, ey - y, ez - z
                    dist_sq = dx * dx + dy * dy + dz * dz
                    if dist_sq > best_sq:
                        continue
                    if dist_sq == best_sq and best_id is not None and entity_id > best_id:
                        continue
                    if predicate is not None and not predicate(entity_id):
                        continue
                    best_sq = dist_sq
                    best_id = entity_id
            else:
                for child in node.children:
                    child_sq = child.box_distance_sq(x, y, z)
                    if child_sq <= best_sq:
                        counter += 1
                        heapq.heappush(heap, (child_sq, counter, child))
        return best_id

    def get_statistics(self) -> Dict[str, int]:
        """Node, leaf and depth statistics for diagnostics and tests."""
        nodes = leaves = max_depth = 0
        stack = [self.root]
        while stack:
            node = stack.pop()
            nodes += 1
            max_depth = max(max_depth, node.depth)
            if node.is_leaf:
                leaves += 1
            else:
                stack.extend(node.children)
        return {"entities": self._count, "nodes": nodes, "leaves": leaves, "max_depth": max_depth}
