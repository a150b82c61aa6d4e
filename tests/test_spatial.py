"""
Tests for the octree spatial index and boundary handling.
"""

import math

import numpy as np
import pytest
from scipy.spatial import cKDTree

from models.spatial import (
    BoundaryCondition, SpatialIndex, Vector3, apply_boundaries
)

WORLD = (1000.0, 300.0, 300.0)


def random_entities(count, seed=3):
    generator = np.random.default_rng(seed)
    points = generator.uniform((0.0, 0.0, 0.0), WORLD, size=(count, 3))
    return [(i + 1, Vector3(*map(float, point))) for i, point in enumerate(points)]


class TestVector3:
    """Test coordinate helpers."""

    def test_distance(self):
        """Test Euclidean distance."""
        assert Vector3(0, 0, 0).distance_to(Vector3(2, 3, 6)) == 7.0
        assert Vector3(1, 1, 1).is_within_distance(Vector3(1, 1, 2), 1.0)

    def test_step_toward_never_overshoots(self):
        """Test movement stops at the target."""
        position = Vector3(0, 0, 0)
        position.step_toward(Vector3(3, 4, 0), 10.0)
        assert position.as_tuple() == (3, 4, 0)

        position = Vector3(0, 0, 0)
        position.step_toward(Vector3(30, 40, 0), 5.0)
        assert position.x == pytest.approx(3.0)
        assert position.y == pytest.approx(4.0)


class TestBoundaries:
    """Test per-axis boundary conditions."""

    def test_periodic_wraps_along_flow(self):
        """Test x wraps around."""
        position = Vector3(1010.0, 150.0, 150.0)
        apply_boundaries(position, None, WORLD)
        assert position.x == pytest.approx(10.0)

    def test_reflective_wall(self):
        """Test y bounces off the wall and the velocity flips."""
        position = Vector3(100.0, -5.0, 150.0)
        velocity = Vector3(1.0, -2.0, 0.0)
        apply_boundaries(position, velocity, WORLD)
        assert position.y == pytest.approx(5.0)
        assert velocity.y == 2.0

    def test_closed_clamps(self):
        """Test closed boundaries clamp."""
        position = Vector3(-50.0, 400.0, 10.0)
        conditions = (BoundaryCondition.CLOSED,) * 3
        apply_boundaries(position, None, WORLD, conditions)
        assert position.as_tuple() == (0.0, 300.0, 10.0)


class TestSpatialIndex:
    """Test octree queries."""

    def test_invalid_construction(self):
        """Test bad parameters are rejected."""
        with pytest.raises(ValueError):
            SpatialIndex(WORLD, max_entities=0)
        with pytest.raises(ValueError):
            SpatialIndex((0.0, 1.0, 1.0))

    def test_out_of_bounds_insert_rejected(self):
        """Test positions outside the volume are refused."""
        index = SpatialIndex(WORLD)
        assert not index.insert(1, Vector3(-1.0, 10.0, 10.0))
        assert len(index) == 0
        assert index.insert(2, Vector3(0.0, 0.0, 0.0))
        assert index.contains_exactly([2])

    def test_radius_query_matches_brute_force(self):
        """Test radius queries against a full distance scan."""
        entities = random_entities(400)
        index = SpatialIndex(WORLD, max_entities=4)
        assert index.rebuild(entities) == 0

        for center in (Vector3(500, 150, 150), Vector3(0, 0, 0), Vector3(999, 299, 1)):
            for radius in (0.0, 25.0, 80.0, 400.0):
                expected = {i for i, p in entities if p.distance_to(center) <= radius}
                assert index.query_radius(center, radius) == expected

    def test_radius_query_matches_kdtree(self):
        """Test radius queries against scipy's cKDTree."""
        entities = random_entities(300, seed=11)
        index = SpatialIndex(WORLD)
        index.rebuild(entities)
        tree = cKDTree([p.as_tuple() for _, p in entities])

        center = Vector3(420.0, 120.0, 200.0)
        expected = {entities[i][0] for i in tree.query_ball_point(center.as_tuple(), 60.0)}
        assert index.query_radius(center, 60.0) == expected

    def test_nearest_matches_brute_force(self):
        """Test nearest queries against a full distance scan."""
        entities = random_entities(250, seed=5)
        index = SpatialIndex(WORLD)
        index.rebuild(entities)
        for center in (Vector3(10, 10, 10), Vector3(600, 200, 90)):
            expected = min(entities, key=lambda e: (e[1].distance_to(center), e[0]))[0]
            assert index.nearest(center) == expected

    def test_nearest_tie_breaks_on_lowest_id(self):
        """Test equidistant entities resolve to the lowest id."""
        index = SpatialIndex(WORLD)
        index.insert(9, Vector3(510.0, 150.0, 150.0))
        index.insert(3, Vector3(490.0, 150.0, 150.0))
        assert index.nearest(Vector3(500.0, 150.0, 150.0)) == 3

    def test_nearest_with_predicate_and_radius(self):
        """Test predicate filtering and the search cutoff."""
        index = SpatialIndex(WORLD)
        index.insert(3, Vector3(490.0, 150.0, 150.0))
        index.insert(9, Vector3(520.0, 150.0, 150.0))
        center = Vector3(500.0, 150.0, 150.0)

        assert index.nearest(center, predicate=lambda i: i != 3) == 9
        assert index.nearest(center, max_radius=15.0, predicate=lambda i: i != 3) is None
        assert index.nearest(center, max_radius=math.inf) == 3

    def test_coincident_points_bounded_depth(self):
        """Test many entities at one position do not recurse forever."""
        index = SpatialIndex(WORLD, max_entities=2, max_depth=4)
        for i in range(50):
            index.insert(i, Vector3(100.0, 100.0, 100.0))
        assert len(index) == 50
        assert index.get_statistics()["max_depth"] <= 4
        assert index.query_radius(Vector3(100.0, 100.0, 100.0), 0.0) == set(range(50))

    def test_rebuild_discards_stale_entries(self):
        """Test a rebuild leaves only the given entities."""
        index = SpatialIndex(WORLD)
        index.rebuild(random_entities(20))
        index.rebuild([(100, Vector3(1.0, 1.0, 1.0))])
        assert index.contains_exactly([100])
        assert not index.contains_exactly([100, 1])

    def test_expand_to_fit(self):
        """Test the volume grows to cover stray positions."""
        index = SpatialIndex(WORLD)
        stray = Vector3(1200.0, -20.0, 150.0)
        index.expand_to_fit([stray])
        assert index.insert(1, stray)
