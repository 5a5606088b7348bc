# =============================================================================
# L3 Sensor World - Obstacle Generator
# =============================================================================

import numpy as np
from typing import List, Tuple

from .config import (
    OBSTACLE_RADIUS_RANGE,
    OBSTACLE_MIN_DISTANCE,
    DYNAMIC_OBSTACLE_RADIUS
)


class ObstacleGenerator:
    """
    Circular obstacles for the simulated world.
    Static obstacles have zero velocity, dynamic ones move at constant velocity.
    """

    @staticmethod
    def generate_random_static_obstacles(num_obstacles: int,
                                         x_range: Tuple[float, float],
                                         y_range: Tuple[float, float],
                                         radius_range: Tuple[float, float] = OBSTACLE_RADIUS_RANGE,
                                         min_dist: float = OBSTACLE_MIN_DISTANCE,
                                         keep_clear: np.ndarray = None,
                                         rng: np.random.Generator = None) -> List[dict]:
        """
        Generate random static obstacles without overlapping.

        Args:
            num_obstacles: Number of obstacles to generate
            x_range: X range (min, max)
            y_range: Y range (min, max)
            radius_range: Radius range (min, max)
            min_dist: Minimum distance between obstacles (and to keep_clear)
            keep_clear: Position that must stay free, e.g. the sensor
            rng: Random generator

        Returns:
            List of obstacle dictionaries
        """
        rng = rng if rng is not None else np.random.default_rng()
        occupied = [np.asarray(keep_clear, dtype=float)] if keep_clear is not None else []
        obstacles = []
        for _ in range(num_obstacles):
            for attempt in range(100):
                center = np.array([rng.uniform(*x_range), rng.uniform(*y_range)])
                if all(np.linalg.norm(center - other) >= min_dist for other in occupied):
                    obstacles.append({
                        'center': center,
                        'radius': rng.uniform(*radius_range),
                        'velocity': np.array([0.0, 0.0]),
                        'type': 'static'
                    })
                    occupied.append(center)
                    break
        return obstacles

    @staticmethod
    def create_dynamic_obstacle(position: np.ndarray,
                                velocity: np.ndarray,
                                radius: float = DYNAMIC_OBSTACLE_RADIUS) -> dict:
        """
        Create a single obstacle moving at constant velocity.

        Args:
            position: Initial position [x, y]
            velocity: Velocity [vx, vy]
            radius: Obstacle radius
        """
        return {
            'center': np.asarray(position, dtype=float).copy(),
            'radius': radius,
            'velocity': np.asarray(velocity, dtype=float).copy(),
            'type': 'dynamic'
        }

    @staticmethod
    def move(obstacles: List[dict], dt: float, world_bounds: tuple):
        """Advance dynamic obstacles by dt, bouncing off the world bounds."""
        x_min, x_max, y_min, y_max = world_bounds
        for obs in obstacles:
            if obs['type'] != 'dynamic':
                continue
            obs['center'] = obs['center'] + obs['velocity'] * dt
            radius = obs['radius']

            if obs['center'][0] - radius < x_min:
                obs['center'][0] = x_min + radius
                obs['velocity'][0] = abs(obs['velocity'][0])
            elif obs['center'][0] + radius > x_max:
                obs['center'][0] = x_max - radius
                obs['velocity'][0] = -abs(obs['velocity'][0])

            if obs['center'][1] - radius < y_min:
                obs['center'][1] = y_min + radius
                obs['velocity'][1] = abs(obs['velocity'][1])
            elif obs['center'][1] + radius > y_max:
                obs['center'][1] = y_max - radius
                obs['velocity'][1] = -abs(obs['velocity'][1])
