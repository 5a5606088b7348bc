# =============================================================================
# L3 Sensor World Package
# =============================================================================
# Simulated sensor world feeding the moving-object detector.
#
# Responsibilities:
# - 2D LiDAR simulation producing LaserScan messages
# - Point cloud simulation producing binary PointCloud messages
# - Obstacle generation and motion
# - Sensor platform pose history and transform lookups
#
# Usage:
#   from L3_sensor_world import WorldModel, ScenarioPresets, SimulatedTransformProvider
#   world = WorldModel(dt=0.1, input_kind='scan')
#   ScenarioPresets.scenario_crossing(world)
#   state = world.update()
# =============================================================================

from .lidar import LidarSimulator
from .cloud import PointCloudSimulator
from .obstacles import ObstacleGenerator
from .world import (
    SensorPlatform,
    WorldModel,
    SimulatedTransformProvider,
    ScenarioPresets,
    INPUT_SCAN,
    INPUT_CLOUD
)

# Re-export config for convenience
from .config import (
    WORLD_BOUNDS,
    DEFAULT_DT,
    DEFAULT_SIMULATION_STEPS,
    DEFAULT_SENSOR_SPEED,
    SENSOR_FRAME,
    BASE_FRAME,
    ODOM_FRAME,
    MAP_FRAME
)

__all__ = [
    # Sensors
    'LidarSimulator',
    'PointCloudSimulator',

    # Obstacles
    'ObstacleGenerator',

    # World
    'SensorPlatform',
    'WorldModel',
    'SimulatedTransformProvider',
    'ScenarioPresets',
    'INPUT_SCAN',
    'INPUT_CLOUD',

    # Config exports
    'WORLD_BOUNDS',
    'DEFAULT_DT',
    'DEFAULT_SIMULATION_STEPS',
    'DEFAULT_SENSOR_SPEED',
    'SENSOR_FRAME',
    'BASE_FRAME',
    'ODOM_FRAME',
    'MAP_FRAME',
]

__version__ = '2.0.0'
