# =============================================================================
# L3 Sensor World - World Model, Transforms and Scenario Presets
# =============================================================================

import logging
import numpy as np
from typing import Dict, Iterable, List, Optional
from collections import OrderedDict

from L4_moving_objects.transforms import Pose, TransformProvider
from L4_moving_objects.errors import TransformUnavailable

from .config import (
    WORLD_BOUNDS,
    DEFAULT_DT,
    DEFAULT_START_TIME,
    DEFAULT_SENSOR_SPEED,
    DEFAULT_SENSOR_START_POSITION,
    DEFAULT_SENSOR_START_HEADING,
    SENSOR_FRAME,
    BASE_FRAME,
    ODOM_FRAME,
    MAP_FRAME,
    SENSOR_MOUNT_OFFSET,
    MAP_TO_ODOM_OFFSET,
    POSE_HISTORY_MAX_LENGTH,
    SCENARIO_CROSSING_START,
    SCENARIO_CROSSING_VELOCITY,
    SCENARIO_MIXED_NUM_STATIC_OBSTACLES,
    SCENARIO_MIXED_STATIC_X_RANGE,
    SCENARIO_MIXED_STATIC_Y_RANGE,
    SCENARIO_MIXED_DYNAMIC_SPEED_RANGE,
    SCENARIO_MIXED_NUM_DYNAMIC_OBSTACLES
)

from .lidar import LidarSimulator
from .cloud import PointCloudSimulator
from .obstacles import ObstacleGenerator

logger = logging.getLogger(__name__)

INPUT_SCAN = 'scan'
INPUT_CLOUD = 'cloud'


def _stamp_key(stamp: float) -> float:
    return round(stamp, 6)


class SensorPlatform:
    """
    Vehicle carrying the sensor. Drives straight at constant speed in the
    odom frame and turns around at the world borders.
    """

    def __init__(self, start_pos: np.ndarray, heading: float = DEFAULT_SENSOR_START_HEADING,
                 speed: float = DEFAULT_SENSOR_SPEED):
        self.pos = np.asarray(start_pos, dtype=float).copy()
        self.heading = heading
        self.speed = speed
        self.vel = np.array([speed * np.cos(heading), speed * np.sin(heading)])

    def update(self, dt: float, world_bounds: tuple):
        new_pos = self.pos + self.vel * dt

        x_min, x_max, y_min, y_max = world_bounds
        if new_pos[0] < x_min or new_pos[0] > x_max or new_pos[1] < y_min or new_pos[1] > y_max:
            self.heading = (self.heading + np.pi) % (2 * np.pi)
            new_pos = np.clip(new_pos, [x_min, y_min], [x_max, y_max])

        self.vel = np.array([self.speed * np.cos(self.heading),
                             self.speed * np.sin(self.heading)])
        self.pos = new_pos
        return self.pos, self.vel, self.heading

    def pose(self) -> Pose:
        """Pose of the platform (base_link) in the odom frame."""
        return Pose.from_xy_yaw(self.pos[0], self.pos[1], self.heading)


class WorldModel:
    """
    Simulation world.
    Manages obstacles, the sensor platform, the sensors and the pose history
    the transform provider answers from.

    The world coordinates are the map frame.
    """

    def __init__(self, dt: float = DEFAULT_DT,
                 world_bounds: tuple = WORLD_BOUNDS,
                 sensor_start_pos: np.ndarray = None,
                 sensor_heading: float = DEFAULT_SENSOR_START_HEADING,
                 sensor_speed: float = DEFAULT_SENSOR_SPEED,
                 start_time: float = DEFAULT_START_TIME,
                 input_kind: str = INPUT_SCAN,
                 cloud_is_bigendian: bool = False,
                 cloud_use_float64: bool = False,
                 seed: Optional[int] = None):
        """
        Initialize the simulation world.

        Args:
            dt: Delta time between frames (seconds)
            world_bounds: World limits (x_min, x_max, y_min, y_max)
            sensor_start_pos: Platform start position in the odom frame
            sensor_heading: Platform start heading (radians)
            sensor_speed: Platform speed (m/s)
            start_time: Timestamp of the initial state
            input_kind: 'scan' for LaserScan messages, 'cloud' for PointCloud messages
            cloud_is_bigendian: Byte order of generated point clouds
            cloud_use_float64: Coordinate width of generated point clouds
            seed: Seed of the random generator
        """
        if input_kind not in (INPUT_SCAN, INPUT_CLOUD):
            raise ValueError(f"input_kind must be '{INPUT_SCAN}' or '{INPUT_CLOUD}'")

        self.dt = dt
        self.world_bounds = world_bounds
        self.input_kind = input_kind
        self.rng = np.random.default_rng(seed)

        if sensor_start_pos is None:
            sensor_start_pos = np.array(DEFAULT_SENSOR_START_POSITION)
        self.sensor_start_pos = np.asarray(sensor_start_pos, dtype=float).copy()
        self.sensor_start_heading = sensor_heading
        self.sensor_speed = sensor_speed
        self.platform = SensorPlatform(self.sensor_start_pos, sensor_heading, sensor_speed)

        self.lidar = LidarSimulator(frame_id=SENSOR_FRAME, rng=self.rng)
        self.cloud = PointCloudSimulator(self.lidar, is_bigendian=cloud_is_bigendian,
                                         use_float64=cloud_use_float64)

        mx, my, mz, myaw = SENSOR_MOUNT_OFFSET
        self.base_to_sensor = Pose.from_xy_yaw(mx, my, myaw, z=mz)
        ox, oy, oyaw = MAP_TO_ODOM_OFFSET
        self.map_to_odom = Pose.from_xy_yaw(ox, oy, oyaw)

        self.obstacles: List[dict] = []
        self.pose_history: "OrderedDict[float, Pose]" = OrderedDict()
        self.start_time = start_time
        self.current_time = start_time
        self.current_frame = 0
        self._record_pose()

    def add_static_obstacles(self, obstacles: List[dict]):
        self.obstacles.extend(obstacles)

    def add_dynamic_obstacle(self, obstacle: dict):
        self.obstacles.append(obstacle)

    def clear_obstacles(self):
        self.obstacles.clear()

    def reset(self):
        self.platform = SensorPlatform(self.sensor_start_pos, self.sensor_start_heading,
                                       self.sensor_speed)
        self.pose_history.clear()
        self.current_time = self.start_time
        self.current_frame = 0
        self._record_pose()

    # =========================================================================
    # Poses
    # =========================================================================

    def _record_pose(self):
        self.pose_history[_stamp_key(self.current_time)] = self.platform.pose()
        while len(self.pose_history) > POSE_HISTORY_MAX_LENGTH:
            self.pose_history.popitem(last=False)

    def platform_pose_at(self, stamp: float) -> Optional[Pose]:
        """Pose of base_link in odom at stamp, None if not in the history."""
        return self.pose_history.get(_stamp_key(stamp))

    def sensor_pose_in_map(self) -> Pose:
        return self.map_to_odom.compose(self.platform.pose()).compose(self.base_to_sensor)

    def sensor_position_and_heading(self):
        pose = self.sensor_pose_in_map()
        position = np.asarray(pose.translation[:2])
        heading = self.map_to_odom_yaw + self.platform.heading + SENSOR_MOUNT_OFFSET[3]
        return position, heading

    @property
    def map_to_odom_yaw(self) -> float:
        return MAP_TO_ODOM_OFFSET[2]

    # =========================================================================
    # Simulation Step
    # =========================================================================

    def update(self) -> dict:
        """Advance the world by dt and produce one sensor message."""
        ObstacleGenerator.move(self.obstacles, self.dt, self.world_bounds)
        self.platform.update(self.dt, self.world_bounds)
        self.current_time += self.dt
        self.current_frame += 1
        self._record_pose()

        sensor_pos, sensor_heading = self.sensor_position_and_heading()
        if self.input_kind == INPUT_CLOUD:
            message = self.cloud.generate(self.obstacles, sensor_pos, sensor_heading,
                                          self.current_time)
        else:
            message = self.lidar.scan(self.obstacles, sensor_pos, sensor_heading,
                                      self.current_time, scan_time=self.dt)

        return {
            'stamp': self.current_time,
            'frame': self.current_frame,
            'message': message,
            'sensor_position': sensor_pos,
            'sensor_heading': sensor_heading,
            'obstacles': [dict(obs, center=obs['center'].copy(),
                               velocity=obs['velocity'].copy()) for obs in self.obstacles],
        }

    def get_ground_truth(self) -> Dict[int, dict]:
        ground_truth = {}
        for idx, obs in enumerate(self.obstacles):
            ground_truth[idx] = {
                'position': obs['center'].copy(),
                'velocity': obs['velocity'].copy(),
                'type': obs['type'].upper()
            }
        return ground_truth


class SimulatedTransformProvider(TransformProvider):
    """
    Answers map / odom / base_link lookups of the sensor frame from the
    platform pose history of a WorldModel.

    Lookups at stamps that are not in the history fail, as do lookups into
    frames listed in unavailable_frames.
    """

    def __init__(self, world: WorldModel, unavailable_frames: Iterable[str] = ()):
        self.world = world
        self.unavailable_frames = set(unavailable_frames)

    def lookup(self, target_frame: str, source_frame: str,
               stamp: float, timeout: float) -> Pose:
        if target_frame == source_frame:
            return Pose.identity()
        if source_frame != SENSOR_FRAME:
            raise TransformUnavailable(target_frame, source_frame, stamp, "unknown source frame")
        if target_frame in self.unavailable_frames:
            raise TransformUnavailable(target_frame, source_frame, stamp, "frame not published")

        if target_frame == BASE_FRAME:
            return self.world.base_to_sensor

        odom_to_base = self.world.platform_pose_at(stamp)
        if odom_to_base is None:
            raise TransformUnavailable(target_frame, source_frame, stamp,
                                       "no platform pose at that time")
        odom_to_sensor = odom_to_base.compose(self.world.base_to_sensor)
        if target_frame == ODOM_FRAME:
            return odom_to_sensor
        if target_frame == MAP_FRAME:
            return self.world.map_to_odom.compose(odom_to_sensor)
        raise TransformUnavailable(target_frame, source_frame, stamp, "unknown target frame")


class ScenarioPresets:
    """Presets for common test scenarios."""

    @staticmethod
    def scenario_crossing(world: WorldModel):
        """One obstacle walking across in front of the sensor."""
        world.clear_obstacles()
        world.add_dynamic_obstacle(ObstacleGenerator.create_dynamic_obstacle(
            position=np.array(SCENARIO_CROSSING_START),
            velocity=np.array(SCENARIO_CROSSING_VELOCITY)
        ))
        world.reset()
        return {'type': 'crossing', 'num_obstacles': 1}

    @staticmethod
    def scenario_static_only(world: WorldModel, num_obstacles: int = SCENARIO_MIXED_NUM_STATIC_OBSTACLES):
        world.clear_obstacles()
        sensor_pos, _ = world.sensor_position_and_heading()
        static_obs = ObstacleGenerator.generate_random_static_obstacles(
            num_obstacles=num_obstacles,
            x_range=SCENARIO_MIXED_STATIC_X_RANGE,
            y_range=SCENARIO_MIXED_STATIC_Y_RANGE,
            keep_clear=sensor_pos,
            rng=world.rng
        )
        world.add_static_obstacles(static_obs)
        world.reset()
        return {'type': 'static_only', 'num_obstacles': len(static_obs)}

    @staticmethod
    def scenario_mixed(world: WorldModel):
        world.clear_obstacles()
        sensor_pos, _ = world.sensor_position_and_heading()
        static_obs = ObstacleGenerator.generate_random_static_obstacles(
            num_obstacles=SCENARIO_MIXED_NUM_STATIC_OBSTACLES,
            x_range=SCENARIO_MIXED_STATIC_X_RANGE,
            y_range=SCENARIO_MIXED_STATIC_Y_RANGE,
            keep_clear=sensor_pos,
            rng=world.rng
        )
        world.add_static_obstacles(static_obs)

        for _ in range(SCENARIO_MIXED_NUM_DYNAMIC_OBSTACLES):
            direction = world.rng.uniform(-np.pi, np.pi)
            speed = world.rng.uniform(*SCENARIO_MIXED_DYNAMIC_SPEED_RANGE)
            world.add_dynamic_obstacle(ObstacleGenerator.create_dynamic_obstacle(
                position=np.array([
                    world.rng.uniform(*SCENARIO_MIXED_STATIC_X_RANGE),
                    world.rng.uniform(*SCENARIO_MIXED_STATIC_Y_RANGE)
                ]),
                velocity=speed * np.array([np.cos(direction), np.sin(direction)])
            ))

        world.reset()
        return {'type': 'mixed', 'num_static': len(static_obs),
                'num_dynamic': SCENARIO_MIXED_NUM_DYNAMIC_OBSTACLES}
