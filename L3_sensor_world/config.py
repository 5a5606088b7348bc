# =============================================================================
# L3 Sensor World - Configuration
# =============================================================================
# All configurable parameters for the simulated sensor world.
# =============================================================================

import math

# =============================================================================
# SIMULATION WORLD BOUNDARIES
# =============================================================================
# Area in which the obstacles and the sensor platform move.
# Format: (x_min, x_max, y_min, y_max) in meters
WORLD_BOUNDS = (-8, 8, -8, 8)

# =============================================================================
# TIME PARAMETERS
# =============================================================================
# Delta time between simulation frames (seconds)
# 0.1s = 10 Hz scan rate
DEFAULT_DT = 0.1

# Total number of simulation steps
DEFAULT_SIMULATION_STEPS = 200

# Timestamp of the first frame (seconds)
DEFAULT_START_TIME = 100.0

# =============================================================================
# SENSOR PLATFORM
# =============================================================================
# Platform speed along its heading (m/s). 0 = parked sensor
DEFAULT_SENSOR_SPEED = 0.0

# Platform start pose in the odom frame: [x, y] and heading (radians)
DEFAULT_SENSOR_START_POSITION = [0.0, 0.0]
DEFAULT_SENSOR_START_HEADING = 0.0

# Frame names
SENSOR_FRAME = "laser"
BASE_FRAME = "base_link"
ODOM_FRAME = "odom"
MAP_FRAME = "map"

# Pose of the sensor on the platform (base_link -> laser): x, y, z, yaw
SENSOR_MOUNT_OFFSET = (0.2, 0.0, 0.3, 0.0)

# Pose of the odom frame in the map frame: x, y, yaw
MAP_TO_ODOM_OFFSET = (1.0, -0.5, 0.1)

# Platform poses kept for transform lookups (frames)
POSE_HISTORY_MAX_LENGTH = 200

# =============================================================================
# LIDAR CONFIGURATION
# =============================================================================
# Angular span (radians)
LIDAR_ANGLE_MIN = -math.pi
LIDAR_ANGLE_MAX = math.pi

# Number of laser rays
LIDAR_NUM_RAYS = 360

# Range limits (meters)
LIDAR_MIN_RANGE = 0.05
LIDAR_MAX_RANGE = 8.0

# Gaussian noise standard deviation (meters)
LIDAR_NOISE_STD = 0.005

# =============================================================================
# POINT CLOUD CONFIGURATION
# =============================================================================
# Heights at which obstacle surfaces are sampled (meters, sensor frame)
CLOUD_LAYER_HEIGHTS = (0.2, 0.5, 0.8)

# Floor points are generated too; they lie outside the default z band
CLOUD_FLOOR_HEIGHT = 0.0

# Encoding of generated clouds
CLOUD_IS_BIGENDIAN = False
CLOUD_USE_FLOAT64 = False

# =============================================================================
# OBSTACLE CONFIGURATION
# =============================================================================
# Static obstacle radius range (min, max) in meters
OBSTACLE_RADIUS_RANGE = (0.2, 0.35)

# Minimum distance between obstacles (meters)
OBSTACLE_MIN_DISTANCE = 1.5

# Default radius for dynamic obstacles (meters)
DYNAMIC_OBSTACLE_RADIUS = 0.3

# =============================================================================
# SCENARIO CONFIGURATION
# =============================================================================

# --- Crossing: one obstacle walking across in front of the sensor ---
SCENARIO_CROSSING_START = (3.0, -2.5)
SCENARIO_CROSSING_VELOCITY = (0.0, 0.5)

# --- Mixed: static obstacles plus moving ones ---
SCENARIO_MIXED_NUM_STATIC_OBSTACLES = 4
SCENARIO_MIXED_STATIC_X_RANGE = (-5, 5)
SCENARIO_MIXED_STATIC_Y_RANGE = (-5, 5)
SCENARIO_MIXED_DYNAMIC_SPEED_RANGE = (0.3, 0.8)
SCENARIO_MIXED_NUM_DYNAMIC_OBSTACLES = 2
