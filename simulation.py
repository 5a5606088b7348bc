# =============================================================================
# SIMULATION - Layer Coordinator
# =============================================================================
# Starts the simulation coordinating:
# - L3: Sensor World Layer (obstacles, sensor platform, LiDAR / point cloud)
# - L4: Moving Objects Layer (scan bank, tracking, velocity estimation)
# =============================================================================

import os
import sys
import json
import logging
import argparse
from collections import deque
from datetime import datetime

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import matplotlib.animation as animation
from matplotlib.patches import Circle

from L3_sensor_world import (
    WorldModel,
    ScenarioPresets,
    SimulatedTransformProvider,
    WORLD_BOUNDS,
    DEFAULT_DT,
    DEFAULT_SIMULATION_STEPS,
    DEFAULT_SENSOR_SPEED,
    MAP_FRAME,
    ODOM_FRAME,
    BASE_FRAME,
    INPUT_SCAN,
    INPUT_CLOUD
)
from L4_moving_objects import (
    BankConfig,
    CollectingSink,
    MovingObjectDetector,
    ConfigurationError
)
from L4_moving_objects.config import BANK_EMA_ALPHA, BANK_NR_SCANS

logger = logging.getLogger(__name__)

SCENARIOS = ('crossing', 'mixed', 'static')


# =============================================================================
# Detection Metrics (for evaluation)
# =============================================================================
class DetectionMetrics:
    """Compares reported objects with the ground truth of the world."""

    def __init__(self):
        self.velocity_estimates = []
        self.false_reports = 0

    def record(self, obj, ground_truth: dict, current_time: float):
        """Match a reported object to the nearest obstacle (map frame)."""
        if not ground_truth:
            self.false_reports += 1
            return
        position = obj.in_frame('map').position[:2]
        idx, truth = min(ground_truth.items(),
                         key=lambda item: np.linalg.norm(item[1]['position'] - position))
        self.velocity_estimates.append({
            'time': current_time,
            'obs_id': idx,
            'type': truth['type'],
            'estimated': obj.in_frame('map').speed,
            'actual': float(np.linalg.norm(truth['velocity'])),
            'position_error': float(np.linalg.norm(truth['position'] - position)),
        })
        if truth['type'] == 'STATIC':
            self.false_reports += 1

    def compute_metrics(self) -> dict:
        metrics = {'false_reports': self.false_reports}

        if self.velocity_estimates:
            df = pd.DataFrame(self.velocity_estimates)
            error = (df['estimated'] - df['actual']).abs()
            metrics['velocity_estimation'] = {
                'samples': len(df),
                'mean_error': float(error.mean()),
                'rmse': float(np.sqrt(np.mean(error ** 2)))
            }
            metrics['position_error'] = {
                'mean': float(df['position_error'].mean()),
                'max': float(df['position_error'].max())
            }

        return metrics

    def export_to_json(self, filename: str) -> dict:
        metrics = self.compute_metrics()
        output = {
            'timestamp': datetime.now().isoformat(),
            'metrics': metrics
        }
        with open(filename, 'w', encoding='utf-8') as f:
            json.dump(output, f, indent=2)
        return metrics


# =============================================================================
# Simulation Controller
# =============================================================================
class SimulationController:
    """
    Main controller that feeds the sensor world into the detector.
    """

    def __init__(self, dt: float = DEFAULT_DT, steps: int = DEFAULT_SIMULATION_STEPS,
                 input_kind: str = INPUT_SCAN, sensor_speed: float = DEFAULT_SENSOR_SPEED,
                 alpha: float = BANK_EMA_ALPHA, depth: int = BANK_NR_SCANS,
                 scenario: str = 'crossing', log_dir: str = 'log', seed: int = None):
        self.dt = dt
        self.steps = steps
        self.input_kind = input_kind
        self.log_dir = log_dir
        self.current_scenario = scenario

        # Layer 3: Sensor World
        self.world = WorldModel(
            dt=dt,
            world_bounds=WORLD_BOUNDS,
            sensor_speed=sensor_speed,
            input_kind=input_kind,
            seed=seed
        )
        self.transform_provider = SimulatedTransformProvider(self.world)

        # Layer 4: Moving Objects
        self.config = BankConfig(
            ema_alpha=alpha,
            nr_scans_in_bank=depth,
            map_frame=MAP_FRAME,
            fixed_frame=ODOM_FRAME,
            base_frame=BASE_FRAME,
            publish_ema=True,
            publish_closest_point_markers=True,
            publish_velocity_arrows=True,
            publish_delta_position_lines=True,
        )
        self.sink = CollectingSink()
        self.detector = MovingObjectDetector(self.config, self.transform_provider, self.sink)

        print(f"  Input: {input_kind.upper()}")
        print(f"  Bank: {depth} scans, alpha={alpha}")
        print(f"  Sensor speed: {sensor_speed:.2f} m/s")

        self.object_log = []
        self.metrics = DetectionMetrics()
        self.last_objects = []
        self.sensor_trajectory = deque(maxlen=200)

        self.reset_scenario(scenario)

    def reset_scenario(self, scenario: str):
        """Resets and configures a scenario."""
        self.current_scenario = scenario
        self.object_log = []
        self.metrics = DetectionMetrics()
        self.last_objects = []
        self.sensor_trajectory.clear()
        self.detector.reset()
        self.sink.clear()

        if scenario == 'crossing':
            info = ScenarioPresets.scenario_crossing(self.world)
        elif scenario == 'mixed':
            info = ScenarioPresets.scenario_mixed(self.world)
        elif scenario == 'static':
            info = ScenarioPresets.scenario_static_only(self.world)
        else:
            raise ValueError(f"Unknown scenario: {scenario}")

        print(f"\n{'='*60}")
        print(f"Scenario '{scenario}' initialized: {info}")
        print(f"{'='*60}\n")

    def step(self, frame: int) -> dict:
        """
        Executes one simulation step.

        Returns:
            Dictionary with all current frame data
        """
        state = self.world.update()
        message = state['message']
        self.sensor_trajectory.append(state['sensor_position'].copy())

        if self.input_kind == INPUT_CLOUD:
            self.detector.add_point_cloud(message)
        else:
            self.detector.add_laser_scan(message)

        objects = []
        if self.detector.is_filled:
            array = self.detector.find_and_report_moving_objects()
            objects = array.objects if array is not None else []

        ground_truth = self.world.get_ground_truth()
        for obj in objects:
            self.metrics.record(obj, ground_truth, state['stamp'])
            record = obj.to_record()
            record['frame'] = state['frame']
            record['scenario'] = self.current_scenario
            self.object_log.append(record)
        self.last_objects = objects
        ema = self.sink.ema_profiles[-1] if self.sink.ema_profiles else None
        arrows = self.sink.velocity_arrows[-1] if self.sink.velocity_arrows else []
        lines = self.sink.delta_position_lines[-1] if self.sink.delta_position_lines else []
        self.sink.clear()

        return {
            'stamp': state['stamp'],
            'frame': state['frame'],
            'sensor_position': state['sensor_position'],
            'sensor_heading': state['sensor_heading'],
            'obstacles': state['obstacles'],
            'objects': objects,
            'ema': ema,
            'velocity_arrows': arrows,
            'delta_position_lines': lines,
            'bank_filled': self.detector.is_filled,
        }

    def run_headless(self):
        """Runs all steps without visualization."""
        for frame in range(self.steps):
            data = self.step(frame)
            if data['objects']:
                speeds = ", ".join(f"{o.in_frame('map').speed:.2f}" for o in data['objects'])
                print(f"t={data['stamp']:.2f}s  {len(data['objects'])} moving object(s), "
                      f"map speeds [{speeds}] m/s")

    def save_logs(self):
        """Saves logs and metrics to files in organized subfolders."""
        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')

        object_log_dir = os.path.join(self.log_dir, "object_log")
        metrics_dir = os.path.join(self.log_dir, "detection_metrics")
        for directory in [object_log_dir, metrics_dir]:
            os.makedirs(directory, exist_ok=True)

        # CSV - Object Log
        if self.object_log:
            df = pd.DataFrame(self.object_log)
            csv_file = os.path.join(
                object_log_dir,
                f"object_log_{self.current_scenario}_{timestamp}.csv"
            )
            df.to_csv(csv_file, index=False, encoding='utf-8')
            print(f"Log saved: {csv_file}")

        # JSON - Detection Metrics and Detector Statistics
        json_file = os.path.join(
            metrics_dir,
            f"detection_metrics_{self.current_scenario}_{timestamp}.json"
        )
        metrics = self.metrics.export_to_json(json_file)
        stats_file = os.path.join(
            metrics_dir,
            f"detector_statistics_{self.current_scenario}_{timestamp}.json"
        )
        with open(stats_file, 'w', encoding='utf-8') as f:
            json.dump(self.detector.get_statistics(), f, indent=2, default=str)
        print(f"Metrics saved: {json_file}")

        # Print summary
        print(f"\n{'='*60}")
        print("METRICS SUMMARY")
        print(f"{'='*60}")
        print(f"Objects reported: {len(self.object_log)}")
        print(f"False reports: {metrics['false_reports']}")
        if 'velocity_estimation' in metrics:
            vel = metrics['velocity_estimation']
            print(f"Speed RMSE: {vel['rmse']:.3f} m/s")
        print(f"{'='*60}\n")
        return metrics


# =============================================================================
# Visualization
# =============================================================================
class SimulationVisualizer:
    """
    Simulation visualization with matplotlib.
    """

    def __init__(self, controller: SimulationController):
        self.controller = controller

        self.fig = plt.figure(figsize=(14, 8))
        gs = self.fig.add_gridspec(2, 2, hspace=0.3, wspace=0.25,
                                   left=0.06, right=0.97, top=0.95, bottom=0.06)

        self.ax_main = self.fig.add_subplot(gs[:, 0])
        self.ax_ema = self.fig.add_subplot(gs[0, 1], projection='polar')
        self.ax_info = self.fig.add_subplot(gs[1, 1])

        self.fig.canvas.mpl_connect('close_event', self._on_close)

    def _on_close(self, event):
        print("\n" + "="*60)
        print("SAVING LOGS AND METRICS...")
        print("="*60)
        self.controller.save_logs()

    def animate(self, frame: int):
        """Animation function."""
        data = self.controller.step(frame)
        x_min, x_max, y_min, y_max = self.controller.world.world_bounds

        # World view (map frame)
        ax = self.ax_main
        ax.clear()
        ax.set_xlim(x_min, x_max)
        ax.set_ylim(y_min, y_max)
        ax.set_aspect('equal')
        ax.set_title(f"Map frame  t={data['stamp']:.1f}s")
        ax.grid(True, alpha=0.3)

        for obs in data['obstacles']:
            color = 'tab:red' if obs['type'] == 'dynamic' else 'tab:gray'
            ax.add_patch(Circle(obs['center'], obs['radius'], color=color, alpha=0.5))

        trajectory = np.array(self.controller.sensor_trajectory)
        if len(trajectory) > 1:
            ax.plot(trajectory[:, 0], trajectory[:, 1], 'b-', alpha=0.4)
        sensor = data['sensor_position']
        ax.plot(sensor[0], sensor[1], 'bs', markersize=8)

        for line in data['delta_position_lines']:
            (x0, y0, _), (x1, y1, _) = line.points
            ax.plot([x0, x1], [y0, y1], color=line.color[:3], linewidth=1)
            ax.plot(x1, y1, 'go')
        for arrow in data['velocity_arrows']:
            (x0, y0, _), (x1, y1, _) = arrow.points
            ax.arrow(x0, y0, x1 - x0, y1 - y0, head_width=0.15,
                     color="k", alpha=max(arrow.color[0], 0.2), length_includes_head=True)

        # Smoothed ranges of the newest scan
        self.ax_ema.clear()
        ema = data['ema']
        if ema is not None:
            angles = ema.angle_min + np.arange(len(ema.ranges)) * ema.angle_increment
            ranges = np.minimum(ema.ranges, self.controller.config.max_distance)
            self.ax_ema.plot(angles, ranges, 'k.', markersize=2)
            highlighted = ema.intensities > 0
            self.ax_ema.plot(angles[highlighted], ranges[highlighted], 'r.', markersize=4)
        self.ax_ema.set_title("Smoothed scan (objects in red)")

        # Info panel
        self.ax_info.clear()
        self.ax_info.axis('off')
        stats = self.controller.detector.get_statistics()
        lines = [
            f"Frame: {data['frame']}   Bank filled: {data['bank_filled']}",
            f"Cycles: {stats['cycles']}   Reported: {stats['objects_reported']}",
            f"Tracks lost: {stats['tracks_lost']}   Too slow: {stats['objects_too_slow']}",
            f"Low confidence: {stats['objects_low_confidence']}",
            "",
        ]
        for obj in data['objects']:
            kin = obj.in_frame('map')
            lines.append(f"#{obj.seq:<3} d={obj.distance:5.2f}m  v={kin.speed:4.2f}m/s  "
                         f"conf={obj.confidence:.2f}")
        self.ax_info.text(0.0, 1.0, "\n".join(lines), va='top',
                          fontsize=9, family='monospace')

    def run(self):
        """Starts the animation."""
        ani = animation.FuncAnimation(
            self.fig, self.animate,
            frames=self.controller.steps,
            interval=int(self.controller.dt * 1000), repeat=False
        )
        plt.show()
        return ani


# =============================================================================
# Argument Parser
# =============================================================================
def parse_arguments(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog='simulation.py',
        description="""
  MOVING OBJECT DETECTION - LAYERED ARCHITECTURE

  LAYERS:
    L3: Sensor World Layer   - Obstacles, sensor platform, LiDAR, point clouds
    L4: Moving Objects Layer - Scan bank, EMA, segmentation, tracking,
                               velocities in sensor/map/odom/base_link frames

  SCENARIOS (--scenario):
    crossing - One obstacle walking across in front of the sensor (default)
    mixed    - Static obstacles plus two moving ones
    static   - Only static obstacles (nothing should be reported)
""",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
EXAMPLES:
  python simulation.py                                  # LaserScan input, crossing
  python simulation.py --input cloud                    # Point cloud input
  python simulation.py --scenario mixed --alpha 0.7     # Smoothed bank, mixed scenario
  python simulation.py --headless --steps 100           # No window, logs only
"""
    )

    parser.add_argument(
        '--input',
        type=str,
        choices=[INPUT_SCAN, INPUT_CLOUD],
        default=INPUT_SCAN,
        help='Sensor message type fed to the bank (default: scan)'
    )

    parser.add_argument(
        '--scenario',
        type=str,
        choices=SCENARIOS,
        default='crossing',
        help='Obstacle scenario (default: crossing)'
    )

    parser.add_argument(
        '--steps',
        type=int,
        default=DEFAULT_SIMULATION_STEPS,
        metavar='N',
        help=f'Simulation steps (default: {DEFAULT_SIMULATION_STEPS})'
    )

    parser.add_argument(
        '--dt',
        type=float,
        default=DEFAULT_DT,
        metavar='SEC',
        help=f'Time between scans in seconds (default: {DEFAULT_DT})'
    )

    parser.add_argument(
        '--sensor-speed',
        type=float,
        default=DEFAULT_SENSOR_SPEED,
        metavar='M/S',
        help='Speed of the sensor platform (default: parked)'
    )

    parser.add_argument(
        '--alpha',
        type=float,
        default=BANK_EMA_ALPHA,
        help=f'EMA smoothing factor in [0, 1] (default: {BANK_EMA_ALPHA})'
    )

    parser.add_argument(
        '--depth',
        type=int,
        default=BANK_NR_SCANS,
        metavar='N',
        help=f'Number of scans in the bank (default: {BANK_NR_SCANS})'
    )

    parser.add_argument(
        '--seed',
        type=int,
        default=None,
        help='Random seed'
    )

    parser.add_argument(
        '--headless',
        action='store_true',
        help='Run without visualization and save the logs at the end'
    )

    parser.add_argument(
        '--log-dir',
        type=str,
        default='log',
        metavar='DIR',
        help='Directory for CSV and JSON output (default: log)'
    )

    parser.add_argument(
        '--log-level',
        type=str,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default='WARNING',
        help='Logging level (default: WARNING)'
    )

    return parser.parse_args(argv)


# =============================================================================
# Main Entry Point
# =============================================================================
def main(argv=None):
    args = parse_arguments(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s %(levelname)-7s %(name)s: %(message)s'
    )

    print("="*60)
    print("MOVING OBJECT DETECTION - LAYERED ARCHITECTURE")
    print("="*60)
    print("LAYERS:")
    print("  L3: Sensor World Layer   - Obstacles, Platform, LiDAR, Point Cloud")
    print("  L4: Moving Objects Layer - Bank, EMA, Tracking, Kinematics")

    try:
        controller = SimulationController(
            dt=args.dt,
            steps=args.steps,
            input_kind=args.input,
            sensor_speed=args.sensor_speed,
            alpha=args.alpha,
            depth=args.depth,
            scenario=args.scenario,
            log_dir=args.log_dir,
            seed=args.seed
        )
    except ConfigurationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    if args.headless:
        controller.run_headless()
        controller.save_logs()
        return 0

    print("="*60)
    print("COMMANDS:")
    print("  - Close window to save logs and metrics")
    print("="*60)

    visualizer = SimulationVisualizer(controller)
    visualizer.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
