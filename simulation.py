# =============================================================================
# SIMULATION - Moving Object Detection Demo
# =============================================================================
# Feeds synthetic laser scans to the moving object detector:
# - A stationary 2D laser in the middle of a room
# - Discs moving on straight lines, bouncing off the walls
# - A static pillar that must never be reported
# Shows scans and reported velocities with matplotlib, or prints a summary
# per step with --headless.
# =============================================================================

import argparse
import json
import logging
import os
from collections import deque
from datetime import datetime
from typing import List

import matplotlib.pyplot as plt
import matplotlib.animation as animation
import numpy as np
import pandas as pd

from find_moving_objects import (
    BankConfiguration,
    Frame,
    LaserScan,
    MovingObjectDetector,
    RigidTransform,
    TransformBuffer,
    load_config,
)

SENSOR_FRAME = "laser"
ROOM_HALF_SIZE = 5.0


# =============================================================================
# Synthetic LiDAR
# =============================================================================
class SyntheticLidar:
    """
    Planar laser emulating ray/disc intersections inside a square room.
    """

    def __init__(self, num_rays: int = 360, max_range: float = 8.0,
                 noise_std: float = 0.005, seed: int = 0):
        self.num_rays = num_rays
        self.max_range = max_range
        self.noise_std = noise_std
        self.angle_min = -np.pi
        self.angle_increment = 2 * np.pi / num_rays
        self.angles = self.angle_min + self.angle_increment * np.arange(num_rays)
        self.angle_max = float(self.angles[-1])
        self.rng = np.random.default_rng(seed)

    def scan(self, discs: List[dict], stamp: float) -> LaserScan:
        """
        Args:
            discs: Discs with 'center' [x, y] and 'radius'
            stamp: Time of the scan

        Returns:
            LaserScan in the sensor frame
        """
        ranges = np.full(self.num_rays, self.max_range)

        for idx, angle in enumerate(self.angles):
            ray_dir = np.array([np.cos(angle), np.sin(angle)])
            min_dist = self._wall_distance(ray_dir)

            for disc in discs:
                center = disc['center']
                radius = disc['radius']
                proj = np.dot(center, ray_dir)
                if proj <= 0:
                    continue
                dist_to_center = np.linalg.norm(center - proj * ray_dir)
                if dist_to_center <= radius:
                    dist = proj - np.sqrt(radius ** 2 - dist_to_center ** 2)
                    if 0 < dist < min_dist:
                        min_dist = dist
            ranges[idx] = min_dist

        ranges += self.rng.normal(0, self.noise_std, ranges.shape)
        ranges = np.clip(ranges, 0.05, self.max_range)

        return LaserScan(stamp=stamp, frame_id=SENSOR_FRAME,
                         angle_min=self.angle_min, angle_max=self.angle_max,
                         angle_increment=self.angle_increment, ranges=ranges,
                         range_min=0.05, range_max=self.max_range)

    def _wall_distance(self, ray_dir: np.ndarray) -> float:
        dists = [ROOM_HALF_SIZE / abs(c) for c in ray_dir if abs(c) > 1e-9]
        return min(min(dists), self.max_range)


# =============================================================================
# Detection Metrics (for evaluation)
# =============================================================================
class DetectionMetrics:
    """Compares reported objects with the simulated discs."""

    def __init__(self):
        self.object_log = []
        self.cycles = 0

    def record_object(self, current_time: float, obj, discs: List[dict]):
        position = obj.frames[Frame.MAP].position[:2]
        distances = [np.linalg.norm(disc['center'] - position) - disc['radius']
                     for disc in discs]
        nearest = int(np.argmin(distances))
        disc = discs[nearest]
        actual = float(np.linalg.norm(disc['velocity']))
        estimated = obj.frames[Frame.MAP].speed
        self.object_log.append({
            'time': current_time,
            'disc': nearest,
            'static': disc['static'],
            'index_min': obj.index_min,
            'index_max': obj.index_max,
            'x': float(position[0]),
            'y': float(position[1]),
            'estimated': estimated,
            'actual': actual,
            'error': abs(estimated - actual),
            'confidence': obj.confidence,
        })

    def compute_metrics(self) -> dict:
        metrics = {'cycles': self.cycles, 'reported_objects': len(self.object_log)}

        if self.object_log:
            df = pd.DataFrame(self.object_log)
            moving = df[~df['static']]
            metrics['false_reports'] = int(df['static'].sum())
            metrics['discs_detected'] = int(moving['disc'].nunique())
            metrics['mean_confidence'] = float(df['confidence'].mean())
            if not moving.empty:
                metrics['velocity_estimation'] = {
                    'mean_error': float(moving['error'].mean()),
                    'rmse': float(np.sqrt(np.mean(moving['error'] ** 2)))
                }

        return metrics

    def export_to_json(self, filename: str) -> dict:
        metrics = self.compute_metrics()
        output = {
            'timestamp': datetime.now().isoformat(),
            'metrics': metrics
        }
        with open(filename, 'w', encoding='utf-8') as f:
            json.dump(output, f, indent=2, default=str)
        return metrics


# =============================================================================
# Simulation Controller
# =============================================================================
class SimulationController:
    """Moves the discs and runs the detector once per step."""

    def __init__(self, config: BankConfiguration, dt: float = 0.1,
                 steps: int = 300, num_movers: int = 2, seed: int = 0):
        self.dt = dt
        self.steps = steps
        self.time = 0.0
        self.lidar = SyntheticLidar(seed=seed)
        rng = np.random.default_rng(seed)

        self.discs = [{'center': np.array([2.0, 2.0]), 'radius': 0.3,
                       'velocity': np.zeros(2), 'static': True}]
        for _ in range(num_movers):
            heading = rng.uniform(-np.pi, np.pi)
            speed = rng.uniform(0.4, 1.0)
            self.discs.append({
                'center': rng.uniform(-3.0, 3.0, 2),
                'radius': rng.uniform(0.2, 0.35),
                'velocity': speed * np.array([np.cos(heading), np.sin(heading)]),
                'static': False,
            })

        # The laser sits at the origin of every frame, mounted 0.2 m ahead
        # of the base
        transforms = TransformBuffer()
        transforms.set_static_transform(config.map_frame, SENSOR_FRAME, RigidTransform.identity())
        transforms.set_static_transform(config.fixed_frame, SENSOR_FRAME, RigidTransform.identity())
        transforms.set_static_transform(config.base_frame, SENSOR_FRAME,
                                        RigidTransform.from_yaw(0.2, 0.0, 0.0))

        self.detector = MovingObjectDetector(config, transform_service=transforms)
        self.metrics = DetectionMetrics()
        self.reported = 0

    def _move(self):
        for disc in self.discs:
            if disc['static']:
                continue
            disc['center'] = disc['center'] + disc['velocity'] * self.dt
            for axis in range(2):
                limit = ROOM_HALF_SIZE - disc['radius']
                if abs(disc['center'][axis]) > limit:
                    disc['velocity'][axis] *= -1
                    disc['center'][axis] = np.clip(disc['center'][axis], -limit, limit)

    def step(self, frame: int) -> dict:
        self._move()
        self.time += self.dt
        scan = self.lidar.scan(self.discs, self.time)
        result = self.detector.process_laser_scan(scan)
        self.reported += len(result)
        self.metrics.cycles = self.detector.seq
        for obj in result:
            self.metrics.record_object(self.time, obj, self.discs)
        return {
            'time': self.time,
            'scan': scan,
            'objects': result.objects,
            'discs': self.discs,
        }

    def save_logs(self, base_log_dir: str = "log"):
        """Saves the object log (CSV) and the metrics (JSON)."""
        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        os.makedirs(base_log_dir, exist_ok=True)

        if self.metrics.object_log:
            df = pd.DataFrame(self.metrics.object_log)
            csv_file = os.path.join(base_log_dir, f"object_log_{timestamp}.csv")
            df.to_csv(csv_file, index=False, encoding='utf-8')
            print(f"Log saved: {csv_file}")

        json_file = os.path.join(base_log_dir, f"detection_metrics_{timestamp}.json")
        metrics = self.metrics.export_to_json(json_file)
        print(f"Metrics saved: {json_file}")
        return metrics


# =============================================================================
# Visualization
# =============================================================================
class SimulationVisualizer:
    """Simulation visualization with matplotlib."""

    def __init__(self, controller: SimulationController):
        self.controller = controller
        self.speed_history = deque(maxlen=100)

        self.fig = plt.figure(figsize=(12, 6))
        self.ax_main = self.fig.add_subplot(1, 2, 1)
        self.ax_speed = self.fig.add_subplot(1, 2, 2)

    def animate(self, frame: int):
        data = self.controller.step(frame)
        scan = data['scan']

        ax = self.ax_main
        ax.clear()
        ax.set_xlim(-ROOM_HALF_SIZE - 0.5, ROOM_HALF_SIZE + 0.5)
        ax.set_ylim(-ROOM_HALF_SIZE - 0.5, ROOM_HALF_SIZE + 0.5)
        ax.set_aspect('equal')
        ax.set_title(f"t = {data['time']:.1f} s")

        angles = scan.angle_min + scan.angle_increment * np.arange(len(scan.ranges))
        ax.scatter(scan.ranges * np.cos(angles), scan.ranges * np.sin(angles),
                   s=2, c='gray')
        for disc in data['discs']:
            color = 'black' if disc['static'] else 'tab:blue'
            ax.add_patch(plt.Circle(disc['center'], disc['radius'], fill=False, color=color))

        for obj in data['objects']:
            kin = obj.frames[Frame.MAP]
            ax.arrow(kin.position[0], kin.position[1], kin.velocity[0], kin.velocity[1],
                     width=0.03, color=(obj.confidence, 0.2, 1 - obj.confidence))
            ax.plot(*kin.old_position[:2], 'x', color='tab:red')

        speeds = [obj.frames[Frame.MAP].speed for obj in data['objects']]
        self.speed_history.append(max(speeds) if speeds else 0.0)
        self.ax_speed.clear()
        self.ax_speed.plot(list(self.speed_history))
        self.ax_speed.set_title("Fastest reported object (m/s)")
        self.ax_speed.set_ylim(0, 2)

    def run(self):
        """Starts the animation."""
        self.animation = animation.FuncAnimation(
            self.fig, self.animate,
            frames=self.controller.steps,
            interval=int(self.controller.dt * 1000), repeat=False
        )
        plt.show()


def run_headless(controller: SimulationController):
    for frame in range(controller.steps):
        data = controller.step(frame)
        summary = ", ".join(
            f"[{o.index_min}-{o.index_max}] v={o.frames[Frame.MAP].speed:.2f} c={o.confidence:.2f}"
            for o in data['objects'])
        print(f"t={data['time']:6.2f}  objects={len(data['objects'])}  {summary}")
    print(f"Reported {controller.reported} objects, "
          f"statistics: {controller.detector.get_statistics()}")
    print(f"Metrics: {controller.metrics.compute_metrics()}")


# =============================================================================
# Argument Parser
# =============================================================================
def parse_arguments():
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog='simulation.py',
        description="Moving object detection on a synthetic laser scanner.",
        epilog="""
EXAMPLES:
  python simulation.py                          # Animated, default parameters
  python simulation.py --headless --steps 100   # Text output only
  python simulation.py --config config.yaml     # Parameters from YAML
  python simulation.py --headless --log-dir log # Save object log and metrics
""",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('--config', type=str, default=None, metavar='FILE',
                        help='YAML configuration file')
    parser.add_argument('--dt', type=float, default=0.1, metavar='SEC',
                        help='Time between scans in seconds (default: 0.1)')
    parser.add_argument('--steps', type=int, default=300, metavar='N',
                        help='Number of scans (default: 300)')
    parser.add_argument('--movers', type=int, default=2, metavar='N',
                        help='Number of moving discs (default: 2)')
    parser.add_argument('--seed', type=int, default=0,
                        help='Random seed (default: 0)')
    parser.add_argument('--headless', action='store_true',
                        help='Print results instead of animating them')
    parser.add_argument('--log-dir', type=str, default=None, metavar='DIR',
                        help='Save the object log and metrics to DIR at the end')
    parser.add_argument('--verbose', action='store_true',
                        help='Debug logging')
    return parser.parse_args()


# =============================================================================
# Main Entry Point
# =============================================================================
def main():
    args = parse_arguments()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(name)s %(levelname)s: %(message)s")

    config = load_config(args.config) if args.config else BankConfiguration(
        nr_scans_in_bank=5, min_nr_points=3, max_distance=6.0,
        min_speed=0.1, min_confidence=0.5)

    print("=" * 60)
    print("MOVING OBJECT DETECTION - SYNTHETIC LASER")
    print("=" * 60)
    print(f"  Bank: {config.nr_scans_in_bank} scans, alpha={config.ema_alpha}")
    print(f"  Movers: {args.movers}, dt={args.dt}s, steps={args.steps}")
    print("=" * 60)

    controller = SimulationController(config, dt=args.dt, steps=args.steps,
                                      num_movers=args.movers, seed=args.seed)
    if args.headless:
        run_headless(controller)
    else:
        SimulationVisualizer(controller).run()

    if args.log_dir:
        controller.save_logs(args.log_dir)


if __name__ == "__main__":
    main()
