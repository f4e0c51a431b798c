"""Track geometry: boundaries, checkpoints and spawn."""

import json
import logging
import math
from dataclasses import dataclass

import numpy as np

from .config import CURVE_RESOLUTION
from .errors import TrackError
from .geometry import (
    RoundedRect,
    as_segment_array,
    cast_rays,
    cubic_bezier,
    point_in_polygon,
    polygon_segments,
)

log = logging.getLogger(__name__)

GRID_CELL_SIZE = 100  # For spatial partitioning
DEFAULT_CHECKPOINT_RADIUS = 40.0
OVAL_VERTICES = 64


@dataclass(frozen=True)
class Checkpoint:
    x: float
    y: float
    radius: float


def _polygon_area(vertices):
    v = np.asarray(vertices, dtype=np.float64)
    x, y = v[:, 0], v[:, 1]
    return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1)))


class Track:
    """Closed outer/inner boundary pair plus an ordered cycle of checkpoints.

    ``outer`` and ``inner`` are vertex lists. When both are omitted the
    rounded rectangles define the drivable area instead.
    """

    def __init__(self, outer=None, inner=None, checkpoints=(), outer_rect=None,
                 inner_rect=None, name="track", outer_segments=None, inner_segments=None):
        self.name = name
        self.checkpoints = [cp if isinstance(cp, Checkpoint) else Checkpoint(*cp)
                            for cp in checkpoints]
        if len(self.checkpoints) < 2:
            raise TrackError(
                f"track {name!r} needs at least 2 checkpoints, got {len(self.checkpoints)}")
        for cp in self.checkpoints:
            if not all(math.isfinite(v) for v in (cp.x, cp.y, cp.radius)):
                raise TrackError(f"checkpoint values must be finite, got {cp}")
            if cp.radius <= 0:
                raise TrackError(f"checkpoint radius must be positive, got {cp.radius}")

        self.outer_rect = outer_rect
        self.inner_rect = inner_rect
        self.rect_based = outer is None and inner is None
        if self.rect_based:
            if outer_rect is None or inner_rect is None or outer_rect.is_degenerate:
                raise TrackError(f"track {name!r} has neither boundary curves nor rects")
            outer = outer_rect.outline()
            inner = [] if inner_rect.is_degenerate else inner_rect.outline()
        if outer is None or len(outer) < 3:
            raise TrackError(f"track {name!r} outer boundary needs at least 3 vertices")

        self.outer = np.asarray(outer, dtype=np.float64).reshape(-1, 2)
        self.inner = np.asarray(inner if inner is not None else [], dtype=np.float64).reshape(-1, 2)

        if outer_segments is None:
            outer_segments = polygon_segments(self.outer)
        if inner_segments is None:
            inner_segments = polygon_segments(self.inner) if len(self.inner) else np.empty((0, 4))
        outer_segments = as_segment_array(outer_segments)
        inner_segments = as_segment_array(inner_segments)
        self.segments = np.vstack([outer_segments, inner_segments])
        self.segment_sides = ["outer"] * len(outer_segments) + ["inner"] * len(inner_segments)

        self._build_spatial_grid()
        self._compute_spawn()
        if self.is_off_track((self.spawn_x, self.spawn_y)):
            raise TrackError(f"track {name!r} spawn at checkpoint 0 "
                             f"({self.spawn_x:g}, {self.spawn_y:g}) is off the track")

    def __repr__(self):
        return (f"Track({self.name!r}, segments={len(self.segments)}, "
                f"checkpoints={len(self.checkpoints)})")

    def _build_spatial_grid(self):
        """Build spatial hash grid for fast segment lookup."""
        self.grid = {}
        for idx, seg in enumerate(self.segments):
            min_gx = int(min(seg[0], seg[2]) // GRID_CELL_SIZE)
            max_gx = int(max(seg[0], seg[2]) // GRID_CELL_SIZE)
            min_gy = int(min(seg[1], seg[3]) // GRID_CELL_SIZE)
            max_gy = int(max(seg[1], seg[3]) // GRID_CELL_SIZE)
            for gx in range(min_gx, max_gx + 1):
                for gy in range(min_gy, max_gy + 1):
                    self.grid.setdefault((gx, gy), []).append(idx)

    def get_nearby_segments(self, x, y, radius):
        """Get segment indices near a point."""
        gx, gy = int(x // GRID_CELL_SIZE), int(y // GRID_CELL_SIZE)
        r = int(radius / GRID_CELL_SIZE) + 1
        indices = set()
        for dx in range(-r, r + 1):
            for dy in range(-r, r + 1):
                key = (gx + dx, gy + dy)
                if key in self.grid:
                    indices.update(self.grid[key])
        return indices

    def _compute_spawn(self):
        first, second = self.checkpoints[0], self.checkpoints[1]
        self.spawn_x = first.x
        self.spawn_y = first.y
        self.spawn_angle = math.atan2(second.y - first.y, second.x - first.x)

    # ---------------- queries ----------------

    def cast_rays(self, origin, angles, max_length):
        nearby = self.get_nearby_segments(origin[0], origin[1], max_length)
        if not nearby:
            return np.full(len(angles), float(max_length))
        return cast_rays(origin, angles, max_length, self.segments[sorted(nearby)])

    def cast_ray(self, origin, angle, max_length):
        return float(self.cast_rays(origin, [angle], max_length)[0])

    def is_off_track(self, point):
        if self.rect_based:
            if not self.outer_rect.contains(point):
                return True
            return not self.inner_rect.is_degenerate and self.inner_rect.contains(point)
        if not point_in_polygon(point, self.outer):
            return True
        return len(self.inner) >= 3 and point_in_polygon(point, self.inner)

    def checkpoint_reached(self, car, laps):
        """Advance the car's checkpoint pointer if it is inside the next capture radius.

        Passing the last checkpoint counts a lap; the pointer wraps to 0 and
        the car finishes once ``laps`` laps are done.
        """
        cp = self.checkpoints[car.checkpoint_index]
        if math.hypot(car.x - cp.x, car.y - cp.y) >= cp.radius:
            return False
        car.checkpoint_index += 1
        if car.checkpoint_index >= len(self.checkpoints):
            car.checkpoint_index = 0
            car.lap += 1
            if car.lap >= laps:
                car.finish()
        return True

    def progress_percent(self, cars, laps):
        if not cars:
            return 0.0
        count = len(self.checkpoints)
        target = laps * count
        done = sum(min(c.lap * count + c.checkpoint_index, target) for c in cars)
        return 100.0 * done / (len(cars) * target)

    def bounds(self):
        pts = np.vstack([self.outer, self.inner]) if len(self.inner) else self.outer
        return (float(pts[:, 0].min()), float(pts[:, 1].min()),
                float(pts[:, 0].max()), float(pts[:, 1].max()))

    # ---------------- loading ----------------

    @classmethod
    def from_dict(cls, data, resolution=CURVE_RESOLUTION, name="track"):
        """Build a track from the editor format.

        ``{curves: {outer: [...], inner: [...]}, checkpoints: [{x, y, radius}],
        outerRect, innerRect}`` where each curve segment is
        ``{start, cp1, cp2, end}`` of ``[x, y]`` pairs.
        """
        if not isinstance(data, dict):
            raise TrackError(f"track data must be a mapping, got {type(data).__name__}")
        try:
            checkpoints = [Checkpoint(float(c["x"]), float(c["y"]),
                                      float(c.get("radius", DEFAULT_CHECKPOINT_RADIUS)))
                           for c in data.get("checkpoints", [])]
        except (KeyError, TypeError, ValueError) as e:
            raise TrackError(f"malformed checkpoint in {name!r}: {e}") from e
        if len(checkpoints) < 2:
            raise TrackError(f"track {name!r} needs at least 2 checkpoints, got {len(checkpoints)}")

        curves = data.get("curves") or {}
        if not isinstance(curves, dict):
            raise TrackError(f"'curves' must be a mapping in {name!r}")
        outer_curves = curves.get("outer") or []
        inner_curves = curves.get("inner") or []

        try:
            outer_rect = RoundedRect.from_dict(data["outerRect"]) if data.get("outerRect") else None
            inner_rect = RoundedRect.from_dict(data["innerRect"]) if data.get("innerRect") else None
        except (KeyError, TypeError, ValueError) as e:
            raise TrackError(f"malformed rect in {name!r}: {e}") from e

        if not outer_curves and not inner_curves:
            return cls(checkpoints=checkpoints, outer_rect=outer_rect,
                       inner_rect=inner_rect, name=name)
        if not outer_curves:
            raise TrackError(f"track {name!r} has inner curves but no outer boundary")

        outer, outer_segs = _tessellate(outer_curves, resolution, name)
        inner, inner_segs = _tessellate(inner_curves, resolution, name)
        return cls(outer, inner if len(inner) else None, checkpoints,
                   outer_rect=outer_rect, inner_rect=inner_rect, name=name,
                   outer_segments=outer_segs, inner_segments=inner_segs)

    @classmethod
    def from_json(cls, path, resolution=CURVE_RESOLUTION):
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise TrackError(f"{path}: invalid JSON: {e}") from e
        name = str(path).replace("\\", "/").rsplit("/", 1)[-1].rsplit(".", 1)[0]
        track = cls.from_dict(data, resolution=resolution, name=name)
        log.info("Loaded track %s: %d segments, %d checkpoints",
                 name, len(track.segments), len(track.checkpoints))
        return track

    @classmethod
    def from_centerline_csv(cls, path, checkpoint_count=16, radius=None, width_scale=5.0):
        """Track from a centreline CSV: ``x, y[, width_right, width_left]`` per row."""
        cx, cy, wr, wl = [], [], [], []
        try:
            with open(path, "r", encoding="utf-8") as f:
                lines = f.readlines()
        except UnicodeDecodeError as e:
            raise TrackError(f"{path}: not a text file: {e}") from e
        for line in lines:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            parts = line.split(",")
            try:
                cx.append(float(parts[0]))
                cy.append(float(parts[1]))
                wr.append(float(parts[2]) if len(parts) > 2 else 6.0)
                wl.append(float(parts[3]) if len(parts) > 3 else 6.0)
            except (IndexError, ValueError) as e:
                raise TrackError(f"{path}: bad centreline row {line!r}") from e
        n = len(cx)
        if n < 3:
            raise TrackError(f"{path}: centreline needs at least 3 points, got {n}")
        if checkpoint_count < 2:
            raise TrackError(f"checkpoint_count must be >= 2, got {checkpoint_count}")

        cx, cy = np.array(cx), np.array(cy)
        w_right = np.array(wr) * width_scale
        w_left = np.array(wl) * width_scale

        # Offset along the normals of the centreline
        next_i = (np.arange(n) + 1) % n
        prev_i = (np.arange(n) - 1) % n
        dx = cx[next_i] - cx[prev_i]
        dy = cy[next_i] - cy[prev_i]
        length = np.sqrt(dx * dx + dy * dy) + 1e-9
        nx, ny = -dy / length, dx / length
        left = np.column_stack([cx + nx * w_left, cy + ny * w_left])
        right = np.column_stack([cx - nx * w_right, cy - ny * w_right])
        if abs(_polygon_area(left)) >= abs(_polygon_area(right)):
            outer, inner = left, right
        else:
            outer, inner = right, left

        checkpoints = []
        for k in range(checkpoint_count):
            idx = int((k / checkpoint_count) * n) % n
            r = radius if radius is not None else (w_left[idx] + w_right[idx]) / 2
            checkpoints.append(Checkpoint(float(cx[idx]), float(cy[idx]), float(r)))

        name = str(path).replace("\\", "/").rsplit("/", 1)[-1].rsplit(".", 1)[0]
        return cls(outer, inner, checkpoints, name=name)


def _tessellate(curves, resolution, name):
    """Bezier curve list -> (vertex list, segment array)."""
    points, segments = [], []
    for i, seg in enumerate(curves):
        try:
            pts = cubic_bezier(seg["start"], seg["cp1"], seg["cp2"], seg["end"], resolution)
        except (KeyError, TypeError, ValueError) as e:
            raise TrackError(f"malformed curve segment {i} in {name!r}: {e}") from e
        if pts.shape != (resolution + 1, 2) or not np.all(np.isfinite(pts)):
            raise TrackError(f"malformed curve segment {i} in {name!r}")
        segments.append(np.hstack([pts[:-1], pts[1:]]))
        points.extend(map(tuple, pts if not points else pts[1:]))
    if not segments:
        return np.empty((0, 2)), np.empty((0, 4))
    return np.asarray(points), np.vstack(segments)


def default_track():
    """Oval centred at (400, 250) with eight checkpoints on the racing line."""
    centre_x, centre_y = 400.0, 250.0
    angles = np.linspace(0.0, 2 * np.pi, OVAL_VERTICES, endpoint=False)
    outer = np.column_stack([centre_x + 350 * np.cos(angles), centre_y + 200 * np.sin(angles)])
    inner = np.column_stack([centre_x + 250 * np.cos(angles), centre_y + 150 * np.sin(angles)])
    # Clockwise on screen starting at the left straight, heading down
    checkpoints = []
    for k in range(8):
        a = math.pi - k * math.pi / 4
        checkpoints.append(Checkpoint(centre_x + 300 * math.cos(a),
                                      centre_y + 175 * math.sin(a),
                                      DEFAULT_CHECKPOINT_RADIUS))
    return Track(outer, inner, checkpoints, name="oval")
